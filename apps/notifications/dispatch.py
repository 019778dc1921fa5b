"""
Notification Dispatch Consumer

Resolves the channels of a :class:`NotificationRequest` and hands each one
to its provider. A channel that fails is logged and reported in the result;
it never stops delivery on the remaining channels.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Sequence

from .directory import RecipientDirectory
from .providers import BaseProvider, Result
from .types import NotificationRequest

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(self, providers: Mapping[str, BaseProvider], directory: RecipientDirectory):
        self.providers = {str(channel): provider for channel, provider in providers.items()}
        self.directory = directory

    def send(self, request: NotificationRequest, skip_channels: Iterable[str] = ()) -> Dict[str, Result]:
        """
        Deliver one request on each of its channels.

        Returns the per-channel results. Only a failed recipient lookup
        propagates, so the calling job can retry it.
        """
        skipped = {str(channel) for channel in skip_channels}
        recipient = self.directory.lookup(request.user_id)
        results: Dict[str, Result] = {}

        for channel in request.channels:
            if channel in skipped:
                continue
            provider = self.providers.get(channel)
            if provider is None:
                results[channel] = {"success": False, "error": f"No provider for channel {channel}"}
                continue
            try:
                results[channel] = provider.send(recipient, request)
            except Exception as e:
                logger.error(
                    f"Error sending {request.type} to user {request.user_id} via {channel}: {e}",
                    exc_info=True,
                )
                results[channel] = {"success": False, "error": str(e)}

        delivered = [channel for channel, result in results.items() if result.get("success")]
        failed = {channel: result.get("error") for channel, result in results.items() if not result.get("success")}
        if failed:
            logger.warning(f"Notification {request.type} to user {request.user_id} not delivered via: {failed}")
        logger.info(f"Notification sent to user {request.user_id} via: {', '.join(delivered) or 'none'}")
        return results

    def send_batch(self, requests: Sequence[NotificationRequest]) -> Dict[str, int]:
        """Send every request independently; count those that went through."""
        successful = 0
        failed = 0
        for request in requests:
            try:
                self.send(request)
                successful += 1
            except Exception as e:
                failed += 1
                logger.error(f"Batch notification to user {request.user_id} failed: {e}", exc_info=True)

        logger.info(f"Batch notifications: {successful} successful, {failed} failed")
        return {"successful": successful, "failed": failed}
