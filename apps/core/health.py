"""Queue liveness reporting shared by the health endpoint and the periodic probe."""

from __future__ import annotations

import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


def queue_status(queue) -> Dict[str, Dict[str, Any]]:
    """Readiness and job counts for every declared queue."""
    report: Dict[str, Dict[str, Any]] = {}
    for name in queue.queue_names:
        ready = queue.is_ready(name)
        entry: Dict[str, Any] = {"ready": ready}
        if ready:
            entry.update(queue.counts(name).as_dict())
        report[name] = entry
    return report


class QueueHealthProbe:
    def __init__(self, queue):
        self.queue = queue

    def check(self) -> Dict[str, Dict[str, Any]]:
        report = queue_status(self.queue)
        for name, entry in report.items():
            if not entry["ready"]:
                logger.error(f"Queue {name} is not ready")
            elif entry.get("failed"):
                logger.warning(
                    f"Queue {name}: {entry['active']} active, {entry['waiting']} waiting, "
                    f"{entry['failed']} failed"
                )
            else:
                logger.debug(f"Queue {name}: {entry}")
        return report
