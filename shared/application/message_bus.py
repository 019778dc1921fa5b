"""
Message Bus

In-process publish/subscribe hub. HTTP handlers and lifecycle jobs emit
domain events; every listener registered for the event name is invoked
synchronously, in registration order.
"""

from typing import Any, Callable, Dict, Iterable, List
from concurrent.futures import ThreadPoolExecutor
import asyncio
import inspect
import logging

from asgiref.sync import async_to_sync

from shared.domain.base import DomainEvent
from shared.exceptions import DuplicateBindingError, MissingBindingError

logger = logging.getLogger(__name__)

Listener = Callable[[DomainEvent], Any]


class MessageBus:
    """
    Message bus for domain events

    Events: Multiple listeners per event name (1:N)

    A listener that raises is logged and skipped; its siblings still run.
    Coroutine listeners are driven to completion before the next listener
    starts, so a single ``emit`` call has finished all of its work when it
    returns.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event_name: str, listener: Listener):
        """
        Register a listener

        Multiple listeners can be registered for the same event name,
        but the same listener only once.
        """
        listeners = self._listeners.setdefault(event_name, [])
        if listener in listeners:
            raise DuplicateBindingError(
                f"Listener {_listener_name(listener)} is already registered "
                f"for event '{event_name}'"
            )
        listeners.append(listener)
        logger.debug(f"Registered listener {_listener_name(listener)} for {event_name}")

    def listeners(self, event_name: str) -> List[Listener]:
        return list(self._listeners.get(event_name, []))

    def validate(self, expected_events: Iterable[str]):
        """Fail fast when an event the platform emits has nobody listening."""
        missing = sorted(name for name in expected_events if not self._listeners.get(name))
        if missing:
            raise MissingBindingError(
                f"No listeners registered for events: {', '.join(missing)}"
            )

    def emit(self, event_name: str, payload: Any = None) -> DomainEvent:
        """
        Publish a domain event

        All registered listeners for the event name will be called.
        Errors in listeners are logged but don't stop other listeners.
        """
        event = DomainEvent(name=event_name, payload=payload)
        listeners = self._listeners.get(event_name, [])

        if not listeners:
            logger.warning(f"No listeners registered for event {event_name}")
            return event

        logger.info(f"Publishing event: {event_name} (ID: {event.event_id})")

        for listener in listeners:
            try:
                if inspect.iscoroutinefunction(listener):
                    _run_coroutine_listener(listener, event)
                else:
                    listener(event)
                logger.debug(f"Event {event_name} handled by {_listener_name(listener)}")
            except Exception as e:
                logger.error(
                    f"Error in listener {_listener_name(listener)} "
                    f"for event {event_name}: {e}",
                    exc_info=True
                )
                # Don't raise - other listeners should still run
        return event


def _run_coroutine_listener(listener: Listener, event: DomainEvent) -> None:
    """Drive an async listener to completion from synchronous code."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        async_to_sync(listener)(event)
        return
    # async_to_sync refuses to run on a thread that already has a loop.
    with ThreadPoolExecutor(max_workers=1) as pool:
        pool.submit(async_to_sync(listener), event).result()


def _listener_name(listener: Listener) -> str:
    return getattr(listener, '__qualname__', None) or repr(listener)
