"""
Tracking event system.

The archivist publishes what happens to each snapshot, version and batch.
Listeners are plain objects exposing ``on_<event>`` methods, for example::

    class Notifier:
        def on_version_recorded(self, service_id, terms_type, version_id):
            ...

    archivist.attach(Notifier())
"""
from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class TrackingEvent(str, Enum):
    """Events emitted while tracking terms."""

    # Per document
    SNAPSHOT_RECORDED = "snapshot_recorded"
    FIRST_SNAPSHOT_RECORDED = "first_snapshot_recorded"
    SNAPSHOT_NOT_CHANGED = "snapshot_not_changed"

    # Per terms
    VERSION_RECORDED = "version_recorded"
    FIRST_VERSION_RECORDED = "first_version_recorded"
    VERSION_NOT_CHANGED = "version_not_changed"

    # Per batch
    TRACKING_STARTED = "tracking_started"
    TRACKING_COMPLETED = "tracking_completed"

    # Failures
    INACCESSIBLE_CONTENT = "inaccessible_content"
    ERROR = "error"

    @property
    def handler_name(self) -> str:
        return f"on_{self.value}"


class EventPublisher:
    """Synchronous fan-out of tracking events to registered callbacks."""

    def __init__(self) -> None:
        self._listeners: dict[TrackingEvent, list[Callable[..., Any]]] = defaultdict(list)

    def on(self, event: TrackingEvent, callback: Callable[..., Any]) -> None:
        self._listeners[event].append(callback)

    def attach(self, listener: object) -> None:
        """Register every ``on_<event>`` method of ``listener``."""
        for event in TrackingEvent:
            handler = getattr(listener, event.handler_name, None)
            if callable(handler):
                self.on(event, handler)

    def emit(self, event: TrackingEvent, *args: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception:
                # One failing listener must not keep the others from being notified
                logger.exception("Listener %r failed while handling %s", callback, event.value)

    def listener_count(self, event: TrackingEvent) -> int:
        return len(self._listeners[event])
