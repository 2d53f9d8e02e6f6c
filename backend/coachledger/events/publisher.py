"""Event publisher - dispatches booking events to in-process listeners after commit."""
from datetime import datetime
import logging
from typing import Any, Callable, Dict, List, Protocol, Sequence

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


EventListener = Callable[[Event], None]


class BookingEventPublisher:
    """
    Fan-out of booking lifecycle events to registered listeners.

    Calendar sync and notification adapters register here. Publishing happens
    only after the owning transaction committed; a failing listener is logged
    and never affects the booking operation or the other listeners.
    """

    def __init__(self) -> None:
        self._listeners: List[EventListener] = []

    def register(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def unregister(self, listener: EventListener) -> None:
        self._listeners = [existing for existing in self._listeners if existing != listener]

    def listeners(self) -> Sequence[EventListener]:
        return tuple(self._listeners)

    def publish(self, event: Event) -> None:
        event_type = type(event).__name__
        payload = event.to_dict()

        # Convert datetime objects to ISO strings for log serialization
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Booking event listener error: %s", listener)
        logger.info("booking_event=%s payload=%s", event_type, payload)

    def publish_all(self, events: Sequence[Event]) -> None:
        for event in events:
            self.publish(event)


# Process-wide publisher used when a service is not handed its own.
booking_event_publisher = BookingEventPublisher()
