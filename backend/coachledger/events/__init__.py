"""Booking domain events and their in-process publisher."""

from .booking_events import (
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingDeleted,
    BookingNoShow,
    BookingRescheduled,
)
from .publisher import BookingEventPublisher, Event, EventListener, booking_event_publisher

__all__ = [
    "BookingCancelled",
    "BookingCompleted",
    "BookingCreated",
    "BookingDeleted",
    "BookingEventPublisher",
    "BookingNoShow",
    "BookingRescheduled",
    "Event",
    "EventListener",
    "booking_event_publisher",
]
