"""Booking domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class BookingCreated:
    """Fired after a booking is successfully created."""

    booking_id: str
    coach_id: str
    client_id: Optional[str]
    booking_type: str
    starts_at: datetime
    ends_at: datetime
    credit_source: str  # 'package', 'subscription' or 'none'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingRescheduled:
    """Fired after a booking moves to a new start time."""

    booking_id: str
    coach_id: str
    client_id: Optional[str]
    previous_starts_at: datetime
    starts_at: datetime
    ends_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCancelled:
    """Fired after a booking is cancelled."""

    booking_id: str
    coach_id: str
    client_id: Optional[str]
    cancelled_at: datetime
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCompleted:
    """Fired after a booking is marked complete, explicitly or by the sweep."""

    booking_id: str
    completed_at: datetime
    auto_completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingNoShow:
    """Fired after a booking is marked as a no-show."""

    booking_id: str
    coach_id: str
    client_id: Optional[str]
    marked_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingDeleted:
    """Fired after a booking row is hard-deleted."""

    booking_id: str
    coach_id: str
    client_id: Optional[str]
    last_status: str
    refunded: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
