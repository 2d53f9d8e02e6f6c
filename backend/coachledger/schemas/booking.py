# backend/coachledger/schemas/booking.py
"""
Booking-related DTOs passed to and returned from the service layer.

Slots are not validated here: the scheduler owns slot rules and reports
violations with InvalidSlotException.
"""

from datetime import datetime
from typing import List

from pydantic import ConfigDict, Field

from .base import StandardizedModel, StrictModel


class TimeSlot(StrictModel):
    """A requested appointment interval."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    starts_at: datetime
    ends_at: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.ends_at - self.starts_at).total_seconds() // 60)


class AvailableSlot(TimeSlot):
    """Candidate open interval produced by the availability resolver."""

    available_capacity: int = Field(default=1, ge=1, description="Window capacity, informational")
    is_favorite: bool = Field(
        default=False, description="Start matches one of the requesting client's favorite times"
    )


class DeletionResult(StandardizedModel):
    booking_id: str
    refunded: bool = False


class BulkDeletionResult(StandardizedModel):
    """Outcome of deleting several bookings, one transaction per id."""

    deleted: List[DeletionResult] = Field(default_factory=list)
    not_found: List[str] = Field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)

    @property
    def refunded_count(self) -> int:
        return sum(1 for result in self.deleted if result.refunded)


class SweepResult(StandardizedModel):
    count: int = 0
    booking_ids: List[str] = Field(default_factory=list)


class StreakUpdateResult(StandardizedModel):
    """Outcome of one weekly streak pass over every tracked (client, coach) pair."""

    processed: int = 0
    incremented: int = 0
    reset: int = 0
