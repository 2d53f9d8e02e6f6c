from .booking import (
    AvailableSlot,
    BulkDeletionResult,
    DeletionResult,
    StreakUpdateResult,
    SweepResult,
    TimeSlot,
)

__all__ = [
    "AvailableSlot",
    "BulkDeletionResult",
    "DeletionResult",
    "StreakUpdateResult",
    "SweepResult",
    "TimeSlot",
]
