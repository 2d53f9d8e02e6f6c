# backend/coachledger/models/availability.py
"""
Coach working-window models.

Templates describe the recurring weekly windows; overrides block time or add
extra windows on a specific date. Both are wall-clock times in the coach's
timezone.
"""

from datetime import date, time
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Boolean, Date, Index, Integer, SmallInteger, String, Time
from sqlalchemy.orm import Mapped, mapped_column

from ..core.ulid_helper import generate_ulid
from ..database import Base


class AvailabilityType(str, Enum):
    """Which kind of appointment a window accepts."""

    SESSION = "session"
    CHECKIN = "checkin"


class AvailabilityTemplate(Base):
    """Recurring weekly working window."""

    __tablename__ = "coach_availability_templates"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    coach_id: Mapped[str] = mapped_column(String(26), nullable=False)
    availability_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AvailabilityType.SESSION.value
    )
    # 0 = Sunday ... 6 = Saturday
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    max_concurrent_clients: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_templates_day_of_week"),
        CheckConstraint("end_time > start_time", name="ck_templates_time_order"),
        CheckConstraint("max_concurrent_clients >= 1", name="ck_templates_capacity"),
        Index("ix_templates_coach_type_day", "coach_id", "availability_type", "day_of_week"),
    )


class AvailabilityOverride(Base):
    """Per-date exception: blocks time, or opens an extra window."""

    __tablename__ = "coach_availability_overrides"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    coach_id: Mapped[str] = mapped_column(String(26), nullable=False)
    availability_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AvailabilityType.SESSION.value
    )
    override_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Both null means the whole day.
    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_concurrent_clients: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(start_time IS NULL AND end_time IS NULL) OR "
            "(start_time IS NOT NULL AND end_time IS NOT NULL AND end_time > start_time)",
            name="ck_overrides_time_range",
        ),
        CheckConstraint(
            "is_blocked OR start_time IS NOT NULL",
            name="ck_overrides_extra_window_has_range",
        ),
        Index("ix_overrides_coach_type_date", "coach_id", "availability_type", "override_date"),
    )

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None
