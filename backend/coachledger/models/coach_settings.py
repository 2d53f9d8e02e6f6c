"""Per-coach booking policy."""

from typing import Optional

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class CoachBookingSettings(Base):
    __tablename__ = "coach_booking_settings"

    coach_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    min_notice_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "min_notice_hours IS NULL OR min_notice_hours >= 0",
            name="ck_coach_settings_notice_non_negative",
        ),
    )
