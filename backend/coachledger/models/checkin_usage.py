# backend/coachledger/models/checkin_usage.py
"""Monthly virtual check-in allowance, one row per (client, coach, month)."""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.timezone_utils import utc_now
from ..core.ulid_helper import generate_ulid
from ..database import Base


class ClientCheckinUsage(Base):
    """Tracks whether a client consumed their check-in for a calendar month."""

    __tablename__ = "client_checkin_usage"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    client_id: Mapped[str] = mapped_column(String(26), nullable=False)
    coach_id: Mapped[str] = mapped_column(String(26), nullable=False)
    month: Mapped[date] = mapped_column(Date, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Plain reference: the allowance stays consumed even if the booking is deleted.
    booking_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("client_id", "coach_id", "month", name="uq_checkin_usage_client_month"),
    )

    def __repr__(self) -> str:
        return (
            f"<ClientCheckinUsage client={self.client_id} coach={self.coach_id} "
            f"month={self.month} used={self.used}>"
        )
