"""Rolling attendance counters per client and coach."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..core.timezone_utils import utc_now
from ..core.ulid_helper import generate_ulid
from ..database import Base


class ClientBookingStats(Base):
    """
    No-show and cancellation counts over the configured rolling window, plus
    the weekly attendance streak and the client's habitual start times.
    """

    __tablename__ = "client_booking_stats"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    client_id: Mapped[str] = mapped_column(String(26), nullable=False)
    coach_id: Mapped[str] = mapped_column(String(26), nullable=False)
    no_show_count_90d: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cancellation_count_90d: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_flagged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_streak_weeks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak_weeks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # [{"day": 0-6 with Sunday as 0, "time": "HH:MM"}] in the coach's timezone
    favorite_times: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    last_streak_update: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=True
    )

    __table_args__ = (
        UniqueConstraint("client_id", "coach_id", name="uq_booking_stats_client_coach"),
    )
