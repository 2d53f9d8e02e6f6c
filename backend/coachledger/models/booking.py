# backend/coachledger/models/booking.py
"""
Booking model.

A booking is a reserved appointment between a coach and either a client with
an account or a named one-off invitee. The credit source tag (package,
subscription, or neither) is fixed at creation and decides refund eligibility
when the row is later deleted.
"""

from datetime import datetime
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.timezone_utils import utc_now
from ..core.ulid_helper import generate_ulid
from ..database import Base

if TYPE_CHECKING:
    from .session_package import SessionPackage
    from .subscription import ClientSubscription

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    CONFIRMED = "confirmed"  # Default - instant booking
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"  # Client didn't attend


class BookingType(str, Enum):
    """What the appointment is for."""

    SESSION = "session"
    CHECKIN = "checkin"


class Booking(Base):
    """Self-contained booking record between a coach and a client or invitee."""

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    coach_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    client_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    one_off_client_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    booking_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingType.SESSION.value
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True
    )

    # Credit source, fixed at creation
    package_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("session_packages.id", ondelete="SET NULL"), nullable=True
    )
    subscription_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("client_subscriptions.id", ondelete="SET NULL"), nullable=True
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=utc_now, nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    package: Mapped[Optional["SessionPackage"]] = relationship("SessionPackage")
    subscription: Mapped[Optional["ClientSubscription"]] = relationship("ClientSubscription")

    __table_args__ = (
        CheckConstraint(
            "status IN ('confirmed', 'completed', 'cancelled', 'no_show')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "booking_type IN ('session', 'checkin')",
            name="ck_bookings_booking_type",
        ),
        CheckConstraint("ends_at > starts_at", name="ck_bookings_time_order"),
        CheckConstraint(
            "package_id IS NULL OR subscription_id IS NULL",
            name="ck_bookings_single_credit_source",
        ),
        CheckConstraint(
            "client_id IS NOT NULL OR one_off_client_name IS NOT NULL",
            name="ck_bookings_client_or_invitee",
        ),
        Index("ix_bookings_coach_status_ends", "coach_id", "status", "ends_at"),
        Index("ix_bookings_client_starts", "client_id", "starts_at"),
    )

    def __init__(self, **kwargs: Any) -> None:
        """Initialize with instant confirmation by default."""
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.CONFIRMED.value

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Booking {self.id}: coach={self.coach_id}, client={self.client_id}, "
            f"type={self.booking_type}, {self.starts_at}-{self.ends_at}, status={self.status}>"
        )

    @property
    def is_one_off(self) -> bool:
        return self.client_id is None

    @property
    def credit_source(self) -> str:
        """Which ledger the booking was debited against: package, subscription or none."""
        if self.package_id:
            return "package"
        if self.subscription_id:
            return "subscription"
        return "none"

    @property
    def duration_minutes(self) -> int:
        return int((self.ends_at - self.starts_at).total_seconds() // 60)
