# backend/coachledger/models/session_package.py
"""
Session package models.

A package is a purchased bundle of session credits. Its balance only moves
through the package ledger service, and every manual correction leaves an
append-only PackageAdjustment row behind.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.timezone_utils import ensure_utc, utc_now
from ..core.ulid_helper import generate_ulid
from ..database import Base


class SessionPackage(Base):
    """A finite bundle of session credits granted to a client by a coach."""

    __tablename__ = "session_packages"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    client_id: Mapped[str] = mapped_column(String(26), nullable=False)
    coach_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining_sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    session_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=utc_now, nullable=True
    )

    adjustments: Mapped[List["PackageAdjustment"]] = relationship(
        "PackageAdjustment",
        back_populates="package",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="desc(PackageAdjustment.created_at)",
    )

    __table_args__ = (
        CheckConstraint("remaining_sessions >= 0", name="ck_packages_remaining_non_negative"),
        CheckConstraint("total_sessions > 0", name="ck_packages_total_positive"),
        CheckConstraint("session_duration_minutes > 0", name="ck_packages_duration_positive"),
        Index("ix_session_packages_client_coach", "client_id", "coach_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<SessionPackage {self.id}: client={self.client_id}, "
            f"remaining={self.remaining_sessions}/{self.total_sessions}>"
        )

    def is_expired(self, as_of: Optional[datetime] = None) -> bool:
        """Expired packages keep their balance but cannot fund new bookings."""
        if self.expires_at is None:
            return False
        now = ensure_utc(as_of or utc_now())
        return ensure_utc(self.expires_at) <= now


class PackageAdjustment(Base):
    """Append-only audit entry for a manual package balance correction."""

    __tablename__ = "session_package_adjustments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    package_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("session_packages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    adjustment: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_balance: Mapped[int] = mapped_column(Integer, nullable=False)
    new_balance: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    adjusted_by: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )

    package: Mapped["SessionPackage"] = relationship("SessionPackage", back_populates="adjustments")

    __table_args__ = (
        CheckConstraint("adjustment <> 0", name="ck_adjustments_non_zero"),
        CheckConstraint(
            "new_balance = previous_balance + adjustment", name="ck_adjustments_balance_math"
        ),
        CheckConstraint("new_balance >= 0", name="ck_adjustments_new_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<PackageAdjustment {self.id}: package={self.package_id}, "
            f"{self.previous_balance}{self.adjustment:+d}={self.new_balance}>"
        )
