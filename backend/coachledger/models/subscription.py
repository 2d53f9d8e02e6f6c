# backend/coachledger/models/subscription.py
"""Client subscription model: recurring monthly allotment or unmetered plan."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.constants import ROLLOVER_MULTIPLIER
from ..core.timezone_utils import utc_now
from ..core.ulid_helper import generate_ulid
from ..database import Base


class SubscriptionType(str, Enum):
    """Subscription plans."""

    HYBRID = "hybrid"  # Monthly session allotment with one month of rollover
    ONLINE_ONLY = "online_only"  # No countable balance


class ClientSubscription(Base):
    """A client's recurring plan with a coach."""

    __tablename__ = "client_subscriptions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    client_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    coach_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    subscription_type: Mapped[str] = mapped_column(String(20), nullable=False)
    monthly_sessions: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    available_sessions: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    session_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # First day of the last month a replenishment was applied for.
    last_replenished_month: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=utc_now, nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "subscription_type IN ('hybrid', 'online_only')",
            name="ck_subscriptions_type",
        ),
        CheckConstraint(
            "subscription_type <> 'hybrid' OR ("
            "monthly_sessions IS NOT NULL AND monthly_sessions > 0 "
            "AND available_sessions IS NOT NULL AND available_sessions >= 0 "
            f"AND available_sessions <= {ROLLOVER_MULTIPLIER} * monthly_sessions)",
            name="ck_subscriptions_hybrid_balance",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ClientSubscription {self.id}: client={self.client_id}, "
            f"type={self.subscription_type}, available={self.available_sessions}>"
        )

    @property
    def is_hybrid(self) -> bool:
        return self.subscription_type == SubscriptionType.HYBRID.value

    @property
    def balance_ceiling(self) -> Optional[int]:
        if not self.is_hybrid or self.monthly_sessions is None:
            return None
        return ROLLOVER_MULTIPLIER * self.monthly_sessions
