# backend/coachledger/repositories/subscription_repository.py
"""Repository for client subscriptions and their hybrid session balance."""

from datetime import date
from typing import Any, List

from sqlalchemy import case, or_, select, update
from sqlalchemy.orm import Session

from ..core.constants import ROLLOVER_MULTIPLIER
from ..core.timezone_utils import utc_now
from ..models.subscription import ClientSubscription, SubscriptionType
from .base_repository import BaseRepository


class SubscriptionRepository(BaseRepository[ClientSubscription]):
    """Data access for ClientSubscription balances."""

    def __init__(self, db: Session):
        super().__init__(db, ClientSubscription)

    def debit_available(self, subscription_id: str, count: int) -> bool:
        """Decrement only for an active hybrid plan with enough sessions left."""
        stmt = (
            update(ClientSubscription)
            .where(
                ClientSubscription.id == subscription_id,
                ClientSubscription.subscription_type == SubscriptionType.HYBRID.value,
                ClientSubscription.is_active.is_(True),
                ClientSubscription.available_sessions >= count,
            )
            .values(
                available_sessions=ClientSubscription.available_sessions - count,
                updated_at=utc_now(),
            )
        )
        touched = self._execute_rowcount(stmt)
        self._forget_cached([subscription_id])
        return touched == 1

    def replenish(self, subscription_id: str, month: date) -> bool:
        """
        Add one month's allotment, clamped at the rollover ceiling.

        The last_replenished_month predicate makes a repeat for the same month
        a no-op.
        """
        ceiling = ROLLOVER_MULTIPLIER * ClientSubscription.monthly_sessions
        topped_up = ClientSubscription.available_sessions + ClientSubscription.monthly_sessions
        stmt = (
            update(ClientSubscription)
            .where(
                ClientSubscription.id == subscription_id,
                ClientSubscription.subscription_type == SubscriptionType.HYBRID.value,
                ClientSubscription.is_active.is_(True),
                or_(
                    ClientSubscription.last_replenished_month.is_(None),
                    ClientSubscription.last_replenished_month < month,
                ),
            )
            .values(
                available_sessions=case((topped_up > ceiling, ceiling), else_=topped_up),
                last_replenished_month=month,
                updated_at=utc_now(),
            )
        )
        touched = self._execute_rowcount(stmt)
        self._forget_cached([subscription_id])
        return touched == 1

    def compare_and_set_available(
        self, subscription_id: str, previous: int, new_balance: int, **extra: Any
    ) -> bool:
        stmt = (
            update(ClientSubscription)
            .where(
                ClientSubscription.id == subscription_id,
                ClientSubscription.available_sessions == previous,
            )
            .values(available_sessions=new_balance, updated_at=utc_now(), **extra)
        )
        touched = self._execute_rowcount(stmt)
        self._forget_cached([subscription_id])
        return touched == 1

    def list_for_coach(self, coach_id: str) -> List[ClientSubscription]:
        stmt = (
            select(ClientSubscription)
            .where(ClientSubscription.coach_id == coach_id)
            .order_by(ClientSubscription.created_at.desc(), ClientSubscription.id.desc())
        )
        return self._execute_scalars(stmt)

    def list_due_for_replenishment(self, month: date) -> List[str]:
        """Ids of active hybrid subscriptions not yet replenished for month."""
        stmt = (
            select(ClientSubscription.id)
            .where(
                ClientSubscription.subscription_type == SubscriptionType.HYBRID.value,
                ClientSubscription.is_active.is_(True),
                or_(
                    ClientSubscription.last_replenished_month.is_(None),
                    ClientSubscription.last_replenished_month < month,
                ),
            )
            .order_by(ClientSubscription.id)
        )
        return self._execute_scalars(stmt)
