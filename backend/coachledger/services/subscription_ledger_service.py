# backend/coachledger/services/subscription_ledger_service.py
"""
Subscription side of the credit ledger.

Hybrid subscriptions carry a monthly allotment with one month of rollover:
0 <= available_sessions <= ROLLOVER_MULTIPLIER * monthly_sessions. Online-only
subscriptions have no balance and are never debited.
"""

from __future__ import annotations

from datetime import date
import logging
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..core.constants import ROLLOVER_MULTIPLIER
from ..core.exceptions import (
    BusinessRuleException,
    ConcurrentModificationException,
    InsufficientBalanceException,
    NotFoundException,
    SubscriptionNotMeteredException,
    ValidationException,
)
from ..core.timezone_utils import month_start, utc_now
from ..models.subscription import ClientSubscription, SubscriptionType
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import UNSET, BaseService

logger = logging.getLogger(__name__)


class SubscriptionLedgerService(BaseService):
    """Owns hybrid subscription balances."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)
        self.coach_settings_repository = RepositoryFactory.create_coach_settings_repository(db)

    @BaseService.measure_operation("subscription_debit")
    def debit_subscription(
        self, subscription_id: str, count: int = 1, *, use_transaction: bool = True
    ) -> ClientSubscription:
        """
        Remove count sessions from an active hybrid subscription.

        Raises:
            NotFoundException: Subscription does not exist
            SubscriptionNotMeteredException: Subscription is online-only
            BusinessRuleException: Subscription is inactive
            InsufficientBalanceException: Fewer than count sessions available
        """
        if count < 1:
            raise ValidationException(
                f"Session count must be at least 1, got {count}", code="INVALID_COUNT"
            )

        def _debit() -> ClientSubscription:
            subscription = self._get_metered(subscription_id)
            if not subscription.is_active:
                raise BusinessRuleException(
                    "Subscription is not active",
                    code="SUBSCRIPTION_INACTIVE",
                    details={"subscription_id": subscription_id},
                )

            if not self.subscription_repository.debit_available(subscription_id, count):
                current = self._reload(subscription_id)
                prometheus_metrics.inc_ledger_rejection("subscription", "insufficient_balance")
                raise InsufficientBalanceException(
                    source="subscription",
                    source_id=subscription_id,
                    requested=count,
                    available=current.available_sessions,
                )

            prometheus_metrics.inc_ledger_movement("subscription", "debit", count)
            subscription = self._reload(subscription_id)
            self.logger.info(
                "Debited %s session(s) from subscription %s, %s available",
                count,
                subscription_id,
                subscription.available_sessions,
                extra={"subscription_id": subscription_id, "count": count},
            )
            return subscription

        if use_transaction:
            with self.transaction():
                return _debit()
        return _debit()

    @BaseService.measure_operation("subscription_replenish")
    def replenish_monthly(
        self,
        subscription_id: str,
        month: Optional[date] = None,
        *,
        use_transaction: bool = True,
    ) -> bool:
        """
        Grant one month's allotment, clamped at the rollover ceiling.

        Applies at most once per (subscription, month). Inactive subscriptions
        are skipped. Returns True when the allotment was applied.
        """

        def _replenish() -> bool:
            subscription = self._get_metered(subscription_id)
            target_month = self._normalize_month(month, subscription.coach_id)
            applied = self.subscription_repository.replenish(subscription_id, target_month)
            if applied:
                prometheus_metrics.inc_ledger_movement(
                    "subscription", "replenish", subscription.monthly_sessions or 0
                )
                self.logger.info(
                    f"Replenished subscription {subscription_id} for {target_month.isoformat()}"
                )
            else:
                self.logger.debug(
                    f"Subscription {subscription_id} not replenished for {target_month.isoformat()}"
                )
            return applied

        if use_transaction:
            with self.transaction():
                return _replenish()
        return _replenish()

    @BaseService.measure_operation("subscription_replenish_all")
    def replenish_all_due(self, month: Optional[date] = None) -> int:
        """
        Periodic job entry point: replenish every active hybrid subscription
        not yet replenished for the month. Each subscription commits on its own.
        """
        month_filter = month.replace(day=1) if month else month_start(utc_now())
        applied = 0
        for subscription_id in self.subscription_repository.list_due_for_replenishment(month_filter):
            if self.replenish_monthly(subscription_id, month_filter):
                applied += 1
        self.logger.info(f"Monthly replenishment applied to {applied} subscription(s)")
        return applied

    @BaseService.measure_operation("subscription_adjust")
    def adjust_subscription(
        self,
        subscription_id: str,
        delta: int,
        reason: Optional[str],
        *,
        use_transaction: bool = True,
    ) -> ClientSubscription:
        """
        Manually correct a hybrid balance.

        A result below zero is rejected; a result above the rollover ceiling is
        clamped to it.
        """
        if delta == 0:
            raise ValidationException("Adjustment must be non-zero", code="ZERO_ADJUSTMENT")

        def _adjust() -> ClientSubscription:
            subscription = self._get_metered(subscription_id, for_update=True)
            previous = subscription.available_sessions or 0
            target = previous + delta
            if target < 0:
                prometheus_metrics.inc_ledger_rejection("subscription", "negative_adjustment")
                raise InsufficientBalanceException(
                    source="subscription",
                    source_id=subscription_id,
                    requested=-delta,
                    available=previous,
                )
            new_balance = min(target, subscription.balance_ceiling or 0)

            if not self.subscription_repository.compare_and_set_available(
                subscription_id, previous, new_balance
            ):
                raise ConcurrentModificationException("ClientSubscription", subscription_id)

            prometheus_metrics.inc_ledger_movement("subscription", "adjust", new_balance - previous)
            self.logger.info(
                "Adjusted subscription %s by %+d (%s -> %s): %s",
                subscription_id,
                delta,
                previous,
                new_balance,
                reason or "",
                extra={"subscription_id": subscription_id},
            )
            return self._reload(subscription_id)

        if use_transaction:
            with self.transaction():
                return _adjust()
        return _adjust()

    @BaseService.measure_operation("subscription_create")
    def create_subscription(
        self,
        client_id: str,
        coach_id: str,
        subscription_type: SubscriptionType | str,
        monthly_sessions: Optional[int] = None,
        session_duration_minutes: Optional[int] = None,
        available_sessions: Optional[int] = None,
        notes: Optional[str] = None,
        is_active: bool = True,
    ) -> ClientSubscription:
        """Create a subscription; hybrid plans start with one month's allotment by default."""
        try:
            plan = SubscriptionType(subscription_type)
        except ValueError as exc:
            raise ValidationException(f"Unknown subscription type: {subscription_type}") from exc

        if plan == SubscriptionType.HYBRID:
            if monthly_sessions is None or monthly_sessions < 1:
                raise ValidationException("Hybrid subscriptions need at least one monthly session")
            if session_duration_minutes is None or session_duration_minutes < 1:
                raise ValidationException("Hybrid subscriptions need a session duration")
            if available_sessions is None:
                available_sessions = monthly_sessions
            ceiling = ROLLOVER_MULTIPLIER * monthly_sessions
            if not 0 <= available_sessions <= ceiling:
                raise ValidationException(
                    f"Available sessions must be between 0 and {ceiling}",
                    details={"available_sessions": available_sessions, "ceiling": ceiling},
                )
        else:
            monthly_sessions = None
            available_sessions = None

        with self.transaction():
            subscription = self.subscription_repository.create(
                client_id=client_id,
                coach_id=coach_id,
                subscription_type=plan.value,
                monthly_sessions=monthly_sessions,
                available_sessions=available_sessions,
                session_duration_minutes=session_duration_minutes,
                is_active=is_active,
                notes=notes,
            )

        self.logger.info(f"Created {plan.value} subscription {subscription.id} for {client_id}")
        return subscription

    @BaseService.measure_operation("subscription_update")
    def update_subscription(
        self,
        subscription_id: str,
        is_active: Any = UNSET,
        notes: Any = UNSET,
        monthly_sessions: Any = UNSET,
        session_duration_minutes: Any = UNSET,
    ) -> ClientSubscription:
        """Toggle, annotate or resize a subscription; a smaller allotment clamps the balance."""
        with self.transaction():
            subscription = self._get_or_raise(subscription_id, for_update=True)
            if is_active is not UNSET:
                subscription.is_active = bool(is_active)
            if notes is not UNSET:
                subscription.notes = notes
            if monthly_sessions is not UNSET:
                if not subscription.is_hybrid:
                    raise SubscriptionNotMeteredException(subscription_id)
                if monthly_sessions is None or monthly_sessions < 1:
                    raise ValidationException(
                        "Hybrid subscriptions need at least one monthly session"
                    )
                subscription.monthly_sessions = monthly_sessions
                ceiling = ROLLOVER_MULTIPLIER * monthly_sessions
                if (subscription.available_sessions or 0) > ceiling:
                    subscription.available_sessions = ceiling
            if session_duration_minutes is not UNSET:
                if not subscription.is_hybrid:
                    raise SubscriptionNotMeteredException(subscription_id)
                if session_duration_minutes is None or session_duration_minutes < 1:
                    raise ValidationException(
                        "Hybrid subscriptions need a session duration of at least one minute"
                    )
                subscription.session_duration_minutes = session_duration_minutes
            self.db.flush()
        return subscription

    def get_subscription(self, subscription_id: str) -> ClientSubscription:
        return self._get_or_raise(subscription_id)

    def list_subscriptions_for_coach(self, coach_id: str) -> List[ClientSubscription]:
        return self.subscription_repository.list_for_coach(coach_id)

    # Helpers

    def _normalize_month(self, month: Optional[date], coach_id: str) -> date:
        if month is not None:
            return month.replace(day=1)
        tz_name = self.coach_settings_repository.get_timezone_name(coach_id)
        return month_start(utc_now(), tz_name)

    def _get_or_raise(
        self, subscription_id: str, *, for_update: bool = False
    ) -> ClientSubscription:
        subscription = self.subscription_repository.get_by_id(
            subscription_id, for_update=for_update
        )
        if subscription is None:
            raise NotFoundException(
                f"Subscription {subscription_id} not found",
                code="SUBSCRIPTION_NOT_FOUND",
                details={"subscription_id": subscription_id},
            )
        return subscription

    def _get_metered(self, subscription_id: str, *, for_update: bool = False) -> ClientSubscription:
        subscription = self._get_or_raise(subscription_id, for_update=for_update)
        if not subscription.is_hybrid:
            raise SubscriptionNotMeteredException(subscription_id)
        return subscription

    def _reload(self, subscription_id: str) -> ClientSubscription:
        subscription = self.subscription_repository.reload(subscription_id)
        if subscription is None:
            raise NotFoundException(
                f"Subscription {subscription_id} not found",
                code="SUBSCRIPTION_NOT_FOUND",
                details={"subscription_id": subscription_id},
            )
        return subscription
