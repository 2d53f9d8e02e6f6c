# backend/coachledger/services/checkin_quota_service.py
"""
Monthly virtual check-in allowance.

Each (client, coach, calendar month) may consume one check-in. The unique key
on the usage table is the final arbiter between concurrent consumers.
"""

from __future__ import annotations

from datetime import date, datetime
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import AlreadyUsedException
from ..core.timezone_utils import month_start
from ..models.checkin_usage import ClientCheckinUsage
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class CheckinQuotaService(BaseService):
    """Tracks whether a client's monthly check-in has been used."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.usage_repository = RepositoryFactory.create_checkin_usage_repository(db)

    @staticmethod
    def month_key(instant: datetime, tz_name: Optional[str] = None) -> date:
        """First day of the month containing instant, in the coach's timezone."""
        return month_start(instant, tz_name)

    @BaseService.measure_operation("checkin_try_consume")
    def try_consume(
        self,
        client_id: str,
        coach_id: str,
        month: date,
        booking_id: str,
        *,
        use_transaction: bool = False,
    ) -> ClientCheckinUsage:
        """
        Consume the month's check-in for booking_id.

        Runs inside the caller's transaction by default, since consumption is
        always paired with a booking insert.

        Raises:
            AlreadyUsedException: The month's allowance is already consumed
        """
        month = month.replace(day=1)

        def _consume() -> ClientCheckinUsage:
            if self.usage_repository.mark_used(client_id, coach_id, month, booking_id):
                usage = self.usage_repository.get_for_month(client_id, coach_id, month)
                self.db.refresh(usage)
            else:
                try:
                    usage = self.usage_repository.insert_used(
                        client_id, coach_id, month, booking_id
                    )
                except IntegrityError as exc:
                    prometheus_metrics.inc_checkin_consumption("already_used")
                    self.logger.info(
                        "Check-in already used for client %s in %s",
                        client_id,
                        month.isoformat(),
                        extra={"client_id": client_id, "coach_id": coach_id},
                    )
                    raise AlreadyUsedException(client_id, coach_id, month.isoformat()) from exc

            prometheus_metrics.inc_checkin_consumption("consumed")
            self.logger.info(
                f"Check-in for {month.isoformat()} consumed by booking {booking_id}"
            )
            return usage

        if use_transaction:
            with self.transaction():
                return _consume()
        return _consume()

    @BaseService.measure_operation("checkin_transfer")
    def transfer(
        self,
        client_id: str,
        coach_id: str,
        booking_id: str,
        from_month: date,
        to_month: date,
    ) -> Optional[ClientCheckinUsage]:
        """
        Move booking_id's check-in from one month to another.

        Runs inside the caller's transaction. The target month is consumed
        first, so a taken month raises before the old one is released.

        Raises:
            AlreadyUsedException: to_month's allowance is already consumed
        """
        from_month = from_month.replace(day=1)
        to_month = to_month.replace(day=1)
        if from_month == to_month:
            return None

        usage = self.try_consume(client_id, coach_id, to_month, booking_id)
        if not self.usage_repository.release_for_booking(booking_id, from_month):
            self.logger.warning(
                f"Booking {booking_id} held no check-in for {from_month.isoformat()}"
            )
        self.logger.info(
            f"Check-in for booking {booking_id} moved from {from_month.isoformat()} "
            f"to {to_month.isoformat()}"
        )
        return usage

    def get_usage(self, client_id: str, coach_id: str, month: date) -> Optional[ClientCheckinUsage]:
        return self.usage_repository.get_for_month(client_id, coach_id, month.replace(day=1))

    def is_available(self, client_id: str, coach_id: str, month: date) -> bool:
        usage = self.get_usage(client_id, coach_id, month)
        return usage is None or not usage.used
