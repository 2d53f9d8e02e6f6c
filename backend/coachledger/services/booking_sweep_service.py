# backend/coachledger/services/booking_sweep_service.py
"""
Auto-completion sweep.

Moves confirmed bookings whose end has passed to completed. The sweep is a
single conditional UPDATE, so running it repeatedly or concurrently with
explicit status changes never double-transitions a booking. It never touches
the credit ledger.
"""

from datetime import datetime
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.timezone_utils import ensure_utc, utc_now
from ..events.booking_events import BookingCompleted
from ..events.publisher import BookingEventPublisher, booking_event_publisher
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import SweepResult
from .base import BaseService

logger = logging.getLogger(__name__)


class BookingSweepService(BaseService):
    """Completes elapsed confirmed bookings."""

    def __init__(self, db: Session, event_publisher: Optional[BookingEventPublisher] = None):
        super().__init__(db)
        self.event_publisher = event_publisher or booking_event_publisher
        self.repository = RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("sweep_past_sessions")
    def sweep_past_sessions(self, coach_id: str, now: Optional[datetime] = None) -> SweepResult:
        """Complete one coach's confirmed bookings with ends_at <= now."""
        return self._sweep(coach_id, now)

    @BaseService.measure_operation("sweep_all")
    def sweep_all(self, now: Optional[datetime] = None) -> SweepResult:
        """Periodic job entry point covering every coach."""
        return self._sweep(None, now)

    def _sweep(self, coach_id: Optional[str], now: Optional[datetime]) -> SweepResult:
        cutoff = ensure_utc(now or utc_now())
        with self.transaction():
            rows = self.repository.complete_elapsed(cutoff, coach_id=coach_id)

        booking_ids = [row.id for row in rows]
        prometheus_metrics.inc_bookings_swept(len(booking_ids))
        if booking_ids:
            self.logger.info(
                "Auto-completed %s booking(s)%s",
                len(booking_ids),
                f" for coach {coach_id}" if coach_id else "",
                extra={"coach_id": coach_id, "cutoff": cutoff.isoformat()},
            )
        self.event_publisher.publish_all(
            [
                BookingCompleted(booking_id=booking_id, completed_at=cutoff, auto_completed=True)
                for booking_id in booking_ids
            ]
        )
        return SweepResult(count=len(booking_ids), booking_ids=booking_ids)
