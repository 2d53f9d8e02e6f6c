# backend/coachledger/repositories/booking_repository.py
"""
BookingRepository for the booking and ledger engine.

Status changes are conditional UPDATEs keyed on the current status, and
deletion reads the final status through DELETE ... RETURNING so the refund
decision and the removal are the same statement.
"""

from datetime import datetime
import logging
from typing import Any, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.engine import Row
from sqlalchemy.orm import Session

from ..core.timezone_utils import ensure_utc
from ..models.booking import Booking, BookingStatus, BookingType
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def transition_status(
        self,
        booking_id: str,
        to_status: BookingStatus,
        *,
        from_status: BookingStatus = BookingStatus.CONFIRMED,
        **values: Any,
    ) -> bool:
        """Move a booking between statuses only if it is still in from_status."""
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == from_status.value)
            .values(status=to_status.value, **values)
        )
        touched = self._execute_rowcount(stmt)
        self._forget_cached([booking_id])
        return touched == 1

    def reschedule(
        self, booking_id: str, starts_at: datetime, ends_at: datetime, updated_at: datetime
    ) -> bool:
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED.value)
            .values(starts_at=starts_at, ends_at=ends_at, updated_at=updated_at)
        )
        touched = self._execute_rowcount(stmt)
        self._forget_cached([booking_id])
        return touched == 1

    def delete_returning(self, booking_id: str) -> Optional[Row]:
        """
        Delete a booking and return its final state.

        Returns None if no row was deleted, which is also what a second
        concurrent delete of the same id sees.
        """
        stmt = (
            delete(Booking)
            .where(Booking.id == booking_id)
            .returning(
                Booking.id,
                Booking.status,
                Booking.booking_type,
                Booking.package_id,
                Booking.coach_id,
                Booking.client_id,
            )
        )
        rows = self._execute_returning(stmt)
        self._forget_cached([booking_id], expunge=True)
        return rows[0] if rows else None

    def complete_elapsed(
        self, now: datetime, coach_id: Optional[str] = None
    ) -> List[Row]:
        """Mark every confirmed booking that ended at or before now as completed."""
        now = ensure_utc(now)
        stmt = update(Booking).where(
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.ends_at <= now,
        )
        if coach_id is not None:
            stmt = stmt.where(Booking.coach_id == coach_id)
        stmt = stmt.values(
            status=BookingStatus.COMPLETED.value, completed_at=now, updated_at=now
        ).returning(Booking.id, Booking.coach_id, Booking.client_id)
        rows = self._execute_returning(stmt)
        self._forget_cached([row.id for row in rows])
        return rows

    def list_filtered(
        self,
        *,
        coach_id: Optional[str] = None,
        client_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        starts_from: Optional[datetime] = None,
        starts_to: Optional[datetime] = None,
    ) -> List[Booking]:
        stmt = select(Booking)
        if coach_id is not None:
            stmt = stmt.where(Booking.coach_id == coach_id)
        if client_id is not None:
            stmt = stmt.where(Booking.client_id == client_id)
        if status is not None:
            stmt = stmt.where(Booking.status == BookingStatus(status).value)
        if starts_from is not None:
            stmt = stmt.where(Booking.starts_at >= ensure_utc(starts_from))
        if starts_to is not None:
            stmt = stmt.where(Booking.starts_at < ensure_utc(starts_to))
        stmt = stmt.order_by(Booking.starts_at.asc(), Booking.id.asc())
        return self._execute_scalars(stmt)

    def count_incidents_since(
        self, client_id: str, coach_id: str, status: BookingStatus, since: datetime
    ) -> int:
        """
        Count cancellations (by cancelled_at) or no-shows (by updated_at)
        recorded on or after since.
        """
        marker = Booking.cancelled_at if status == BookingStatus.CANCELLED else Booking.updated_at
        return (
            self.db.query(Booking)
            .filter(
                Booking.client_id == client_id,
                Booking.coach_id == coach_id,
                Booking.status == status.value,
                marker >= ensure_utc(since),
            )
            .count()
        )

    def list_completed_session_starts(
        self,
        client_id: str,
        coach_id: str,
        since: datetime,
        until: Optional[datetime] = None,
    ) -> List[datetime]:
        """Start instants of the pair's completed sessions in [since, until], oldest first."""
        stmt = select(Booking.starts_at).where(
            Booking.client_id == client_id,
            Booking.coach_id == coach_id,
            Booking.status == BookingStatus.COMPLETED.value,
            Booking.booking_type == BookingType.SESSION.value,
            Booking.starts_at >= ensure_utc(since),
        )
        if until is not None:
            stmt = stmt.where(Booking.starts_at <= ensure_utc(until))
        stmt = stmt.order_by(Booking.starts_at.asc())
        return [ensure_utc(starts_at) for starts_at in self._execute_scalars(stmt)]

    def list_pairs_with_completed_sessions(self, since: datetime) -> List[Tuple[str, str]]:
        """Distinct (client_id, coach_id) pairs with a completed session starting on or after since."""
        stmt = (
            select(Booking.client_id, Booking.coach_id)
            .where(
                Booking.client_id.is_not(None),
                Booking.status == BookingStatus.COMPLETED.value,
                Booking.booking_type == BookingType.SESSION.value,
                Booking.starts_at >= ensure_utc(since),
            )
            .distinct()
        )
        return [(row.client_id, row.coach_id) for row in self.db.execute(stmt).all()]
