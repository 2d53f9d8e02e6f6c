"""Repository for the monthly check-in allowance rows."""

from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models.checkin_usage import ClientCheckinUsage
from .base_repository import BaseRepository


class CheckinUsageRepository(BaseRepository[ClientCheckinUsage]):
    def __init__(self, db: Session):
        super().__init__(db, ClientCheckinUsage)

    def get_for_month(self, client_id: str, coach_id: str, month: date) -> Optional[ClientCheckinUsage]:
        stmt = select(ClientCheckinUsage).where(
            ClientCheckinUsage.client_id == client_id,
            ClientCheckinUsage.coach_id == coach_id,
            ClientCheckinUsage.month == month,
        )
        rows = self._execute_scalars(stmt)
        return rows[0] if rows else None

    def mark_used(self, client_id: str, coach_id: str, month: date, booking_id: str) -> bool:
        """Flip an existing unused row; False when there is none to flip."""
        stmt = (
            update(ClientCheckinUsage)
            .where(
                ClientCheckinUsage.client_id == client_id,
                ClientCheckinUsage.coach_id == coach_id,
                ClientCheckinUsage.month == month,
                ClientCheckinUsage.used.is_(False),
            )
            .values(used=True, booking_id=booking_id)
        )
        return self._execute_rowcount(stmt) == 1

    def insert_used(
        self, client_id: str, coach_id: str, month: date, booking_id: str
    ) -> ClientCheckinUsage:
        """
        Insert a consumed row inside a savepoint.

        IntegrityError from the unique key propagates with only the savepoint
        rolled back, leaving the caller's transaction usable.
        """
        row = ClientCheckinUsage(
            client_id=client_id,
            coach_id=coach_id,
            month=month,
            used=True,
            booking_id=booking_id,
        )
        with self.db.begin_nested():
            self.db.add(row)
            self.db.flush()
        return row

    def release_for_booking(self, booking_id: str, month: date) -> bool:
        """Return the month's check-in held by booking_id to the unused state."""
        stmt = (
            update(ClientCheckinUsage)
            .where(
                ClientCheckinUsage.booking_id == booking_id,
                ClientCheckinUsage.month == month,
                ClientCheckinUsage.used.is_(True),
            )
            .values(used=False, booking_id=None)
            .returning(ClientCheckinUsage.id)
        )
        rows = self._execute_returning(stmt)
        self._forget_cached([row.id for row in rows])
        return bool(rows)
