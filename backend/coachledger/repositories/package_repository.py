# backend/coachledger/repositories/package_repository.py
"""
Repository for session packages and their adjustment history.

Balance writes are single guarded UPDATE statements so a concurrent writer
can never push remaining_sessions below zero.
"""

from datetime import datetime
import logging
from typing import Any, List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session, selectinload

from ..core.timezone_utils import ensure_utc, utc_now
from ..models.session_package import PackageAdjustment, SessionPackage
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PackageRepository(BaseRepository[SessionPackage]):
    """Data access for SessionPackage balances."""

    def __init__(self, db: Session):
        super().__init__(db, SessionPackage)

    def debit_remaining(self, package_id: str, count: int) -> bool:
        """Decrement by count only while enough credits remain."""
        stmt = (
            update(SessionPackage)
            .where(
                SessionPackage.id == package_id,
                SessionPackage.remaining_sessions >= count,
            )
            .values(
                remaining_sessions=SessionPackage.remaining_sessions - count,
                updated_at=utc_now(),
            )
        )
        touched = self._execute_rowcount(stmt)
        self._forget_cached([package_id])
        return touched == 1

    def credit_remaining(self, package_id: str, count: int) -> bool:
        stmt = (
            update(SessionPackage)
            .where(SessionPackage.id == package_id)
            .values(
                remaining_sessions=SessionPackage.remaining_sessions + count,
                updated_at=utc_now(),
            )
        )
        touched = self._execute_rowcount(stmt)
        self._forget_cached([package_id])
        return touched == 1

    def compare_and_set_remaining(
        self, package_id: str, previous: int, new_balance: int, **extra: Any
    ) -> bool:
        """Write new_balance only if the balance still equals previous."""
        stmt = (
            update(SessionPackage)
            .where(
                SessionPackage.id == package_id,
                SessionPackage.remaining_sessions == previous,
            )
            .values(remaining_sessions=new_balance, updated_at=utc_now(), **extra)
        )
        touched = self._execute_rowcount(stmt)
        self._forget_cached([package_id])
        return touched == 1

    def add_adjustment(
        self,
        *,
        package_id: str,
        adjustment: int,
        previous_balance: int,
        new_balance: int,
        reason: Optional[str],
        adjusted_by: Optional[str],
    ) -> PackageAdjustment:
        entry = PackageAdjustment(
            package_id=package_id,
            adjustment=adjustment,
            previous_balance=previous_balance,
            new_balance=new_balance,
            reason=reason,
            adjusted_by=adjusted_by,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_for_coach(self, coach_id: str) -> List[SessionPackage]:
        stmt = (
            select(SessionPackage)
            .where(SessionPackage.coach_id == coach_id)
            .order_by(SessionPackage.created_at.desc(), SessionPackage.id.desc())
        )
        return self._execute_scalars(stmt)

    def list_history(self, coach_id: str, client_id: str) -> List[SessionPackage]:
        """Packages newest first, adjustments eagerly loaded newest first."""
        stmt = (
            select(SessionPackage)
            .options(selectinload(SessionPackage.adjustments))
            .where(
                SessionPackage.coach_id == coach_id,
                SessionPackage.client_id == client_id,
            )
            .order_by(SessionPackage.created_at.desc(), SessionPackage.id.desc())
        )
        return self._execute_scalars(stmt)

    def find_active(
        self, client_id: str, coach_id: str, as_of: Optional[datetime] = None
    ) -> Optional[SessionPackage]:
        """Oldest non-expired package that still has credits."""
        now = ensure_utc(as_of or utc_now())
        stmt = (
            select(SessionPackage)
            .where(
                and_(
                    SessionPackage.client_id == client_id,
                    SessionPackage.coach_id == coach_id,
                    SessionPackage.remaining_sessions > 0,
                    or_(SessionPackage.expires_at.is_(None), SessionPackage.expires_at > now),
                )
            )
            .order_by(SessionPackage.created_at.asc(), SessionPackage.id.asc())
            .limit(1)
        )
        rows = self._execute_scalars(stmt)
        return rows[0] if rows else None
