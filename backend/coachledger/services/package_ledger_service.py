# backend/coachledger/services/package_ledger_service.py
"""
Package side of the credit ledger.

Every balance change is either a single guarded UPDATE (debit, credit) or a
compare-and-set on remaining_sessions (adjust). Callers that already own a
transaction pass use_transaction=False so the movement joins their unit of
work.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.constants import ADJUSTMENT_REASON_MAX_LENGTH
from ..core.exceptions import (
    ConcurrentModificationException,
    InsufficientBalanceException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc
from ..models.session_package import PackageAdjustment, SessionPackage
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import UNSET, BaseService

logger = logging.getLogger(__name__)


class PackageLedgerService(BaseService):
    """Owns SessionPackage balances and the adjustment audit trail."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.package_repository = RepositoryFactory.create_package_repository(db)

    # Balance movements

    @BaseService.measure_operation("package_debit")
    def debit_package(
        self, package_id: str, count: int = 1, *, use_transaction: bool = True
    ) -> SessionPackage:
        """
        Remove count credits from a package, all or nothing.

        Raises:
            NotFoundException: Package does not exist
            InsufficientBalanceException: Fewer than count credits remain
        """
        self._require_positive_count(count)

        def _debit() -> SessionPackage:
            if self.package_repository.debit_remaining(package_id, count):
                prometheus_metrics.inc_ledger_movement("package", "debit", count)
                package = self._reload(package_id)
                self.logger.info(
                    "Debited %s session(s) from package %s, %s remaining",
                    count,
                    package_id,
                    package.remaining_sessions,
                    extra={"package_id": package_id, "count": count},
                )
                return package

            package = self._get_or_raise(package_id)
            prometheus_metrics.inc_ledger_rejection("package", "insufficient_balance")
            raise InsufficientBalanceException(
                source="package",
                source_id=package_id,
                requested=count,
                available=package.remaining_sessions,
            )

        if use_transaction:
            with self.transaction():
                return _debit()
        return _debit()

    @BaseService.measure_operation("package_credit")
    def credit_package(
        self, package_id: str, count: int = 1, *, use_transaction: bool = True
    ) -> SessionPackage:
        """Add count credits back. No implicit cap at total_sessions."""
        self._require_positive_count(count)

        def _credit() -> SessionPackage:
            if not self.package_repository.credit_remaining(package_id, count):
                raise NotFoundException(
                    f"Session package {package_id} not found",
                    code="PACKAGE_NOT_FOUND",
                    details={"package_id": package_id},
                )
            prometheus_metrics.inc_ledger_movement("package", "credit", count)
            self.logger.info(f"Credited {count} session(s) to package {package_id}")
            return self._reload(package_id)

        if use_transaction:
            with self.transaction():
                return _credit()
        return _credit()

    @BaseService.measure_operation("package_adjust")
    def adjust_package(
        self,
        package_id: str,
        delta: int,
        reason: Optional[str],
        adjusted_by: Optional[str] = None,
        new_expires_at: Any = UNSET,
        *,
        use_transaction: bool = True,
    ) -> Tuple[SessionPackage, PackageAdjustment]:
        """
        Manually correct a package balance and record an audit entry.

        The balance is written with a compare-and-set against the value read
        for the audit snapshot, so previous_balance is exactly what was
        overwritten.

        Raises:
            ValidationException: delta is zero or reason too long
            NotFoundException: Package does not exist
            InsufficientBalanceException: Result would be negative
            ConcurrentModificationException: Balance moved between read and write
        """
        if delta == 0:
            raise ValidationException("Adjustment must be non-zero", code="ZERO_ADJUSTMENT")
        if reason and len(reason) > ADJUSTMENT_REASON_MAX_LENGTH:
            raise ValidationException(
                f"Adjustment reason must be at most {ADJUSTMENT_REASON_MAX_LENGTH} characters"
            )

        def _adjust() -> Tuple[SessionPackage, PackageAdjustment]:
            package = self._get_or_raise(package_id, for_update=True)
            previous = package.remaining_sessions
            new_balance = previous + delta
            if new_balance < 0:
                prometheus_metrics.inc_ledger_rejection("package", "negative_adjustment")
                raise InsufficientBalanceException(
                    source="package",
                    source_id=package_id,
                    requested=-delta,
                    available=previous,
                )

            extra = {}
            if new_expires_at is not UNSET:
                extra["expires_at"] = ensure_utc(new_expires_at) if new_expires_at else None

            if not self.package_repository.compare_and_set_remaining(
                package_id, previous, new_balance, **extra
            ):
                raise ConcurrentModificationException("SessionPackage", package_id)

            adjustment = self.package_repository.add_adjustment(
                package_id=package_id,
                adjustment=delta,
                previous_balance=previous,
                new_balance=new_balance,
                reason=reason,
                adjusted_by=adjusted_by,
            )
            prometheus_metrics.inc_ledger_movement("package", "adjust", delta)
            self.logger.info(
                "Adjusted package %s by %+d (%s -> %s)",
                package_id,
                delta,
                previous,
                new_balance,
                extra={"package_id": package_id, "adjusted_by": adjusted_by},
            )
            return self._reload(package_id), adjustment

        if use_transaction:
            with self.transaction():
                return _adjust()
        return _adjust()

    # Package lifecycle

    @BaseService.measure_operation("package_create")
    def create_package(
        self,
        client_id: str,
        coach_id: str,
        total_sessions: int,
        session_duration_minutes: int,
        expires_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> SessionPackage:
        """Grant a new bundle; remaining starts at total."""
        if total_sessions < 1:
            raise ValidationException("A package must contain at least one session")
        if session_duration_minutes < 1:
            raise ValidationException("Session duration must be positive")

        with self.transaction():
            package = self.package_repository.create(
                client_id=client_id,
                coach_id=coach_id,
                total_sessions=total_sessions,
                remaining_sessions=total_sessions,
                session_duration_minutes=session_duration_minutes,
                expires_at=ensure_utc(expires_at) if expires_at else None,
                notes=notes,
            )

        self.logger.info(
            f"Created package {package.id} with {total_sessions} sessions for client {client_id}"
        )
        return package

    @BaseService.measure_operation("package_update")
    def update_package(
        self,
        package_id: str,
        client_id: Any = UNSET,
        expires_at: Any = UNSET,
        notes: Any = UNSET,
    ) -> SessionPackage:
        """Reassign the client, change expiry or notes. Balances are untouched."""
        with self.transaction():
            package = self._get_or_raise(package_id)
            if client_id is not UNSET:
                if not client_id:
                    raise ValidationException("A package must belong to a client")
                package.client_id = client_id
            if expires_at is not UNSET:
                package.expires_at = ensure_utc(expires_at) if expires_at else None
            if notes is not UNSET:
                package.notes = notes
            self.db.flush()
        return package

    @BaseService.measure_operation("package_delete")
    def delete_package(self, package_id: str) -> None:
        """Remove a package with its adjustments; linked bookings keep existing unlinked."""
        with self.transaction():
            if not self.package_repository.delete(package_id):
                raise NotFoundException(
                    f"Session package {package_id} not found",
                    code="PACKAGE_NOT_FOUND",
                    details={"package_id": package_id},
                )
        self.logger.info(f"Deleted package {package_id}")

    # Queries

    def get_package(self, package_id: str) -> SessionPackage:
        return self._get_or_raise(package_id)

    def list_packages_for_coach(self, coach_id: str) -> List[SessionPackage]:
        return self.package_repository.list_for_coach(coach_id)

    def get_package_history(self, coach_id: str, client_id: str) -> List[SessionPackage]:
        """Packages newest first, each with its adjustments newest first."""
        return self.package_repository.list_history(coach_id, client_id)

    def get_active_package(self, client_id: str, coach_id: str) -> Optional[SessionPackage]:
        """Oldest non-expired package that still has credits, if any."""
        return self.package_repository.find_active(client_id, coach_id)

    # Helpers

    @staticmethod
    def _require_positive_count(count: int) -> None:
        if count < 1:
            raise ValidationException(
                f"Session count must be at least 1, got {count}", code="INVALID_COUNT"
            )

    def _get_or_raise(self, package_id: str, *, for_update: bool = False) -> SessionPackage:
        package = self.package_repository.get_by_id(package_id, for_update=for_update)
        if package is None:
            raise NotFoundException(
                f"Session package {package_id} not found",
                code="PACKAGE_NOT_FOUND",
                details={"package_id": package_id},
            )
        return package

    def _reload(self, package_id: str) -> SessionPackage:
        package = self.package_repository.reload(package_id)
        if package is None:
            raise NotFoundException(
                f"Session package {package_id} not found",
                code="PACKAGE_NOT_FOUND",
                details={"package_id": package_id},
            )
        return package
