# backend/coachledger/services/booking_service.py
"""
Booking Service for the coaching platform.

Owns the Booking state machine and is the only caller of ledger debits and
credits. Every creation pairs its ledger movement with the booking insert in
one transaction; deletion refunds a packaged session only when the row being
removed was still confirmed. Events go out after commit.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.constants import (
    ACTOR_CLIENT,
    ACTOR_COACH,
    CREDITS_PER_BOOKING,
    ONE_OFF_NAME_MAX_LENGTH,
)
from ..core.exceptions import (
    BusinessRuleException,
    ConcurrentModificationException,
    InsufficientBalanceException,
    InsufficientNoticeException,
    InvalidBookingTransitionException,
    InvalidSlotException,
    InvariantViolationException,
    NotFoundException,
    PackageExpiredException,
    SubscriptionNotMeteredException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, utc_now
from ..core.ulid_helper import generate_ulid
from ..events.booking_events import (
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingDeleted,
    BookingNoShow,
    BookingRescheduled,
)
from ..events.publisher import BookingEventPublisher, Event, booking_event_publisher
from ..models.booking import Booking, BookingStatus, BookingType
from ..models.session_package import SessionPackage
from ..models.subscription import ClientSubscription
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import BulkDeletionResult, DeletionResult, TimeSlot
from .base import BaseService
from .booking_stats_service import BookingStatsService
from .checkin_quota_service import CheckinQuotaService
from .package_ledger_service import PackageLedgerService
from .subscription_ledger_service import SubscriptionLedgerService

logger = logging.getLogger(__name__)


class BookingService(BaseService):
    """Creates, transitions, reschedules and deletes bookings."""

    def __init__(
        self,
        db: Session,
        event_publisher: Optional[BookingEventPublisher] = None,
        package_ledger: Optional[PackageLedgerService] = None,
        subscription_ledger: Optional[SubscriptionLedgerService] = None,
        checkin_quota: Optional[CheckinQuotaService] = None,
        stats_service: Optional[BookingStatsService] = None,
    ):
        """
        Initialize booking service.

        Args:
            db: Database session
            event_publisher: Optional publisher for post-commit booking events
            package_ledger: Optional package ledger sharing this session
            subscription_ledger: Optional subscription ledger sharing this session
            checkin_quota: Optional check-in quota tracker sharing this session
            stats_service: Optional attendance stats service sharing this session
        """
        super().__init__(db)
        self.event_publisher = event_publisher or booking_event_publisher
        self.package_ledger = package_ledger or PackageLedgerService(db)
        self.subscription_ledger = subscription_ledger or SubscriptionLedgerService(db)
        self.checkin_quota = checkin_quota or CheckinQuotaService(db)
        self.stats_service = stats_service or BookingStatsService(db)
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.package_repository = RepositoryFactory.create_package_repository(db)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)
        self.coach_settings_repository = RepositoryFactory.create_coach_settings_repository(db)

    # Creation

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        coach_id: str,
        slot: TimeSlot,
        booking_type: BookingType | str = BookingType.SESSION,
        client_id: Optional[str] = None,
        one_off_client_name: Optional[str] = None,
        package_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        actor_role: str = ACTOR_COACH,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Create a confirmed booking and consume its credit in one transaction.

        Session bookings may draw one credit from a package or a hybrid
        subscription, or none. Check-in bookings consume the client's monthly
        check-in instead. One-off bookings carry a name and no credit.

        Raises:
            InvalidSlotException: Slot is malformed or in the past
            ValidationException: Client/credit combination is not allowed
            InsufficientNoticeException: Client booked inside the notice window
            NotFoundException: Package or subscription not found
            PackageExpiredException: Package has expired
            BusinessRuleException: Subscription is inactive
            InsufficientBalanceException: No credit left on the source
            AlreadyUsedException: The month's check-in is already used
        """
        self.log_operation(
            "create_booking",
            coach_id=coach_id,
            client_id=client_id,
            booking_type=str(booking_type),
        )
        now = utc_now()
        kind = self._parse_booking_type(booking_type)
        starts_at, ends_at = self._validate_slot(slot, now)
        self._validate_party(kind, client_id, one_off_client_name, package_id, subscription_id)
        self._enforce_notice(coach_id, [starts_at], actor_role, now)

        with self.transaction():
            self._load_credit_source(
                coach_id, client_id, package_id, subscription_id, requested=1, now=now
            )
            booking_id = generate_ulid()
            self._consume_credit(
                kind,
                coach_id=coach_id,
                client_id=client_id,
                package_id=package_id,
                subscription_id=subscription_id,
                count=CREDITS_PER_BOOKING,
                bookings=[(booking_id, starts_at)],
            )
            booking = self.repository.create(
                id=booking_id,
                coach_id=coach_id,
                client_id=client_id,
                one_off_client_name=one_off_client_name.strip() if one_off_client_name else None,
                booking_type=kind.value,
                starts_at=starts_at,
                ends_at=ends_at,
                status=BookingStatus.CONFIRMED.value,
                package_id=package_id,
                subscription_id=subscription_id,
                notes=notes,
            )

        self.logger.info(
            f"Created {kind.value} booking {booking.id} for coach {coach_id} at {starts_at.isoformat()}"
        )
        self._publish([self._created_event(booking)])
        return booking

    @BaseService.measure_operation("create_bookings_batch")
    def create_bookings_batch(
        self,
        coach_id: str,
        client_id: str,
        slots: Sequence[TimeSlot],
        booking_type: BookingType | str = BookingType.SESSION,
        package_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        actor_role: str = ACTOR_COACH,
    ) -> List[Booking]:
        """
        Create several bookings for one client, all or nothing.

        Every slot is validated and the credit source is checked for
        len(slots) credits before anything is written; then a single debit of
        len(slots) and all inserts share one transaction.
        """
        if not slots:
            raise ValidationException("At least one slot is required", code="EMPTY_BATCH")
        if not client_id:
            raise ValidationException("Batch bookings require a client")

        self.log_operation(
            "create_bookings_batch", coach_id=coach_id, client_id=client_id, count=len(slots)
        )
        now = utc_now()
        kind = self._parse_booking_type(booking_type)
        intervals = [self._validate_slot(slot, now) for slot in slots]
        starts = [starts_at for starts_at, _ in intervals]
        if len(set(starts)) != len(starts):
            raise InvalidSlotException(
                "Batch contains the same slot more than once",
                details={"starts_at": sorted({s.isoformat() for s in starts if starts.count(s) > 1})},
            )
        self._validate_party(kind, client_id, None, package_id, subscription_id)
        self._enforce_notice(coach_id, starts, actor_role, now)

        count = len(intervals)
        with self.transaction():
            self._load_credit_source(
                coach_id, client_id, package_id, subscription_id, requested=count, now=now
            )
            rows = [
                {
                    "id": generate_ulid(),
                    "coach_id": coach_id,
                    "client_id": client_id,
                    "booking_type": kind.value,
                    "starts_at": starts_at,
                    "ends_at": ends_at,
                    "status": BookingStatus.CONFIRMED.value,
                    "package_id": package_id,
                    "subscription_id": subscription_id,
                }
                for starts_at, ends_at in intervals
            ]
            self._consume_credit(
                kind,
                coach_id=coach_id,
                client_id=client_id,
                package_id=package_id,
                subscription_id=subscription_id,
                count=count * CREDITS_PER_BOOKING,
                bookings=[(row["id"], row["starts_at"]) for row in rows],
            )
            bookings = self.repository.bulk_create(rows)
            if len(bookings) != count:
                raise InvariantViolationException(
                    "Batch insert did not create every booking",
                    details={"expected": count, "created": len(bookings)},
                )

        self.logger.info(f"Created {count} {kind.value} bookings for client {client_id}")
        self._publish([self._created_event(booking) for booking in bookings])
        return sorted(bookings, key=lambda b: ensure_utc(b.starts_at))

    # Status transitions

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        """Cancel a confirmed booking. Credits are not returned."""
        now = utc_now()
        with self.transaction():
            booking = self._transition(
                booking_id,
                BookingStatus.CANCELLED,
                cancelled_at=now,
                updated_at=now,
            )
            self._refresh_stats(booking, now)

        self.logger.info(
            f"Cancelled booking {booking_id}", extra={"booking_id": booking_id, "reason": reason}
        )
        self._publish(
            [
                BookingCancelled(
                    booking_id=booking.id,
                    coach_id=booking.coach_id,
                    client_id=booking.client_id,
                    cancelled_at=now,
                    reason=reason,
                )
            ]
        )
        return booking

    @BaseService.measure_operation("mark_completed")
    def mark_completed(self, booking_id: str) -> Booking:
        now = utc_now()
        with self.transaction():
            booking = self._transition(
                booking_id, BookingStatus.COMPLETED, completed_at=now, updated_at=now
            )

        self.logger.info(f"Booking {booking_id} marked completed")
        self._publish([BookingCompleted(booking_id=booking.id, completed_at=now)])
        return booking

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(self, booking_id: str) -> Booking:
        """A no-show keeps the credit spent and counts against attendance."""
        now = utc_now()
        with self.transaction():
            booking = self._transition(booking_id, BookingStatus.NO_SHOW, updated_at=now)
            self._refresh_stats(booking, now)

        self.logger.info(f"Booking {booking_id} marked no-show")
        self._publish(
            [
                BookingNoShow(
                    booking_id=booking.id,
                    coach_id=booking.coach_id,
                    client_id=booking.client_id,
                    marked_at=now,
                )
            ]
        )
        return booking

    # Deletion

    @BaseService.measure_operation("delete_booking")
    def delete_booking(self, booking_id: str) -> DeletionResult:
        """
        Hard-delete a booking, refunding its package credit if still confirmed.

        The final status is read by the DELETE statement itself, so two
        concurrent deletes can refund at most once.

        Raises:
            NotFoundException: Booking does not exist (or was already deleted)
        """
        with self.transaction():
            removed = self.repository.delete_returning(booking_id)
            if removed is None:
                raise NotFoundException(
                    f"Booking {booking_id} not found",
                    code="BOOKING_NOT_FOUND",
                    details={"booking_id": booking_id},
                )

            refunded = bool(
                removed.status == BookingStatus.CONFIRMED.value
                and removed.booking_type == BookingType.SESSION.value
                and removed.package_id
            )
            if refunded:
                self.package_ledger.credit_package(
                    removed.package_id, CREDITS_PER_BOOKING, use_transaction=False
                )

        self.logger.info(
            "Deleted booking %s (status %s, refunded=%s)",
            booking_id,
            removed.status,
            refunded,
            extra={"booking_id": booking_id, "package_id": removed.package_id},
        )
        self._publish(
            [
                BookingDeleted(
                    booking_id=booking_id,
                    coach_id=removed.coach_id,
                    client_id=removed.client_id,
                    last_status=removed.status,
                    refunded=refunded,
                )
            ]
        )
        return DeletionResult(booking_id=booking_id, refunded=refunded)

    @BaseService.measure_operation("delete_bookings")
    def delete_bookings(self, booking_ids: Iterable[str]) -> BulkDeletionResult:
        """Delete each booking in its own transaction; unknown ids are reported."""
        result = BulkDeletionResult()
        for booking_id in booking_ids:
            try:
                result.deleted.append(self.delete_booking(booking_id))
            except NotFoundException:
                result.not_found.append(booking_id)
        self.logger.info(
            f"Bulk delete removed {result.deleted_count} booking(s), "
            f"refunded {result.refunded_count}, missing {len(result.not_found)}"
        )
        return result

    # Rescheduling

    @BaseService.measure_operation("reschedule_booking")
    def reschedule_booking(self, booking_id: str, new_starts_at: datetime) -> Booking:
        """
        Move a confirmed booking to a new start, keeping its duration.

        The ledger is untouched: the credit already spent stays with the booking.
        A check-in moved into another coach-local month takes that month's
        allowance and frees the one it held.
        """
        now = utc_now()
        new_start = ensure_utc(new_starts_at)
        if new_start < now:
            raise InvalidSlotException(
                "Cannot reschedule into the past",
                details={"starts_at": new_start.isoformat()},
            )

        with self.transaction():
            booking = self._get_or_raise(booking_id, for_update=True)
            if booking.status != BookingStatus.CONFIRMED.value:
                raise InvalidBookingTransitionException(booking_id, booking.status, "rescheduled")

            previous_start = ensure_utc(booking.starts_at)
            if new_start == previous_start:
                raise InvalidSlotException(
                    "New start time matches the current one",
                    details={"starts_at": new_start.isoformat()},
                )
            duration = ensure_utc(booking.ends_at) - previous_start
            new_end = new_start + duration
            if booking.booking_type == BookingType.CHECKIN.value and booking.client_id:
                tz_name = self.coach_settings_repository.get_timezone_name(booking.coach_id)
                self.checkin_quota.transfer(
                    booking.client_id,
                    booking.coach_id,
                    booking.id,
                    self.checkin_quota.month_key(previous_start, tz_name),
                    self.checkin_quota.month_key(new_start, tz_name),
                )
            if not self.repository.reschedule(booking_id, new_start, new_end, now):
                raise ConcurrentModificationException("Booking", booking_id)
            booking = self._reload(booking_id)

        self.logger.info(f"Rescheduled booking {booking_id} to {new_start.isoformat()}")
        self._publish(
            [
                BookingRescheduled(
                    booking_id=booking.id,
                    coach_id=booking.coach_id,
                    client_id=booking.client_id,
                    previous_starts_at=previous_start,
                    starts_at=new_start,
                    ends_at=new_end,
                )
            ]
        )
        return booking

    # Queries

    def get_booking(self, booking_id: str) -> Booking:
        return self._get_or_raise(booking_id)

    def list_bookings(
        self,
        coach_id: Optional[str] = None,
        client_id: Optional[str] = None,
        status: Optional[BookingStatus | str] = None,
        starts_from: Optional[datetime] = None,
        starts_to: Optional[datetime] = None,
    ) -> List[Booking]:
        """Bookings matching every given filter, ordered by start."""
        return self.repository.list_filtered(
            coach_id=coach_id,
            client_id=client_id,
            status=BookingStatus(status) if status is not None else None,
            starts_from=starts_from,
            starts_to=starts_to,
        )

    # Validation helpers

    @staticmethod
    def _parse_booking_type(booking_type: BookingType | str) -> BookingType:
        try:
            return BookingType(booking_type)
        except ValueError as exc:
            raise ValidationException(
                f"Unknown booking type: {booking_type}", code="INVALID_BOOKING_TYPE"
            ) from exc

    @staticmethod
    def _validate_slot(slot: TimeSlot, now: datetime) -> Tuple[datetime, datetime]:
        starts_at = ensure_utc(slot.starts_at)
        ends_at = ensure_utc(slot.ends_at)
        details = {"starts_at": starts_at.isoformat(), "ends_at": ends_at.isoformat()}
        if ends_at <= starts_at:
            raise InvalidSlotException("Slot must end after it starts", details=details)
        if starts_at < now:
            raise InvalidSlotException("Slot is in the past", details=details)
        return starts_at, ends_at

    @staticmethod
    def _validate_party(
        kind: BookingType,
        client_id: Optional[str],
        one_off_client_name: Optional[str],
        package_id: Optional[str],
        subscription_id: Optional[str],
    ) -> None:
        if package_id and subscription_id:
            raise ValidationException(
                "A booking can draw from a package or a subscription, not both",
                code="MULTIPLE_CREDIT_SOURCES",
            )
        has_credit = bool(package_id or subscription_id)

        if client_id is None:
            name = (one_off_client_name or "").strip()
            if not name:
                raise ValidationException(
                    "A booking needs a client or a one-off client name", code="MISSING_CLIENT"
                )
            if len(name) > ONE_OFF_NAME_MAX_LENGTH:
                raise ValidationException(
                    f"One-off client name must be at most {ONE_OFF_NAME_MAX_LENGTH} characters"
                )
            if has_credit:
                raise ValidationException(
                    "One-off bookings cannot use a package or subscription",
                    code="ONE_OFF_WITH_CREDIT",
                )
            if kind == BookingType.CHECKIN:
                raise ValidationException(
                    "Check-in bookings require a client", code="CHECKIN_REQUIRES_CLIENT"
                )
        elif one_off_client_name:
            raise ValidationException(
                "A one-off client name is only allowed without a client",
                code="ONE_OFF_WITH_CLIENT",
            )

        if has_credit and kind != BookingType.SESSION:
            raise ValidationException(
                "Only session bookings can use a package or subscription",
                code="CREDIT_SOURCE_NOT_ALLOWED",
            )

    def _enforce_notice(
        self, coach_id: str, starts: Sequence[datetime], actor_role: str, now: datetime
    ) -> None:
        if actor_role not in (ACTOR_COACH, ACTOR_CLIENT):
            raise ValidationException(f"Unknown actor role: {actor_role}", code="INVALID_ACTOR")
        if actor_role != ACTOR_CLIENT:
            return

        required_hours = self.coach_settings_repository.get_min_notice_hours(coach_id)
        earliest = min(starts)
        if earliest - now < timedelta(hours=required_hours):
            provided = round((earliest - now).total_seconds() / 3600, 2)
            raise InsufficientNoticeException(required_hours, provided)

    def _load_credit_source(
        self,
        coach_id: str,
        client_id: Optional[str],
        package_id: Optional[str],
        subscription_id: Optional[str],
        *,
        requested: int,
        now: datetime,
    ) -> Optional[SessionPackage | ClientSubscription]:
        """Check ownership, expiry, activity and balance before any write."""
        if package_id:
            package = self.package_repository.get_by_id(package_id)
            if package is None:
                raise NotFoundException(
                    f"Session package {package_id} not found",
                    code="PACKAGE_NOT_FOUND",
                    details={"package_id": package_id},
                )
            self._check_owner("package", package.client_id, package.coach_id, client_id, coach_id)
            if package.is_expired(now):
                raise PackageExpiredException(package_id, ensure_utc(package.expires_at).isoformat())
            if package.remaining_sessions < requested:
                raise InsufficientBalanceException(
                    source="package",
                    source_id=package_id,
                    requested=requested,
                    available=package.remaining_sessions,
                )
            return package

        if subscription_id:
            subscription = self.subscription_repository.get_by_id(subscription_id)
            if subscription is None:
                raise NotFoundException(
                    f"Subscription {subscription_id} not found",
                    code="SUBSCRIPTION_NOT_FOUND",
                    details={"subscription_id": subscription_id},
                )
            self._check_owner(
                "subscription", subscription.client_id, subscription.coach_id, client_id, coach_id
            )
            if not subscription.is_active:
                raise BusinessRuleException(
                    "Subscription is not active",
                    code="SUBSCRIPTION_INACTIVE",
                    details={"subscription_id": subscription_id},
                )
            if not subscription.is_hybrid:
                raise SubscriptionNotMeteredException(subscription_id)
            available = subscription.available_sessions or 0
            if available < requested:
                raise InsufficientBalanceException(
                    source="subscription",
                    source_id=subscription_id,
                    requested=requested,
                    available=available,
                )
            return subscription

        return None

    @staticmethod
    def _check_owner(
        source: str,
        owner_client_id: str,
        owner_coach_id: str,
        client_id: Optional[str],
        coach_id: str,
    ) -> None:
        if owner_client_id != client_id or owner_coach_id != coach_id:
            raise ValidationException(
                f"The {source} does not belong to this client and coach",
                code="CREDIT_SOURCE_MISMATCH",
                details={"source": source},
            )

    def _consume_credit(
        self,
        kind: BookingType,
        *,
        coach_id: str,
        client_id: Optional[str],
        package_id: Optional[str],
        subscription_id: Optional[str],
        count: int,
        bookings: Sequence[Tuple[str, datetime]],
    ) -> None:
        """Debit the credit source, or consume check-ins, inside the open transaction."""
        if package_id:
            self.package_ledger.debit_package(package_id, count, use_transaction=False)
        elif subscription_id:
            self.subscription_ledger.debit_subscription(
                subscription_id, count, use_transaction=False
            )
        elif kind == BookingType.CHECKIN and client_id:
            tz_name = self.coach_settings_repository.get_timezone_name(coach_id)
            for booking_id, starts_at in bookings:
                month = self.checkin_quota.month_key(starts_at, tz_name)
                self.checkin_quota.try_consume(client_id, coach_id, month, booking_id)

    # Transition helpers

    def _transition(self, booking_id: str, target: BookingStatus, **values: Any) -> Booking:
        if not self.repository.transition_status(booking_id, target, **values):
            current = self._get_or_raise(booking_id)
            raise InvalidBookingTransitionException(booking_id, current.status, target.value)
        return self._reload(booking_id)

    def _refresh_stats(self, booking: Booking, now: datetime) -> None:
        if booking.client_id:
            self.stats_service.refresh(booking.client_id, booking.coach_id, now=now)

    def _get_or_raise(self, booking_id: str, *, for_update: bool = False) -> Booking:
        booking = self.repository.get_by_id(booking_id, for_update=for_update)
        if booking is None:
            raise NotFoundException(
                f"Booking {booking_id} not found",
                code="BOOKING_NOT_FOUND",
                details={"booking_id": booking_id},
            )
        return booking

    def _reload(self, booking_id: str) -> Booking:
        booking = self.repository.reload(booking_id)
        if booking is None:
            raise NotFoundException(
                f"Booking {booking_id} not found",
                code="BOOKING_NOT_FOUND",
                details={"booking_id": booking_id},
            )
        return booking

    # Events

    @staticmethod
    def _created_event(booking: Booking) -> BookingCreated:
        return BookingCreated(
            booking_id=booking.id,
            coach_id=booking.coach_id,
            client_id=booking.client_id,
            booking_type=booking.booking_type,
            starts_at=ensure_utc(booking.starts_at),
            ends_at=ensure_utc(booking.ends_at),
            credit_source=booking.credit_source,
        )

    def _publish(self, events: Sequence[Event]) -> None:
        self.event_publisher.publish_all(events)
