# backend/tests/conftest.py
"""
Pytest configuration for the booking and ledger engine.

Every test runs against a shared in-memory SQLite database inside an outer
transaction that is rolled back afterwards. Services still call commit and
rollback freely: the session joins the outer transaction through savepoints.
"""

import os

# Set test configuration BEFORE any coachledger imports.
os.environ.setdefault("COACHLEDGER_DATABASE_URL", "sqlite://")
os.environ.setdefault("COACHLEDGER_ENVIRONMENT", "test")

from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, List, Optional

import pytest
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from coachledger.database import build_engine, init_db
from coachledger.events.publisher import BookingEventPublisher
from coachledger.models.availability import AvailabilityOverride, AvailabilityTemplate
from coachledger.models.coach_settings import CoachBookingSettings
from coachledger.models.session_package import SessionPackage
from coachledger.models.subscription import ClientSubscription, SubscriptionType
from coachledger.schemas.booking import TimeSlot
from coachledger.services.booking_service import BookingService
from coachledger.services.package_ledger_service import PackageLedgerService
from coachledger.services.subscription_ledger_service import SubscriptionLedgerService

COACH_ID = "01HCOACH000000000000000001"
CLIENT_ID = "01HCLIENT00000000000000001"
OTHER_CLIENT_ID = "01HCLIENT00000000000000002"


@pytest.fixture(scope="session")
def _test_engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db(_test_engine) -> Session:
    """
    Provide a session whose commits only release savepoints of an outer
    transaction that is rolled back after the test.
    """
    connection = _test_engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
        autoflush=False,
    )
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def published_events() -> List[Any]:
    return []


@pytest.fixture
def event_publisher(published_events) -> BookingEventPublisher:
    publisher = BookingEventPublisher()
    publisher.register(published_events.append)
    return publisher


@pytest.fixture
def booking_service(db, event_publisher) -> BookingService:
    return BookingService(db, event_publisher=event_publisher)


@pytest.fixture
def package_ledger(db) -> PackageLedgerService:
    return PackageLedgerService(db)


@pytest.fixture
def subscription_ledger(db) -> SubscriptionLedgerService:
    return SubscriptionLedgerService(db)


@pytest.fixture
def future_slot() -> Callable[..., TimeSlot]:
    """Build a one-hour slot starting a whole number of hours from tomorrow 09:00 UTC."""
    base = (datetime.now(timezone.utc) + timedelta(days=2)).replace(
        hour=9, minute=0, second=0, microsecond=0
    )

    def _make(offset_hours: int = 0, minutes: int = 60) -> TimeSlot:
        starts_at = base + timedelta(hours=offset_hours)
        return TimeSlot(starts_at=starts_at, ends_at=starts_at + timedelta(minutes=minutes))

    return _make


@pytest.fixture
def make_package(db) -> Callable[..., SessionPackage]:
    def _make(
        total: int = 10,
        remaining: Optional[int] = None,
        client_id: str = CLIENT_ID,
        coach_id: str = COACH_ID,
        expires_at: Optional[datetime] = None,
        duration: int = 60,
    ) -> SessionPackage:
        package = SessionPackage(
            client_id=client_id,
            coach_id=coach_id,
            total_sessions=total,
            remaining_sessions=total if remaining is None else remaining,
            session_duration_minutes=duration,
            expires_at=expires_at,
        )
        db.add(package)
        db.commit()
        return package

    return _make


@pytest.fixture
def make_subscription(db) -> Callable[..., ClientSubscription]:
    def _make(
        monthly: Optional[int] = 4,
        available: Optional[int] = None,
        subscription_type: SubscriptionType = SubscriptionType.HYBRID,
        client_id: str = CLIENT_ID,
        coach_id: str = COACH_ID,
        is_active: bool = True,
    ) -> ClientSubscription:
        hybrid = subscription_type == SubscriptionType.HYBRID
        subscription = ClientSubscription(
            client_id=client_id,
            coach_id=coach_id,
            subscription_type=subscription_type.value,
            monthly_sessions=monthly if hybrid else None,
            available_sessions=(monthly if available is None else available) if hybrid else None,
            session_duration_minutes=60,
            is_active=is_active,
        )
        db.add(subscription)
        db.commit()
        return subscription

    return _make


@pytest.fixture
def add_template(db) -> Callable[..., AvailabilityTemplate]:
    def _add(
        day_of_week: int,
        start: time,
        end: time,
        availability_type: str = "session",
        capacity: int = 1,
        coach_id: str = COACH_ID,
    ) -> AvailabilityTemplate:
        template = AvailabilityTemplate(
            coach_id=coach_id,
            availability_type=availability_type,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            max_concurrent_clients=capacity,
        )
        db.add(template)
        db.commit()
        return template

    return _add


@pytest.fixture
def add_override(db) -> Callable[..., AvailabilityOverride]:
    def _add(
        override_date,
        start: Optional[time] = None,
        end: Optional[time] = None,
        is_blocked: bool = True,
        availability_type: str = "session",
        capacity: Optional[int] = None,
        coach_id: str = COACH_ID,
    ) -> AvailabilityOverride:
        override = AvailabilityOverride(
            coach_id=coach_id,
            availability_type=availability_type,
            override_date=override_date,
            start_time=start,
            end_time=end,
            is_blocked=is_blocked,
            max_concurrent_clients=capacity,
        )
        db.add(override)
        db.commit()
        return override

    return _add


@pytest.fixture
def coach_settings(db) -> Callable[..., CoachBookingSettings]:
    def _set(
        min_notice_hours: Optional[int] = None,
        tz_name: Optional[str] = None,
        coach_id: str = COACH_ID,
    ) -> CoachBookingSettings:
        row = CoachBookingSettings(
            coach_id=coach_id, min_notice_hours=min_notice_hours, timezone=tz_name
        )
        db.add(row)
        db.commit()
        return row

    return _set
