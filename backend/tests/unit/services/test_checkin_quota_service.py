"""CheckinQuotaService: one virtual check-in per client, coach and calendar month."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from coachledger.core.exceptions import AlreadyUsedException
from coachledger.models.checkin_usage import ClientCheckinUsage
from coachledger.services.checkin_quota_service import CheckinQuotaService

COACH_ID = "01HCOACH000000000000000001"
CLIENT_ID = "01HCLIENT00000000000000001"
BOOKING_A = "01HBOOKINGA000000000000001"
BOOKING_B = "01HBOOKINGB000000000000001"


@pytest.fixture
def quota(db) -> CheckinQuotaService:
    return CheckinQuotaService(db)


def test_month_key_uses_coach_timezone():
    instant = datetime(2030, 3, 1, 2, 30, tzinfo=timezone.utc)

    assert CheckinQuotaService.month_key(instant, "UTC") == date(2030, 3, 1)
    assert CheckinQuotaService.month_key(instant, "America/New_York") == date(2030, 2, 1)


def test_first_consumption_inserts_used_row(quota, db):
    usage = quota.try_consume(CLIENT_ID, COACH_ID, date(2030, 3, 14), BOOKING_A)
    db.commit()

    assert usage.used is True
    assert usage.month == date(2030, 3, 1)
    assert usage.booking_id == BOOKING_A
    assert quota.is_available(CLIENT_ID, COACH_ID, date(2030, 3, 1)) is False


def test_second_consumption_same_month_raises(quota, db):
    quota.try_consume(CLIENT_ID, COACH_ID, date(2030, 3, 1), BOOKING_A, use_transaction=True)

    with pytest.raises(AlreadyUsedException) as exc_info:
        quota.try_consume(CLIENT_ID, COACH_ID, date(2030, 3, 20), BOOKING_B, use_transaction=True)

    assert exc_info.value.details["month"] == "2030-03-01"
    assert db.query(ClientCheckinUsage).count() == 1
    assert quota.get_usage(CLIENT_ID, COACH_ID, date(2030, 3, 1)).booking_id == BOOKING_A


def test_next_month_is_independent(quota):
    quota.try_consume(CLIENT_ID, COACH_ID, date(2030, 3, 1), BOOKING_A, use_transaction=True)

    usage = quota.try_consume(
        CLIENT_ID, COACH_ID, date(2030, 4, 1), BOOKING_B, use_transaction=True
    )

    assert usage.month == date(2030, 4, 1)


def test_existing_unused_row_is_flipped(quota, db):
    db.add(
        ClientCheckinUsage(
            client_id=CLIENT_ID, coach_id=COACH_ID, month=date(2030, 5, 1), used=False
        )
    )
    db.commit()

    usage = quota.try_consume(
        CLIENT_ID, COACH_ID, date(2030, 5, 9), BOOKING_A, use_transaction=True
    )

    assert usage.used is True
    assert usage.booking_id == BOOKING_A
    assert db.query(ClientCheckinUsage).count() == 1


def test_available_when_no_row(quota):
    assert quota.is_available(CLIENT_ID, COACH_ID, date(2030, 6, 1)) is True
    assert quota.get_usage(CLIENT_ID, COACH_ID, date(2030, 6, 1)) is None
