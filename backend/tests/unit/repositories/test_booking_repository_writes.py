"""Conditional status writes, DELETE ... RETURNING and the sweep statement."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from coachledger.models.booking import Booking, BookingStatus
from coachledger.repositories.booking_repository import BookingRepository

COACH_ID = "01HCOACH000000000000000001"
OTHER_COACH_ID = "01HCOACH000000000000000002"
CLIENT_ID = "01HCLIENT00000000000000001"

BASE = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo(db) -> BookingRepository:
    return BookingRepository(db)


@pytest.fixture
def add_booking(db, repo):
    def _add(offset_hours: int = 0, coach_id: str = COACH_ID, status: str = "confirmed", **kwargs):
        starts_at = BASE + timedelta(hours=offset_hours)
        booking = repo.create(
            coach_id=coach_id,
            client_id=kwargs.pop("client_id", CLIENT_ID),
            booking_type=kwargs.pop("booking_type", "session"),
            starts_at=starts_at,
            ends_at=starts_at + timedelta(hours=1),
            status=status,
            **kwargs,
        )
        db.commit()
        return booking

    return _add


def test_transition_only_from_confirmed(repo, add_booking):
    booking = add_booking()

    assert repo.transition_status(booking.id, BookingStatus.CANCELLED) is True
    assert repo.transition_status(booking.id, BookingStatus.COMPLETED) is False
    assert repo.reload(booking.id).status == BookingStatus.CANCELLED


def test_delete_returning_reports_final_state_once(repo, add_booking, db):
    booking = add_booking(status="no_show")

    removed = repo.delete_returning(booking.id)
    assert removed.status == "no_show"
    assert removed.booking_type == "session"
    assert removed.package_id is None

    assert repo.delete_returning(booking.id) is None
    assert db.get(Booking, booking.id) is None


def test_complete_elapsed_only_touches_ended_confirmed(repo, add_booking):
    ended = add_booking(offset_hours=0)
    ending_now = add_booking(offset_hours=1)
    future = add_booking(offset_hours=5)
    cancelled = add_booking(offset_hours=-3, status="cancelled")
    other_coach = add_booking(offset_hours=-2, coach_id=OTHER_COACH_ID)

    now = BASE + timedelta(hours=2)  # ending_now ends exactly at now
    rows = repo.complete_elapsed(now, coach_id=COACH_ID)

    assert sorted(row.id for row in rows) == sorted([ended.id, ending_now.id])
    assert repo.reload(future.id).status == "confirmed"
    assert repo.reload(cancelled.id).status == "cancelled"
    assert repo.reload(other_coach.id).status == "confirmed"
    assert repo.reload(ended.id).completed_at is not None

    assert repo.complete_elapsed(now, coach_id=COACH_ID) == []


def test_list_filtered_orders_by_start(repo, add_booking):
    later = add_booking(offset_hours=4)
    earlier = add_booking(offset_hours=1)
    add_booking(offset_hours=2, status="cancelled")

    confirmed = repo.list_filtered(coach_id=COACH_ID, status=BookingStatus.CONFIRMED)
    assert [b.id for b in confirmed] == [earlier.id, later.id]

    window = repo.list_filtered(
        coach_id=COACH_ID,
        starts_from=BASE + timedelta(hours=2),
        starts_to=BASE + timedelta(hours=5),
    )
    assert [b.id for b in window] == [
        b.id for b in repo.list_filtered(coach_id=COACH_ID) if b.id != earlier.id
    ]


def test_count_incidents_uses_cancelled_at(repo, add_booking):
    add_booking(status="cancelled", cancelled_at=BASE)
    add_booking(offset_hours=1, status="cancelled", cancelled_at=BASE - timedelta(days=120))

    since = BASE - timedelta(days=90)
    assert repo.count_incidents_since(CLIENT_ID, COACH_ID, BookingStatus.CANCELLED, since) == 1


def test_completed_session_starts_skip_checkins_and_other_statuses(repo, add_booking):
    add_booking(offset_hours=2, status="completed")
    add_booking(offset_hours=0, status="completed")
    add_booking(offset_hours=4, status="completed", booking_type="checkin")
    add_booking(offset_hours=6, status="no_show")
    add_booking(offset_hours=8, status="completed")

    starts = repo.list_completed_session_starts(
        CLIENT_ID, COACH_ID, BASE, until=BASE + timedelta(hours=3)
    )

    assert starts == [BASE, BASE + timedelta(hours=2)]


def test_pairs_with_completed_sessions_are_distinct(repo, add_booking):
    add_booking(status="completed")
    add_booking(offset_hours=1, status="completed")
    add_booking(offset_hours=2, coach_id=OTHER_COACH_ID, status="completed")
    add_booking(
        offset_hours=-240,
        coach_id=OTHER_COACH_ID,
        client_id="01HCLIENT00000000000000002",
        status="completed",
    )
    add_booking(offset_hours=3, client_id="01HCLIENT00000000000000003")

    pairs = repo.list_pairs_with_completed_sessions(BASE - timedelta(days=1))

    assert sorted(pairs) == sorted([(CLIENT_ID, COACH_ID), (CLIENT_ID, OTHER_COACH_ID)])
