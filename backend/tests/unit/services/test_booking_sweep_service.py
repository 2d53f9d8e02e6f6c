"""BookingSweepService: completing confirmed bookings whose end has passed."""

from __future__ import annotations

from datetime import timedelta

import pytest

from coachledger.events.booking_events import BookingCompleted
from coachledger.models.booking import BookingStatus
from coachledger.services.booking_sweep_service import BookingSweepService

COACH_ID = "01HCOACH000000000000000001"
OTHER_COACH_ID = "01HCOACH000000000000000002"
CLIENT_ID = "01HCLIENT00000000000000001"


@pytest.fixture
def sweep(db, event_publisher) -> BookingSweepService:
    return BookingSweepService(db, event_publisher=event_publisher)


def test_sweep_completes_only_elapsed_confirmed(
    sweep, booking_service, package_ledger, make_package, future_slot, published_events
):
    package = make_package(total=5)
    early = booking_service.create_booking(
        COACH_ID, future_slot(0), client_id=CLIENT_ID, package_id=package.id
    )
    cancelled = booking_service.create_booking(COACH_ID, future_slot(1), client_id=CLIENT_ID)
    booking_service.cancel_booking(cancelled.id)
    late = booking_service.create_booking(COACH_ID, future_slot(6), client_id=CLIENT_ID)
    published_events.clear()

    result = sweep.sweep_past_sessions(COACH_ID, now=future_slot(3).starts_at)

    assert result.count == 1
    assert result.booking_ids == [early.id]
    assert booking_service.get_booking(early.id).status == BookingStatus.COMPLETED.value
    assert booking_service.get_booking(early.id).completed_at is not None
    assert booking_service.get_booking(cancelled.id).status == BookingStatus.CANCELLED.value
    assert booking_service.get_booking(late.id).status == BookingStatus.CONFIRMED.value
    assert package_ledger.get_package(package.id).remaining_sessions == 4
    assert len(published_events) == 1
    assert isinstance(published_events[0], BookingCompleted)
    assert published_events[0].auto_completed is True


def test_booking_ending_exactly_now_is_completed(sweep, booking_service, future_slot):
    slot = future_slot()
    booking = booking_service.create_booking(COACH_ID, slot, client_id=CLIENT_ID)

    result = sweep.sweep_past_sessions(COACH_ID, now=slot.ends_at)

    assert result.booking_ids == [booking.id]


def test_second_sweep_is_a_no_op(sweep, booking_service, future_slot):
    booking_service.create_booking(COACH_ID, future_slot(), client_id=CLIENT_ID)
    cutoff = future_slot().ends_at + timedelta(hours=1)

    assert sweep.sweep_past_sessions(COACH_ID, now=cutoff).count == 1
    assert sweep.sweep_past_sessions(COACH_ID, now=cutoff).count == 0


def test_sweep_is_scoped_to_coach(sweep, booking_service, future_slot):
    booking_service.create_booking(COACH_ID, future_slot(), client_id=CLIENT_ID)
    other = booking_service.create_booking(OTHER_COACH_ID, future_slot(), client_id=CLIENT_ID)
    cutoff = future_slot(5).starts_at

    sweep.sweep_past_sessions(COACH_ID, now=cutoff)

    assert booking_service.get_booking(other.id).status == BookingStatus.CONFIRMED.value
    assert sweep.sweep_all(now=cutoff).booking_ids == [other.id]


def test_nothing_elapsed(sweep, booking_service, future_slot, published_events):
    booking_service.create_booking(COACH_ID, future_slot(), client_id=CLIENT_ID)
    published_events.clear()

    result = sweep.sweep_all()

    assert result.count == 0
    assert published_events == []
