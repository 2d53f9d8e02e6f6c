"""AvailabilityService.get_slots: partitioning working windows into candidate slots."""

from __future__ import annotations

from datetime import date, datetime, time, timezone

import pytest

from coachledger.core.exceptions import ValidationException
from coachledger.core.timezone_utils import day_of_week_index
from coachledger.models.booking_stats import ClientBookingStats
from coachledger.services.availability_service import AvailabilityService

COACH_ID = "01HCOACH000000000000000001"
CLIENT_ID = "01HCLIENT00000000000000001"

# A winter Monday far enough ahead to never be in the past.
TARGET = date(2031, 1, 6)
DOW = day_of_week_index(TARGET)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(TARGET.year, TARGET.month, TARGET.day, hour, minute, tzinfo=timezone.utc)


def starts(slots):
    return [slot.starts_at for slot in slots]


@pytest.fixture
def availability(db) -> AvailabilityService:
    return AvailabilityService(db)


def test_day_of_week_index_starts_on_sunday():
    assert day_of_week_index(date(2031, 1, 5)) == 0
    assert day_of_week_index(date(2031, 1, 6)) == 1
    assert day_of_week_index(date(2031, 1, 11)) == 6


def test_window_is_cut_into_back_to_back_slots(availability, add_template):
    add_template(DOW, time(9, 0), time(12, 0), capacity=3)

    slots = availability.get_slots(COACH_ID, TARGET, 60)

    assert starts(slots) == [at(9), at(10), at(11)]
    assert all(slot.duration_minutes == 60 for slot in slots)
    assert {slot.available_capacity for slot in slots} == {3}


def test_trailing_fragment_is_dropped(availability, add_template):
    add_template(DOW, time(9, 0), time(10, 30))

    slots = availability.get_slots(COACH_ID, TARGET, 60)

    assert starts(slots) == [at(9)]


def test_default_duration_from_settings(availability, add_template):
    add_template(DOW, time(9, 0), time(11, 0))

    assert len(availability.get_slots(COACH_ID, TARGET)) == 2


def test_templates_for_other_days_or_types_ignored(availability, add_template):
    add_template((DOW + 1) % 7, time(9, 0), time(12, 0))
    add_template(DOW, time(9, 0), time(12, 0), availability_type="checkin")

    assert availability.get_slots(COACH_ID, TARGET, 60) == []
    assert len(availability.get_slots(COACH_ID, TARGET, 30, availability_type="checkin")) == 6


def test_full_day_block_returns_nothing(availability, add_template, add_override):
    add_template(DOW, time(9, 0), time(17, 0))
    add_override(TARGET, is_blocked=True)

    assert availability.get_slots(COACH_ID, TARGET, 60) == []


def test_partial_block_removes_overlapping_slots(availability, add_template, add_override):
    add_template(DOW, time(9, 0), time(13, 0))
    add_override(TARGET, time(10, 30), time(11, 15), is_blocked=True)

    slots = availability.get_slots(COACH_ID, TARGET, 60)

    assert starts(slots) == [at(9), at(12)]


def test_block_touching_slot_edge_keeps_slot(availability, add_template, add_override):
    add_template(DOW, time(9, 0), time(11, 0))
    add_override(TARGET, time(10, 0), time(10, 30), is_blocked=True)

    assert starts(availability.get_slots(COACH_ID, TARGET, 60)) == [at(9)]


def test_extra_window_adds_slots_with_default_capacity(availability, add_template, add_override):
    add_template(DOW, time(9, 0), time(10, 0), capacity=1)
    add_override(TARGET, time(18, 0), time(19, 0), is_blocked=False)

    slots = availability.get_slots(COACH_ID, TARGET, 30)

    assert starts(slots) == [at(9), at(9, 30), at(18), at(18, 30)]
    assert [slot.available_capacity for slot in slots] == [1, 1, 2, 2]


def test_overlapping_windows_report_each_start_once(availability, add_template, add_override):
    add_template(DOW, time(9, 0), time(11, 0))
    add_override(TARGET, time(10, 0), time(12, 0), is_blocked=False, capacity=4)

    slots = availability.get_slots(COACH_ID, TARGET, 60)

    assert starts(slots) == [at(9), at(10), at(11)]


def test_extra_window_only_date(availability, add_override):
    add_override(TARGET, time(7, 0), time(8, 0), is_blocked=False)

    assert starts(availability.get_slots(COACH_ID, TARGET, 60)) == [at(7)]


def test_past_date_returns_empty(availability, add_template):
    past = date(2020, 1, 6)
    add_template(day_of_week_index(past), time(9, 0), time(12, 0))

    assert availability.get_slots(COACH_ID, past, 60) == []


@pytest.mark.parametrize("duration", [0, -15])
def test_non_positive_duration_rejected(availability, duration):
    with pytest.raises(ValidationException) as exc_info:
        availability.get_slots(COACH_ID, TARGET, duration)

    assert exc_info.value.code == "INVALID_DURATION"


def test_windows_interpreted_in_coach_timezone(availability, add_template, coach_settings):
    coach_settings(tz_name="America/New_York")
    add_template(DOW, time(9, 0), time(11, 0))

    slots = availability.get_slots(COACH_ID, TARGET, 60)

    assert starts(slots) == [at(14), at(15)]


def test_other_coach_windows_ignored(availability, add_template):
    add_template(DOW, time(9, 0), time(12, 0), coach_id="01HCOACH000000000000000002")

    assert availability.get_slots(COACH_ID, TARGET, 60) == []


def test_booked_slot_is_still_offered(availability, add_template, booking_service):
    add_template(DOW, time(9, 0), time(11, 0), capacity=1)
    slot = availability.get_slots(COACH_ID, TARGET, 60)[0]

    first = booking_service.create_booking(COACH_ID, slot, client_id=CLIENT_ID)

    assert starts(availability.get_slots(COACH_ID, TARGET, 60)) == [at(9), at(10)]

    # Capacity is advisory: the same slot can be booked again.
    second = booking_service.create_booking(COACH_ID, slot, client_id="01HCLIENT00000000000000002")
    assert first.id != second.id
    assert second.starts_at.replace(tzinfo=timezone.utc) == at(9)


def test_client_favorite_times_are_marked(availability, add_template, db):
    add_template(DOW, time(9, 0), time(12, 0))
    db.add(
        ClientBookingStats(
            client_id=CLIENT_ID,
            coach_id=COACH_ID,
            favorite_times=[{"day": DOW, "time": "10:00"}, {"day": (DOW + 1) % 7, "time": "09:00"}],
        )
    )
    db.commit()

    marked = availability.get_slots(COACH_ID, TARGET, 60, client_id=CLIENT_ID)
    anonymous = availability.get_slots(COACH_ID, TARGET, 60)
    stranger = availability.get_slots(COACH_ID, TARGET, 60, client_id="01HCLIENT00000000000000009")

    assert [slot.is_favorite for slot in marked] == [False, True, False]
    assert not any(slot.is_favorite for slot in anonymous + stranger)


def test_favorites_match_coach_wall_clock(availability, add_template, coach_settings, db):
    coach_settings(tz_name="America/New_York")
    add_template(DOW, time(9, 0), time(11, 0))
    db.add(
        ClientBookingStats(
            client_id=CLIENT_ID,
            coach_id=COACH_ID,
            favorite_times=[{"day": DOW, "time": "09:00"}],
        )
    )
    db.commit()

    slots = availability.get_slots(COACH_ID, TARGET, 60, client_id=CLIENT_ID)

    # 09:00 in New York is 14:00 UTC in January.
    assert [(slot.starts_at, slot.is_favorite) for slot in slots] == [
        (at(14), True),
        (at(15), False),
    ]
