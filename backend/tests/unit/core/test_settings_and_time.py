from __future__ import annotations

from datetime import date, datetime, time, timezone
import logging

from pydantic import ValidationError
import pytest

from coachledger.core import logging_config, timezone_utils, ulid_helper
from coachledger.core.config import Settings
from coachledger.database import get_db


def test_settings_defaults() -> None:
    config = Settings(_env_file=None)
    assert config.default_timezone == "UTC"
    assert config.default_min_notice_hours == 12
    assert config.attendance_window_days == 90
    assert config.attendance_flag_threshold == 3


def test_settings_read_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("COACHLEDGER_DEFAULT_TIMEZONE", "Europe/London")
    monkeypatch.setenv("COACHLEDGER_LOG_LEVEL", "debug")
    config = Settings(_env_file=None)
    assert config.default_timezone == "Europe/London"
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize(
    "overrides",
    [
        {"default_timezone": "Mars/Olympus"},
        {"default_min_notice_hours": -1},
        {"attendance_window_days": 0},
        {"default_slot_duration_minutes": 0},
        {"log_level": "LOUD"},
    ],
)
def test_settings_reject_invalid_values(overrides) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_sqlite_detection() -> None:
    assert Settings(_env_file=None, database_url="sqlite://").is_sqlite
    assert not Settings(_env_file=None, database_url="postgresql://u@h/db").is_sqlite


def test_ensure_utc_treats_naive_as_utc() -> None:
    naive = datetime(2026, 3, 1, 12, 0)
    assert timezone_utils.ensure_utc(naive) == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_localize_converts_wall_clock_to_utc() -> None:
    # New York is UTC-5 in January
    instant = timezone_utils.localize(date(2026, 1, 15), time(9, 0), "America/New_York")
    assert instant == datetime(2026, 1, 15, 14, 0, tzinfo=timezone.utc)


def test_month_start_uses_local_calendar() -> None:
    # 03:00 UTC on March 1st is still February 28th in Los Angeles
    instant = datetime(2026, 3, 1, 3, 0, tzinfo=timezone.utc)
    assert timezone_utils.month_start(instant, "America/Los_Angeles") == date(2026, 2, 1)
    assert timezone_utils.month_start(instant, "UTC") == date(2026, 3, 1)


def test_ulid_helpers_round_trip_timestamp() -> None:
    value = ulid_helper.generate_ulid()
    assert len(value) == 26
    assert ulid_helper.is_valid_ulid(value)
    assert isinstance(ulid_helper.get_timestamp_from_ulid(value), datetime)
    assert ulid_helper.parse_ulid("not-a-ulid") is None
    assert ulid_helper.get_timestamp_from_ulid("bad") is None


def test_configure_logging_quiets_sql_engine(monkeypatch) -> None:
    monkeypatch.setattr(logging_config.settings, "database_echo", False)
    logging_config.configure_logging("debug")

    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_get_db_yields_and_closes_session() -> None:
    generator = get_db()
    session = next(generator)
    assert session.is_active
    generator.close()
