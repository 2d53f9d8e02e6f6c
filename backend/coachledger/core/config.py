# backend/coachledger/core/config.py
import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).resolve().parents[2] / ".env"  # backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s", env_path)
    load_dotenv(env_path)


class Settings(BaseSettings):
    """Runtime configuration for the booking and ledger engine."""

    environment: str = Field(default="development", description="Deployment environment name")
    database_url: str = Field(
        default="sqlite:///./coachledger.db",
        description="SQLAlchemy URL of the transactional store",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements to the log")
    log_level: str = Field(default="INFO", description="Root log level")

    default_timezone: str = Field(
        default="UTC",
        description="Timezone used for coaches without their own booking settings",
    )
    default_min_notice_hours: int = Field(
        default=12,
        description="Minimum hours of notice for client-initiated bookings",
    )
    default_slot_duration_minutes: int = Field(
        default=60, description="Slot length when the caller does not ask for one"
    )

    attendance_window_days: int = Field(
        default=90, description="Rolling window for no-show and cancellation counts"
    )
    attendance_flag_threshold: int = Field(
        default=3, description="Incidents within the window that flag a client"
    )

    slow_operation_threshold_seconds: float = Field(
        default=1.0, description="Service operations slower than this are logged as warnings"
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        env_prefix="COACHLEDGER_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value!r}")
        return value

    @field_validator(
        "default_slot_duration_minutes",
        "attendance_window_days",
        "attendance_flag_threshold",
    )
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"must be >= 1, got {value}")
        return value

    @field_validator("default_min_notice_hours")
    @classmethod
    def _validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"must be >= 0, got {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value!r}")
        return normalized

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
