# backend/coachledger/services/availability_service.py
"""
Availability Service for the booking engine.

Turns a coach's weekly templates and per-date overrides into candidate
appointment slots. Slots are derived data: nothing is persisted, and existing
bookings are never consulted.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import EXTRA_WINDOW_DEFAULT_CAPACITY
from ..core.exceptions import ValidationException
from ..core.timezone_utils import day_of_week_index, local_day_and_time, local_today, localize
from ..models.availability import AvailabilityType
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import AvailableSlot
from .base import BaseService
from .booking_stats_service import BookingStatsService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Window:
    starts_at: datetime
    ends_at: datetime
    capacity: int


class AvailabilityService(BaseService):
    """Resolves open slots from configured working windows."""

    def __init__(self, db: Session, stats_service: Optional[BookingStatsService] = None):
        super().__init__(db)
        self.repository = RepositoryFactory.create_availability_repository(db)
        self.coach_settings_repository = RepositoryFactory.create_coach_settings_repository(db)
        self.stats_service = stats_service or BookingStatsService(db)

    @BaseService.measure_operation("get_slots")
    def get_slots(
        self,
        coach_id: str,
        target_date: date,
        duration_minutes: Optional[int] = None,
        availability_type: AvailabilityType | str = AvailabilityType.SESSION,
        client_id: Optional[str] = None,
    ) -> List[AvailableSlot]:
        """
        Candidate slots for one date, ordered by start.

        Each window is cut into back-to-back slots of duration_minutes starting
        at the window start; a trailing remainder shorter than the duration is
        dropped. Slots touching a blocked range are removed and identical
        starts from overlapping windows are reported once.
        When client_id is given, slots starting on one of that client's
        favorite (weekday, time) pairs are marked is_favorite.

        Raises:
            ValidationException: duration_minutes is not positive
        """
        if duration_minutes is None:
            duration_minutes = settings.default_slot_duration_minutes
        if duration_minutes <= 0:
            raise ValidationException(
                f"Slot duration must be positive, got {duration_minutes}",
                code="INVALID_DURATION",
                details={"duration_minutes": duration_minutes},
            )
        kind = AvailabilityType(availability_type).value

        tz_name = self.coach_settings_repository.get_timezone_name(coach_id)
        if target_date < local_today(tz_name):
            return []

        overrides = self.repository.get_overrides_for_date(coach_id, target_date, kind)
        if any(o.is_blocked and o.is_full_day for o in overrides):
            self.logger.debug(f"Coach {coach_id} blocked all day on {target_date}")
            return []

        windows: List[_Window] = []
        for template in self.repository.get_templates_for_day(
            coach_id, day_of_week_index(target_date), kind
        ):
            windows.append(
                _Window(
                    localize(target_date, template.start_time, tz_name),
                    localize(target_date, template.end_time, tz_name),
                    template.max_concurrent_clients,
                )
            )

        blocked: List[Tuple[datetime, datetime]] = []
        for override in overrides:
            if override.is_full_day:
                continue
            start = localize(target_date, override.start_time, tz_name)
            end = localize(target_date, override.end_time, tz_name)
            if override.is_blocked:
                blocked.append((start, end))
            else:
                windows.append(
                    _Window(
                        start,
                        end,
                        override.max_concurrent_clients or EXTRA_WINDOW_DEFAULT_CAPACITY,
                    )
                )

        favorites = (
            self.stats_service.get_favorite_times(client_id, coach_id) if client_id else set()
        )

        step = timedelta(minutes=duration_minutes)
        slots: Dict[datetime, AvailableSlot] = {}
        for window in windows:
            cursor = window.starts_at
            while cursor + step <= window.ends_at:
                slot_end = cursor + step
                if cursor not in slots and not self._overlaps_any(cursor, slot_end, blocked):
                    slots[cursor] = AvailableSlot(
                        starts_at=cursor,
                        ends_at=slot_end,
                        available_capacity=window.capacity,
                        is_favorite=local_day_and_time(cursor, tz_name) in favorites,
                    )
                cursor = slot_end

        result = [slots[start] for start in sorted(slots)]
        self.logger.debug(
            "Resolved %s slot(s) for coach %s on %s",
            len(result),
            coach_id,
            target_date.isoformat(),
            extra={"coach_id": coach_id, "duration_minutes": duration_minutes},
        )
        return result

    @staticmethod
    def _overlaps_any(
        start: datetime, end: datetime, ranges: List[Tuple[datetime, datetime]]
    ) -> bool:
        return any(start < range_end and range_start < end for range_start, range_end in ranges)
