"""
Rolling attendance counters refreshed after cancellations and no-shows, and
the weekly streak and favorite-time job.
"""

from collections import Counter
from datetime import datetime, timedelta
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    FAVORITE_LIMIT,
    FAVORITE_MIN_BOOKINGS,
    FAVORITE_WINDOW_DAYS,
    STREAK_WINDOW_DAYS,
)
from ..core.timezone_utils import ensure_utc, local_day_and_time, utc_now
from ..models.booking import BookingStatus
from ..models.booking_stats import ClientBookingStats
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import StreakUpdateResult
from .base import BaseService

logger = logging.getLogger(__name__)


class BookingStatsService(BaseService):
    """Maintains ClientBookingStats for each (client, coach) pair."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.stats_repository = RepositoryFactory.create_booking_stats_repository(db)
        self.coach_settings_repository = RepositoryFactory.create_coach_settings_repository(db)

    @BaseService.measure_operation("refresh_attendance_stats")
    def refresh(
        self,
        client_id: str,
        coach_id: str,
        *,
        now: Optional[datetime] = None,
        use_transaction: bool = False,
    ) -> ClientBookingStats:
        """
        Recount incidents inside the rolling window and update the flag.

        A client is flagged when either count reaches the configured threshold.
        """

        def _refresh() -> ClientBookingStats:
            since = (now or utc_now()) - timedelta(days=settings.attendance_window_days)
            no_shows = self.booking_repository.count_incidents_since(
                client_id, coach_id, BookingStatus.NO_SHOW, since
            )
            cancellations = self.booking_repository.count_incidents_since(
                client_id, coach_id, BookingStatus.CANCELLED, since
            )
            threshold = settings.attendance_flag_threshold
            is_flagged = no_shows >= threshold or cancellations >= threshold
            stats = self.stats_repository.upsert(
                client_id,
                coach_id,
                no_show_count=no_shows,
                cancellation_count=cancellations,
                is_flagged=is_flagged,
            )
            if is_flagged:
                self.logger.warning(
                    "Client %s flagged for coach %s (%s no-shows, %s cancellations)",
                    client_id,
                    coach_id,
                    no_shows,
                    cancellations,
                )
            return stats

        if use_transaction:
            with self.transaction():
                return _refresh()
        return _refresh()

    def get_stats(self, client_id: str, coach_id: str) -> Optional[ClientBookingStats]:
        return self.stats_repository.get_for_pair(client_id, coach_id)

    @BaseService.measure_operation("update_streaks")
    def update_streaks(self, now: Optional[datetime] = None) -> StreakUpdateResult:
        """
        Weekly job entry point: advance or reset every pair's attendance streak
        and recompute its favorite start times.

        A pair is covered when it already has a stats row or completed a session
        inside the favorites window. The streak grows by one week when a
        completed session started in the last STREAK_WINDOW_DAYS and drops to
        zero otherwise. Each pair commits on its own.
        """
        now = ensure_utc(now or utc_now())
        favorites_since = now - timedelta(days=FAVORITE_WINDOW_DAYS)
        pairs = {(stats.client_id, stats.coach_id) for stats in self.stats_repository.list_all()}
        pairs.update(self.booking_repository.list_pairs_with_completed_sessions(favorites_since))

        result = StreakUpdateResult()
        for client_id, coach_id in sorted(pairs):
            with self.transaction():
                previous, stats = self._update_pair_streak(client_id, coach_id, now)
            result.processed += 1
            if stats.current_streak_weeks > previous:
                result.incremented += 1
            elif previous > 0 and stats.current_streak_weeks == 0:
                result.reset += 1

        self.logger.info(
            "Streaks updated for %s pair(s): %s incremented, %s reset",
            result.processed,
            result.incremented,
            result.reset,
        )
        return result

    def get_favorite_times(self, client_id: str, coach_id: str) -> Set[Tuple[int, str]]:
        """(day, "HH:MM") pairs recorded for the client, empty when none are known."""
        stats = self.stats_repository.get_for_pair(client_id, coach_id)
        if stats is None:
            return set()
        return {(int(entry["day"]), str(entry["time"])) for entry in stats.favorite_times or []}

    def _update_pair_streak(
        self, client_id: str, coach_id: str, now: datetime
    ) -> Tuple[int, ClientBookingStats]:
        stats = self.stats_repository.get_for_pair(client_id, coach_id)
        previous = stats.current_streak_weeks if stats else 0
        longest = stats.longest_streak_weeks if stats else 0

        recent = self.booking_repository.list_completed_session_starts(
            client_id, coach_id, now - timedelta(days=STREAK_WINDOW_DAYS), until=now
        )
        current = previous + 1 if recent else 0

        tz_name = self.coach_settings_repository.get_timezone_name(coach_id)
        starts = self.booking_repository.list_completed_session_starts(
            client_id, coach_id, now - timedelta(days=FAVORITE_WINDOW_DAYS), until=now
        )
        favorites = self.calculate_favorite_times(starts, tz_name)

        stats = self.stats_repository.record_streak(
            client_id,
            coach_id,
            current_streak_weeks=current,
            longest_streak_weeks=max(longest, current),
            favorite_times=favorites,
            updated_at=now,
        )
        self.logger.debug(
            f"Client {client_id} with coach {coach_id}: streak {previous} -> {current}"
        )
        return previous, stats

    @staticmethod
    def calculate_favorite_times(
        starts: Iterable[datetime], tz_name: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Start times the client keeps coming back to.

        Starts are bucketed by local weekday and wall-clock time; buckets seen
        at least FAVORITE_MIN_BOOKINGS times are ranked by count, first
        occurrence breaking ties, and the top FAVORITE_LIMIT are returned.
        """
        counts: Counter = Counter(local_day_and_time(start, tz_name) for start in starts)
        ranked = sorted(
            (key for key, count in counts.items() if count >= FAVORITE_MIN_BOOKINGS),
            key=lambda key: -counts[key],
        )
        return [{"day": day, "time": hhmm} for day, hhmm in ranked[:FAVORITE_LIMIT]]
