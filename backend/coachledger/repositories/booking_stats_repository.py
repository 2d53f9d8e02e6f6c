"""Attendance counters per (client, coach)."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.booking_stats import ClientBookingStats
from .base_repository import BaseRepository


class BookingStatsRepository(BaseRepository[ClientBookingStats]):
    def __init__(self, db: Session):
        super().__init__(db, ClientBookingStats)

    def get_for_pair(self, client_id: str, coach_id: str) -> Optional[ClientBookingStats]:
        return self.find_one_by(client_id=client_id, coach_id=coach_id)

    def upsert(
        self,
        client_id: str,
        coach_id: str,
        *,
        no_show_count: int,
        cancellation_count: int,
        is_flagged: bool,
    ) -> ClientBookingStats:
        stats = self.get_for_pair(client_id, coach_id)
        if stats is None:
            return self.create(
                client_id=client_id,
                coach_id=coach_id,
                no_show_count_90d=no_show_count,
                cancellation_count_90d=cancellation_count,
                is_flagged=is_flagged,
            )
        stats.no_show_count_90d = no_show_count
        stats.cancellation_count_90d = cancellation_count
        stats.is_flagged = is_flagged
        self.db.flush()
        return stats

    def list_all(self) -> List[ClientBookingStats]:
        return self._execute_scalars(
            select(ClientBookingStats).order_by(
                ClientBookingStats.client_id, ClientBookingStats.coach_id
            )
        )

    def record_streak(
        self,
        client_id: str,
        coach_id: str,
        *,
        current_streak_weeks: int,
        longest_streak_weeks: int,
        favorite_times: List[Dict[str, Any]],
        updated_at: datetime,
    ) -> ClientBookingStats:
        stats = self.get_for_pair(client_id, coach_id)
        if stats is None:
            return self.create(
                client_id=client_id,
                coach_id=coach_id,
                current_streak_weeks=current_streak_weeks,
                longest_streak_weeks=longest_streak_weeks,
                favorite_times=favorite_times,
                last_streak_update=updated_at,
            )
        stats.current_streak_weeks = current_streak_weeks
        stats.longest_streak_weeks = longest_streak_weeks
        stats.favorite_times = favorite_times
        stats.last_streak_update = updated_at
        self.db.flush()
        return stats
