"""Read-only access to coach working-window templates and date overrides."""

from datetime import date
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.availability import AvailabilityOverride, AvailabilityTemplate
from .base_repository import BaseRepository


class AvailabilityRepository(BaseRepository[AvailabilityTemplate]):
    """Templates are the primary model; overrides are queried alongside."""

    def __init__(self, db: Session):
        super().__init__(db, AvailabilityTemplate)

    def get_templates_for_day(
        self, coach_id: str, day_of_week: int, availability_type: str
    ) -> List[AvailabilityTemplate]:
        stmt = (
            select(AvailabilityTemplate)
            .where(
                AvailabilityTemplate.coach_id == coach_id,
                AvailabilityTemplate.day_of_week == day_of_week,
                AvailabilityTemplate.availability_type == availability_type,
            )
            .order_by(AvailabilityTemplate.start_time)
        )
        return self._execute_scalars(stmt)

    def get_overrides_for_date(
        self, coach_id: str, target_date: date, availability_type: str
    ) -> List[AvailabilityOverride]:
        stmt = (
            select(AvailabilityOverride)
            .where(
                AvailabilityOverride.coach_id == coach_id,
                AvailabilityOverride.override_date == target_date,
                AvailabilityOverride.availability_type == availability_type,
            )
            .order_by(AvailabilityOverride.start_time)
        )
        return self._execute_scalars(stmt)
