"""
Trip and attendance lookups used by the gear service.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import FrozenSet, Optional

from sqlalchemy.orm import Session, selectinload

from ..models.models import Trip, TripAttendance


@dataclass(frozen=True)
class TripSnapshot:
    id: uuid.UUID
    start_date: datetime
    admin_ids: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    draft: bool = False

    def is_admin(self, user_id: uuid.UUID) -> bool:
        return user_id in self.admin_ids

    def has_started(self, now: datetime) -> bool:
        return now > self.start_date


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; stored values are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TripGate:
    def __init__(self, db: Session):
        self.db = db

    def get_trip(self, trip_id: uuid.UUID) -> Optional[TripSnapshot]:
        trip = (
            self.db.query(Trip)
            .options(selectinload(Trip.admins))
            .filter(Trip.id == trip_id)
            .first()
        )
        if not trip:
            return None
        return TripSnapshot(
            id=trip.id,
            start_date=as_utc(trip.start_date),
            admin_ids=frozenset(admin.id for admin in trip.admins),
            draft=bool(trip.draft),
        )

    def is_attending(self, trip_id: uuid.UUID, family_id: uuid.UUID) -> bool:
        row = (
            self.db.query(TripAttendance.id)
            .filter(TripAttendance.trip_id == trip_id, TripAttendance.family_id == family_id)
            .first()
        )
        return row is not None
