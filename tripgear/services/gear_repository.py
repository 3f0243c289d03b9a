"""Persistence helpers for gear items and assignments."""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from ..models.models import GearAssignment, GearItem


class GearRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_item(self, item_id: uuid.UUID, *, lock: bool = False) -> Optional[GearItem]:
        query = self.db.query(GearItem).filter(GearItem.id == item_id)
        if lock:
            # Row lock on backends that support it; always refresh from the database
            query = query.with_for_update().populate_existing()
        return query.first()

    def list_items(self, trip_id: uuid.UUID) -> List[GearItem]:
        return (
            self.db.query(GearItem)
            .options(selectinload(GearItem.assignments))
            .filter(GearItem.trip_id == trip_id)
            .order_by(GearItem.name.asc())
            .all()
        )

    def add_item(self, *, trip_id: uuid.UUID, name: str, quantity_needed: int) -> GearItem:
        item = GearItem(trip_id=trip_id, name=name, quantity_needed=quantity_needed)
        self.db.add(item)
        self.db.flush()
        return item

    def delete_item(self, item: GearItem) -> None:
        self.db.delete(item)
        self.db.flush()

    def list_assignments(self, item_id: uuid.UUID) -> List[GearAssignment]:
        return (
            self.db.query(GearAssignment)
            .filter(GearAssignment.gear_item_id == item_id)
            .populate_existing()
            .all()
        )

    def get_assignment(self, item_id: uuid.UUID, family_id: uuid.UUID) -> Optional[GearAssignment]:
        return (
            self.db.query(GearAssignment)
            .filter(GearAssignment.gear_item_id == item_id, GearAssignment.family_id == family_id)
            .first()
        )

    def upsert_assignment(self, item_id: uuid.UUID, family_id: uuid.UUID, quantity: int) -> GearAssignment:
        assignment = self.get_assignment(item_id, family_id)
        if assignment:
            assignment.quantity_assigned = quantity
            assignment.updated_at = datetime.now(timezone.utc)
        else:
            assignment = GearAssignment(gear_item_id=item_id, family_id=family_id, quantity_assigned=quantity)
            self.db.add(assignment)
        self.db.flush()
        return assignment

    def delete_assignment(self, assignment: GearAssignment) -> None:
        self.db.delete(assignment)
        self.db.flush()

    def family_assignments(self, trip_id: uuid.UUID, family_id: uuid.UUID) -> List[GearAssignment]:
        return (
            self.db.query(GearAssignment)
            .join(GearItem, GearAssignment.gear_item_id == GearItem.id)
            .options(selectinload(GearAssignment.gear_item))
            .filter(GearItem.trip_id == trip_id, GearAssignment.family_id == family_id)
            .order_by(GearItem.name.asc())
            .all()
        )

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
