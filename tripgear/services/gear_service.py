"""
Gear allocation service.

Families commit partial quantities against a gear item's finite need. The
service guarantees that the committed total never exceeds ``quantity_needed``:
every read-check-write on an item's assignments runs under a per-item lock
plus a row lock, and commits before the lock is released.
"""
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog
from sqlalchemy.exc import IntegrityError

from .errors import ConflictError, ForbiddenError, NotFoundError, TemporalViolationError, ValidationError
from .permissions import Actor, can_manage_assignment, can_manage_gear_items, can_view_trip_gear
from .trip_gate import TripSnapshot


logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemLocks:
    """
    Process-wide registry handing out one lock per gear item.

    Entries are reference counted and dropped once the last holder or waiter
    leaves, so the registry only tracks items currently being written.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[uuid.UUID, threading.Lock] = {}
        self._users: Dict[uuid.UUID, int] = {}

    @contextmanager
    def hold(self, item_id: uuid.UUID):
        with self._guard:
            lock = self._locks.setdefault(item_id, threading.Lock())
            self._users[item_id] = self._users.get(item_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[item_id] -= 1
                if not self._users[item_id]:
                    del self._users[item_id]
                    del self._locks[item_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


item_locks = ItemLocks()


@dataclass
class FamilyShare:
    family_id: uuid.UUID
    family_name: Optional[str]
    quantity_assigned: int


@dataclass
class ItemSummary:
    gear_item_id: uuid.UUID
    name: str
    quantity_needed: int
    total_assigned: int
    assignments: List[FamilyShare] = field(default_factory=list)
    remaining: int = field(init=False, default=0)

    def __post_init__(self):
        self.remaining = self.quantity_needed - self.total_assigned


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


class GearService:
    def __init__(
        self,
        repo,
        gate,
        *,
        locks: ItemLocks = item_locks,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.gate = gate
        self.locks = locks
        self.clock = clock

    # ---------- helpers ----------
    @contextmanager
    def _atomic(self, item_id: uuid.UUID):
        with self.locks.hold(item_id):
            try:
                yield
                self.repo.commit()
            except IntegrityError as exc:
                self.repo.rollback()
                logger.warning("gear_write_conflict", gear_item_id=str(item_id), error=str(exc.orig))
                raise ConflictError("Gear item was modified concurrently, please retry") from exc
            except Exception:
                self.repo.rollback()
                raise

    def _get_trip(self, trip_id: uuid.UUID) -> TripSnapshot:
        trip = self.gate.get_trip(trip_id)
        if not trip:
            raise NotFoundError("Trip not found")
        return trip

    def _load_item_and_trip(self, item_id: uuid.UUID):
        item = self.repo.get_item(item_id)
        if not item:
            raise NotFoundError("Gear item not found")
        return item, self._get_trip(item.trip_id)

    def _ensure_can_manage_items(self, trip: TripSnapshot, actor: Actor, verb: str) -> None:
        if not can_manage_gear_items(actor.role, trip.is_admin(actor.id)):
            raise ForbiddenError(f"You must be a trip admin to {verb} gear items")

    def _ensure_can_view(self, trip: TripSnapshot, actor: Optional[Actor]) -> None:
        if actor is None:
            return
        if not can_view_trip_gear(actor.role, trip.is_admin(actor.id), trip.draft):
            raise ForbiddenError("Cannot view gear for draft trips")

    def _ensure_not_started(self, trip: TripSnapshot, action: str) -> None:
        if trip.has_started(self.clock()):
            raise TemporalViolationError(f"Cannot {action} after trip has started")

    # ---------- gear items ----------
    def create_item(self, trip_id: uuid.UUID, name: str, quantity_needed: int, actor: Actor):
        if not _is_positive_int(quantity_needed):
            raise ValidationError("Quantity needed must be greater than 0")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Gear item name is required")

        trip = self._get_trip(trip_id)
        self._ensure_can_manage_items(trip, actor, "create")

        try:
            item = self.repo.add_item(trip_id=trip.id, name=name.strip(), quantity_needed=quantity_needed)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        logger.info("gear_item_created", gear_item_id=str(item.id), trip_id=str(trip.id), actor_id=str(actor.id))
        return item

    def update_item(self, item_id: uuid.UUID, patch: Mapping[str, Any], actor: Actor):
        name = patch.get("name")
        quantity_needed = patch.get("quantity_needed")
        if quantity_needed is not None and not _is_positive_int(quantity_needed):
            raise ValidationError("Quantity needed must be greater than 0")
        if name is not None and (not isinstance(name, str) or not name.strip()):
            raise ValidationError("Gear item name cannot be empty")

        _, trip = self._load_item_and_trip(item_id)
        self._ensure_can_manage_items(trip, actor, "update")

        with self._atomic(item_id):
            item = self.repo.get_item(item_id, lock=True)
            if not item:
                raise NotFoundError("Gear item not found")
            if quantity_needed is not None:
                total_assigned = sum(a.quantity_assigned for a in self.repo.list_assignments(item_id))
                if quantity_needed < total_assigned:
                    raise ConflictError(
                        f"Cannot reduce quantity needed below total assigned ({total_assigned})",
                        total_assigned=total_assigned,
                    )
                item.quantity_needed = quantity_needed
            if name is not None:
                item.name = name.strip()
            item.updated_at = utcnow()
        logger.info("gear_item_updated", gear_item_id=str(item_id), actor_id=str(actor.id))
        return item

    def delete_item(self, item_id: uuid.UUID, actor: Actor) -> dict:
        # No trip-start restriction here, unlike assign/remove
        _, trip = self._load_item_and_trip(item_id)
        self._ensure_can_manage_items(trip, actor, "delete")

        with self._atomic(item_id):
            item = self.repo.get_item(item_id, lock=True)
            if not item:
                raise NotFoundError("Gear item not found")
            self.repo.delete_item(item)
        logger.info("gear_item_deleted", gear_item_id=str(item_id), actor_id=str(actor.id))
        return {"message": "Gear item deleted successfully"}

    def list_items(self, trip_id: uuid.UUID, actor: Actor):
        trip = self._get_trip(trip_id)
        self._ensure_can_view(trip, actor)
        return self.repo.list_items(trip.id)

    def get_item(self, item_id: uuid.UUID, actor: Actor):
        item, trip = self._load_item_and_trip(item_id)
        self._ensure_can_view(trip, actor)
        return item

    # ---------- assignments ----------
    def assign(self, item_id: uuid.UUID, family_id: uuid.UUID, quantity: int, actor: Actor):
        """
        Volunteer ``quantity`` units of a gear item for a family.

        Replaces the family's previous commitment on the item rather than adding
        to it, so the family's own prior row does not count against capacity.
        """
        if not _is_positive_int(quantity):
            raise ValidationError("Quantity assigned must be greater than 0")

        _, trip = self._load_item_and_trip(item_id)
        self._ensure_not_started(trip, "assign gear")

        if not can_manage_assignment(actor.role, actor.family_id, family_id, trip.is_admin(actor.id)):
            raise ForbiddenError("Families can only volunteer for their own gear")

        if not self.gate.is_attending(trip.id, family_id):
            raise ConflictError("Family must be attending the trip to volunteer for gear")

        with self._atomic(item_id):
            item = self.repo.get_item(item_id, lock=True)
            if not item:
                raise NotFoundError("Gear item not found")
            total_assigned = sum(
                a.quantity_assigned
                for a in self.repo.list_assignments(item_id)
                if a.family_id != family_id
            )
            if total_assigned + quantity > item.quantity_needed:
                available = item.quantity_needed - total_assigned
                logger.info(
                    "gear_assign_rejected",
                    gear_item_id=str(item_id),
                    family_id=str(family_id),
                    requested=quantity,
                    available=available,
                )
                raise ConflictError(
                    f"Cannot assign more than needed. Available: {available}, Requested: {quantity}",
                    available=available,
                    requested=quantity,
                )
            assignment = self.repo.upsert_assignment(item_id, family_id, quantity)

        logger.info(
            "gear_assigned",
            gear_item_id=str(item_id),
            family_id=str(family_id),
            quantity=quantity,
            actor_id=str(actor.id),
        )
        return assignment

    def remove(self, item_id: uuid.UUID, family_id: uuid.UUID, actor: Actor) -> dict:
        _, trip = self._load_item_and_trip(item_id)
        self._ensure_not_started(trip, "remove gear assignment")

        if not can_manage_assignment(actor.role, actor.family_id, family_id, trip.is_admin(actor.id)):
            raise ForbiddenError("Families can only remove their own gear assignments")

        with self._atomic(item_id):
            assignment = self.repo.get_assignment(item_id, family_id)
            if not assignment:
                raise NotFoundError("Gear assignment not found")
            assignment_id = assignment.id
            self.repo.delete_assignment(assignment)

        logger.info("gear_unassigned", gear_item_id=str(item_id), family_id=str(family_id), actor_id=str(actor.id))
        return {"message": "Gear assignment removed successfully", "assignment_id": assignment_id}

    # ---------- queries ----------
    def summarize(
        self,
        *,
        trip_id: Optional[uuid.UUID] = None,
        item_id: Optional[uuid.UUID] = None,
        actor: Optional[Actor] = None,
    ):
        """
        Committed-vs-needed view of a trip's gear (list) or of a single item.
        Read-only.
        """
        if (trip_id is None) == (item_id is None):
            raise ValidationError("Provide exactly one of trip_id or item_id")

        if item_id is not None:
            item, trip = self._load_item_and_trip(item_id)
            self._ensure_can_view(trip, actor)
            return summarize_item(item)

        trip = self._get_trip(trip_id)
        self._ensure_can_view(trip, actor)
        return [summarize_item(item) for item in self.repo.list_items(trip.id)]

    def family_assignments(self, trip_id: uuid.UUID, family_id: uuid.UUID, actor: Actor):
        trip = self._get_trip(trip_id)
        if not can_manage_assignment(actor.role, actor.family_id, family_id, trip.is_admin(actor.id)):
            raise ForbiddenError("Cannot view other families gear assignments")
        return self.repo.family_assignments(trip.id, family_id)


def summarize_item(item) -> ItemSummary:
    shares = [
        FamilyShare(
            family_id=a.family_id,
            family_name=a.family.name if a.family is not None else None,
            quantity_assigned=a.quantity_assigned,
        )
        for a in item.assignments
    ]
    return ItemSummary(
        gear_item_id=item.id,
        name=item.name,
        quantity_needed=item.quantity_needed,
        total_assigned=sum(s.quantity_assigned for s in shares),
        assignments=shares,
    )
