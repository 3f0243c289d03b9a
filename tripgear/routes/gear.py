import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_actor
from ..models.models import GearItem
from ..schemas.gear import (
    GearItemCreate,
    GearItemUpdate,
    GearItemResponse,
    GearAssignRequest,
    GearAssignmentResponse,
    GearSummaryResponse,
    MessageResponse,
)
from ..services.audit import create_audit_log, compute_diff
from ..services.gear_repository import GearRepository
from ..services.gear_service import GearService
from ..services.permissions import Actor
from ..services.trip_gate import TripGate


router = APIRouter(prefix="/gear", tags=["gear"])


def get_gear_service(db: Session = Depends(get_db)) -> GearService:
    return GearService(GearRepository(db), TripGate(db))


def _item_state(item: GearItem) -> dict:
    return {"name": item.name, "quantity_needed": item.quantity_needed}


def _audit(db: Session, actor: Actor, entity_type: str, entity_id: uuid.UUID, action: str, **kwargs):
    create_audit_log(
        db=db,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor.id,
        actor_role=actor.role.value,
        source="api",
        **kwargs,
    )


# ---------- GEAR ITEMS ----------
@router.post("", response_model=GearItemResponse, status_code=status.HTTP_201_CREATED)
def create_gear_item(
    payload: GearItemCreate,
    db: Session = Depends(get_db),
    service: GearService = Depends(get_gear_service),
    actor: Actor = Depends(get_current_actor),
):
    item = service.create_item(payload.trip_id, payload.name, payload.quantity_needed, actor)
    _audit(
        db, actor, "gear_item", item.id, "CREATE",
        changes_json={"after": _item_state(item)},
        context={"trip_id": str(payload.trip_id)},
    )
    return item


@router.get("/trip/{trip_id}", response_model=List[GearItemResponse])
def list_gear_items(
    trip_id: uuid.UUID,
    service: GearService = Depends(get_gear_service),
    actor: Actor = Depends(get_current_actor),
):
    return service.list_items(trip_id, actor)


@router.get("/trip/{trip_id}/summary", response_model=List[GearSummaryResponse])
def trip_gear_summary(
    trip_id: uuid.UUID,
    service: GearService = Depends(get_gear_service),
    actor: Actor = Depends(get_current_actor),
):
    return service.summarize(trip_id=trip_id, actor=actor)


@router.get("/trip/{trip_id}/family/{family_id}", response_model=List[GearAssignmentResponse])
def family_gear_assignments(
    trip_id: uuid.UUID,
    family_id: uuid.UUID,
    service: GearService = Depends(get_gear_service),
    actor: Actor = Depends(get_current_actor),
):
    return service.family_assignments(trip_id, family_id, actor)


@router.get("/{item_id}", response_model=GearItemResponse)
def get_gear_item(
    item_id: uuid.UUID,
    service: GearService = Depends(get_gear_service),
    actor: Actor = Depends(get_current_actor),
):
    return service.get_item(item_id, actor)


@router.get("/{item_id}/summary", response_model=GearSummaryResponse)
def gear_item_summary(
    item_id: uuid.UUID,
    service: GearService = Depends(get_gear_service),
    actor: Actor = Depends(get_current_actor),
):
    return service.summarize(item_id=item_id, actor=actor)


@router.put("/{item_id}", response_model=GearItemResponse)
def update_gear_item(
    item_id: uuid.UUID,
    payload: GearItemUpdate,
    db: Session = Depends(get_db),
    service: GearService = Depends(get_gear_service),
    actor: Actor = Depends(get_current_actor),
):
    existing = db.get(GearItem, item_id)
    before = _item_state(existing) if existing else {}
    item = service.update_item(item_id, payload.model_dump(exclude_unset=True), actor)
    _audit(
        db, actor, "gear_item", item.id, "UPDATE",
        changes_json=compute_diff(before, _item_state(item)),
        context={"trip_id": str(item.trip_id)},
    )
    return item


@router.delete("/{item_id}", response_model=MessageResponse)
def delete_gear_item(
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    service: GearService = Depends(get_gear_service),
    actor: Actor = Depends(get_current_actor),
):
    result = service.delete_item(item_id, actor)
    _audit(db, actor, "gear_item", item_id, "DELETE")
    return result


# ---------- ASSIGNMENTS ----------
@router.post("/{item_id}/assign", response_model=GearAssignmentResponse, status_code=status.HTTP_201_CREATED)
def assign_gear(
    item_id: uuid.UUID,
    payload: GearAssignRequest,
    db: Session = Depends(get_db),
    service: GearService = Depends(get_gear_service),
    actor: Actor = Depends(get_current_actor),
):
    assignment = service.assign(item_id, payload.family_id, payload.quantity_assigned, actor)
    _audit(
        db, actor, "gear_assignment", assignment.id,
        "UPDATE" if assignment.updated_at else "CREATE",
        changes_json={"after": {"quantity_assigned": payload.quantity_assigned}},
        context={"gear_item_id": str(item_id), "family_id": str(payload.family_id)},
    )
    return assignment


@router.delete("/{item_id}/assign/{family_id}", response_model=MessageResponse)
def remove_gear_assignment(
    item_id: uuid.UUID,
    family_id: uuid.UUID,
    db: Session = Depends(get_db),
    service: GearService = Depends(get_gear_service),
    actor: Actor = Depends(get_current_actor),
):
    result = service.remove(item_id, family_id, actor)
    _audit(
        db, actor, "gear_assignment", result["assignment_id"], "DELETE",
        context={"gear_item_id": str(item_id), "family_id": str(family_id)},
    )
    return result
