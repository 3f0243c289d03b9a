import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _strip_name(v):
    if v is None:
        return None
    v = str(v).strip()
    if not v:
        raise ValueError("Gear item name is required")
    return v


# ---------- Requests ----------
class GearItemCreate(BaseModel):
    trip_id: uuid.UUID
    name: str = Field(max_length=255)
    quantity_needed: int = Field(ge=1)

    @field_validator("name", mode="before")
    @classmethod
    def name_not_blank(cls, v):
        return _strip_name(v)


class GearItemUpdate(BaseModel):
    """Partial update - all fields optional"""
    name: Optional[str] = Field(default=None, max_length=255)
    quantity_needed: Optional[int] = Field(default=None, ge=1)

    @field_validator("name", mode="before")
    @classmethod
    def name_not_blank(cls, v):
        return _strip_name(v)


class GearAssignRequest(BaseModel):
    family_id: uuid.UUID
    quantity_assigned: int = Field(ge=1)


# ---------- Responses ----------
class FamilyRef(BaseModel):
    id: uuid.UUID
    name: str

    class Config:
        from_attributes = True


class GearItemRef(BaseModel):
    id: uuid.UUID
    name: str
    quantity_needed: int

    class Config:
        from_attributes = True


class GearAssignmentResponse(BaseModel):
    id: uuid.UUID
    gear_item_id: uuid.UUID
    family_id: uuid.UUID
    quantity_assigned: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    family: Optional[FamilyRef] = None
    gear_item: Optional[GearItemRef] = None

    class Config:
        from_attributes = True


class GearItemAssignmentResponse(BaseModel):
    id: uuid.UUID
    family_id: uuid.UUID
    quantity_assigned: int
    family: Optional[FamilyRef] = None

    class Config:
        from_attributes = True


class GearItemResponse(BaseModel):
    id: uuid.UUID
    trip_id: uuid.UUID
    name: str
    quantity_needed: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    assignments: List[GearItemAssignmentResponse] = []

    class Config:
        from_attributes = True


class FamilyShareResponse(BaseModel):
    family_id: uuid.UUID
    family_name: Optional[str] = None
    quantity_assigned: int

    class Config:
        from_attributes = True


class GearSummaryResponse(BaseModel):
    gear_item_id: uuid.UUID
    name: str
    quantity_needed: int
    total_assigned: int
    remaining: int
    assignments: List[FamilyShareResponse] = []

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str
