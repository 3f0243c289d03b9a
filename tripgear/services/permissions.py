"""
Authorization policy for gear operations.

Pure functions: no database access, no hidden state. Every gear call site
goes through these instead of comparing roles itself.
"""
import enum
import uuid
from dataclasses import dataclass
from typing import Optional


class Role(str, enum.Enum):
    FAMILY = "FAMILY"
    TRIP_ADMIN = "TRIP_ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller."""
    id: uuid.UUID
    role: Role
    family_id: Optional[uuid.UUID] = None


def can_manage_gear_items(role: Role, is_trip_admin: bool) -> bool:
    """Create/update/delete gear items: super admins and admins of the trip."""
    return role == Role.SUPER_ADMIN or is_trip_admin


def can_manage_assignment(
    role: Role,
    actor_family_id: Optional[uuid.UUID],
    target_family_id: uuid.UUID,
    is_trip_admin: bool,
) -> bool:
    """
    Volunteer or withdraw gear for a family.
    - Admins of the trip and super admins can act for any family
    - Family members only for their own family
    - Admins of other trips not at all, not even for their own family
    """
    if is_trip_admin or role == Role.SUPER_ADMIN:
        return True
    return role == Role.FAMILY and actor_family_id is not None and actor_family_id == target_family_id


def can_view_trip_gear(role: Role, is_trip_admin: bool, draft: bool) -> bool:
    """Gear of a draft trip is only visible to its admins and super admins."""
    if not draft:
        return True
    return role == Role.SUPER_ADMIN or is_trip_admin
