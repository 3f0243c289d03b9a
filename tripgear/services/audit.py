"""
Audit logging service.
Append-only audit log with integrity hashing.
"""
import hashlib
import json
import uuid
from datetime import datetime
from typing import Optional, Dict
from sqlalchemy.orm import Session

from ..models.models import AuditLog
from ..config import settings


def _integrity_hash(canonical_data: Dict, secret: str) -> str:
    # Remove None values and sort keys for consistency
    canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
    canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)
    return hashlib.sha256(f"{canonical_json}:{secret}".encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id: uuid.UUID,
    action: str,
    actor_id: Optional[uuid.UUID] = None,
    actor_role: Optional[str] = None,
    source: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None
) -> AuditLog:
    """
    Create an append-only audit log entry.

    Args:
        db: Database session
        entity_type: Type of entity (gear_item|gear_assignment)
        entity_id: Entity ID
        action: Action performed (CREATE|UPDATE|DELETE)
        actor_id: User ID who performed the action
        actor_role: Role of the actor (FAMILY|TRIP_ADMIN|SUPER_ADMIN)
        source: Source of the action (api|system)
        changes_json: Before/after diff
        context: Additional context (trip_id, gear_item_id, family_id)
        integrity_secret: Secret for integrity hash (defaults to AUDIT_SECRET, then JWT_SECRET)

    Returns:
        Created AuditLog object
    """
    timestamp_utc = datetime.utcnow().replace(tzinfo=None)
    source = source or "system"

    if integrity_secret is None:
        integrity_secret = settings.audit_secret or settings.jwt_secret

    integrity_hash = None
    if integrity_secret:
        integrity_hash = _integrity_hash(
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "actor_id": str(actor_id) if actor_id else None,
                "actor_role": actor_role,
                "source": source,
                "timestamp_utc": timestamp_utc.isoformat(),
                "changes": changes_json,
                "context": context,
            },
            integrity_secret,
        )

    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        source=source,
        changes_json=changes_json,
        timestamp_utc=timestamp_utc,
        context=context,
        integrity_hash=integrity_hash,
    )

    db.add(audit_log)
    db.commit()
    db.refresh(audit_log)

    return audit_log


def verify_audit_log(audit_log: AuditLog, integrity_secret: Optional[str] = None) -> bool:
    """Recompute the integrity hash of a stored entry and compare."""
    if integrity_secret is None:
        integrity_secret = settings.audit_secret or settings.jwt_secret
    if not audit_log.integrity_hash:
        return False
    timestamp = audit_log.timestamp_utc.replace(tzinfo=None)
    expected = _integrity_hash(
        {
            "entity_type": audit_log.entity_type,
            "entity_id": str(audit_log.entity_id),
            "action": audit_log.action,
            "actor_id": str(audit_log.actor_id) if audit_log.actor_id else None,
            "actor_role": audit_log.actor_role,
            "source": audit_log.source,
            "timestamp_utc": timestamp.isoformat(),
            "changes": audit_log.changes_json,
            "context": audit_log.context,
        },
        integrity_secret,
    )
    return expected == audit_log.integrity_hash


def compute_diff(before: Dict, after: Dict) -> Dict:
    """
    Compute a diff between two dictionaries.

    Args:
        before: Before state
        after: After state

    Returns:
        Dict with before/after values for changed fields
    """
    diff = {}
    all_keys = set(before.keys()) | set(after.keys())

    for key in all_keys:
        before_val = before.get(key)
        after_val = after.get(key)

        if before_val != after_val:
            diff[key] = {
                "before": before_val,
                "after": after_val,
            }

    return diff
