"""
Audit logging service.
Append-only audit log with integrity hashing.
"""
import hashlib
import json
from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from ..models.models import AuditLog
from ..config import settings


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id,
    action: str,
    actor=None,
    company_id=None,
    source: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None
) -> AuditLog:
    """
    Add an append-only audit log entry to the session.

    The entry is committed together with the change it describes, so callers
    commit once for both.

    Args:
        db: Database session
        entity_type: Type of entity (timesheet|payroll_record|leave_request)
        entity_id: Entity ID
        action: Action performed (SUBMIT|APPROVE|REJECT|CANCEL|GENERATE|UPDATE|DELETE)
        actor: Acting Actor (None for unattended jobs)
        company_id: Tenant the entity belongs to
        source: Source of the action (api|script|system)
        changes_json: Before/after diff
        context: Additional context (worker_id, period, comments, etc.)
        integrity_secret: Secret for integrity hash (defaults to AUDIT_SECRET, then JWT_SECRET)
    """
    timestamp_utc = datetime.utcnow().replace(tzinfo=None)
    actor_id = actor.user_uuid if actor is not None else None
    actor_role = actor.role if actor is not None else "system"

    integrity_hash = None
    if integrity_secret is None:
        integrity_secret = settings.audit_secret or settings.jwt_secret

    if integrity_secret:
        canonical_data = {
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "action": action,
            "actor_id": str(actor_id) if actor_id else None,
            "actor_role": actor_role,
            "source": source,
            "timestamp_utc": timestamp_utc.isoformat(),
            "changes": changes_json,
            "context": context,
        }
        # Drop None values and sort keys so the hash is stable
        canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
        canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)
        hash_input = f"{canonical_json}:{integrity_secret}"
        integrity_hash = hashlib.sha256(hash_input.encode()).hexdigest()

    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        source=source or "api",
        company_id=company_id,
        changes_json=changes_json,
        timestamp_utc=timestamp_utc,
        context=context,
        integrity_hash=integrity_hash,
    )
    db.add(audit_log)
    return audit_log


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id=None,
    limit: int = 100,
    offset: int = 0
) -> list:
    query = db.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    query = query.order_by(AuditLog.timestamp_utc.desc())
    return query.limit(limit).offset(offset).all()


def compute_diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict:
    """
    Compute a diff between two dictionaries.

    Returns:
        Dict with before/after values for changed fields
    """
    diff = {}
    for key in set(before.keys()) | set(after.keys()):
        before_val = before.get(key)
        after_val = after.get(key)
        if before_val != after_val:
            diff[key] = {
                "before": before_val,
                "after": after_val,
            }
    return diff
