"""Audit trail for account, plan, role, store and access-gate events.

Entries go to `audit_logs`. Writing an entry never fails the operation being
audited: errors are logged and an empty id is returned.
"""
from database import database
from models import AuditAction, AuditLog, AuditResource, PlanChangeSource, UserRole
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


def calculate_diff(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Field-level diff between two states: added, removed and changed keys.

    Empty categories are left out, so identical states give {}.
    """
    before = before or {}
    after = after or {}
    added = {k: v for k, v in after.items() if k not in before}
    removed = {k: v for k, v in before.items() if k not in after}
    changed = {
        k: {"from": before[k], "to": after[k]}
        for k in before.keys() & after.keys()
        if before[k] != after[k]
    }
    diff = {"added": added, "removed": removed, "changed": changed}
    return {k: v for k, v in diff.items() if v}


async def create_audit_log(
    action: AuditAction,
    actor_role: Optional[UserRole] = None,
    actor_id: Optional[str] = None,
    resource_type: Optional[AuditResource] = None,
    resource_id: Optional[str] = None,
    before_state: Optional[Dict[str, Any]] = None,
    after_state: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    reason_code: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> str:
    """Write one audit entry and return its audit_id.

    actor_id is None for webhook and startup-seed events. When both states are
    given, their diff is stored under metadata["diff"].
    """
    try:
        db = database.get_db()

        enriched_metadata = dict(metadata or {})
        if before_state and after_state:
            diff = calculate_diff(before_state, after_state)
            if diff:
                enriched_metadata["diff"] = diff

        entry = AuditLog(
            action=action,
            actor_role=actor_role,
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            before_state=before_state,
            after_state=after_state,
            metadata=enriched_metadata or None,
            reason_code=reason_code,
            ip_address=ip_address,
        )
        await db.audit_logs.insert_one(entry.model_dump())
        logger.info(f"Audit log created: {entry.action} {entry.resource_type or '-'}:{entry.resource_id or '-'}")
        return entry.audit_id
    except Exception as e:
        logger.error(f"Failed to create audit log for {action}: {e}")
        return ""


async def audit_plan_change(
    user_id: str,
    before_plan: Optional[str],
    after_plan: str,
    source: PlanChangeSource,
    payment_marked: bool,
    actor_id: Optional[str] = None,
    actor_role: Optional[UserRole] = None,
) -> str:
    """PLAN_CHANGED entry for a user. Same-plan transitions are recorded too."""
    return await create_audit_log(
        action=AuditAction.PLAN_CHANGED,
        actor_role=actor_role,
        actor_id=actor_id,
        resource_type=AuditResource.USER,
        resource_id=user_id,
        before_state={"plan": before_plan},
        after_state={"plan": after_plan},
        metadata={"source": source.value, "payment_marked": payment_marked},
    )


async def get_audit_logs_for_resource(
    resource_type: AuditResource,
    resource_id: str,
    limit: int = 50
) -> List[Dict[str, Any]]:
    """Audit entries for one resource, newest first."""
    try:
        db = database.get_db()
        cursor = db.audit_logs.find(
            {"resource_type": AuditResource(resource_type).value, "resource_id": resource_id},
            {"_id": 0}
        ).sort("timestamp", -1).limit(limit)
        return await cursor.to_list(length=limit)
    except Exception as e:
        logger.error(f"Failed to get audit logs for {resource_type}:{resource_id}: {e}")
        return []
