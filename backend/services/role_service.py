"""
Operator roles, keyed by user_id in the `admin_roles` collection.

The configured OPERATOR_EMAIL is the seed: whenever an account with that email
exists (at startup, or the moment it signs up) it is granted ROLE_OWNER.
Seeding is an idempotent upsert; further operators are granted by an existing
operator through the admin console.
"""
import os
import logging
from typing import Any, Dict, List, Optional

from auth import normalize_email
from database import database
from models import AdminRole, AuditAction, AuditResource, UserRole
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

OPERATOR_EMAIL_KEY = "OPERATOR_EMAIL"
ROLE_LOCK_NAME = "admin_roles"


class LastOperatorError(Exception):
    """Revoking would leave no operator."""


def get_operator_email() -> Optional[str]:
    raw = os.environ.get(OPERATOR_EMAIL_KEY, "").strip()
    return normalize_email(raw) if raw else None


async def grant_operator_role(user_id: str, email: Optional[str], granted_by: Optional[str] = None) -> bool:
    """Grant ROLE_OWNER to user_id. Returns True if the role was newly created."""
    db = database.get_db()
    role = AdminRole(user_id=user_id, email=email, granted_by=granted_by)
    doc = role.model_dump()
    doc["role"] = role.role.value
    result = await db.admin_roles.update_one(
        {"user_id": user_id},
        {"$setOnInsert": doc},
        upsert=True,
    )
    created = result.upserted_id is not None
    if created:
        logger.info("Operator role granted: user_id=%s by=%s", user_id, granted_by or "seed")
        await create_audit_log(
            action=AuditAction.ROLE_GRANTED,
            actor_role=UserRole.ROLE_OWNER if granted_by else None,
            actor_id=granted_by,
            resource_type=AuditResource.ADMIN_ROLE,
            resource_id=user_id,
            metadata={"email": email, "seed": granted_by is None},
        )
    return created


async def revoke_operator_role(user_id: str, revoked_by: str) -> bool:
    """Remove user_id's operator role. Refuses to remove the last operator."""
    db = database.get_db()
    async with database.transaction() as session:
        # Concurrent revokes both write the lock doc, so one of them aborts
        await db.locks.update_one(
            {"name": ROLE_LOCK_NAME},
            {"$inc": {"version": 1}},
            upsert=True,
            session=session,
        )
        result = await db.admin_roles.delete_one({"user_id": user_id}, session=session)
        if result.deleted_count == 0:
            return False
        if await db.admin_roles.count_documents({}, session=session) == 0:
            # Raising aborts the transaction and restores the role
            raise LastOperatorError("Cannot revoke the last operator")

    logger.info("Operator role revoked: user_id=%s by=%s", user_id, revoked_by)
    await create_audit_log(
        action=AuditAction.ROLE_REVOKED,
        actor_role=UserRole.ROLE_OWNER,
        actor_id=revoked_by,
        resource_type=AuditResource.ADMIN_ROLE,
        resource_id=user_id,
    )
    return True


async def list_operator_roles() -> List[Dict[str, Any]]:
    db = database.get_db()
    return await db.admin_roles.find({}, {"_id": 0}).sort("granted_at", 1).to_list(length=100)


async def seed_role_on_signup(user_id: str, email: str) -> bool:
    """Grant the seed role if this new account is the configured operator."""
    operator_email = get_operator_email()
    if not operator_email or normalize_email(email) != operator_email:
        return False
    return await grant_operator_role(user_id, email)


async def run_seed_operator_role() -> dict:
    """
    Idempotent startup seed. Returns dict with keys: action, user_id, message.
    """
    operator_email = get_operator_email()
    if not operator_email:
        return {"action": "skipped", "user_id": None, "message": f"{OPERATOR_EMAIL_KEY} not set"}

    db = database.get_db()
    account = await db.users.find_one(
        {"email_lower": operator_email},
        {"_id": 0, "user_id": 1, "email": 1}
    )
    if not account:
        return {
            "action": "pending",
            "user_id": None,
            "message": "Operator account not created yet; role is granted at signup",
        }

    created = await grant_operator_role(account["user_id"], account.get("email"))
    return {
        "action": "granted" if created else "already_exists",
        "user_id": account["user_id"],
        "message": "Operator role seeded" if created else "Operator role already present",
    }
