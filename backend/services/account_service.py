"""Account lifecycle: signup, profile records, profile edits, cascading deletion.

Credentials (identity provider) and profiles (`users`) are separate records
sharing a user_id. Cascading deletion removes the profile and every record the
user owns, but never the credential; removing it is a manual follow-up for the
operator.
"""
from typing import Any, Dict, Optional
import logging

from pymongo.errors import DuplicateKeyError

from auth import hash_password, normalize_email
from database import database, USER_OWNED_COLLECTIONS
from models import AuditAction, AuditResource, Credential, UserAccount, UserPlan, UserRole
from services.plan_service import AccountNotFoundError
from services.role_service import seed_role_on_signup
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

# Fields a user may edit on their own profile
SELF_EDITABLE_FIELDS = ("name", "whatsapp", "cpf")
# Fields the operator may edit directly; last_payment is a manual correction tool
ADMIN_EDITABLE_FIELDS = ("name", "whatsapp", "cpf", "last_payment")


class DuplicateAccountError(Exception):
    def __init__(self, email: str):
        self.email = email
        super().__init__(f"An account already exists for {email}")


def _new_profile_doc(user_id: str, email: str, name: str,
                     whatsapp: Optional[str] = None, cpf: Optional[str] = None) -> Dict[str, Any]:
    profile = UserAccount(
        user_id=user_id,
        email=email,
        email_lower=normalize_email(email),
        name=name,
        whatsapp=whatsapp or "",
        cpf=cpf or "",
        plan=UserPlan.FREE,
    )
    doc = profile.model_dump()
    doc["plan"] = UserPlan.FREE.value
    return doc


async def create_account(email: str, password: str, name: str,
                         whatsapp: Optional[str] = None, cpf: Optional[str] = None) -> Dict[str, Any]:
    """Create credential + free profile. Returns the profile document."""
    db = database.get_db()
    email = email.strip()
    email_lower = normalize_email(email)

    if await db.credentials.find_one({"email_lower": email_lower}, {"_id": 0, "user_id": 1}):
        raise DuplicateAccountError(email)

    credential = Credential(email=email, email_lower=email_lower, password_hash=hash_password(password))
    profile = _new_profile_doc(credential.user_id, email, name, whatsapp, cpf)
    try:
        # Credential and profile land together or not at all
        async with database.transaction() as session:
            await db.credentials.insert_one(credential.model_dump(), session=session)
            await db.users.insert_one(profile.copy(), session=session)
    except DuplicateKeyError:
        # Concurrent signup for the same email won the unique index
        logger.warning("Signup lost duplicate-key race for %s", email_lower)
        raise DuplicateAccountError(email)
    logger.info("Account created: user_id=%s", credential.user_id)

    await seed_role_on_signup(credential.user_id, email)
    await create_audit_log(
        action=AuditAction.USER_SIGNUP,
        actor_role=UserRole.ROLE_USER,
        actor_id=credential.user_id,
        resource_type=AuditResource.USER,
        resource_id=credential.user_id,
    )
    return profile


async def ensure_profile(user_id: str, email: str) -> Dict[str, Any]:
    """Return the profile for user_id, creating a default free one if it is missing."""
    db = database.get_db()
    profile = await db.users.find_one({"user_id": user_id}, {"_id": 0})
    if profile:
        return profile

    name = email.split("@")[0] if email else "Trader"
    profile = _new_profile_doc(user_id, email, name)
    await db.users.update_one(
        {"user_id": user_id},
        {"$setOnInsert": profile},
        upsert=True,
    )
    logger.info("Default profile created for user_id=%s", user_id)
    await seed_role_on_signup(user_id, email)
    return await db.users.find_one({"user_id": user_id}, {"_id": 0})


async def update_profile_fields(
    user_id: str,
    changes: Dict[str, Any],
    allowed_fields: tuple,
    actor_id: str,
    actor_role: UserRole,
    action: AuditAction = AuditAction.PROFILE_UPDATED,
) -> Dict[str, Any]:
    """Apply allowed, non-None profile field changes. Never writes `plan`."""
    db = database.get_db()
    update = {k: v for k, v in changes.items() if k in allowed_fields and v is not None}

    before = await db.users.find_one({"user_id": user_id}, {"_id": 0})
    if not before:
        raise AccountNotFoundError(user_id)

    if update:
        await db.users.update_one({"user_id": user_id}, {"$set": update})
        await create_audit_log(
            action=action,
            actor_role=actor_role,
            actor_id=actor_id,
            resource_type=AuditResource.USER,
            resource_id=user_id,
            before_state={k: before.get(k) for k in update},
            after_state=update,
        )

    return await db.users.find_one({"user_id": user_id}, {"_id": 0})


async def cascade_delete_account(user_id: str, actor_id: str) -> Dict[str, int]:
    """Delete a profile and everything it owns in one transaction.

    Returns deleted counts per collection. Any failure aborts the transaction,
    so no mix of deleted and retained records is left behind. The credential
    is kept.
    """
    db = database.get_db()
    if not await db.users.find_one({"user_id": user_id}, {"_id": 0, "user_id": 1}):
        raise AccountNotFoundError(user_id)

    counts: Dict[str, int] = {}
    async with database.transaction() as session:
        for name in USER_OWNED_COLLECTIONS:
            result = await db[name].delete_many({"user_id": user_id}, session=session)
            counts[name] = result.deleted_count
        result = await db.admin_roles.delete_many({"user_id": user_id}, session=session)
        counts["admin_roles"] = result.deleted_count
        result = await db.users.delete_one({"user_id": user_id}, session=session)
        if result.deleted_count == 0:
            raise AccountNotFoundError(user_id)
        counts["users"] = result.deleted_count

    logger.info("Account cascade-deleted: user_id=%s counts=%s", user_id, counts)
    await create_audit_log(
        action=AuditAction.ADMIN_ACCOUNT_DELETED,
        actor_role=UserRole.ROLE_OWNER,
        actor_id=actor_id,
        resource_type=AuditResource.USER,
        resource_id=user_id,
        metadata={"deleted": counts, "credential_retained": True},
    )
    return counts
