"""Admin Console Routes

Privileged direct-mutation path. Every route requires ROLE_OWNER (see
middleware.admin_route_guard); there is no finer-grained permission model.

Users:
    GET    /api/admin/users                    - list, newest members first
    GET    /api/admin/users/{user_id}          - one profile
    GET    /api/admin/users/{user_id}/audit    - audit trail for one profile
    PUT    /api/admin/users/{user_id}/plan     - reassign plan (through set_plan)
    PATCH  /api/admin/users/{user_id}          - edit name/whatsapp/cpf/last_payment
    DELETE /api/admin/users/{user_id}          - cascading delete (credential kept)
Roles:
    GET    /api/admin/roles
    POST   /api/admin/roles
    DELETE /api/admin/roles/{user_id}
Integration:
    GET    /api/admin/webhook-info
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from database import database
from middleware import Viewer, admin_route_guard
from models import (
    AdminPlanUpdateRequest, AdminProfileUpdateRequest, AuditAction, AuditResource,
    PlanChangeSource, RoleGrantRequest, UserPlan, UserRole
)
from services.account_service import ADMIN_EDITABLE_FIELDS, cascade_delete_account, update_profile_fields
from services.kirvano_webhook_service import KIRVANO_TOKEN_ENV, KIRVANO_TOKEN_HEADER, PAID_STATUS
from services.plan_registry import list_plans
from services.plan_service import AccountNotFoundError, InvalidPlanError, set_plan
from services.role_service import (
    LastOperatorError, grant_operator_role, list_operator_roles, revoke_operator_role
)
from utils.audit import get_audit_logs_for_resource
import logging
import os

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


# ============================================================================
# Users
# ============================================================================

@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    viewer: Viewer = Depends(admin_route_guard),
):
    """All profiles ordered by member_since, newest first."""
    db = database.get_db()
    cursor = db.users.find({}, {"_id": 0}).sort("member_since", -1).skip((page - 1) * page_size).limit(page_size)
    users = await cursor.to_list(length=page_size)
    total = await db.users.count_documents({})

    return {
        "users": users,
        "total": total,
        "page": page,
        "page_size": page_size,
        "has_more": page * page_size < total,
        "plans": list_plans(include_admin_only=True),
    }


@router.get("/users/{user_id}")
async def get_user(user_id: str, viewer: Viewer = Depends(admin_route_guard)):
    db = database.get_db()
    user = await db.users.find_one({"user_id": user_id}, {"_id": 0})
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/users/{user_id}/audit")
async def get_user_audit(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    viewer: Viewer = Depends(admin_route_guard),
):
    logs = await get_audit_logs_for_resource(AuditResource.USER, user_id, limit=limit)
    return {"user_id": user_id, "items": logs, "returned": len(logs)}


@router.put("/users/{user_id}/plan")
async def update_user_plan(
    user_id: str,
    body: AdminPlanUpdateRequest,
    viewer: Viewer = Depends(admin_route_guard),
):
    """Reassign a user's plan. Moving to premium also marks a payment now."""
    try:
        update = await set_plan(
            user_id,
            body.plan,
            mark_payment_now=body.plan == UserPlan.PREMIUM.value,
            source=PlanChangeSource.ADMIN,
            actor_id=viewer.user_id,
            actor_role=UserRole.ROLE_OWNER,
        )
    except InvalidPlanError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid plan: {body.plan}"
        )
    except AccountNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return {"message": "Plan updated", "user_id": user_id, **update}


@router.patch("/users/{user_id}")
async def edit_user(
    user_id: str,
    body: AdminProfileUpdateRequest,
    viewer: Viewer = Depends(admin_route_guard),
):
    """Edit profile fields directly.

    Setting last_payment here bypasses the "only alongside a premium
    transition" rule on purpose; it is recorded as a manual override.
    """
    changes = body.model_dump()
    action = (
        AuditAction.ADMIN_LAST_PAYMENT_OVERRIDE
        if changes.get("last_payment") is not None
        else AuditAction.ADMIN_PROFILE_EDITED
    )
    try:
        return await update_profile_fields(
            user_id,
            changes,
            allowed_fields=ADMIN_EDITABLE_FIELDS,
            actor_id=viewer.user_id,
            actor_role=UserRole.ROLE_OWNER,
            action=action,
        )
    except AccountNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


@router.delete("/users/{user_id}")
async def delete_user(user_id: str, viewer: Viewer = Depends(admin_route_guard)):
    """Delete a profile and all records it owns in one atomic batch."""
    if user_id == viewer.user_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Operators cannot delete their own account"
        )
    try:
        deleted = await cascade_delete_account(user_id, actor_id=viewer.user_id)
    except AccountNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return {
        "message": "User data deleted",
        "user_id": user_id,
        "deleted": deleted,
        "credential_retained": True,
        "follow_up": "Remove the login credential for this email manually.",
    }


# ============================================================================
# Roles
# ============================================================================

@router.get("/roles")
async def get_roles(viewer: Viewer = Depends(admin_route_guard)):
    return {"roles": await list_operator_roles()}


@router.post("/roles", status_code=status.HTTP_201_CREATED)
async def grant_role(body: RoleGrantRequest, viewer: Viewer = Depends(admin_route_guard)):
    db = database.get_db()
    user = await db.users.find_one({"user_id": body.user_id}, {"_id": 0, "user_id": 1, "email": 1})
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    created = await grant_operator_role(user["user_id"], user.get("email"), granted_by=viewer.user_id)
    return {"user_id": user["user_id"], "role": UserRole.ROLE_OWNER.value, "created": created}


@router.delete("/roles/{user_id}")
async def revoke_role(user_id: str, viewer: Viewer = Depends(admin_route_guard)):
    try:
        removed = await revoke_operator_role(user_id, revoked_by=viewer.user_id)
    except LastOperatorError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return {"user_id": user_id, "revoked": True}


# ============================================================================
# Integration info
# ============================================================================

@router.get("/webhook-info")
async def webhook_info(request: Request, viewer: Viewer = Depends(admin_route_guard)):
    """What to configure on the Kirvano side."""
    return {
        "url": str(request.base_url).rstrip("/") + "/api/webhookKirvano",
        "method": "POST",
        "header": KIRVANO_TOKEN_HEADER,
        "token_configured": bool(os.environ.get(KIRVANO_TOKEN_ENV)),
        "payload_example": {"email": "usuario@exemplo.com", "status": PAID_STATUS},
        "behavior": {
            PAID_STATUS: "plan -> premium, plan_updated_at and last_payment set to now",
            "any other status": "plan -> free, plan_updated_at set to now, last_payment unchanged",
        },
    }
