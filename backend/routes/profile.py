"""User Profile Routes
Lets users view their profile, plan and feature access, and edit their own
identity fields. Plan changes go through /api/billing, never through here.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from middleware import Viewer, get_viewer, load_viewer
from models import AuditAction, ProfileUpdateRequest, UserRole
from services.access_gate import feature_access_map
from services.account_service import SELF_EDITABLE_FIELDS, ensure_profile, update_profile_fields
from services.plan_registry import PLAN_DEFINITIONS, parse_plan
from services.plan_service import AccountNotFoundError
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/profile", tags=["profile"])


def _profile_response(profile: dict, role: UserRole) -> dict:
    plan = parse_plan(profile.get("plan"))
    return {
        "profile": {**profile, "role": role.value},
        "plan_name": PLAN_DEFINITIONS[plan]["name"] if plan else profile.get("plan"),
        "features": feature_access_map({**profile, "role": role.value}),
    }


@router.get("/me")
async def get_profile(viewer: Viewer = Depends(get_viewer)):
    """Current user's profile, plan and per-feature access."""
    profile = viewer.profile
    if profile is None:
        # Identity exists without a profile record: create the default free one
        await ensure_profile(viewer.user_id, viewer.email)
        # Creation may have seeded the operator role; reload it
        viewer = await load_viewer({"user_id": viewer.user_id, "email": viewer.email})
        profile = viewer.profile
    return _profile_response(profile, viewer.role)


@router.patch("/me")
async def update_profile(body: ProfileUpdateRequest, viewer: Viewer = Depends(get_viewer)):
    """Update name, whatsapp or cpf."""
    try:
        profile = await update_profile_fields(
            viewer.user_id,
            body.model_dump(),
            allowed_fields=SELF_EDITABLE_FIELDS,
            actor_id=viewer.user_id,
            actor_role=viewer.role,
            action=AuditAction.PROFILE_UPDATED,
        )
    except AccountNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found"
        )
    return _profile_response(profile, viewer.role)
