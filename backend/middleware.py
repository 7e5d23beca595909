from fastapi import Depends, Request, HTTPException, status
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging
from auth import decode_access_token
from models import AccessState, AuditAction, AuditResource, UserRole
from database import database
from services.access_gate import is_operator, resolve_feature
from services.plan_registry import get_feature_name
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)


@dataclass
class Viewer:
    """The authenticated caller, passed explicitly to every handler.

    profile is the `users` document with the resolved `role` attached, or None
    when the identity exists but its profile record has not been created yet.
    """
    user_id: str
    email: str
    profile: Optional[Dict[str, Any]] = None

    @property
    def role(self) -> UserRole:
        if is_operator(self.profile):
            return UserRole.ROLE_OWNER
        return UserRole.ROLE_USER

    @property
    def is_operator(self) -> bool:
        return is_operator(self.profile)


async def get_current_user(request: Request) -> Optional[dict]:
    """Extract and validate current user claims from JWT token."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header.split(" ")[1]
    payload = decode_access_token(token)

    if not payload or not payload.get("user_id"):
        return None

    return payload


async def require_auth(request: Request) -> dict:
    """Require valid authentication."""
    user = await get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return user


async def load_viewer(claims: dict) -> Viewer:
    """Build the Viewer for token claims: profile from `users`, role from `admin_roles`."""
    db = database.get_db()
    user_id = claims["user_id"]

    profile = await db.users.find_one({"user_id": user_id}, {"_id": 0})
    if profile is not None:
        role_doc = await db.admin_roles.find_one({"user_id": user_id}, {"_id": 0, "role": 1})
        profile["role"] = role_doc["role"] if role_doc else UserRole.ROLE_USER.value

    return Viewer(user_id=user_id, email=claims.get("email", ""), profile=profile)


async def get_viewer(request: Request) -> Viewer:
    """FastAPI dependency: authenticated Viewer for the current request."""
    claims = await require_auth(request)
    return await load_viewer(claims)


async def admin_route_guard(request: Request) -> Viewer:
    """Guard for admin console routes: caller must hold ROLE_OWNER."""
    viewer = await get_viewer(request)
    if not viewer.is_operator:
        logger.warning(
            "Admin route denied: user_id=%s path=%s", viewer.user_id, request.url.path
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions"
        )
    return viewer


def require_feature(feature_key: str):
    """
    Dependency factory enforcing plan-based feature access.

    Usage:
        @router.post("/daily-plan")
        async def create(viewer: Viewer = Depends(require_feature("daily_plan"))):
            ...

    loading -> 409 (profile not available yet; the client should retry, not show a denial)
    denied  -> 403 with an upgrade message
    allowed -> the Viewer
    """
    async def dependency(request: Request, viewer: Viewer = Depends(get_viewer)) -> Viewer:
        state = resolve_feature(viewer.profile, feature_key)

        if state == AccessState.LOADING:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Profile not loaded yet. Try again shortly."
            )

        if state == AccessState.DENIED:
            await create_audit_log(
                action=AuditAction.FEATURE_ACCESS_DENIED,
                actor_role=viewer.role,
                actor_id=viewer.user_id,
                resource_type=AuditResource.FEATURE,
                resource_id=feature_key,
                metadata={
                    "plan": viewer.profile.get("plan"),
                    "endpoint": str(request.url.path),
                    "method": request.method,
                }
            )
            logger.warning(
                "Feature access denied: user_id=%s plan=%s feature=%s endpoint=%s",
                viewer.user_id, viewer.profile.get("plan"), feature_key, request.url.path
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{get_feature_name(feature_key)} requires the premium plan. Please upgrade to access."
            )

        return viewer

    return dependency
