"""Feature access states for the current viewer.

Clients render from these tri-state values: `loading` means the profile is
not available yet and must show a loading state, not a denial.
"""
from fastapi import APIRouter, Depends
from middleware import Viewer, get_viewer
from services.access_gate import feature_access_map

router = APIRouter(prefix="/api/access", tags=["access"])


@router.get("")
async def get_feature_access(viewer: Viewer = Depends(get_viewer)):
    return {
        "profile_loaded": viewer.profile is not None,
        "plan": viewer.profile.get("plan") if viewer.profile else None,
        "is_operator": viewer.is_operator,
        "features": feature_access_map(viewer.profile),
    }
