"""Feature Access Gate.

Pure predicates over a loaded profile. A profile is the `users` document with
the viewer's `role` attached by middleware.load_viewer; nothing here touches
the database.

    can_access(profile, tier)      -> bool
    resolve_access(profile, tier)  -> AccessState (loading / denied / allowed)

Operators (ROLE_OWNER in the admin_roles table) pass every gate regardless of
plan. affiliate_demo is gated exactly like free.
"""
from typing import Any, Dict, Mapping, Optional

from models import AccessState, FeatureTier, UserPlan, UserRole
from services.plan_registry import FEATURE_TIERS, get_feature_tier


def is_operator(profile: Optional[Mapping[str, Any]]) -> bool:
    return bool(profile) and profile.get("role") == UserRole.ROLE_OWNER.value


def can_access(profile: Mapping[str, Any], feature_tier: FeatureTier) -> bool:
    if is_operator(profile):
        return True
    tier = FeatureTier(feature_tier)
    if tier == FeatureTier.FREE:
        return True
    return profile.get("plan") == UserPlan.PREMIUM.value


def resolve_access(profile: Optional[Mapping[str, Any]], feature_tier: FeatureTier) -> AccessState:
    """Tri-state access: a profile that has not loaded yet is LOADING, never DENIED."""
    if profile is None:
        return AccessState.LOADING
    return AccessState.ALLOWED if can_access(profile, feature_tier) else AccessState.DENIED


def resolve_feature(profile: Optional[Mapping[str, Any]], feature_key: str) -> AccessState:
    return resolve_access(profile, get_feature_tier(feature_key))


def feature_access_map(profile: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Access state for every registered feature, keyed by feature key."""
    return {
        key: resolve_access(profile, tier).value
        for key, tier in FEATURE_TIERS.items()
    }
