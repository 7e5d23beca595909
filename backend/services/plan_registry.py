"""
Plan Registry - single source of truth for plans and feature tiers.

Plans:
    free            - default at signup
    premium         - paid tier (Kirvano "paid" or self-serve checkout)
    affiliate_demo  - admin-assignable demo; no features beyond free

Each gated capability has a feature key mapped to the minimum FeatureTier.
Route handlers reference feature keys, never tiers or plan names directly.
"""
from typing import Dict, Any, List, Optional
import logging

from models import UserPlan, FeatureTier

logger = logging.getLogger(__name__)


PLAN_DEFINITIONS: Dict[UserPlan, Dict[str, Any]] = {
    UserPlan.FREE: {
        "name": "Plano Gratuito",
        "price": "R$0/mês",
        "self_serve": True,
        "description": "Comece a organizar seus trades sem custo.",
    },
    UserPlan.PREMIUM: {
        "name": "Plano Premium",
        "price": "R$49/mês",
        "self_serve": True,
        "description": "Plano diário e psicólogo com IA, gestor de risco e teste de perfil.",
    },
    UserPlan.AFFILIATE_DEMO: {
        "name": "Demonstração Afiliado",
        "price": "Sem custo",
        "self_serve": False,
        "description": "Conta de demonstração atribuída pelo administrador.",
    },
}

# Feature key -> minimum tier
FEATURE_TIERS: Dict[str, FeatureTier] = {
    "daily_plan": FeatureTier.PREMIUM,
    "ai_psychologist": FeatureTier.PREMIUM,
    "risk_manager": FeatureTier.PREMIUM,
    "trader_profile_test": FeatureTier.PREMIUM,
    "strategy_builder": FeatureTier.PREMIUM,
    "market_replay": FeatureTier.PREMIUM,
    "trade_log": FeatureTier.FREE,
    "store": FeatureTier.FREE,
    "profile": FeatureTier.FREE,
    "pricing": FeatureTier.FREE,
}

# Human-readable feature names for error messages
FEATURE_NAMES: Dict[str, str] = {
    "daily_plan": "Plano Diário com IA",
    "ai_psychologist": "Psicólogo Virtual",
    "risk_manager": "Gestor de Risco",
    "trader_profile_test": "Teste de Perfil de Trader",
    "strategy_builder": "Construtor de Estratégias",
    "market_replay": "Market Replay",
    "trade_log": "Diário de Trades",
    "store": "Loja",
    "profile": "Perfil",
    "pricing": "Planos",
}


def parse_plan(value: Any) -> Optional[UserPlan]:
    """Return the UserPlan for value, or None if it is not a recognised plan."""
    if isinstance(value, UserPlan):
        return value
    try:
        return UserPlan(value)
    except ValueError:
        return None


def get_feature_tier(feature_key: str) -> FeatureTier:
    """Tier required by a feature. Unknown keys are treated as premium (fail closed)."""
    tier = FEATURE_TIERS.get(feature_key)
    if tier is None:
        logger.warning("Unknown feature key %s; treating as premium", feature_key)
        return FeatureTier.PREMIUM
    return tier


def get_feature_name(feature_key: str) -> str:
    return FEATURE_NAMES.get(feature_key, feature_key)


def list_plans(include_admin_only: bool = False) -> List[Dict[str, Any]]:
    """Plans for the pricing page; admin-only plans are hidden by default."""
    plans = []
    for plan, definition in PLAN_DEFINITIONS.items():
        if not definition["self_serve"] and not include_admin_only:
            continue
        plans.append({"plan": plan.value, **definition})
    return plans


def is_self_serve(plan: UserPlan) -> bool:
    return PLAN_DEFINITIONS[plan]["self_serve"]
