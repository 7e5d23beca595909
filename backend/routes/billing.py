"""Billing Routes - plan listing and self-serve checkout.

Checkout is a simulated PIX confirmation: the user confirms payment in the app
and the plan changes immediately. The Kirvano webhook later converges the plan
to the provider's view (last write wins).

GET  /api/billing/plans     - self-serve plans
POST /api/billing/checkout  - switch to free or premium
"""
from fastapi import APIRouter, Depends, HTTPException, status
from middleware import Viewer, get_viewer
from models import CheckoutRequest, PlanChangeSource, UserPlan
from services.plan_registry import PLAN_DEFINITIONS, is_self_serve, list_plans
from services.plan_service import AccountNotFoundError, set_plan
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.get("/plans")
async def get_plans():
    return {"plans": list_plans()}


@router.post("/checkout")
async def checkout(body: CheckoutRequest, viewer: Viewer = Depends(get_viewer)):
    """Self-serve plan change. Premium marks a payment; free downgrades without one."""
    if not is_self_serve(body.plan):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Plan {body.plan.value} can only be assigned by an administrator"
        )

    try:
        update = await set_plan(
            viewer.user_id,
            body.plan,
            mark_payment_now=body.plan == UserPlan.PREMIUM,
            source=PlanChangeSource.CHECKOUT,
            actor_id=viewer.user_id,
            actor_role=viewer.role,
        )
    except AccountNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found"
        )

    return {
        "message": f"You are now on the {PLAN_DEFINITIONS[body.plan]['name']}",
        "plan": body.plan.value,
        "plan_updated_at": update["plan_updated_at"],
        "last_payment": update.get("last_payment"),
    }
