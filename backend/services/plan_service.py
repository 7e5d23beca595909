"""Plan Transition Authority.

set_plan is the only code path that writes a user's `plan`. Self-serve
checkout, the admin console and the Kirvano webhook all call it, so the
timestamp rules hold everywhere:

- every transition sets plan_updated_at = now
- mark_payment_now also sets last_payment = now
- last_payment is otherwise never touched (it is payment history, not a
  "currently premium" flag)

No payment verification happens here; callers own that trust boundary.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from database import database
from models import PlanChangeSource, UserRole
from services.plan_registry import parse_plan
from utils.audit import audit_plan_change

logger = logging.getLogger(__name__)


class PlanTransitionError(Exception):
    """Base class for rejected plan transitions."""


class AccountNotFoundError(PlanTransitionError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No account found for user_id {user_id}")


class InvalidPlanError(PlanTransitionError):
    def __init__(self, plan: Any):
        self.plan = plan
        super().__init__(f"Unrecognized plan: {plan!r}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def set_plan(
    user_id: str,
    new_plan: Any,
    mark_payment_now: bool = False,
    *,
    source: PlanChangeSource,
    actor_id: Optional[str] = None,
    actor_role: Optional[UserRole] = None,
) -> Dict[str, Any]:
    """Move user_id to new_plan.

    Returns the fields written. Raises InvalidPlanError before touching the
    store when new_plan is unknown, AccountNotFoundError when no account has
    that user_id.
    """
    plan = parse_plan(new_plan)
    if plan is None:
        raise InvalidPlanError(new_plan)

    db = database.get_db()
    previous = await db.users.find_one(
        {"user_id": user_id},
        {"_id": 0, "plan": 1, "last_payment": 1, "plan_updated_at": 1}
    )
    if not previous:
        raise AccountNotFoundError(user_id)

    now = _utcnow()
    update: Dict[str, Any] = {"plan": plan.value, "plan_updated_at": now}
    if mark_payment_now:
        update["last_payment"] = now

    result = await db.users.update_one({"user_id": user_id}, {"$set": update})
    if result.matched_count == 0:
        # Deleted between the read and the write
        raise AccountNotFoundError(user_id)

    logger.info(
        "Plan changed: user_id=%s %s -> %s source=%s payment_marked=%s",
        user_id, previous.get("plan"), plan.value, source.value, mark_payment_now
    )

    await audit_plan_change(
        user_id,
        before_plan=previous.get("plan"),
        after_plan=plan.value,
        source=source,
        payment_marked=mark_payment_now,
        actor_id=actor_id,
        actor_role=actor_role,
    )
    return update
