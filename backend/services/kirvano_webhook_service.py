"""Kirvano payment webhook processing.

Order of checks, each failing before the next runs:
1. x-kirvano-token must equal KIRVANO_WEBHOOK_TOKEN (unset token rejects everything)
2. body must be a JSON object with non-empty string `email` and `status`
3. exactly one account must match the email (trimmed, case-insensitive)

Only then is the plan written, through plan_service.set_plan. Status mapping is
binary: "paid" (any case) -> premium with a payment mark; anything else
(refunded, cancelled, pending, ...) -> free.
"""
import hmac
import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from auth import normalize_email
from database import database
from models import KirvanoWebhookPayload, PlanChangeSource, UserPlan
from services.plan_service import AccountNotFoundError, set_plan

logger = logging.getLogger(__name__)

KIRVANO_TOKEN_HEADER = "x-kirvano-token"
KIRVANO_TOKEN_ENV = "KIRVANO_WEBHOOK_TOKEN"
PAID_STATUS = "paid"


class WebhookPayloadError(Exception):
    """Body is not valid JSON or lacks string email/status."""


def webhook_token_ok(header_token: Optional[str]) -> bool:
    """Exact, case-sensitive comparison against the configured secret."""
    configured = os.environ.get(KIRVANO_TOKEN_ENV) or ""
    if not configured or header_token is None:
        return False
    return hmac.compare_digest(header_token.encode("utf-8"), configured.encode("utf-8"))


def parse_payload(raw_body: bytes) -> KirvanoWebhookPayload:
    try:
        body = json.loads(raw_body or b"")
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise WebhookPayloadError("Invalid JSON payload") from e

    if not isinstance(body, dict):
        raise WebhookPayloadError("Missing or invalid email or status in payload")

    try:
        payload = KirvanoWebhookPayload.model_validate(body)
    except ValidationError as e:
        raise WebhookPayloadError("Missing or invalid email or status in payload") from e

    if not payload.email.strip() or not payload.status.strip():
        raise WebhookPayloadError("Missing or invalid email or status in payload")
    return payload


def map_status_to_plan(payment_status: str) -> Tuple[UserPlan, bool]:
    """Return (plan, mark_payment_now) for a Kirvano status string."""
    if payment_status.lower() == PAID_STATUS:
        return UserPlan.PREMIUM, True
    return UserPlan.FREE, False


async def process_event(payload: KirvanoWebhookPayload) -> Dict[str, Any]:
    """Apply a validated event. Raises AccountNotFoundError when no account matches."""
    db = database.get_db()
    email_lower = normalize_email(payload.email)

    account = await db.users.find_one(
        {"email_lower": email_lower},
        {"_id": 0, "user_id": 1}
    )
    if not account:
        raise AccountNotFoundError(email_lower)

    plan, mark_payment = map_status_to_plan(payload.status)
    update = await set_plan(
        account["user_id"],
        plan,
        mark_payment_now=mark_payment,
        source=PlanChangeSource.WEBHOOK,
    )
    logger.info(
        "Kirvano webhook applied: user_id=%s status=%s plan=%s",
        account["user_id"], payload.status, plan.value
    )
    return {"user_id": account["user_id"], "plan": plan.value, **update}
