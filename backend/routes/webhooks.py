"""Webhook Routes - Kirvano payment notifications.

POST /api/webhookKirvano
    Header x-kirvano-token: <shared secret>
    Body   {"email": "...", "status": "paid" | "refunded" | ...}

Responses:
    200 {"message": ...}          plan updated
    401 {"error": ...}            missing/invalid token; nothing read or written
    400 {"error": ...}            malformed body; no lookup performed
    404 {"error": ...}            no account for the email; nothing written
    500 {"error": ..., "details": ...}

Retries are the payment provider's responsibility; the handler never retries.
"""
from fastapi import APIRouter, Header, Request, status
from fastapi.responses import JSONResponse
from services.kirvano_webhook_service import (
    KIRVANO_TOKEN_HEADER,
    WebhookPayloadError,
    parse_payload,
    process_event,
    webhook_token_ok,
)
from services.plan_service import AccountNotFoundError
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])


@router.post("/api/webhookKirvano")
async def kirvano_webhook(
    request: Request,
    x_kirvano_token: str = Header(None, alias=KIRVANO_TOKEN_HEADER),
):
    """Translate a Kirvano payment status into a plan transition."""
    try:
        if not webhook_token_ok(x_kirvano_token):
            logger.warning("Kirvano webhook rejected: missing or invalid %s", KIRVANO_TOKEN_HEADER)
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "Unauthorized: Invalid token"},
            )

        try:
            payload = parse_payload(await request.body())
        except WebhookPayloadError as e:
            logger.warning("Kirvano webhook bad payload: %s", e)
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": str(e)},
            )

        try:
            result = await process_event(payload)
        except AccountNotFoundError:
            logger.warning("Kirvano webhook: user not found for email %s", payload.email.strip())
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "User not found"},
            )

        return {"message": "Plan updated successfully", "plan": result["plan"]}

    except Exception as e:
        logger.exception(f"Kirvano webhook error: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "details": str(e)},
        )
