"""Daily trading plan (premium). Generated by the LLM, stored in `trading_plans`."""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from datetime import datetime, timezone
from database import database
from middleware import Viewer, require_feature
from models import DailyPlanRequest
from services.ai_service import generate_daily_plan
from utils.llm_chat import LLMNotConfiguredError, LLMResponseError
import logging
import uuid

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/daily-plan", tags=["daily-plan"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_daily_plan(body: DailyPlanRequest, viewer: Viewer = Depends(require_feature("daily_plan"))):
    try:
        plan = await generate_daily_plan(body)
    except LLMNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured"
        )
    except LLMResponseError as e:
        logger.error(f"Daily plan generation failed for {viewer.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not generate the daily plan. Please try again."
        )

    db = database.get_db()
    doc = {
        "plan_id": str(uuid.uuid4()),
        "user_id": viewer.user_id,
        "input": body.model_dump(mode="json"),
        "output": plan.model_dump(),
        "created_at": datetime.now(timezone.utc),
    }
    await db.trading_plans.insert_one(doc.copy())
    return doc


@router.get("")
async def list_daily_plans(
    limit: int = Query(20, ge=1, le=100),
    viewer: Viewer = Depends(require_feature("daily_plan")),
):
    db = database.get_db()
    plans = await db.trading_plans.find(
        {"user_id": viewer.user_id}, {"_id": 0}
    ).sort("created_at", -1).limit(limit).to_list(length=limit)
    return {"plans": plans}
