"""Trader profile quiz (premium)."""
from fastapi import APIRouter, Depends, HTTPException, status
from datetime import datetime, timezone
from database import database
from middleware import Viewer, require_feature
from models import TraderProfileQuiz
from services.ai_service import classify_trader_profile
from utils.llm_chat import LLMNotConfiguredError, LLMResponseError
import logging
import uuid

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/trader-profile", tags=["trader-profile"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_quiz(body: TraderProfileQuiz, viewer: Viewer = Depends(require_feature("trader_profile_test"))):
    try:
        result = await classify_trader_profile(body)
    except LLMNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured"
        )
    except LLMResponseError as e:
        logger.error(f"Trader profile classification failed for {viewer.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not analyse your answers. Please try again."
        )

    db = database.get_db()
    doc = {
        "profile_id": str(uuid.uuid4()),
        "user_id": viewer.user_id,
        "answers": body.model_dump(mode="json"),
        "result": result.model_dump(),
        "created_at": datetime.now(timezone.utc),
    }
    await db.trader_profiles.insert_one(doc.copy())
    return doc


@router.get("")
async def get_latest_profile(viewer: Viewer = Depends(require_feature("trader_profile_test"))):
    db = database.get_db()
    latest = await db.trader_profiles.find(
        {"user_id": viewer.user_id}, {"_id": 0}
    ).sort("created_at", -1).limit(1).to_list(length=1)
    if not latest:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No trader profile yet. Take the quiz first."
        )
    return latest[0]
