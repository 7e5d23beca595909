"""AI psychologist (premium). Sessions are kept in `mindset_logs`."""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from datetime import datetime, timezone
from database import database
from middleware import Viewer, require_feature
from models import PsychologistRequest
from services.ai_service import get_psychologist_advice
from utils.llm_chat import LLMNotConfiguredError, LLMResponseError
import logging
import uuid

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/psychologist", tags=["psychologist"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def ask_psychologist(body: PsychologistRequest, viewer: Viewer = Depends(require_feature("ai_psychologist"))):
    try:
        reply = await get_psychologist_advice(body)
    except LLMNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured"
        )
    except LLMResponseError as e:
        logger.error(f"Psychologist reply failed for {viewer.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not get a reply right now. Please try again."
        )

    db = database.get_db()
    entry = {
        "log_id": str(uuid.uuid4()),
        "user_id": viewer.user_id,
        "feelings": body.feelings,
        "emotional_state": body.emotional_state,
        "advice": reply.advice,
        "created_at": datetime.now(timezone.utc),
    }
    await db.mindset_logs.insert_one(entry.copy())
    return entry


@router.get("")
async def list_sessions(
    limit: int = Query(20, ge=1, le=100),
    viewer: Viewer = Depends(require_feature("ai_psychologist")),
):
    db = database.get_db()
    logs = await db.mindset_logs.find(
        {"user_id": viewer.user_id}, {"_id": 0}
    ).sort("created_at", -1).limit(limit).to_list(length=limit)
    return {"sessions": logs}
