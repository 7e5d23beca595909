"""Strategy builder (premium). The LLM explains a user's setup; the setup and
its explanation are stored together in `trading_setups`."""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from datetime import datetime, timezone
from database import database
from middleware import Viewer, require_feature
from models import TradingSetupRequest
from services.ai_service import explain_trading_setup
from utils.llm_chat import LLMNotConfiguredError, LLMResponseError
import logging
import uuid

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/trading-setups", tags=["trading-setups"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_trading_setup(body: TradingSetupRequest, viewer: Viewer = Depends(require_feature("strategy_builder"))):
    try:
        explanation = await explain_trading_setup(body)
    except LLMNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured"
        )
    except LLMResponseError as e:
        logger.error(f"Setup explanation failed for {viewer.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not explain the setup. Please try again."
        )

    db = database.get_db()
    doc = {
        "setup_id": str(uuid.uuid4()),
        "user_id": viewer.user_id,
        **body.model_dump(),
        "ai_explanation": explanation.model_dump(),
        "created_at": datetime.now(timezone.utc),
    }
    await db.trading_setups.insert_one(doc.copy())
    logger.info(f"Trading setup saved: user_id={viewer.user_id} setup_id={doc['setup_id']}")
    return doc


@router.get("")
async def list_trading_setups(
    limit: int = Query(50, ge=1, le=100),
    viewer: Viewer = Depends(require_feature("strategy_builder")),
):
    db = database.get_db()
    setups = await db.trading_setups.find(
        {"user_id": viewer.user_id}, {"_id": 0}
    ).sort("created_at", -1).limit(limit).to_list(length=limit)
    return {"setups": setups}
