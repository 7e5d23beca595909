"""Market replay feedback (premium). Scores from a finished simulation go to the
LLM for coaching feedback; nothing is stored."""
from fastapi import APIRouter, Depends, HTTPException, status
from middleware import Viewer, require_feature
from models import SimulationFeedback, SimulationRequest
from services.ai_service import evaluate_simulation
from utils.llm_chat import LLMNotConfiguredError, LLMResponseError
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/market-replay", tags=["market-replay"])


@router.post("/evaluate", response_model=SimulationFeedback)
async def evaluate(body: SimulationRequest, viewer: Viewer = Depends(require_feature("market_replay"))):
    try:
        return await evaluate_simulation(body)
    except LLMNotConfiguredError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured"
        )
    except LLMResponseError as e:
        logger.error(f"Simulation feedback failed for {viewer.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not evaluate the simulation. Please try again."
        )
