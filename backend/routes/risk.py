"""Risk manager (premium): per-user risk settings and lot sizing.

One `risk_config` document per user. Lot size is computed for mini-index
contracts, where one point is worth R$0.20 per contract.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from datetime import datetime, timezone
from database import database
from middleware import Viewer, require_feature
from models import LotSizeRequest, RiskConfigRequest
import logging
import math

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/risk-config", tags=["risk"])

POINT_VALUE_PER_CONTRACT = 0.20
MIN_LOT_SIZE = 1


def calculate_lot_size(available_capital: float, risk_per_trade_percent: float, stop_points: float) -> int:
    """Contracts that keep the stop loss within the per-trade risk; never below 1."""
    risk_amount = available_capital * risk_per_trade_percent / 100
    stop_cost = stop_points * POINT_VALUE_PER_CONTRACT
    return max(MIN_LOT_SIZE, math.floor(risk_amount / stop_cost))


@router.get("")
async def get_risk_config(viewer: Viewer = Depends(require_feature("risk_manager"))):
    db = database.get_db()
    config = await db.risk_config.find_one({"user_id": viewer.user_id}, {"_id": 0})
    return {"config": config}


@router.put("")
async def save_risk_config(body: RiskConfigRequest, viewer: Viewer = Depends(require_feature("risk_manager"))):
    db = database.get_db()
    update = {**body.model_dump(), "updated_at": datetime.now(timezone.utc)}
    await db.risk_config.update_one(
        {"user_id": viewer.user_id},
        {"$set": update},
        upsert=True,
    )
    logger.info(f"Risk config saved for {viewer.user_id}")
    return {"config": {"user_id": viewer.user_id, **update}}


@router.post("/lot-size")
async def lot_size(body: LotSizeRequest, viewer: Viewer = Depends(require_feature("risk_manager"))):
    db = database.get_db()
    config = await db.risk_config.find_one({"user_id": viewer.user_id}, {"_id": 0})
    if not config:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Save your risk configuration first"
        )

    risk_amount = config["available_capital"] * config["risk_per_trade_percent"] / 100
    return {
        "lot_size": calculate_lot_size(
            config["available_capital"], config["risk_per_trade_percent"], body.stop_points
        ),
        "risk_amount": round(risk_amount, 2),
        "stop_points": body.stop_points,
        "point_value": POINT_VALUE_PER_CONTRACT,
    }
