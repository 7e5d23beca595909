"""Trade log (free feature)."""
from fastapi import APIRouter, Depends, Query, status
from datetime import datetime, timezone
from database import database
from middleware import Viewer, require_feature
from models import TradeCreate, TradeResult
import logging
import uuid

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/trades", tags=["trades"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_trade(body: TradeCreate, viewer: Viewer = Depends(require_feature("trade_log"))):
    db = database.get_db()
    trade = {
        "trade_id": str(uuid.uuid4()),
        "user_id": viewer.user_id,
        **body.model_dump(mode="json"),
        "created_at": datetime.now(timezone.utc),
    }
    await db.trades.insert_one(trade.copy())
    logger.info(f"Trade logged: user_id={viewer.user_id} asset={body.asset} result={body.result.value}")
    return trade


@router.get("")
async def list_trades(
    limit: int = Query(100, ge=1, le=500),
    viewer: Viewer = Depends(require_feature("trade_log")),
):
    db = database.get_db()
    trades = await db.trades.find(
        {"user_id": viewer.user_id}, {"_id": 0}
    ).sort("created_at", -1).limit(limit).to_list(length=limit)
    return {"trades": trades, "returned": len(trades)}


@router.get("/summary")
async def trade_summary(viewer: Viewer = Depends(require_feature("trade_log"))):
    """Counts by result and win rate (gains over all trades, in percent)."""
    db = database.get_db()
    counts = {}
    for result in TradeResult:
        counts[result.value] = await db.trades.count_documents(
            {"user_id": viewer.user_id, "result": result.value}
        )
    total = sum(counts.values())
    win_rate = round(counts[TradeResult.GAIN.value] / total * 100, 1) if total else 0.0

    return {"total": total, "by_result": counts, "win_rate": win_rate}
