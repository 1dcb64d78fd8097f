"""Trade journal API: listing, analysis, reconciliation and manual close."""

from fastapi import APIRouter, Depends, HTTPException, Query

from paperdesk.api.deps import get_runtime
from paperdesk.engine.runtime import TradingRuntime
from paperdesk.models.trade import ClosedExit
from paperdesk.schemas.trade import ManualCloseRequest, TradeRead
from paperdesk.services.pnl import summarize_trades
from paperdesk.services.trade_analysis import analyze_trade, summarize_analyses
from paperdesk.utils.time import utcnow

router = APIRouter(prefix="/api/trades", tags=["trades"])


@router.get("")
def list_trades(
    mode: str | None = None,
    signal: str | None = None,
    limit: int = 100,
    runtime: TradingRuntime = Depends(get_runtime),
):
    trades = runtime.store.list_trades(mode=mode, signal=signal)
    return {
        "trades": [TradeRead.from_trade(t) for t in trades[:limit]],
        "stats": summarize_trades(trades),
    }


@router.get("/analysis")
async def trade_analysis(
    mode: str = "paper",
    limit: int = Query(50, ge=1, le=200),
    current_price: float | None = None,
    reconcile: bool = True,
    runtime: TradingRuntime = Depends(get_runtime),
):
    """Parameter review of recent trades, checked against price history when `reconcile` is set.

    Read-only: nothing is settled here.
    """
    trades = runtime.store.list_trades(mode=mode, limit=limit)
    if reconcile:
        results = await runtime.reconcile_job.reconcile_many(trades)
    else:
        results = [None] * len(trades)

    analyses = [
        analyze_trade(trade, current_price=current_price, reconciliation=result if trade.is_admitted else None)
        for trade, result in zip(trades, results)
    ]
    return {
        "summary": summarize_analyses(analyses),
        "analyses": [a.to_dict() for a in analyses],
    }


@router.get("/{trade_id}")
def get_trade(trade_id: str, runtime: TradingRuntime = Depends(get_runtime)):
    trade = runtime.store.get(trade_id)
    if not trade:
        raise HTTPException(status_code=404, detail="Trade not found")
    return TradeRead.from_trade(trade)


@router.post("/{trade_id}/reconcile")
async def reconcile_trade(trade_id: str, runtime: TradingRuntime = Depends(get_runtime)):
    """Check one trade against price history and settle it on a win or loss."""
    trade, result = await runtime.reconcile_job.reconcile_trade(trade_id)
    if trade is None:
        raise HTTPException(status_code=404, detail="Trade not found")
    return {"trade": TradeRead.from_trade(trade), "result": result.to_dict()}


@router.post("/{trade_id}/close")
def close_trade(trade_id: str, body: ManualCloseRequest, runtime: TradingRuntime = Depends(get_runtime)):
    """Record an exit by hand. Exit type and price are both required."""
    trade = runtime.store.get(trade_id)
    if not trade:
        raise HTTPException(status_code=404, detail="Trade not found")
    if not trade.is_admitted:
        raise HTTPException(status_code=400, detail="Trade was rejected, it has no position to close")
    if trade.is_closed:
        raise HTTPException(status_code=409, detail="Trade already has an exit")

    closed = ClosedExit(
        exit_type=body.exit_type,
        price=body.exit_price,
        time=body.exit_time or utcnow(),
        validated=False,
        validated_by="manual_close",
    )
    updated = runtime.store.update_exit(trade_id, closed)
    if updated is None:
        raise HTTPException(status_code=409, detail="Trade already has an exit")
    return TradeRead.from_trade(updated)
