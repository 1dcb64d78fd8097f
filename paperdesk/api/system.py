"""System API: health check, scheduler status, account state, manual reconcile."""

from fastapi import APIRouter, Depends, HTTPException

from paperdesk.api.deps import get_runtime
from paperdesk.engine.runtime import TradingRuntime
from paperdesk.services.errors import ProviderUnavailable

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler")
def scheduler_status(runtime: TradingRuntime = Depends(get_runtime)):
    """Current scheduler state with job details and the last reconcile summary."""
    from paperdesk.engine.scheduler import get_scheduler_status
    status = get_scheduler_status()
    status["last_reconcile"] = runtime.reconcile_job.last_summary
    return status


@router.get("/account")
async def account_state(runtime: TradingRuntime = Depends(get_runtime)):
    try:
        state = await runtime.account.get_state()
    except ProviderUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"mode": runtime.settings.bot_mode, **state.to_dict()}


@router.post("/reconcile")
async def trigger_reconcile(runtime: TradingRuntime = Depends(get_runtime)):
    """Manually trigger one reconciliation cycle."""
    try:
        return await runtime.reconcile_job.run_cycle()
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
