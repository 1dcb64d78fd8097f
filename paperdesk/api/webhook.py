"""TradingView webhook: signal admission."""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from paperdesk.api.deps import get_runtime
from paperdesk.engine.runtime import TradingRuntime
from paperdesk.schemas.trade import WebhookPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["webhook"])


@router.post("/webhook")
async def receive_signal(payload: WebhookPayload, runtime: TradingRuntime = Depends(get_runtime)):
    """Evaluate a signal and record it. Rejections are recorded too and returned with status "error"."""
    started = time.monotonic()
    error = payload.missing_field_error()
    if error:
        logger.warning(f"[webhook] Rejected malformed signal: {error}")
        raise HTTPException(status_code=400, detail=error)

    result = await runtime.executor.execute(payload)
    response = result.to_dict()
    response["processing_time_ms"] = int((time.monotonic() - started) * 1000)
    return response
