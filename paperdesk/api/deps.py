"""Shared API dependencies."""

from fastapi import HTTPException, Request, status

from paperdesk.engine.runtime import TradingRuntime


def get_runtime(request: Request) -> TradingRuntime:
    """Return the process runtime created at startup."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return runtime
