"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from paperdesk.config import settings
from paperdesk.database import create_db_and_tables, engine
from paperdesk.utils.logging import setup_logging
from paperdesk.api import webhook, trades, system


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()
    from paperdesk.engine.runtime import TradingRuntime
    runtime = TradingRuntime(settings, engine)
    app.state.runtime = runtime

    from paperdesk.engine.scheduler import start_scheduler, stop_scheduler
    start_scheduler(runtime)

    yield

    stop_scheduler()
    await runtime.close()


app = FastAPI(
    title="Paper Desk",
    description="Paper trading risk gate and trade outcome reconciliation",
    version="0.1.0",
    lifespan=lifespan,
)

# Mount routers
app.include_router(webhook.router)
app.include_router(trades.router)
app.include_router(system.router)
