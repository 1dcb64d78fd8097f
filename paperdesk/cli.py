"""CLI tool for running the service.

Usage:
    python -m paperdesk.cli serve [host] [port]
    python -m paperdesk.cli reconcile
    python -m paperdesk.cli worker
"""

import asyncio
import json
import sys

from paperdesk.config import settings
from paperdesk.database import engine, create_db_and_tables
from paperdesk.utils.logging import setup_logging


def serve(host: str = "0.0.0.0", port: int = 8000):
    """Run the API with the in-process scheduler."""
    import uvicorn

    uvicorn.run("paperdesk.main:app", host=host, port=port, log_level=settings.log_level.lower())


async def _reconcile_once() -> dict:
    from paperdesk.engine.runtime import TradingRuntime

    runtime = TradingRuntime(settings, engine)
    try:
        return await runtime.reconcile_job.run_cycle()
    finally:
        await runtime.close()


async def _worker():
    from paperdesk.engine.runtime import TradingRuntime
    from paperdesk.engine.reconcile_job import run_polling_loop

    runtime = TradingRuntime(settings, engine)
    try:
        await run_polling_loop(runtime.reconcile_job, settings.poll_interval_seconds)
    finally:
        await runtime.close()


def reconcile():
    """Run one reconciliation cycle and print the summary."""
    setup_logging()
    create_db_and_tables()
    summary = asyncio.run(_reconcile_once())
    print(json.dumps(summary, indent=2))


def worker():
    """Reconcile open trades forever at a fixed interval."""
    setup_logging()
    create_db_and_tables()
    try:
        asyncio.run(_worker())
    except KeyboardInterrupt:
        print("Worker stopped.")


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m paperdesk.cli <command>")
        print("Commands: serve, reconcile, worker")
        sys.exit(1)

    command = sys.argv[1]
    if command == "serve":
        host = sys.argv[2] if len(sys.argv) > 2 else "0.0.0.0"
        port = int(sys.argv[3]) if len(sys.argv) > 3 else 8000
        serve(host, port)
    elif command == "reconcile":
        reconcile()
    elif command == "worker":
        worker()
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
