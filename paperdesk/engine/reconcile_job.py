"""Periodic reconciliation of open trades.

Each cycle loads the open admitted trades still inside the reconciliation
window, takes a batch of them (never-checked first, then least recently
checked, oldest entry breaking ties), reconciles them with bounded
concurrency and settles wins and losses in the store. The store's
check-and-set keeps two overlapping settlements of the same trade from both
landing; the job lock additionally skips a cycle while the previous one is
still running.

A trade that is still open once its window has passed cannot settle any more
from candles; it drops out of the cycle and only a manual close or an
on-demand reconcile touches it again.
"""

import asyncio
import logging
from collections import Counter
from datetime import datetime

from paperdesk.models.trade import Trade
from paperdesk.services.reconciler import OutcomeReconciler, Outcome, ReconciliationResult
from paperdesk.services.trade_store import TradeStore
from paperdesk.utils.time import utcnow

logger = logging.getLogger(__name__)


class ReconcileJob:
    def __init__(
        self,
        store: TradeStore,
        reconciler: OutcomeReconciler,
        batch_size: int = 50,
        concurrency: int = 5,
    ):
        self.store = store
        self.reconciler = reconciler
        self.batch_size = batch_size
        self.concurrency = max(1, concurrency)
        self._lock = asyncio.Lock()
        self.last_run: datetime | None = None
        self.last_summary: dict | None = None
        # trade id -> time of the last cycle that checked it without settling
        self._checked_at: dict[str, datetime] = {}

    def settle(self, trade: Trade, result: ReconciliationResult) -> Trade | None:
        """Write the exit for a settled result. None when nothing was written."""
        if not result.is_settled:
            return None
        updated = self.store.update_exit(trade.id, result.to_exit())
        if updated is None:
            logger.info(f"[{trade.id}] Already settled elsewhere, result discarded")
        else:
            logger.info(f"[{trade.id}] Settled {result.outcome.value} @ {result.exit_price}")
        return updated

    async def reconcile_trade(self, trade_id: str, now: datetime | None = None) -> tuple[Trade | None, ReconciliationResult | None]:
        """Reconcile and settle a single trade on demand."""
        trade = self.store.get(trade_id)
        if trade is None:
            return None, None
        result = await self.reconciler.reconcile(trade, now=now)
        if not trade.is_closed:
            trade = self.settle(trade, result) or self.store.get(trade_id)
        return trade, result

    async def reconcile_many(self, trades: list[Trade], now: datetime | None = None) -> list[ReconciliationResult]:
        """Reconcile trades with at most `concurrency` in flight. Nothing is settled."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _reconcile(trade: Trade) -> ReconciliationResult:
            async with semaphore:
                return await self.reconciler.reconcile(trade, now=now)

        return await asyncio.gather(*(_reconcile(t) for t in trades))

    async def run_cycle(self, now: datetime | None = None) -> dict:
        """Run one cycle, skipping if a prior cycle is still in-flight."""
        if self._lock.locked():
            logger.warning("[reconcile] Skipping overlapping cycle")
            return {"status": "skipped", "reason": "previous cycle still running"}

        async with self._lock:
            return await self._run_cycle_once(now)

    def _next_batch(self, now: datetime) -> list[Trade]:
        candidates = self.store.list_trades(
            open_only=True,
            oldest_first=True,
            since=now - self.reconciler.window,
        )
        live_ids = {t.id for t in candidates}
        self._checked_at = {k: v for k, v in self._checked_at.items() if k in live_ids}

        # stable sort keeps entry order among equally recent checks
        candidates.sort(key=lambda t: (t.id in self._checked_at, self._checked_at.get(t.id, now)))
        return candidates[: self.batch_size]

    async def _run_cycle_once(self, now: datetime | None) -> dict:
        now = now or utcnow()
        trades = self._next_batch(now)
        if not trades:
            logger.debug("[reconcile] No open trades")

        results = await self.reconcile_many(trades, now=now)

        outcomes: Counter = Counter()
        settled = 0
        for trade, result in zip(trades, results):
            outcomes[result.outcome.value] += 1
            if self.settle(trade, result) is not None:
                settled += 1
                self._checked_at.pop(trade.id, None)
            else:
                self._checked_at[trade.id] = now

        summary = {
            "status": "ok",
            "checked": len(trades),
            "settled": settled,
            "outcomes": {o.value: outcomes.get(o.value, 0) for o in Outcome},
            "ran_at": now.isoformat(),
        }
        self.last_run = now
        self.last_summary = summary
        logger.info(f"[reconcile] Checked {len(trades)} open trades, settled {settled}")
        return summary


async def run_polling_loop(job: ReconcileJob, interval: float, iterations: int | None = None):
    """Run cycles every `interval` seconds. A failing cycle is logged and the loop continues."""
    count = 0
    while iterations is None or count < iterations:
        try:
            await job.run_cycle()
        except Exception as e:
            logger.error(f"[reconcile] Cycle error: {e}", exc_info=True)
        count += 1
        if iterations is not None and count >= iterations:
            break
        await asyncio.sleep(interval)
