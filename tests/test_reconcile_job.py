"""Tests for the reconciliation job, polling loop and scheduler trigger parsing."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import ENTRY_TIME, ScriptedSource, candle_at
from paperdesk.engine.reconcile_job import ReconcileJob, run_polling_loop
from paperdesk.engine.scheduler import _get_trigger
from paperdesk.models.trade import ExitType, TradeAction
from paperdesk.services.market_data import PriceDataProvider
from paperdesk.services.reconciler import OutcomeReconciler

LATER = ENTRY_TIME + timedelta(hours=2)


def _job(store, *candles, **kwargs) -> ReconcileJob:
    provider = PriceDataProvider([ScriptedSource("fake", candles=list(candles))])
    return ReconcileJob(store, OutcomeReconciler(provider), **kwargs)


# ---------------------------------------------------------------------------
# 1. Cycles
# ---------------------------------------------------------------------------

class TestRunCycle:
    @pytest.mark.asyncio
    async def test_settles_wins_and_losses(self, store, make_trade):
        long_trade = store.create(make_trade())
        short_trade = store.create(make_trade(signal="SHORT", stop_loss=50250.0, take_profit=49500.0))
        rejected = store.create(make_trade(success=False, action=TradeAction.REJECTED.value))
        job = _job(store, candle_at(3, 50000, 50510, 49900, 50400))

        summary = await job.run_cycle(now=LATER)

        assert summary["status"] == "ok"
        assert summary["checked"] == 2
        assert summary["settled"] == 2
        assert summary["outcomes"]["win"] == 1
        assert summary["outcomes"]["loss"] == 1
        assert job.last_summary == summary

        settled_long = store.get(long_trade.id)
        assert settled_long.exit_type == ExitType.TAKE_PROFIT.value
        assert settled_long.exit_price == 50500.0
        assert settled_long.validated is True
        assert settled_long.validated_by == "candles:fake"
        assert store.get(short_trade.id).exit_type == ExitType.STOP_LOSS.value
        assert store.get(rejected.id).exit_price is None

        again = await job.run_cycle(now=LATER)
        assert again["checked"] == 0

    @pytest.mark.asyncio
    async def test_open_and_pending_left_untouched(self, store, make_trade):
        open_trade = store.create(make_trade())
        fresh = store.create(make_trade(timestamp=LATER - timedelta(seconds=10)))
        job = _job(store, candle_at(1, 50000, 50100, 49900, 50050))

        summary = await job.run_cycle(now=LATER)

        assert summary["settled"] == 0
        assert summary["outcomes"]["open_profit"] == 1
        assert summary["outcomes"]["pending"] == 1
        assert store.get(open_trade.id).exit_price is None
        assert store.get(fresh.id).exit_price is None

    @pytest.mark.asyncio
    async def test_no_data_is_unknown(self, store, make_trade):
        store.create(make_trade())
        summary = await _job(store).run_cycle(now=LATER)
        assert summary["outcomes"]["unknown"] == 1
        assert summary["settled"] == 0

    @pytest.mark.asyncio
    async def test_batch_size_oldest_first(self, store, make_trade):
        oldest = store.create(make_trade(timestamp=ENTRY_TIME - timedelta(hours=1)))
        store.create(make_trade())
        job = _job(store, candle_at(-30, 50000, 50600, 49900, 50400), batch_size=1)

        summary = await job.run_cycle(now=LATER)

        assert summary["checked"] == 1
        assert store.get(oldest.id).exit_price == 50500.0

    @pytest.mark.asyncio
    async def test_unsettled_trades_rotate_out_of_batch(self, store, make_trade):
        for hours in (2, 1):
            store.create(make_trade(timestamp=ENTRY_TIME - timedelta(hours=hours), take_profit=None))
        new = store.create(make_trade())
        job = _job(store, candle_at(3, 50000, 50600, 49900, 50400), batch_size=2)

        first = await job.run_cycle(now=LATER)
        assert first["outcomes"]["open_profit"] == 2
        assert store.get(new.id).exit_price is None

        second = await job.run_cycle(now=LATER + timedelta(minutes=5))
        assert second["settled"] == 1
        assert store.get(new.id).exit_price == 50500.0

    @pytest.mark.asyncio
    async def test_trades_past_window_leave_the_cycle(self, store, make_trade):
        expired = store.create(make_trade(timestamp=LATER - timedelta(hours=25), take_profit=None))
        source = ScriptedSource("fake", candles=[candle_at(3, 50000, 50100, 49900, 50050)])
        job = ReconcileJob(store, OutcomeReconciler(PriceDataProvider([source])))

        summary = await job.run_cycle(now=LATER)

        assert summary["checked"] == 0
        assert source.calls == []
        assert store.get(expired.id).exit_price is None

    @pytest.mark.asyncio
    async def test_overlapping_cycle_skipped(self, store):
        job = _job(store)
        await job._lock.acquire()
        try:
            summary = await job.run_cycle(now=LATER)
        finally:
            job._lock.release()
        assert summary["status"] == "skipped"

    @pytest.mark.asyncio
    async def test_concurrent_settlement_applies_once(self, store, make_trade):
        trade = store.create(make_trade())
        job = _job(store, candle_at(0, 50000, 50600, 49900, 50400))
        result = await job.reconciler.reconcile(trade, now=LATER)

        assert job.settle(trade, result) is not None
        assert job.settle(trade, result) is None


class CountingSource(ScriptedSource):
    """Tracks the largest number of fetches in flight at once."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.peak = 0

    async def fetch_candles(self, instrument, start, end, resolution):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            return await super().fetch_candles(instrument, start, end, resolution)
        finally:
            self.in_flight -= 1


class TestReconcileMany:
    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, store, make_trade):
        trades = [store.create(make_trade()) for _ in range(8)]
        source = CountingSource("fake", candles=[candle_at(3, 50000, 50600, 49900, 50400)], delay=0.01)
        job = ReconcileJob(store, OutcomeReconciler(PriceDataProvider([source])), concurrency=2)

        results = await job.reconcile_many(trades, now=LATER)

        assert [r.outcome.value for r in results] == ["win"] * 8
        assert source.peak == 2
        assert all(store.get(t.id).exit_price is None for t in trades)


class TestReconcileTrade:
    @pytest.mark.asyncio
    async def test_single_trade(self, store, make_trade):
        trade = store.create(make_trade())
        job = _job(store, candle_at(2, 50000, 50100, 49700, 49800))

        updated, result = await job.reconcile_trade(trade.id, now=LATER)

        assert result.outcome.value == "loss"
        assert updated.exit_price == 49750.0

    @pytest.mark.asyncio
    async def test_missing_trade(self, store):
        assert await _job(store).reconcile_trade("trade-missing") == (None, None)


# ---------------------------------------------------------------------------
# 2. Polling loop and scheduler
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_polling_loop_survives_failures():
    job = MagicMock()
    job.run_cycle = AsyncMock(side_effect=[RuntimeError("db locked"), {"status": "ok"}, {"status": "ok"}])

    await run_polling_loop(job, interval=0, iterations=3)

    assert job.run_cycle.await_count == 3


@pytest.mark.parametrize(
    "interval,seconds",
    [("5m", 300), ("1m", 60), ("90m", 5400), ("1h", 3600), ("4h", 14400), ("bogus", 14400)],
)
def test_get_trigger(interval, seconds):
    assert _get_trigger(interval).interval.total_seconds() == seconds
