"""Shared fixtures: in-memory database, trade factory and a scripted candle source."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from paperdesk.database import create_db_and_tables
from paperdesk.models.trade import Trade, TradeAction, TradeMode
from paperdesk.services.market_data import Candle, CandleSource
from paperdesk.services.trade_store import TradeStore

ENTRY_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class ScriptedSource(CandleSource):
    """CandleSource returning fixed candles, raising, or stalling."""

    def __init__(self, name="scripted", candles=None, error=None, delay=0.0):
        self.name = name
        self.candles = candles or []
        self.error = error
        self.delay = delay
        self.calls = []

    async def fetch_candles(self, instrument, start, end, resolution):
        self.calls.append((instrument, start, end, resolution))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.candles)


def candle_at(minutes: int, o: float, h: float, l: float, c: float, start: datetime = ENTRY_TIME) -> Candle:  # noqa: E741
    return Candle(t=start + timedelta(minutes=minutes), o=o, h=h, l=l, c=c, v=1.0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return TradeStore(engine)


@pytest.fixture
def make_trade():
    """Factory for an admitted paper LONG trade at ENTRY_TIME (50000 / 49750 / 50500, $100)."""

    def _make(**overrides) -> Trade:
        fields = dict(
            timestamp=ENTRY_TIME,
            signal="LONG",
            instrument="BTC-PERPETUAL",
            entry_price=50000.0,
            stop_loss=49750.0,
            take_profit=50500.0,
            position_size_usd=100.0,
            equity=1000.0,
            mode=TradeMode.PAPER.value,
            success=True,
            action=TradeAction.EXECUTED.value,
            reason="All risk checks passed",
        )
        fields.update(overrides)
        return Trade(**fields)

    return _make
