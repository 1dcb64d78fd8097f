"""Historical candle lookup across several price-data sources.

Sources are tried in a fixed preference order (fastest/most accurate first).
A source that errors, times out or returns nothing usable is logged and
skipped; the first non-empty, well-formed result wins. When every source
fails the result is an empty list, which callers treat as "outcome unknown".

Sources:
- deribit_chart   Deribit TradingView chart endpoint (native OHLC)
- deribit_trades  Deribit history trades, bucketed into candles
- hyperliquid     Hyperliquid candles_snapshot
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime

import numpy as np
import pandas as pd

from paperdesk.services.deribit_client import DeribitClient
from paperdesk.services.errors import ProviderUnavailable
from paperdesk.utils.constants import INTERVAL_SECONDS, normalize_resolution
from paperdesk.utils.time import ensure_utc, from_ms, to_ms

logger = logging.getLogger(__name__)

# Deribit chart resolutions are minutes, or "1D"
DERIBIT_CHART_RESOLUTIONS: dict[str, str] = {
    "1m": "1",
    "5m": "5",
    "15m": "15",
    "30m": "30",
    "1h": "60",
    "2h": "120",
    "1d": "1D",
}


@dataclass(frozen=True)
class Candle:
    t: datetime
    o: float
    h: float
    l: float  # noqa: E741
    c: float
    v: float = 0.0


@dataclass
class CandleResult:
    """Candles plus the name of the source that produced them (None when all failed)."""
    source: str | None
    candles: list[Candle]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_deribit_instrument(instrument: str) -> str:
    return instrument.upper()


def _to_hl_ticker(instrument: str) -> str:
    """Convert an instrument name to Hyperliquid ticker format.

    "BTC-PERPETUAL" -> "BTC". Hyperliquid uses 'kX' instead of '1000X' (e.g. kBONK).
    """
    asset = instrument.upper().split("-")[0]
    for suffix in ("USDT", "USDC", "USD"):
        if asset.endswith(suffix) and len(asset) > len(suffix):
            asset = asset[: -len(suffix)]
            break
    if asset.startswith("1000"):
        return "k" + asset[4:]
    return asset


def sanitize_candles(candles: list[Candle]) -> list[Candle]:
    """Drop malformed candles, order by time and keep one candle per timestamp."""
    by_time: dict[datetime, Candle] = {}
    for candle in candles:
        values = np.array([candle.o, candle.h, candle.l, candle.c], dtype=float)
        if not np.all(np.isfinite(values)) or np.any(values <= 0):
            continue
        if candle.h < candle.l or not math.isfinite(candle.v) or candle.v < 0:
            continue
        by_time[candle.t] = candle
    return [by_time[t] for t in sorted(by_time)]


def build_candles_from_trades(trades: list[dict], interval_seconds: int) -> list[Candle]:
    """Bucket raw trade ticks into fixed-width OHLCV candles.

    open = first tick price in the bucket, high/low = max/min, close = last
    tick price, volume = sum of absolute tick sizes. Each tick dict carries
    `timestamp` (ms or s), `price` and `amount` (or `size`).
    """
    records = []
    for trade in trades:
        try:
            ts = int(trade.get("timestamp") or trade.get("time") or 0)
            price = float(trade.get("price"))
            amount = abs(float(trade.get("amount", trade.get("size", 0)) or 0))
        except (TypeError, ValueError):
            continue
        if ts <= 0 or not math.isfinite(price) or price <= 0:
            continue
        ts_ms = ts if ts >= 1_000_000_000_000 else ts * 1000
        records.append({"ts": ts_ms, "price": price, "amount": amount})

    if not records:
        return []

    # Stable sort keeps the feed order for ticks sharing a millisecond
    df = pd.DataFrame(records).sort_values("ts", kind="stable")
    interval_ms = interval_seconds * 1000
    df["bucket"] = np.floor_divide(df["ts"].to_numpy(), interval_ms) * interval_ms

    grouped = df.groupby("bucket", sort=True).agg(
        o=("price", "first"),
        h=("price", "max"),
        l=("price", "min"),
        c=("price", "last"),
        v=("amount", "sum"),
    )
    return [
        Candle(t=from_ms(int(row.Index)), o=float(row.o), h=float(row.h), l=float(row.l), c=float(row.c), v=float(row.v))
        for row in grouped.itertuples()
    ]


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class CandleSource:
    """One price-data source. Subclasses adapt their native shape into Candles."""

    name = "base"

    async def fetch_candles(
        self,
        instrument: str,
        start: datetime,
        end: datetime,
        resolution: str,
    ) -> list[Candle]:
        raise NotImplementedError


class DeribitChartSource(CandleSource):
    """Native OHLC from Deribit's TradingView chart endpoint."""

    name = "deribit_chart"

    def __init__(self, client: DeribitClient):
        self.client = client

    async def fetch_candles(self, instrument, start, end, resolution):
        deribit_resolution = DERIBIT_CHART_RESOLUTIONS.get(resolution)
        if deribit_resolution is None:
            raise ProviderUnavailable(self.name, f"resolution {resolution} not supported")

        try:
            data = await self.client.get_tradingview_chart_data(
                _to_deribit_instrument(instrument), to_ms(start), to_ms(end), deribit_resolution
            )
        except Exception as e:
            raise ProviderUnavailable(self.name, str(e)) from e

        ticks = data.get("ticks") or []
        if data.get("status") == "no_data" or not ticks:
            return []

        try:
            return [
                Candle(
                    t=from_ms(ticks[i]),
                    o=float(data["open"][i]),
                    h=float(data["high"][i]),
                    l=float(data["low"][i]),
                    c=float(data["close"][i]),
                    v=float((data.get("volume") or [0] * len(ticks))[i] or 0),
                )
                for i in range(len(ticks))
            ]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderUnavailable(self.name, f"malformed chart data: {e}") from e


class DeribitTradesSource(CandleSource):
    """Candles rebuilt from Deribit's historical trade ticks."""

    name = "deribit_trades"

    def __init__(self, client: DeribitClient, page_size: int = 1000, max_pages: int = 5):
        self.client = client
        self.page_size = page_size
        self.max_pages = max_pages

    async def fetch_candles(self, instrument, start, end, resolution):
        start_ms, end_ms = to_ms(start), to_ms(end)
        ticks: list[dict] = []
        seen: set = set()

        try:
            for _ in range(self.max_pages):
                page = await self.client.get_trades_by_time(
                    _to_deribit_instrument(instrument), start_ms, end_ms, count=self.page_size
                )
                batch = page.get("trades") or []
                for trade in batch:
                    key = trade.get("trade_id") or (trade.get("timestamp"), trade.get("trade_seq"))
                    if key in seen:
                        continue
                    seen.add(key)
                    ticks.append(trade)
                if not page.get("has_more") or not batch:
                    break
                # Next page starts at the last timestamp seen; duplicates are skipped above
                start_ms = max(int(t.get("timestamp", start_ms)) for t in batch)
        except Exception as e:
            raise ProviderUnavailable(self.name, str(e)) from e

        logger.debug(f"[{self.name}] {len(ticks)} ticks for {instrument}")
        return build_candles_from_trades(ticks, INTERVAL_SECONDS[resolution])


class HyperliquidSource(CandleSource):
    """Candles from Hyperliquid (public data, no auth)."""

    name = "hyperliquid"

    def __init__(self, info=None):
        self._info = info

    def _get_info(self):
        if self._info is None:
            from hyperliquid.info import Info

            self._info = Info(skip_ws=True)
        return self._info

    async def fetch_candles(self, instrument, start, end, resolution):
        ticker = _to_hl_ticker(instrument)
        try:
            info = self._get_info()
            # candles_snapshot is synchronous
            raw = await asyncio.get_event_loop().run_in_executor(
                None, info.candles_snapshot, ticker, resolution, to_ms(start), to_ms(end)
            )
        except Exception as e:
            raise ProviderUnavailable(self.name, f"{ticker}: {e}") from e
        return _parse_hl_candles(raw)


def _parse_hl_candles(candles: list[dict]) -> list[Candle]:
    """Parse a Hyperliquid candles_snapshot response.

    Each candle dict: {"t": 1772092800000, "s": "SOL", "i": "8h",
                       "o": "87.212", "c": "87.498", "h": "87.811", "l": "87.212", "v": "12.3", ...}
    """
    if not candles:
        return []

    df = pd.DataFrame(candles)
    required = {"t", "o", "h", "l", "c"}
    if not required.issubset(df.columns):
        raise ProviderUnavailable("hyperliquid", f"missing candle fields: {sorted(required - set(df.columns))}")

    if "v" not in df.columns:
        df["v"] = 0.0
    for column in ("o", "h", "l", "c", "v"):
        df[column] = pd.to_numeric(df[column], errors="coerce")
    df = df.dropna(subset=["t", "o", "h", "l", "c"]).sort_values("t")
    df["v"] = df["v"].fillna(0.0)

    return [
        Candle(t=from_ms(int(row.t)), o=float(row.o), h=float(row.h), l=float(row.l), c=float(row.c), v=float(row.v))
        for row in df.itertuples(index=False)
    ]


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------

class PriceDataProvider:
    """Ordered list of CandleSources, iterated until one returns data."""

    def __init__(self, sources: list[CandleSource], timeout: float = 10.0):
        self.sources = list(sources)
        self.timeout = timeout

    async def fetch_with_source(
        self,
        instrument: str,
        start: datetime,
        end: datetime,
        resolution: str = "1m",
    ) -> CandleResult:
        resolution = normalize_resolution(resolution)
        start, end = ensure_utc(start), ensure_utc(end)

        for source in self.sources:
            try:
                raw = await asyncio.wait_for(
                    source.fetch_candles(instrument, start, end, resolution),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(f"[{source.name}] timed out after {self.timeout}s for {instrument}")
                continue
            except Exception as e:
                logger.warning(f"[{source.name}] unavailable for {instrument}: {e}")
                continue

            candles = sanitize_candles(raw or [])
            if candles:
                logger.info(f"[{source.name}] {len(candles)} {resolution} candles for {instrument}")
                return CandleResult(source=source.name, candles=candles)
            logger.warning(f"[{source.name}] returned no usable candles for {instrument}")

        logger.warning(
            f"No price data for {instrument} between {start.isoformat()} and {end.isoformat()} "
            f"from any of {[s.name for s in self.sources]}"
        )
        return CandleResult(source=None, candles=[])

    async def get_historical_candles(
        self,
        instrument: str,
        start: datetime,
        end: datetime,
        resolution: str = "1m",
    ) -> list[Candle]:
        result = await self.fetch_with_source(instrument, start, end, resolution)
        return result.candles


def build_sources(names: list[str], deribit: DeribitClient, trades_max_pages: int = 5) -> list[CandleSource]:
    """Instantiate sources by name, preserving the configured order."""
    factories = {
        DeribitChartSource.name: lambda: DeribitChartSource(deribit),
        DeribitTradesSource.name: lambda: DeribitTradesSource(deribit, max_pages=trades_max_pages),
        HyperliquidSource.name: lambda: HyperliquidSource(),
    }
    sources = []
    for name in names:
        factory = factories.get(name)
        if factory is None:
            logger.warning(f"Unknown price source '{name}' ignored")
            continue
        sources.append(factory())
    return sources
