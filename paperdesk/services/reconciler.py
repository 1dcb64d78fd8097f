"""Trade outcome reconciliation against historical candles.

Given a recorded trade, decide whether price action after entry reached the
take-profit or the stop-loss first, or whether the trade is still open.

Outcomes:
    pending      trade is younger than the minimum age; retry later
    win / loss   target / stop reached, settled from candle data
    open_profit  neither level reached, last close favourable (live status only)
    open_loss    neither level reached, last close unfavourable (live status only)
    unknown      missing inputs, no price data, deadline exceeded or any failure

Tie-break policy: when one candle's range spans both the target and the stop,
the take-profit is taken. Candles carry no intrabar path, so this is an
optimistic assumption; reversing it changes reported win rates.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from paperdesk.models.trade import ClosedExit, ExitType, Signal, Trade
from paperdesk.services.errors import NoDataAvailable, StaleTrade
from paperdesk.services.market_data import Candle, PriceDataProvider
from paperdesk.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    PENDING = "pending"
    WIN = "win"
    LOSS = "loss"
    OPEN_PROFIT = "open_profit"
    OPEN_LOSS = "open_loss"
    UNKNOWN = "unknown"


@dataclass
class ReconciliationResult:
    outcome: Outcome
    reason: str
    exit_price: float | None = None
    exit_time: datetime | None = None
    validated: bool = False
    candles_analyzed: int = 0
    current_price: float | None = None
    source: str | None = None

    @property
    def is_settled(self) -> bool:
        return self.validated and self.outcome in (Outcome.WIN, Outcome.LOSS)

    def to_exit(self) -> ClosedExit:
        """Exit group for a settled result."""
        if not self.is_settled:
            raise ValueError(f"Outcome {self.outcome.value} is not a settled exit")
        return ClosedExit(
            exit_type=ExitType.TAKE_PROFIT if self.outcome == Outcome.WIN else ExitType.STOP_LOSS,
            price=self.exit_price,
            time=self.exit_time,
            validated=True,
            validated_by=f"candles:{self.source}" if self.source else "candles",
        )

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "exit_price": self.exit_price,
            "exit_time": self.exit_time.isoformat() if self.exit_time else None,
            "validated": self.validated,
            "candles_analyzed": self.candles_analyzed,
            "current_price": self.current_price,
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Candle scan (pure)
# ---------------------------------------------------------------------------

def scan_candles(
    signal: str,
    entry_price: float,
    stop_loss: float | None,
    take_profit: float | None,
    entry_time: datetime,
    candles: list[Candle],
) -> ReconciliationResult:
    """Walk candles in time order from entry and stop at the first level hit.

    Per candle, the take-profit is checked before the stop-loss.
    """
    entry_time = ensure_utc(entry_time)
    is_long = signal == Signal.LONG.value
    if signal not in (Signal.LONG.value, Signal.SHORT.value):
        return ReconciliationResult(Outcome.UNKNOWN, f"Unsupported signal {signal!r}")

    scanned = 0
    last: Candle | None = None
    for candle in sorted(candles, key=lambda c: c.t):
        if candle.t < entry_time:
            continue
        scanned += 1
        last = candle
        when = candle.t.isoformat()

        if is_long:
            hit_target = take_profit is not None and candle.h >= take_profit
            hit_stop = stop_loss is not None and candle.l <= stop_loss
        else:
            hit_target = take_profit is not None and candle.l <= take_profit
            hit_stop = stop_loss is not None and candle.h >= stop_loss

        if hit_target:
            return ReconciliationResult(
                Outcome.WIN,
                f"Take profit hit at {when}",
                exit_price=take_profit,
                exit_time=candle.t,
                validated=True,
                candles_analyzed=scanned,
            )
        if hit_stop:
            return ReconciliationResult(
                Outcome.LOSS,
                f"Stop loss hit at {when}",
                exit_price=stop_loss,
                exit_time=candle.t,
                validated=True,
                candles_analyzed=scanned,
            )

    if last is None:
        return ReconciliationResult(Outcome.UNKNOWN, "No candles at or after entry time")

    favourable = last.c > entry_price if is_long else last.c < entry_price
    if favourable:
        return ReconciliationResult(
            Outcome.OPEN_PROFIT,
            "Trade still open, in profit but TP not hit",
            candles_analyzed=scanned,
            current_price=last.c,
        )
    return ReconciliationResult(
        Outcome.OPEN_LOSS,
        "Trade still open, in loss but SL not hit",
        candles_analyzed=scanned,
        current_price=last.c,
    )


def _settled_result(trade: Trade) -> ReconciliationResult:
    closed = trade.exit
    outcome = Outcome.WIN if closed.exit_type == ExitType.TAKE_PROFIT else Outcome.LOSS
    return ReconciliationResult(
        outcome,
        f"Already settled by {closed.validated_by or 'unknown'}",
        exit_price=closed.price,
        exit_time=closed.time,
        validated=closed.validated,
    )


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------

class OutcomeReconciler:
    def __init__(
        self,
        price_data: PriceDataProvider,
        min_age: timedelta = timedelta(seconds=60),
        window: timedelta = timedelta(hours=24),
        resolution: str = "1m",
        deadline: float | None = None,
    ):
        self.price_data = price_data
        self.min_age = min_age
        self.window = window
        self.resolution = resolution
        self.deadline = deadline

    async def reconcile(self, trade: Trade, now: datetime | None = None) -> ReconciliationResult:
        """Evaluate one trade. Never raises; failures come back as `unknown`."""
        if isinstance(trade.exit, ClosedExit):
            return _settled_result(trade)
        if not trade.is_admitted:
            return ReconciliationResult(Outcome.UNKNOWN, "Trade was rejected, never executed")
        if not trade.entry_price or trade.timestamp is None:
            return ReconciliationResult(Outcome.UNKNOWN, "Missing entry price or timestamp")

        try:
            if self.deadline:
                return await asyncio.wait_for(self._evaluate(trade, now), timeout=self.deadline)
            return await self._evaluate(trade, now)
        except StaleTrade as e:
            return ReconciliationResult(Outcome.PENDING, str(e))
        except NoDataAvailable as e:
            return ReconciliationResult(Outcome.UNKNOWN, str(e))
        except asyncio.TimeoutError:
            logger.warning(f"[{trade.id}] Reconciliation exceeded {self.deadline}s deadline")
            return ReconciliationResult(Outcome.UNKNOWN, f"Reconciliation exceeded {self.deadline}s deadline")
        except Exception as e:
            logger.error(f"[{trade.id}] Reconciliation failed: {e}", exc_info=True)
            return ReconciliationResult(Outcome.UNKNOWN, f"Error reconciling trade: {e}")

    async def _evaluate(self, trade: Trade, now: datetime | None) -> ReconciliationResult:
        now = ensure_utc(now or utcnow())
        entry_time = ensure_utc(trade.timestamp)

        if now - entry_time < self.min_age:
            raise StaleTrade("Trade too recent, waiting for historical data")

        end = min(entry_time + self.window, now)
        fetched = await self.price_data.fetch_with_source(
            trade.instrument, entry_time, end, self.resolution
        )
        if not fetched.candles:
            raise NoDataAvailable("No historical data available")

        result = scan_candles(
            signal=trade.signal,
            entry_price=trade.entry_price,
            stop_loss=trade.stop_loss,
            take_profit=trade.take_profit,
            entry_time=entry_time,
            candles=fetched.candles,
        )
        result.source = fetched.source
        logger.info(
            f"[{trade.id}] {result.outcome.value} after {result.candles_analyzed} candles "
            f"from {fetched.source}: {result.reason}"
        )
        return result
