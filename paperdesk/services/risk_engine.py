"""Stateless risk gating for new trades.

All functions are pure computation with no I/O.
Thresholds that the strategy fixes (stop distance, risk:reward) are module
constants; everything else comes in through RiskLimits.
"""

from dataclasses import dataclass
from typing import Any

from paperdesk.models.trade import Signal
from paperdesk.services.errors import InvalidInput

MAX_SL_DISTANCE_PERCENT = 0.6
MIN_RISK_REWARD = 2.0


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RiskLimits:
    """Configurable limits. Defaults mirror the service settings."""
    max_risk_percent: float = 1.0
    max_daily_loss_percent: float = 3.0
    max_trades_per_day: int = 5
    min_position_size_usd: float = 10.0

    @classmethod
    def from_settings(cls, settings) -> "RiskLimits":
        return cls(
            max_risk_percent=settings.max_risk_percent,
            max_daily_loss_percent=settings.max_daily_loss_percent,
            max_trades_per_day=settings.max_trades_per_day,
            min_position_size_usd=settings.min_position_size_usd,
        )


@dataclass(frozen=True)
class TradeContext:
    """Inputs for one admission decision."""
    equity: float
    entry_price: float
    stop_loss_price: float
    take_profit_price: float | None = None
    current_daily_pnl: float = 0.0
    trades_today: int = 0
    signal: Signal | None = None


@dataclass
class RiskDecision:
    allowed: bool
    reason: str
    position_size_usd: float | None = None
    sl_distance_percent: float | None = None
    risk_reward: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "position_size_usd": self.position_size_usd,
            "sl_distance_percent": self.sl_distance_percent,
            "risk_reward": self.risk_reward,
        }


@dataclass
class SignalValidation:
    valid: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Core computation helpers
# ---------------------------------------------------------------------------

def _is_positive(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def sl_distance_percent(entry_price: float, stop_loss_price: float) -> float:
    """Distance between entry and stop as a percentage of entry."""
    return abs(entry_price - stop_loss_price) * 100 / entry_price


def risk_reward_ratio(
    entry_price: float,
    stop_loss_price: float,
    take_profit_price: float | None,
) -> float | None:
    """Reward distance over risk distance. None without a target or with zero risk."""
    if not take_profit_price:
        return None
    risk = abs(entry_price - stop_loss_price)
    if risk == 0:
        return None
    return abs(take_profit_price - entry_price) / risk


def calculate_position_size(
    equity: float,
    risk_percent: float,
    entry_price: float,
    stop_loss_price: float,
) -> float:
    """Position size in USD that loses `risk_percent` of equity at the stop.

    position_size_usd = equity * risk_percent / sl_distance_percent

    Raises:
        InvalidInput: non-positive arguments, or stop equal to entry.
    """
    if not _is_positive(equity):
        raise InvalidInput("Equity must be a positive number")
    if not _is_positive(risk_percent):
        raise InvalidInput("Risk percentage must be positive")
    if not _is_positive(entry_price):
        raise InvalidInput("Entry price must be positive")
    if not _is_positive(stop_loss_price):
        raise InvalidInput("Stop loss price must be positive")

    distance = sl_distance_percent(entry_price, stop_loss_price)
    if distance == 0:
        raise InvalidInput("Stop loss price cannot equal entry price")

    return max(0.0, equity * risk_percent / distance)


# ---------------------------------------------------------------------------
# Main gate functions
# ---------------------------------------------------------------------------

def can_open_new_trade(context: TradeContext, limits: RiskLimits | None = None) -> RiskDecision:
    """Run the admission gates in order and stop at the first failure.

    Order: input validity, stop side (when the direction is known), trades
    per day, daily loss, stop distance, risk:reward, minimum size. The order
    decides which reason is reported when several rules are violated.

    Raises:
        InvalidInput: equity, entry or stop is not positive.
    """
    limits = limits or RiskLimits()

    if not _is_positive(context.equity):
        raise InvalidInput("Invalid equity: must be positive")
    if not _is_positive(context.entry_price):
        raise InvalidInput("Invalid entry price: must be positive")
    if not _is_positive(context.stop_loss_price):
        raise InvalidInput("Invalid stop loss price: must be positive")

    entry = context.entry_price
    stop = context.stop_loss_price
    target = context.take_profit_price

    if context.signal == Signal.LONG and stop >= entry:
        return RiskDecision(False, "For LONG: stop loss must be below entry price")
    if context.signal == Signal.SHORT and stop <= entry:
        return RiskDecision(False, "For SHORT: stop loss must be above entry price")

    if context.trades_today >= limits.max_trades_per_day:
        return RiskDecision(
            False,
            f"Max trades per day reached ({context.trades_today}/{limits.max_trades_per_day})",
        )

    max_daily_loss = context.equity * limits.max_daily_loss_percent / 100
    if context.current_daily_pnl <= -max_daily_loss:
        return RiskDecision(
            False,
            f"Daily loss limit exceeded: {context.current_daily_pnl:.2f} USD "
            f"(limit: {-max_daily_loss:.2f} USD)",
        )

    distance = sl_distance_percent(entry, stop)
    if distance > MAX_SL_DISTANCE_PERCENT:
        return RiskDecision(
            False,
            f"Stop loss distance too large: {distance:.2f}% (max: {MAX_SL_DISTANCE_PERCENT}%)",
            sl_distance_percent=round(distance, 2),
        )

    rr = risk_reward_ratio(entry, stop, target)
    if rr is not None and rr < MIN_RISK_REWARD:
        return RiskDecision(
            False,
            f"Risk:Reward ratio too low: 1:{rr:.2f} (min: 1:{MIN_RISK_REWARD})",
            sl_distance_percent=round(distance, 2),
            risk_reward=rr,
        )

    position_size = calculate_position_size(
        equity=context.equity,
        risk_percent=limits.max_risk_percent,
        entry_price=entry,
        stop_loss_price=stop,
    )
    if position_size < limits.min_position_size_usd:
        return RiskDecision(
            False,
            f"Calculated position size too small: ${position_size:.2f} "
            f"(min: ${limits.min_position_size_usd:.0f})",
            position_size_usd=round(position_size, 2),
            sl_distance_percent=round(distance, 2),
            risk_reward=rr,
        )

    return RiskDecision(
        allowed=True,
        reason="All risk checks passed",
        position_size_usd=round(position_size, 2),
        sl_distance_percent=round(distance, 2),
        risk_reward=rr,
    )


def validate_trade_signal(signal) -> SignalValidation:
    """Structural check of an incoming signal before any risk evaluation.

    `signal` is any object exposing signal, symbol, entry_price, sl_price and
    tp_price attributes (the webhook payload schema), or None.
    """
    if signal is None:
        return SignalValidation(False, "No signal provided")

    direction = (getattr(signal, "signal", None) or "").strip().upper()
    if direction not in (Signal.LONG.value, Signal.SHORT.value):
        return SignalValidation(False, "Invalid signal: must be LONG or SHORT")

    if not getattr(signal, "symbol", None):
        return SignalValidation(False, "Missing symbol")

    entry = getattr(signal, "entry_price", None)
    stop = getattr(signal, "sl_price", None)
    target = getattr(signal, "tp_price", None)

    if not _is_positive(entry):
        return SignalValidation(False, "Invalid entry_price: must be positive")
    if not _is_positive(stop):
        return SignalValidation(False, "Invalid sl_price: must be positive")
    if target is not None and not _is_positive(target):
        return SignalValidation(False, "Invalid tp_price: must be positive")

    is_long = direction == Signal.LONG.value
    if is_long and stop >= entry:
        return SignalValidation(False, "For LONG: stop loss must be below entry price")
    if not is_long and stop <= entry:
        return SignalValidation(False, "For SHORT: stop loss must be above entry price")

    if target is not None:
        if is_long and target <= entry:
            return SignalValidation(False, "For LONG: take profit must be above entry price")
        if not is_long and target >= entry:
            return SignalValidation(False, "For SHORT: take profit must be below entry price")

    return SignalValidation(True)
