"""Tests for the risk gate: sizing, ordered admission checks and signal validation."""

from types import SimpleNamespace

import pytest

from paperdesk.models.trade import Signal
from paperdesk.services.errors import InvalidInput
from paperdesk.services.risk_engine import (
    MAX_SL_DISTANCE_PERCENT,
    RiskLimits,
    TradeContext,
    calculate_position_size,
    can_open_new_trade,
    risk_reward_ratio,
    sl_distance_percent,
    validate_trade_signal,
)


# ---------------------------------------------------------------------------
# 1. Sizing helpers
# ---------------------------------------------------------------------------

class TestPositionSize:
    def test_size_from_equity_and_stop_distance(self):
        size = calculate_position_size(equity=1000, risk_percent=1, entry_price=50000, stop_loss_price=49700)
        assert size == pytest.approx(1666.6667, rel=1e-6)

    def test_short_stop_above_entry(self):
        size = calculate_position_size(equity=100, risk_percent=1, entry_price=50000, stop_loss_price=50150)
        assert size == pytest.approx(333.333, rel=1e-4)

    @pytest.mark.parametrize(
        "kwargs",
        [
            dict(equity=0, risk_percent=1, entry_price=50000, stop_loss_price=49700),
            dict(equity=1000, risk_percent=-1, entry_price=50000, stop_loss_price=49700),
            dict(equity=1000, risk_percent=1, entry_price=0, stop_loss_price=49700),
            dict(equity=1000, risk_percent=1, entry_price=50000, stop_loss_price=-5),
        ],
    )
    def test_non_positive_inputs_raise(self, kwargs):
        with pytest.raises(InvalidInput):
            calculate_position_size(**kwargs)

    def test_stop_equal_to_entry_raises(self):
        with pytest.raises(InvalidInput, match="cannot equal"):
            calculate_position_size(equity=1000, risk_percent=1, entry_price=50000, stop_loss_price=50000)

    def test_sl_distance_at_limit_is_exact(self):
        assert sl_distance_percent(50000, 49700) == MAX_SL_DISTANCE_PERCENT

    def test_risk_reward_without_target(self):
        assert risk_reward_ratio(50000, 49750, None) is None

    def test_risk_reward_ratio(self):
        assert risk_reward_ratio(50000, 49850, 50500) == pytest.approx(3.3333, rel=1e-4)


# ---------------------------------------------------------------------------
# 2. Admission gates
# ---------------------------------------------------------------------------

class TestCanOpenNewTrade:
    def test_allowed_at_max_stop_distance(self):
        decision = can_open_new_trade(
            TradeContext(equity=1000, entry_price=50000, stop_loss_price=49700, take_profit_price=50600)
        )
        assert decision.allowed is True
        assert decision.reason == "All risk checks passed"
        assert decision.position_size_usd == 1666.67
        assert decision.sl_distance_percent == 0.6
        assert decision.risk_reward == pytest.approx(2.0)

    def test_small_account_tight_stop(self):
        decision = can_open_new_trade(
            TradeContext(equity=100, entry_price=50000, stop_loss_price=49850, take_profit_price=50500)
        )
        assert decision.allowed is True
        assert decision.position_size_usd == 333.33
        assert decision.sl_distance_percent == 0.3
        assert decision.risk_reward == pytest.approx(3.3333, rel=1e-4)

    def test_wide_stop_rejected(self):
        decision = can_open_new_trade(
            TradeContext(equity=1000, entry_price=50000, stop_loss_price=49000, take_profit_price=53000)
        )
        assert decision.allowed is False
        assert decision.reason == "Stop loss distance too large: 2.00% (max: 0.6%)"
        assert decision.sl_distance_percent == 2.0
        assert decision.position_size_usd is None

    def test_trade_count_limit(self):
        decision = can_open_new_trade(
            TradeContext(equity=1000, entry_price=50000, stop_loss_price=49750, trades_today=5)
        )
        assert decision.allowed is False
        assert decision.reason == "Max trades per day reached (5/5)"

    def test_trade_count_checked_before_stop_distance(self):
        decision = can_open_new_trade(
            TradeContext(equity=1000, entry_price=50000, stop_loss_price=49000, trades_today=5)
        )
        assert decision.reason.startswith("Max trades per day reached")

    def test_daily_loss_limit_reached(self):
        decision = can_open_new_trade(
            TradeContext(equity=1000, entry_price=50000, stop_loss_price=49750, current_daily_pnl=-30)
        )
        assert decision.allowed is False
        assert decision.reason.startswith("Daily loss limit exceeded")

    def test_daily_loss_just_under_limit(self):
        decision = can_open_new_trade(
            TradeContext(equity=1000, entry_price=50000, stop_loss_price=49750, current_daily_pnl=-29.99)
        )
        assert decision.allowed is True

    def test_low_risk_reward_rejected(self):
        decision = can_open_new_trade(
            TradeContext(equity=1000, entry_price=50000, stop_loss_price=49750, take_profit_price=50400)
        )
        assert decision.allowed is False
        assert decision.reason == "Risk:Reward ratio too low: 1:1.60 (min: 1:2.0)"
        assert decision.risk_reward == pytest.approx(1.6)

    def test_no_target_skips_risk_reward(self):
        decision = can_open_new_trade(TradeContext(equity=1000, entry_price=50000, stop_loss_price=49750))
        assert decision.allowed is True
        assert decision.risk_reward is None
        assert decision.position_size_usd == 2000.0

    def test_position_below_minimum(self):
        decision = can_open_new_trade(TradeContext(equity=1, entry_price=50000, stop_loss_price=49750))
        assert decision.allowed is False
        assert decision.reason == "Calculated position size too small: $2.00 (min: $10)"
        assert decision.position_size_usd == 2.0

    def test_minimum_size_boundary_accepted(self):
        decision = can_open_new_trade(TradeContext(equity=5, entry_price=50000, stop_loss_price=49750))
        assert decision.allowed is True
        assert decision.position_size_usd == 10.0

    def test_custom_limits(self):
        limits = RiskLimits(max_risk_percent=0.5, max_trades_per_day=2)
        decision = can_open_new_trade(
            TradeContext(equity=1000, entry_price=50000, stop_loss_price=49750, trades_today=1),
            limits,
        )
        assert decision.allowed is True
        assert decision.position_size_usd == 1000.0

    def test_stop_on_wrong_side_for_direction(self):
        decision = can_open_new_trade(
            TradeContext(equity=1000, entry_price=50000, stop_loss_price=50200, signal=Signal.LONG)
        )
        assert decision.allowed is False
        assert decision.reason == "For LONG: stop loss must be below entry price"

    def test_short_with_stop_above_entry(self):
        decision = can_open_new_trade(
            TradeContext(
                equity=1000,
                entry_price=50000,
                stop_loss_price=50250,
                take_profit_price=49500,
                signal=Signal.SHORT,
            )
        )
        assert decision.allowed is True
        assert decision.risk_reward == pytest.approx(2.0)

    @pytest.mark.parametrize(
        "equity,entry,stop",
        [(0, 50000, 49750), (1000, -1, 49750), (1000, 50000, 0)],
    )
    def test_invalid_inputs_raise(self, equity, entry, stop):
        with pytest.raises(InvalidInput):
            can_open_new_trade(TradeContext(equity=equity, entry_price=entry, stop_loss_price=stop))

    def test_to_dict_keys(self):
        decision = can_open_new_trade(TradeContext(equity=1000, entry_price=50000, stop_loss_price=49750))
        assert set(decision.to_dict()) == {
            "allowed", "reason", "position_size_usd", "sl_distance_percent", "risk_reward",
        }


# ---------------------------------------------------------------------------
# 3. Signal validation
# ---------------------------------------------------------------------------

def _signal(**overrides):
    fields = dict(signal="LONG", symbol="BTCUSD", entry_price=50000.0, sl_price=49750.0, tp_price=50500.0)
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestValidateTradeSignal:
    def test_valid_long(self):
        assert validate_trade_signal(_signal()).valid is True

    def test_valid_short_lowercase(self):
        result = validate_trade_signal(_signal(signal="short", sl_price=50250.0, tp_price=49500.0))
        assert result.valid is True

    def test_none(self):
        result = validate_trade_signal(None)
        assert result.valid is False
        assert result.reason == "No signal provided"

    def test_bad_direction(self):
        assert validate_trade_signal(_signal(signal="FLAT")).reason == "Invalid signal: must be LONG or SHORT"

    def test_missing_symbol(self):
        assert validate_trade_signal(_signal(symbol="")).reason == "Missing symbol"

    def test_long_stop_above_entry(self):
        result = validate_trade_signal(_signal(sl_price=50100.0))
        assert result.reason == "For LONG: stop loss must be below entry price"

    def test_short_target_above_entry(self):
        result = validate_trade_signal(_signal(signal="SHORT", sl_price=50250.0, tp_price=50500.0))
        assert result.reason == "For SHORT: take profit must be below entry price"

    def test_target_optional(self):
        assert validate_trade_signal(_signal(tp_price=None)).valid is True
