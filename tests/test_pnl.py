"""Tests for P&L derivation and journal statistics."""

from datetime import timedelta

import pytest

from conftest import ENTRY_TIME
from paperdesk.models.trade import ExitType, TradeAction, TradeMode
from paperdesk.services.pnl import calculate_pnl, summarize_trades


def _closed(make_trade, exit_price, exit_type=ExitType.TAKE_PROFIT, **overrides):
    return make_trade(
        exit_type=exit_type.value,
        exit_price=exit_price,
        exit_time=ENTRY_TIME + timedelta(minutes=10),
        validated=True,
        validated_by="candles:deribit_chart",
        **overrides,
    )


class TestCalculatePnl:
    def test_long_win(self, make_trade):
        assert calculate_pnl(_closed(make_trade, 50500.0)) == 1.0

    def test_long_loss(self, make_trade):
        assert calculate_pnl(_closed(make_trade, 49750.0, ExitType.STOP_LOSS)) == -0.5

    def test_short_win(self, make_trade):
        trade = _closed(make_trade, 49500.0, signal="SHORT", stop_loss=50250.0, take_profit=49500.0)
        assert calculate_pnl(trade) == 1.0

    def test_short_loss(self, make_trade):
        trade = _closed(make_trade, 50250.0, ExitType.STOP_LOSS, signal="SHORT", stop_loss=50250.0)
        assert calculate_pnl(trade) == -0.5

    def test_rounded_to_cents(self, make_trade):
        trade = _closed(make_trade, 50333.0, position_size_usd=1666.67)
        assert calculate_pnl(trade) == pytest.approx(11.1)

    def test_open_trade_has_no_pnl(self, make_trade):
        assert calculate_pnl(make_trade()) is None

    def test_rejected_trade_has_no_pnl(self, make_trade):
        trade = _closed(make_trade, 50500.0, success=False, action=TradeAction.REJECTED.value)
        assert calculate_pnl(trade) is None

    def test_zero_size_closed_trade_is_zero(self, make_trade):
        assert calculate_pnl(_closed(make_trade, 50500.0, position_size_usd=0.0)) == 0.0

    def test_zero_size_open_trade_has_no_pnl(self, make_trade):
        assert calculate_pnl(make_trade(position_size_usd=0.0)) is None


def test_summarize_trades(make_trade):
    trades = [
        _closed(make_trade, 50500.0),
        _closed(make_trade, 49750.0, ExitType.STOP_LOSS),
        _closed(make_trade, 49500.0, signal="SHORT", stop_loss=50250.0, take_profit=49500.0),
        make_trade(),
        make_trade(success=False, action=TradeAction.REJECTED.value, position_size_usd=0.0),
        make_trade(mode=TradeMode.LIVE.value, success=False, action=TradeAction.REJECTED.value),
    ]

    stats = summarize_trades(trades)

    assert stats["total"] == 6
    assert stats["paper"] == 5
    assert stats["live"] == 1
    assert stats["long"] == 5
    assert stats["short"] == 1
    assert stats["successful"] == 4
    assert stats["rejected"] == 2
    assert stats["success_rate"] == 66.7
    assert stats["open"] == 1
    assert stats["closed"] == 3
    assert stats["wins"] == 2
    assert stats["losses"] == 1
    assert stats["win_rate"] == 66.7
    assert stats["total_pnl"] == 1.5


def test_summarize_empty():
    stats = summarize_trades([])
    assert stats["total"] == 0
    assert stats["win_rate"] == 0.0
    assert stats["total_pnl"] == 0
