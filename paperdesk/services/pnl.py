"""P&L derivation and trade statistics.

P&L only exists for settled trades. An open trade has no P&L, and the stop or
target price is never used in place of a missing exit price.
"""

from paperdesk.models.trade import ExitType, Signal, Trade, TradeMode


def calculate_pnl(trade: Trade) -> float | None:
    """Realised P&L in USD for a closed trade, None otherwise.

    A closed trade with no position size has a P&L of 0.0.

    LONG:  (exit - entry) / entry * position_size_usd
    SHORT: (entry - exit) / entry * position_size_usd
    """
    if not trade.is_admitted:
        return None
    if not trade.entry_price or trade.entry_price <= 0:
        return None
    if trade.exit_price is None or trade.exit_price <= 0:
        return None

    change = (trade.exit_price - trade.entry_price) / trade.entry_price
    if trade.signal == Signal.SHORT.value:
        change = -change
    elif trade.signal != Signal.LONG.value:
        return None

    if not trade.position_size_usd:
        return 0.0
    return round(change * trade.position_size_usd, 2)


def summarize_trades(trades: list[Trade]) -> dict:
    """Counts by mode/direction/admission plus settled win rate and total P&L."""
    total = len(trades)
    admitted = [t for t in trades if t.is_admitted]
    closed = [t for t in admitted if t.is_closed]
    wins = [t for t in closed if t.exit_type == ExitType.TAKE_PROFIT.value]
    losses = [t for t in closed if t.exit_type == ExitType.STOP_LOSS.value]
    pnls = [p for p in (calculate_pnl(t) for t in closed) if p is not None]

    return {
        "total": total,
        "paper": sum(1 for t in trades if t.mode == TradeMode.PAPER.value),
        "live": sum(1 for t in trades if t.mode == TradeMode.LIVE.value),
        "long": sum(1 for t in trades if t.signal == Signal.LONG.value),
        "short": sum(1 for t in trades if t.signal == Signal.SHORT.value),
        "successful": len(admitted),
        "rejected": total - len(admitted),
        "success_rate": round(len(admitted) / total * 100, 1) if total else 0.0,
        "open": len(admitted) - len(closed),
        "closed": len(closed),
        "wins": len(wins),
        "losses": len(losses),
        "win_rate": round(len(wins) / len(closed) * 100, 1) if closed else 0.0,
        "total_pnl": round(sum(pnls), 2),
    }
