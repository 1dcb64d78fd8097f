"""Post-hoc review of recorded trades.

analyze_trade() inspects a trade's parameters against the strategy rules and
produces issues (would have blocked execution), warnings and positives. When
a reconciliation result is available it overrides the parameter-based verdict.
"""

from dataclasses import dataclass, field
from typing import Any

from paperdesk.models.trade import Signal, Trade
from paperdesk.services.reconciler import Outcome, ReconciliationResult
from paperdesk.services.risk_engine import (
    MAX_SL_DISTANCE_PERCENT,
    MIN_RISK_REWARD,
    risk_reward_ratio,
    sl_distance_percent,
)


@dataclass
class TradeAnalysis:
    trade_id: str
    signal: str
    instrument: str
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    positives: list[str] = field(default_factory=list)
    would_have_succeeded: bool | None = None
    confidence: str = "low"  # low, medium, high
    reason: str = ""
    reconciliation: ReconciliationResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "signal": self.signal,
            "instrument": self.instrument,
            "issues": self.issues,
            "warnings": self.warnings,
            "positives": self.positives,
            "would_have_succeeded": self.would_have_succeeded,
            "confidence": self.confidence,
            "reason": self.reason,
            "reconciliation": self.reconciliation.to_dict() if self.reconciliation else None,
        }


def _check_stop(analysis: TradeAnalysis, trade: Trade, is_long: bool):
    entry, stop = trade.entry_price, trade.stop_loss
    if not entry or not stop:
        return
    side = "below" if is_long else "above"
    wrong_side = stop >= entry if is_long else stop <= entry
    if wrong_side:
        analysis.issues.append(
            f"{trade.signal} trade: stop loss ({stop}) should be {side.upper()} entry price ({entry})"
        )
        return

    distance = sl_distance_percent(entry, stop)
    if distance > MAX_SL_DISTANCE_PERCENT:
        analysis.warnings.append(
            f"Stop loss distance is {distance:.2f}%, which exceeds the "
            f"{MAX_SL_DISTANCE_PERCENT}% maximum"
        )
    else:
        analysis.positives.append(
            f"Stop loss is placed {distance:.2f}% {side} entry (within {MAX_SL_DISTANCE_PERCENT}% limit)"
        )


def _check_target(analysis: TradeAnalysis, trade: Trade, is_long: bool):
    entry, target = trade.entry_price, trade.take_profit
    if not entry or not target:
        return
    side = "above" if is_long else "below"
    wrong_side = target <= entry if is_long else target >= entry
    if wrong_side:
        analysis.issues.append(
            f"{trade.signal} trade: take profit ({target}) should be {side.upper()} entry price ({entry})"
        )
        return
    distance = abs(target - entry) / entry * 100
    analysis.positives.append(f"Take profit is placed {distance:.2f}% {side} entry")


def _check_risk_reward(analysis: TradeAnalysis, trade: Trade):
    rr = (trade.risk_check or {}).get("risk_reward")
    if rr is None and trade.entry_price and trade.stop_loss:
        rr = risk_reward_ratio(trade.entry_price, trade.stop_loss, trade.take_profit)
    if rr is None:
        return
    if rr < MIN_RISK_REWARD:
        analysis.warnings.append(
            f"Risk:Reward ratio is {rr:.2f}:1, below the minimum {MIN_RISK_REWARD:.0f}:1"
        )
    else:
        analysis.positives.append(
            f"Risk:Reward ratio is {rr:.2f}:1, meeting the minimum {MIN_RISK_REWARD:.0f}:1"
        )


def _check_advisory(analysis: TradeAnalysis, trade: Trade):
    verdict = (trade.risk_check or {}).get("advisory")
    if not verdict or not verdict.get("enabled"):
        return
    if not verdict.get("allow_trade", True):
        analysis.warnings.append(f"Advisory check rejected this trade: {verdict.get('reason') or 'no reason'}")
        return
    confidence = verdict.get("confidence")
    if confidence is None:
        return
    if confidence >= 0.7:
        analysis.positives.append(f"Advisory check approved with high confidence ({confidence * 100:.0f}%)")
        analysis.confidence = "high"
    elif confidence >= 0.4:
        analysis.positives.append(f"Advisory check approved with medium confidence ({confidence * 100:.0f}%)")
        analysis.confidence = "medium"
    else:
        analysis.warnings.append(f"Advisory check approved with low confidence ({confidence * 100:.0f}%)")
        analysis.confidence = "low"


def analyze_trade(
    trade: Trade,
    current_price: float | None = None,
    reconciliation: ReconciliationResult | None = None,
) -> TradeAnalysis:
    analysis = TradeAnalysis(trade_id=trade.id, signal=trade.signal, instrument=trade.instrument)

    if not trade.is_admitted:
        analysis.would_have_succeeded = False
        analysis.reason = "Trade was rejected, never executed"
        return analysis

    is_long = trade.signal == Signal.LONG.value

    if current_price and trade.entry_price:
        diff = abs(trade.entry_price - current_price) / current_price * 100
        if diff > 5:
            analysis.warnings.append(
                f"Entry price differs {diff:.2f}% from current market price ({current_price:.2f})"
            )
        elif diff < 0.1:
            analysis.positives.append(f"Entry price is within {diff:.2f}% of current market price")

    _check_stop(analysis, trade, is_long)
    _check_target(analysis, trade, is_long)
    _check_risk_reward(analysis, trade)

    if trade.position_size_usd:
        if trade.position_size_usd < 1:
            analysis.warnings.append(f"Position size is very small: ${trade.position_size_usd:.2f}")
        else:
            analysis.positives.append(f"Position size is ${trade.position_size_usd:.2f}")

    _check_advisory(analysis, trade)

    if analysis.issues:
        analysis.would_have_succeeded = False
        analysis.reason = f"Trade has {len(analysis.issues)} critical issue(s) that would prevent execution"
    elif analysis.positives and not analysis.warnings:
        analysis.would_have_succeeded = True
        analysis.confidence = "high"
        analysis.reason = "All checks passed"
    elif analysis.positives:
        analysis.would_have_succeeded = True
        analysis.confidence = "medium"
        analysis.reason = "Trade parameters are valid but have warnings"
    else:
        analysis.reason = "Insufficient data to assess the trade"

    if reconciliation is not None:
        _apply_reconciliation(analysis, reconciliation)
    return analysis


def _apply_reconciliation(analysis: TradeAnalysis, result: ReconciliationResult):
    analysis.reconciliation = result
    if result.outcome == Outcome.WIN and result.validated:
        analysis.would_have_succeeded = True
        analysis.confidence = "high"
        analysis.reason = f"Validated: {result.reason}"
    elif result.outcome == Outcome.LOSS and result.validated:
        analysis.would_have_succeeded = False
        analysis.confidence = "high"
        analysis.reason = f"Validated: {result.reason}"
    elif result.outcome == Outcome.OPEN_PROFIT:
        analysis.would_have_succeeded = True
        analysis.reason = result.reason
    elif result.outcome == Outcome.OPEN_LOSS:
        analysis.would_have_succeeded = None
        analysis.reason = result.reason


def summarize_analyses(analyses: list[TradeAnalysis]) -> dict:
    determined = [a for a in analyses if a.would_have_succeeded is not None]
    succeeded = sum(1 for a in determined if a.would_have_succeeded)
    return {
        "total": len(analyses),
        "analyzed": len(determined),
        "would_have_succeeded": succeeded,
        "would_have_failed": len(determined) - succeeded,
        "unknown": len(analyses) - len(determined),
        "high_confidence": sum(1 for a in analyses if a.confidence == "high"),
        "medium_confidence": sum(1 for a in analyses if a.confidence == "medium"),
        "low_confidence": sum(1 for a in analyses if a.confidence == "low"),
        "total_issues": sum(len(a.issues) for a in analyses),
        "total_warnings": sum(len(a.warnings) for a in analyses),
        "success_rate": round(succeeded / len(determined) * 100, 1) if determined else 0.0,
    }
