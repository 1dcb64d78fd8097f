"""Trade admission pipeline.

For each incoming signal:
signal validation → account state → risk gates → advisory check → persist.

Every signal that reaches the executor is recorded, admitted or not, so the
journal doubles as an audit log of rejections. Paper mode records admitted
trades as executed. Live order placement is not supported; in live mode the
pipeline runs in full and records the result as rejected.
"""

import logging
from dataclasses import dataclass
from typing import Any

from paperdesk.models.trade import Signal, Trade, TradeAction, TradeMode
from paperdesk.services.account import AccountState, AccountStateProvider
from paperdesk.services.errors import InvalidInput, ProviderUnavailable
from paperdesk.services.risk_engine import (
    RiskLimits,
    TradeContext,
    can_open_new_trade,
    validate_trade_signal,
)
from paperdesk.services.trade_store import TradeStore
from paperdesk.utils.constants import normalize_instrument

logger = logging.getLogger(__name__)


def _direction(payload) -> str | None:
    value = getattr(payload, "signal", None)
    return value.strip().upper() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Advisory check
# ---------------------------------------------------------------------------

@dataclass
class AdvisoryVerdict:
    enabled: bool
    allow_trade: bool = True
    reason: str = ""
    confidence: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "allow_trade": self.allow_trade,
            "reason": self.reason,
            "confidence": self.confidence,
        }


class TradeAdvisor:
    """Second-opinion check on an admitted trade proposal.

    Subclasses return an AdvisoryVerdict. A verdict with allow_trade=False
    rejects the trade; an exception lets it through.
    """

    async def evaluate(self, proposal: dict[str, Any]) -> AdvisoryVerdict:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------

@dataclass
class ExecutionResult:
    trade: Trade

    @property
    def success(self) -> bool:
        return self.trade.success

    def to_dict(self) -> dict[str, Any]:
        trade = self.trade
        result = {
            "status": "ok" if trade.success else "error",
            "trade_id": trade.id,
            "action": trade.action,
            "reason": trade.reason,
            "mode": trade.mode,
            "risk_check": trade.risk_check,
        }
        if trade.success:
            result["trade"] = {
                "instrument": trade.instrument,
                "side": "buy" if trade.signal == Signal.LONG.value else "sell",
                "price": trade.entry_price,
                "position_size_usd": trade.position_size_usd,
                "stop_loss": trade.stop_loss,
                "take_profit": trade.take_profit,
            }
        return result


class TradeExecutor:
    def __init__(
        self,
        store: TradeStore,
        account: AccountStateProvider,
        limits: RiskLimits | None = None,
        mode: str = TradeMode.PAPER.value,
        advisor: TradeAdvisor | None = None,
    ):
        self.store = store
        self.account = account
        self.limits = limits or RiskLimits()
        self.mode = TradeMode(mode.lower())
        self.advisor = advisor

    def _record(
        self,
        payload,
        admitted: bool,
        reason: str,
        position_size_usd: float = 0.0,
        equity: float | None = None,
        risk_check: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        trade = Trade(
            signal=_direction(payload),
            instrument=normalize_instrument(payload.symbol),
            entry_price=payload.entry_price,
            stop_loss=payload.sl_price,
            take_profit=payload.tp_price,
            position_size_usd=position_size_usd if admitted else 0.0,
            equity=equity,
            mode=self.mode.value,
            success=admitted,
            action=TradeAction.EXECUTED.value if admitted else TradeAction.REJECTED.value,
            reason=reason,
            risk_check=risk_check,
        )
        trade = self.store.create(trade)
        log = logger.info if admitted else logger.warning
        log(f"[{trade.id}] {trade.signal} {trade.instrument} @ {trade.entry_price} {trade.action}: {reason}")
        return ExecutionResult(trade=trade)

    async def _advise(self, payload, decision, state: AccountState) -> AdvisoryVerdict | None:
        if self.advisor is None:
            return None
        proposal = {
            "signal": _direction(payload),
            "symbol": payload.symbol,
            "entry_price": payload.entry_price,
            "stop_loss": payload.sl_price,
            "take_profit": payload.tp_price,
            "trend": getattr(payload, "trend", None) or "NEUTRAL",
            "position_size_usd": decision.position_size_usd,
            "equity": state.equity,
            "risk_check": decision.to_dict(),
        }
        try:
            return await self.advisor.evaluate(proposal)
        except Exception as e:
            logger.warning(f"Advisory check failed, trade allowed by default: {e}")
            return AdvisoryVerdict(
                enabled=True,
                allow_trade=True,
                reason=f"Advisory check failed: {e}. Trade allowed by default.",
            )

    async def execute(self, payload) -> ExecutionResult:
        """Evaluate one signal and persist the outcome.

        `payload` exposes signal, symbol, entry_price, sl_price, tp_price
        (see WebhookPayload), with signal/entry/stop already present.
        """
        validation = validate_trade_signal(payload)
        if not validation.valid:
            return self._record(payload, False, f"Signal validation failed: {validation.reason}")

        try:
            state = await self.account.get_state()
        except ProviderUnavailable as e:
            return self._record(payload, False, f"Failed to get account state: {e}")

        context = TradeContext(
            equity=state.equity,
            entry_price=payload.entry_price,
            stop_loss_price=payload.sl_price,
            take_profit_price=payload.tp_price,
            current_daily_pnl=state.daily_pnl,
            trades_today=state.trades_today,
            signal=Signal(_direction(payload)),
        )
        try:
            decision = can_open_new_trade(context, self.limits)
        except InvalidInput as e:
            return self._record(payload, False, str(e), equity=state.equity)

        risk_check = decision.to_dict()
        if not decision.allowed:
            return self._record(payload, False, decision.reason, equity=state.equity, risk_check=risk_check)

        verdict = await self._advise(payload, decision, state)
        if verdict is not None:
            risk_check["advisory"] = verdict.to_dict()
            if not verdict.allow_trade:
                return self._record(
                    payload,
                    False,
                    f"Advisory check rejected trade: {verdict.reason}",
                    equity=state.equity,
                    risk_check=risk_check,
                )

        if self.mode == TradeMode.LIVE:
            return self._record(
                payload,
                False,
                "Live order execution is not supported; risk checks passed",
                equity=state.equity,
                risk_check=risk_check,
            )

        return self._record(
            payload,
            True,
            decision.reason,
            position_size_usd=decision.position_size_usd,
            equity=state.equity,
            risk_check=risk_check,
        )
