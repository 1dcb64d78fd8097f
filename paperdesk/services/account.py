"""Account state for risk calculations.

Equity comes from the Deribit account summary. Trade count and daily P&L come
from the trade store, counted from UTC midnight. In paper mode an unreachable
Deribit account falls back to a fixed mock equity.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from paperdesk.services.deribit_client import DeribitClient
from paperdesk.services.errors import ProviderUnavailable
from paperdesk.services.pnl import calculate_pnl
from paperdesk.services.trade_store import TradeStore
from paperdesk.utils.time import start_of_day, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountState:
    equity: float
    daily_pnl: float = 0.0
    trades_today: int = 0
    source: str = "deribit"  # "deribit" or "mock"

    def to_dict(self) -> dict:
        return {
            "equity": self.equity,
            "daily_pnl": self.daily_pnl,
            "trades_today": self.trades_today,
            "source": self.source,
        }


class AccountStateProvider:
    def __init__(
        self,
        deribit: DeribitClient,
        store: TradeStore,
        currency: str = "USDC",
        paper_mode: bool = True,
        mock_equity: float = 100.0,
    ):
        self.deribit = deribit
        self.store = store
        self.currency = currency
        self.paper_mode = paper_mode
        self.mock_equity = mock_equity

    async def _fetch_equity(self) -> float:
        summary = await self.deribit.get_account_summary(self.currency)
        equity = summary.get("equity") or summary.get("balance") or 0
        return float(equity)

    def _ledger_today(self, now: datetime) -> tuple[int, float]:
        day_start = start_of_day(now)
        trades_today = sum(1 for t in self.store.trades_since(day_start) if t.is_admitted)
        daily_pnl = 0.0
        for trade in self.store.exits_since(day_start):
            pnl = calculate_pnl(trade)
            if pnl is not None:
                daily_pnl += pnl
        return trades_today, round(daily_pnl, 2)

    async def get_state(self, now: datetime | None = None) -> AccountState:
        """Snapshot of equity, today's P&L and today's admitted trade count.

        Raises:
            ProviderUnavailable: live mode and the Deribit account is unreachable.
        """
        now = now or utcnow()
        trades_today, daily_pnl = self._ledger_today(now)

        try:
            equity = await self._fetch_equity()
            source = "deribit"
        except Exception as e:
            if not self.paper_mode:
                raise ProviderUnavailable("deribit_account", str(e)) from e
            logger.warning(f"Using mock account state (Deribit not available: {e})")
            equity = self.mock_equity
            source = "mock"

        return AccountState(
            equity=equity,
            daily_pnl=daily_pnl,
            trades_today=trades_today,
            source=source,
        )
