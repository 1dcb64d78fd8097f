"""Wiring of the long-lived service objects.

One TradingRuntime per process. It owns the Deribit HTTP client, so close()
must run on shutdown.
"""

import logging
from datetime import timedelta

from paperdesk.services.account import AccountStateProvider
from paperdesk.services.deribit_client import DeribitClient
from paperdesk.services.market_data import PriceDataProvider, build_sources
from paperdesk.services.reconciler import OutcomeReconciler
from paperdesk.services.risk_engine import RiskLimits
from paperdesk.services.trade_executor import TradeAdvisor, TradeExecutor
from paperdesk.services.trade_store import TradeStore
from paperdesk.engine.reconcile_job import ReconcileJob

logger = logging.getLogger(__name__)


class TradingRuntime:
    def __init__(self, settings, engine, advisor: TradeAdvisor | None = None, deribit: DeribitClient | None = None):
        self.settings = settings
        self.deribit = deribit or DeribitClient(
            client_id=settings.deribit_client_id,
            client_secret=settings.deribit_client_secret,
            use_testnet=settings.deribit_use_testnet,
            timeout=settings.provider_timeout_seconds,
        )
        self.store = TradeStore(engine)
        self.price_data = PriceDataProvider(
            build_sources(settings.price_sources, self.deribit, settings.deribit_trades_max_pages),
            timeout=settings.provider_timeout_seconds,
        )
        self.reconciler = OutcomeReconciler(
            self.price_data,
            min_age=timedelta(seconds=settings.reconcile_min_age_seconds),
            window=timedelta(hours=settings.reconcile_window_hours),
            resolution=settings.reconcile_resolution,
            deadline=settings.reconcile_deadline_seconds,
        )
        self.account = AccountStateProvider(
            self.deribit,
            self.store,
            currency=settings.account_currency,
            paper_mode=settings.is_paper,
            mock_equity=settings.mock_equity,
        )
        self.executor = TradeExecutor(
            self.store,
            self.account,
            limits=RiskLimits.from_settings(settings),
            mode=settings.bot_mode,
            advisor=advisor,
        )
        self.reconcile_job = ReconcileJob(
            self.store,
            self.reconciler,
            batch_size=settings.reconcile_batch_size,
            concurrency=settings.reconcile_concurrency,
        )
        logger.info(
            f"Runtime ready: mode={settings.bot_mode} sources={[s.name for s in self.price_data.sources]}"
        )

    async def close(self):
        await self.deribit.close()
