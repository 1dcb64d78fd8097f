"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./paperdesk.db"
    log_level: str = "INFO"

    # Trading
    bot_mode: str = "paper"  # "paper" or "live"
    instrument: str = "BTC-PERPETUAL"  # used when a signal names no symbol

    # Risk limits (stop distance and R:R are strategy constants, see risk_engine)
    max_risk_percent: float = 1.0
    max_daily_loss_percent: float = 3.0
    max_trades_per_day: int = 5
    min_position_size_usd: float = 10.0
    mock_equity: float = 100.0  # paper-mode equity when Deribit is unreachable

    # Deribit
    deribit_client_id: str = ""
    deribit_client_secret: str = ""
    deribit_use_testnet: bool = False
    account_currency: str = "USDC"

    # Price data cascade, fastest/most accurate first
    price_sources: list[str] = ["deribit_chart", "deribit_trades", "hyperliquid"]
    provider_timeout_seconds: float = 10.0
    deribit_trades_max_pages: int = 5

    # Reconciliation
    reconcile_min_age_seconds: int = 60
    reconcile_window_hours: float = 24.0
    reconcile_resolution: str = "1m"
    reconcile_interval: str = "5m"
    reconcile_batch_size: int = 50
    reconcile_concurrency: int = 5
    reconcile_deadline_seconds: float = 60.0
    poll_interval_seconds: int = 60

    model_config = {"env_prefix": "PD_", "env_file": ".env"}

    @property
    def is_paper(self) -> bool:
        return self.bot_mode.lower() == "paper"


settings = Settings()
