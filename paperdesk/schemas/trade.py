"""Pydantic schemas for the webhook and trade API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from paperdesk.config import settings
from paperdesk.models.trade import ExitType, Trade
from paperdesk.services.pnl import calculate_pnl


class WebhookPayload(BaseModel):
    """TradingView alert body. Only the structural fields are typed; the rest is ignored."""

    signal: str | None = None
    symbol: str = Field(default_factory=lambda: settings.instrument)
    entry_price: float | None = None
    sl_price: float | None = None
    tp_price: float | None = None
    trend: str | None = None

    model_config = {"extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _ticker_as_symbol(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("symbol") and data.get("ticker"):
            data = {**data, "symbol": data["ticker"]}
        return data

    @field_validator("entry_price", "sl_price", "tp_price", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("signal")
    @classmethod
    def _upper_signal(cls, value: str | None) -> str | None:
        return value.strip().upper() if value else value

    def missing_field_error(self) -> str | None:
        """Reason the payload cannot be evaluated at all, or None."""
        if self.signal not in ("LONG", "SHORT"):
            return "Invalid or missing signal. Must be LONG or SHORT."
        if not self.entry_price or self.entry_price <= 0:
            return "Invalid or missing entry_price"
        if not self.sl_price or self.sl_price <= 0:
            return "Invalid or missing sl_price"
        return None


class TradeRead(BaseModel):
    id: str
    timestamp: datetime
    signal: str
    instrument: str
    entry_price: float
    stop_loss: float
    take_profit: float | None = None
    position_size_usd: float
    equity: float | None = None
    mode: str
    success: bool
    action: str
    reason: str | None = None
    risk_check: dict[str, Any] | None = None
    exit_type: str | None = None
    exit_price: float | None = None
    exit_time: datetime | None = None
    validated: bool
    validated_by: str | None = None
    pnl: float | None = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_trade(cls, trade: Trade) -> "TradeRead":
        read = cls.model_validate(trade)
        read.pnl = calculate_pnl(trade)
        return read


class ManualCloseRequest(BaseModel):
    exit_type: ExitType
    exit_price: float = Field(gt=0)
    exit_time: datetime | None = None
