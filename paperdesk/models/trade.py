"""Trade model: append-only record of every evaluated signal.

A trade is written once at admission and afterwards only its exit group
(exit_type, exit_price, exit_time, validated, validated_by) may be set, once.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON
from sqlmodel import SQLModel, Field, Column

from paperdesk.utils.time import ensure_utc, utcnow


class Signal(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class TradeMode(str, Enum):
    PAPER = "paper"
    LIVE = "live"


class TradeAction(str, Enum):
    EXECUTED = "executed"
    REJECTED = "rejected"


class ExitType(str, Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"


@dataclass(frozen=True)
class OpenExit:
    """No exit recorded yet."""


@dataclass(frozen=True)
class ClosedExit:
    exit_type: ExitType
    price: float
    time: datetime
    validated: bool = True
    validated_by: str = ""


Exit = OpenExit | ClosedExit


def new_trade_id() -> str:
    return f"trade-{uuid.uuid4().hex}"


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    id: str = Field(default_factory=new_trade_id, primary_key=True)
    timestamp: datetime = Field(default_factory=utcnow, index=True)
    signal: str = Field(index=True)  # "LONG" or "SHORT"
    instrument: str
    entry_price: float
    stop_loss: float
    take_profit: float | None = None
    position_size_usd: float = 0.0
    equity: float | None = None  # equity snapshot used for sizing
    mode: str = Field(default=TradeMode.PAPER.value, index=True)
    success: bool = False
    action: str = TradeAction.REJECTED.value
    reason: str | None = None
    risk_check: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    # Exit group, written at most once
    exit_type: str | None = None
    exit_price: float | None = None
    exit_time: datetime | None = None
    validated: bool = False
    validated_by: str | None = None

    @property
    def is_admitted(self) -> bool:
        return self.success and self.action != TradeAction.REJECTED.value

    @property
    def is_closed(self) -> bool:
        return self.exit_price is not None

    @property
    def exit(self) -> Exit:
        if self.exit_price is None or self.exit_type is None or self.exit_time is None:
            return OpenExit()
        return ClosedExit(
            exit_type=ExitType(self.exit_type),
            price=self.exit_price,
            time=ensure_utc(self.exit_time),
            validated=self.validated,
            validated_by=self.validated_by or "",
        )
