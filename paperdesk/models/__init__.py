"""Database models."""

from paperdesk.models.trade import (
    ClosedExit,
    Exit,
    ExitType,
    OpenExit,
    Signal,
    Trade,
    TradeAction,
    TradeMode,
)

__all__ = [
    "Trade",
    "Signal",
    "TradeMode",
    "TradeAction",
    "ExitType",
    "Exit",
    "OpenExit",
    "ClosedExit",
]
