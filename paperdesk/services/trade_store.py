"""Append-only trade store.

Trades are created once and never deleted. The only write after creation is
the exit group, applied as a single conditional UPDATE so that two concurrent
reconciliations of the same trade cannot both settle it.
"""

import logging
from datetime import datetime

from sqlalchemy import update
from sqlmodel import Session, select, col

from paperdesk.models.trade import ClosedExit, Trade, TradeAction
from paperdesk.utils.time import ensure_utc

logger = logging.getLogger(__name__)


def _normalize(trade: Trade) -> Trade:
    # SQLite hands back naive datetimes
    trade.timestamp = ensure_utc(trade.timestamp)
    if trade.exit_time is not None:
        trade.exit_time = ensure_utc(trade.exit_time)
    return trade


class TradeStore:
    def __init__(self, engine):
        self.engine = engine

    def create(self, trade: Trade) -> Trade:
        with Session(self.engine) as session:
            session.add(trade)
            session.commit()
            session.refresh(trade)
            return _normalize(trade)

    def get(self, trade_id: str) -> Trade | None:
        with Session(self.engine) as session:
            trade = session.get(Trade, trade_id)
            return _normalize(trade) if trade else None

    def list_trades(
        self,
        mode: str | None = None,
        signal: str | None = None,
        limit: int | None = None,
        open_only: bool = False,
        oldest_first: bool = False,
        since: datetime | None = None,
    ) -> list[Trade]:
        """Trades newest first (or oldest first), optionally filtered.

        open_only keeps admitted trades without an exit price; since keeps
        trades entered at or after that time.
        """
        order = col(Trade.timestamp).asc() if oldest_first else col(Trade.timestamp).desc()
        stmt = select(Trade).order_by(order)
        if mode:
            stmt = stmt.where(Trade.mode == mode.lower())
        if signal:
            stmt = stmt.where(Trade.signal == signal.upper())
        if since is not None:
            stmt = stmt.where(Trade.timestamp >= ensure_utc(since))
        if open_only:
            stmt = stmt.where(
                Trade.success == True,  # noqa: E712
                Trade.action != TradeAction.REJECTED.value,
                col(Trade.exit_price).is_(None),
            )
        if limit:
            stmt = stmt.limit(limit)
        with Session(self.engine) as session:
            return [_normalize(t) for t in session.exec(stmt).all()]

    def trades_since(self, start: datetime) -> list[Trade]:
        stmt = select(Trade).where(Trade.timestamp >= ensure_utc(start)).order_by(Trade.timestamp)
        with Session(self.engine) as session:
            return [_normalize(t) for t in session.exec(stmt).all()]

    def exits_since(self, start: datetime) -> list[Trade]:
        stmt = select(Trade).where(
            col(Trade.exit_time).is_not(None),
            Trade.exit_time >= ensure_utc(start),
        )
        with Session(self.engine) as session:
            return [_normalize(t) for t in session.exec(stmt).all()]

    def update_exit(self, trade_id: str, exit: ClosedExit) -> Trade | None:
        """Set the exit group if it is still empty.

        Returns the updated trade, or None when the trade does not exist, was
        rejected, or already carries an exit.
        """
        stmt = (
            update(Trade)
            .where(
                Trade.id == trade_id,
                col(Trade.exit_price).is_(None),
                Trade.success == True,  # noqa: E712
                Trade.action != TradeAction.REJECTED.value,
            )
            .values(
                exit_type=exit.exit_type.value,
                exit_price=exit.price,
                exit_time=ensure_utc(exit.time),
                validated=exit.validated,
                validated_by=exit.validated_by,
            )
        )
        with Session(self.engine) as session:
            result = session.execute(stmt)
            session.commit()
            if result.rowcount != 1:
                logger.info(f"[{trade_id}] Exit not applied (missing, rejected or already closed)")
                return None
            trade = session.get(Trade, trade_id)
            session.refresh(trade)
            return _normalize(trade)
