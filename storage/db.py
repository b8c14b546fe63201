"""SQLite trade ledger and decision log via aiosqlite."""
import aiosqlite
import logging
import os
from typing import Optional

from shared.schemas import Decision, ExitEvent, LedgerRow, Settlement, utcnow
from storage.models import (
    CREATE_DECISIONS_TABLE,
    CREATE_TRADES_RESULT_INDEX,
    CREATE_TRADES_TABLE,
)

logger = logging.getLogger(__name__)


def _row_to_ledger(row: dict) -> LedgerRow:
    return LedgerRow(
        id=row["id"],
        timestamp=row["timestamp"],
        ticker=row["ticker"],
        series=row["series"],
        side=row["side"],
        shares=row["shares"],
        price_cents=row["price_cents"],
        result=row["result"],
        pnl_cents=row["pnl_cents"],
        cumulative_cents=row["cumulative_cents"],
        order_id=row["order_id"],
        is_paper=bool(row["is_paper"]),
    )


class Database:
    """Async SQLite database for the trade ledger and every decision made."""

    def __init__(self, db_path: str = "data/ledger.db"):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None

    async def init(self):
        """Initialize database and create tables."""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute(CREATE_TRADES_TABLE)
        await self._db.execute(CREATE_DECISIONS_TABLE)
        await self._db.execute(CREATE_TRADES_RESULT_INDEX)
        await self._db.commit()
        logger.info("Database initialized", extra={"path": self.db_path})

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None

    async def _fetch(self, sql: str, params: tuple = ()) -> list[dict]:
        cursor = await self._db.execute(sql, params)
        rows = await cursor.fetchall()
        columns = [d[0] for d in cursor.description]
        return [dict(zip(columns, row)) for row in rows]

    async def _total_pnl(self) -> int:
        cursor = await self._db.execute("SELECT COALESCE(SUM(pnl_cents), 0) FROM trades")
        row = await cursor.fetchone()
        return int(row[0])

    # ── Trades ──

    async def append_trade(self, row: LedgerRow) -> int:
        """Insert a ledger row and return its ID."""
        cumulative = row.cumulative_cents or await self._total_pnl()
        cursor = await self._db.execute(
            """INSERT INTO trades
               (timestamp, ticker, series, side, shares, price_cents,
                result, pnl_cents, cumulative_cents, order_id, is_paper)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                row.timestamp.isoformat(), row.ticker, row.series,
                row.side.value, row.shares, row.price_cents,
                row.result, row.pnl_cents, cumulative,
                row.order_id, 1 if row.is_paper else 0,
            ),
        )
        await self._db.commit()
        return cursor.lastrowid

    async def get_pending(self, ticker: Optional[str] = None) -> Optional[LedgerRow]:
        """The newest pending row, optionally for one ticker or series prefix."""
        if ticker:
            rows = await self._fetch(
                """SELECT * FROM trades
                   WHERE result = 'pending' AND (ticker = ? OR series = ?)
                   ORDER BY id DESC LIMIT 1""",
                (ticker, ticker),
            )
        else:
            rows = await self._fetch(
                "SELECT * FROM trades WHERE result = 'pending' ORDER BY id DESC LIMIT 1"
            )
        return _row_to_ledger(rows[0]) if rows else None

    async def _close_row(self, row: LedgerRow, result: str, pnl_cents: int) -> LedgerRow:
        cumulative = await self._total_pnl() + pnl_cents
        await self._db.execute(
            "UPDATE trades SET result=?, pnl_cents=?, cumulative_cents=? WHERE id=?",
            (result, pnl_cents, cumulative, row.id),
        )
        await self._db.commit()
        return row.model_copy(
            update={"result": result, "pnl_cents": pnl_cents, "cumulative_cents": cumulative}
        )

    async def settle_last_pending(
        self,
        settlement: Settlement,
        series: Optional[str] = None,
    ) -> Optional[LedgerRow]:
        """Settle the newest pending row: P&L is revenue minus cost."""
        pending = await self.get_pending(series)
        if pending is None:
            return None
        cost = pending.price_cents * pending.shares
        pnl = settlement.revenue_cents - cost
        settled = await self._close_row(pending, settlement.result, pnl)
        logger.info(
            "Trade settled",
            extra={
                "ticker": settled.ticker,
                "result": settled.result,
                "pnl_cents": pnl,
                "cumulative_cents": settled.cumulative_cents,
            },
        )
        return settled

    async def mark_unknown(self, row: LedgerRow) -> LedgerRow:
        """Close a pending row that never settled, with zero P&L."""
        closed = await self._close_row(row, "unknown", 0)
        logger.warning(
            "Pending trade marked unknown",
            extra={"ticker": row.ticker, "order_id": row.order_id},
        )
        return closed

    async def cancel_trade(self, order_id: str) -> bool:
        """Mark the pending row for ``order_id`` as cancelled."""
        cursor = await self._db.execute(
            """UPDATE trades SET result='cancelled', pnl_cents=0
               WHERE order_id=? AND result='pending'""",
            (order_id,),
        )
        await self._db.commit()
        return cursor.rowcount > 0

    async def record_early_exit(self, exit_event: ExitEvent) -> Optional[LedgerRow]:
        """Close the newest pending row for the ticker as exit_take_profit/exit_stop_loss."""
        rows = await self._fetch(
            """SELECT * FROM trades WHERE result = 'pending' AND ticker = ?
               ORDER BY id DESC LIMIT 1""",
            (exit_event.ticker,),
        )
        if not rows:
            logger.warning("No pending trade for exit", extra={"ticker": exit_event.ticker})
            return None
        return await self._close_row(
            _row_to_ledger(rows[0]),
            f"exit_{exit_event.reason.value}",
            exit_event.pnl_cents,
        )

    async def get_ledger(self) -> list[LedgerRow]:
        """All ledger rows, oldest first."""
        rows = await self._fetch("SELECT * FROM trades ORDER BY id ASC")
        return [_row_to_ledger(r) for r in rows]

    async def get_recent_trades(self, limit: int = 50) -> list[dict]:
        """Get recent trades."""
        return await self._fetch(
            "SELECT * FROM trades ORDER BY id DESC LIMIT ?", (limit,)
        )

    async def get_open_trades(self) -> list[dict]:
        """Get all pending (unsettled) trades."""
        return await self._fetch(
            "SELECT * FROM trades WHERE result = 'pending' ORDER BY id DESC"
        )

    async def get_pnl_summary(self) -> dict:
        """Get aggregate P&L summary."""
        rows = await self._fetch(
            """SELECT
                 COUNT(*) as total_trades,
                 SUM(CASE WHEN result = 'win' OR (result LIKE 'exit_%' AND pnl_cents > 0)
                     THEN 1 ELSE 0 END) as wins,
                 SUM(CASE WHEN result = 'loss' OR (result LIKE 'exit_%' AND pnl_cents <= 0)
                     THEN 1 ELSE 0 END) as losses,
                 SUM(CASE WHEN result = 'pending' THEN 1 ELSE 0 END) as open,
                 COALESCE(SUM(pnl_cents), 0) as total_pnl_cents,
                 COALESCE(SUM(price_cents * shares), 0) as total_volume_cents
               FROM trades
               WHERE result != 'cancelled'"""
        )
        result = rows[0]
        wins = result["wins"] or 0
        losses = result["losses"] or 0
        result["wins"] = wins
        result["losses"] = losses
        result["open"] = result["open"] or 0
        total = wins + losses
        result["win_rate"] = (wins / total * 100) if total > 0 else 0
        return result

    # ── Decisions ──

    async def log_decision(self, decision: Decision, ticker: str, series: str = "") -> int:
        """Record one decision, PASS included."""
        cursor = await self._db.execute(
            """INSERT INTO decisions
               (timestamp, ticker, series, action, side, shares, max_price_cents,
                estimated_probability, estimated_edge, reasoning, source)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                utcnow().isoformat(), ticker, series,
                decision.action.value,
                decision.side.value if decision.side else None,
                decision.shares, decision.max_price_cents,
                decision.estimated_probability, decision.estimated_edge,
                decision.reasoning, decision.source.value,
            ),
        )
        await self._db.commit()
        return cursor.lastrowid

    async def get_recent_decisions(self, limit: int = 50) -> list[dict]:
        return await self._fetch(
            "SELECT * FROM decisions ORDER BY id DESC LIMIT ?", (limit,)
        )
