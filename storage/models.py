"""SQLite table definitions."""

CREATE_TRADES_TABLE = """
CREATE TABLE IF NOT EXISTS trades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    ticker TEXT NOT NULL,
    series TEXT NOT NULL DEFAULT '',
    side TEXT NOT NULL,
    shares INTEGER NOT NULL,
    price_cents INTEGER NOT NULL,
    result TEXT NOT NULL DEFAULT 'pending',
    pnl_cents INTEGER NOT NULL DEFAULT 0,
    cumulative_cents INTEGER NOT NULL DEFAULT 0,
    order_id TEXT NOT NULL DEFAULT '',
    is_paper INTEGER NOT NULL DEFAULT 1
);
"""

CREATE_DECISIONS_TABLE = """
CREATE TABLE IF NOT EXISTS decisions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    ticker TEXT NOT NULL,
    series TEXT NOT NULL DEFAULT '',
    action TEXT NOT NULL,
    side TEXT,
    shares INTEGER,
    max_price_cents INTEGER,
    estimated_probability INTEGER NOT NULL,
    estimated_edge INTEGER NOT NULL,
    reasoning TEXT DEFAULT '',
    source TEXT NOT NULL DEFAULT 'rules'
);
"""

CREATE_TRADES_RESULT_INDEX = """
CREATE INDEX IF NOT EXISTS idx_trades_result ON trades (result);
"""

CLOSED_RESULTS = ("win", "loss")
EXIT_RESULT_PREFIX = "exit_"


def is_closed_result(result: str) -> bool:
    """Rows that count toward stats: settled wins and losses plus early exits."""
    return result in CLOSED_RESULTS or result.startswith(EXIT_RESULT_PREFIX)
