"""FastAPI dashboard for monitoring the trading agent."""
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from execution.position_manager import PositionManager
from storage.db import Database
from storage.stats import compute_stats

app = FastAPI(title="Kalshi Agent Dashboard")
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

# Shared instances (set by agent.py)
_db: Optional[Database] = None
_positions: Optional[PositionManager] = None
_mode: dict = {}


def set_database(db: Database):
    global _db
    _db = db


def set_position_manager(positions: PositionManager):
    global _positions
    _positions = positions


def set_mode(trading_mode: str, decision_mode: str):
    _mode.update({"trading_mode": trading_mode, "decision_mode": decision_mode})


def _get_db() -> Database:
    if _db is None:
        raise RuntimeError("Database not initialized")
    return _db


def _open_positions() -> list[dict]:
    if _positions is None:
        return []
    return [p.model_dump(mode="json") for p in _positions.open_positions()]


@app.get("/", response_class=HTMLResponse)
async def index(request: Request):
    db = _get_db()
    summary = await db.get_pnl_summary()
    stats = compute_stats(await db.get_ledger())
    trades = await db.get_recent_trades(limit=50)
    decisions = await db.get_recent_decisions(limit=30)
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "summary": summary,
            "stats": stats,
            "trades": trades,
            "decisions": decisions,
            "positions": _open_positions(),
            "mode": _mode,
        },
    )


@app.get("/api/status")
async def api_status():
    db = _get_db()
    stats = compute_stats(await db.get_ledger())
    open_trades = await db.get_open_trades()
    return {
        "status": "running",
        **_mode,
        "stats": stats.model_dump(mode="json", exclude={"recent_trades"}),
        "pending_trades": len(open_trades),
        "open_positions": _open_positions(),
    }


@app.get("/api/trades")
async def api_trades(limit: int = 50):
    db = _get_db()
    trades = await db.get_recent_trades(limit=limit)
    return {"trades": trades}


@app.get("/api/decisions")
async def api_decisions(limit: int = 50):
    db = _get_db()
    decisions = await db.get_recent_decisions(limit=limit)
    return {"decisions": decisions}


@app.get("/api/pnl")
async def api_pnl():
    db = _get_db()
    summary = await db.get_pnl_summary()
    return summary
