"""Prompt assembly for the LLM trade judge."""
import logging
from pathlib import Path
from typing import Optional, Sequence

from shared.schemas import (
    LedgerRow,
    MarketSnapshot,
    OrderbookLevel,
    PerformanceState,
    PriceSignal,
    SignalSummary,
)

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_PATH = Path(__file__).parent / "prompt.md"
ORDERBOOK_LEVELS = 5


def load_prompt(path: Optional[str] = None) -> str:
    """Read the policy prompt, falling back to the packaged copy."""
    if path:
        candidate = Path(path)
        if candidate.is_file():
            return candidate.read_text(encoding="utf-8")
        logger.warning("Prompt file not found, using default", extra={"path": path})
    return DEFAULT_PROMPT_PATH.read_text(encoding="utf-8")


def _opt(value) -> str:
    return "-" if value is None else str(value)


def format_stats(s: PerformanceState) -> str:
    return (
        f"Trades: {s.total_trades} | W/L: {s.wins}/{s.losses} | "
        f"Win rate: {s.win_rate * 100:.1f}% | P&L: {s.total_pnl_cents}¢ | "
        f"Today: {s.today_pnl_cents}¢ | Streak: {s.current_streak} | "
        f"Drawdown: {s.max_drawdown_cents}¢"
    )


def format_ledger(trades: Sequence[LedgerRow]) -> str:
    if not trades:
        return "No trades yet."
    return "\n".join(
        f"{t.timestamp.strftime('%Y-%m-%d %H:%M:%S')} | {t.ticker} | {t.side.value} | "
        f"{t.shares}x @ {t.price_cents}¢ | {t.result} | {t.pnl_cents}¢"
        for t in trades
    )


def format_market(m: MarketSnapshot) -> str:
    return (
        f"Ticker: {m.ticker} | Title: {m.title} | "
        f"Yes bid/ask: {_opt(m.yes_bid)}/{_opt(m.yes_ask)} | "
        f"No bid/ask: {_opt(m.no_bid)}/{_opt(m.no_ask)} | Last: {_opt(m.last_price)} | "
        f"Vol: {m.volume} | 24h Vol: {m.volume_24h} | OI: {m.open_interest} | "
        f"Expiry: {m.expiration_time} ({m.minutes_to_expiry:.1f}min)"
    )


def format_orderbook_side(levels: Sequence[OrderbookLevel]) -> str:
    if not levels:
        return "empty"
    return ", ".join(
        f"{lvl.price_cents}¢ x{lvl.quantity}" for lvl in levels[:ORDERBOOK_LEVELS]
    )


def format_price(p: PriceSignal) -> str:
    text = (
        f"Spot: ${p.spot_price:,.2f} | 5m change: {p.pct_change_5m:+.3f}% | "
        f"15m change: {p.pct_change_15m:+.3f}% | 1h change: {p.pct_change_1h:+.3f}% | "
        f"Momentum: {p.momentum.value}\n"
        f"SMA(15x1m): ${p.sma_15m:,.2f} | Price vs SMA: {p.price_vs_sma} | "
        f"EMA(9): ${p.ema_9:,.2f} | Price vs EMA: {p.price_vs_ema}\n"
        f"RSI(9): {p.rsi_9:.1f} | 1m volatility: {p.volatility_1m:.4f}% | "
        f"Trend 5m/15m/1h: {p.trend.value}"
    )
    if p.last_3_candles:
        candles = " | ".join(
            f"O:{c.open:.0f} H:{c.high:.0f} L:{c.low:.0f} C:{c.close:.0f} V:{c.volume:.1f}"
            for c in p.last_3_candles
        )
        text += f"\nLast 3 candles (1m): {candles}"
    return text


def format_signals(summary: SignalSummary) -> str:
    side = summary.recommended_side.value.upper() if summary.recommended_side else "NONE"
    return (
        f"{summary.narrative}\n"
        f"Recommended side: {side} | Best edge: {summary.best_edge:+.1f}pt "
        f"at {summary.best_price_cents}¢ | Half-Kelly shares: {summary.kelly_shares}"
    )


def build_prompt(
    policy: str,
    asset: str,
    market: MarketSnapshot,
    performance: PerformanceState,
    price: Optional[PriceSignal],
    summary: Optional[SignalSummary] = None,
) -> str:
    """Policy prompt followed by the per-cycle context sections."""
    trades = performance.recent_trades
    sections = [
        policy.rstrip(),
        f"## STATS\n{format_stats(performance)}",
        f"## LAST {len(trades)} TRADES\n{format_ledger(trades)}",
        f"## MARKET\n{format_market(market)}",
        (
            "## ORDERBOOK\n"
            f"Yes bids: {format_orderbook_side(market.orderbook.yes)}\n"
            f"No bids: {format_orderbook_side(market.orderbook.no)}"
        ),
        f"## {asset} PRICE\n{format_price(price) if price else 'Unavailable this cycle.'}",
    ]
    if summary is not None:
        sections.append(f"## ENGINE SIGNALS\n{format_signals(summary)}")
    return "\n\n---\n".join(sections)
