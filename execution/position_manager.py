"""Open positions, local orderbooks and take-profit / stop-loss exits."""
import logging
from typing import Optional

from shared.schemas import (
    ExitEvent,
    ExitReason,
    FillEvent,
    MarketLifecycleEvent,
    OpenPosition,
    Orderbook,
    OrderbookDelta,
    OrderbookLevel,
    OrderbookSnapshot,
    OrderRequest,
    Side,
)

logger = logging.getLogger(__name__)

SETTLED_STATUSES = ("settled", "finalized")


def apply_delta(book: Orderbook, delta: OrderbookDelta) -> Orderbook:
    """Return ``book`` with one price level adjusted; empty levels are dropped."""
    levels = {lvl.price_cents: lvl.quantity for lvl in book.side(delta.side)}
    quantity = levels.get(delta.price_cents, 0) + delta.delta
    if quantity > 0:
        levels[delta.price_cents] = quantity
    else:
        levels.pop(delta.price_cents, None)
    updated = sorted(
        (OrderbookLevel(price_cents=p, quantity=q) for p, q in levels.items()),
        key=lambda lvl: lvl.price_cents,
        reverse=True,
    )
    if delta.side is Side.YES:
        return Orderbook(yes=updated, no=list(book.no))
    return Orderbook(yes=list(book.yes), no=updated)


class PositionManager:
    """Tracks one open position per ticker and watches its exit price."""

    def __init__(self, tp_cents: int = 15, sl_cents: int = 10):
        self.tp_cents = tp_cents
        self.sl_cents = sl_cents
        self._positions: dict[str, OpenPosition] = {}
        self._books: dict[str, Orderbook] = {}

    # ── Positions ──

    def has_position(self, ticker: Optional[str] = None) -> bool:
        if ticker is None:
            return bool(self._positions)
        return ticker in self._positions

    def has_position_for_series(self, series: str) -> bool:
        prefix = series.upper()
        return any(t.upper().startswith(prefix) for t in self._positions)

    def position(self, ticker: str) -> Optional[OpenPosition]:
        return self._positions.get(ticker)

    def open_positions(self) -> list[OpenPosition]:
        return list(self._positions.values())

    def open_position(self, position: OpenPosition):
        self._positions[position.ticker] = position
        logger.info(
            "Position opened",
            extra={
                "ticker": position.ticker,
                "side": position.side.value,
                "shares": position.shares,
                "entry_price_cents": position.entry_price_cents,
                "order_id": position.order_id,
            },
        )

    def on_fill(self, fill: FillEvent):
        """Open a position, or average into the existing one on the same side."""
        existing = self._positions.get(fill.ticker)
        if existing is not None and existing.side is fill.side:
            shares = existing.shares + fill.shares
            entry = round(
                (existing.entry_price_cents * existing.shares + fill.price_cents * fill.shares)
                / shares
            )
            self._positions[fill.ticker] = existing.model_copy(
                update={"shares": shares, "entry_price_cents": entry}
            )
            logger.info(
                "Position increased",
                extra={"ticker": fill.ticker, "shares": shares, "entry_price_cents": entry},
            )
            return
        self.open_position(
            OpenPosition(
                ticker=fill.ticker,
                side=fill.side,
                shares=fill.shares,
                entry_price_cents=fill.price_cents,
                order_id=fill.order_id,
            )
        )

    def clear_position(self, ticker: str):
        if self._positions.pop(ticker, None) is not None:
            logger.info("Position cleared", extra={"ticker": ticker})
        self._books.pop(ticker, None)

    def on_lifecycle(self, event: MarketLifecycleEvent) -> bool:
        """Clear the position when its market settles. True if one was cleared."""
        if event.status.lower() in SETTLED_STATUSES and event.ticker in self._positions:
            logger.info(
                "Market settled, clearing position",
                extra={"ticker": event.ticker, "result": event.result},
            )
            self.clear_position(event.ticker)
            return True
        return False

    # ── Orderbooks ──

    def orderbook(self, ticker: str) -> Optional[Orderbook]:
        return self._books.get(ticker)

    def set_orderbook(self, ticker: str, book: Orderbook):
        self._books[ticker] = book

    def on_orderbook_snapshot(self, snapshot: OrderbookSnapshot):
        self._books[snapshot.ticker] = snapshot.book

    def on_orderbook_delta(self, delta: OrderbookDelta):
        book = self._books.get(delta.ticker)
        if book is None:
            # A delta without a snapshot cannot be placed; wait for the next snapshot
            logger.debug("Delta before snapshot", extra={"ticker": delta.ticker})
            return
        self._books[delta.ticker] = apply_delta(book, delta)

    # ── Exits ──

    def best_exit_price(self, ticker: str) -> Optional[int]:
        """Best bid on our own side: what we could sell at right now."""
        position = self._positions.get(ticker)
        book = self._books.get(ticker)
        if position is None or book is None:
            return None
        return book.best_bid(position.side)

    def unrealized_pnl_per_share(self, ticker: str) -> Optional[int]:
        exit_price = self.best_exit_price(ticker)
        if exit_price is None:
            return None
        return exit_price - self._positions[ticker].entry_price_cents

    def check_exit(self, ticker: str) -> Optional[ExitReason]:
        pnl = self.unrealized_pnl_per_share(ticker)
        if pnl is None:
            return None
        if pnl >= self.tp_cents:
            return ExitReason.TAKE_PROFIT
        if pnl <= -self.sl_cents:
            return ExitReason.STOP_LOSS
        return None

    def build_exit_order(self, ticker: str) -> Optional[OrderRequest]:
        exit_price = self.best_exit_price(ticker)
        if exit_price is None:
            return None
        position = self._positions[ticker]
        return OrderRequest(
            ticker=ticker,
            side=position.side,
            shares=position.shares,
            price_cents=exit_price,
        )

    def build_exit_event(self, ticker: str, reason: ExitReason) -> Optional[ExitEvent]:
        exit_price = self.best_exit_price(ticker)
        if exit_price is None:
            return None
        position = self._positions[ticker]
        per_share = exit_price - position.entry_price_cents
        return ExitEvent(
            ticker=ticker,
            reason=reason,
            entry_price_cents=position.entry_price_cents,
            exit_price_cents=exit_price,
            shares=position.shares,
            pnl_cents=per_share * position.shares,
            order_id=position.order_id,
        )
