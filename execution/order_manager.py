"""Real order placement on Kalshi with ledger bookkeeping."""
import logging
from typing import Optional

from feeds.kalshi_client import KalshiClient
from shared.schemas import (
    Decision,
    LedgerRow,
    MarketSnapshot,
    OrderRequest,
    OrderResult,
    Settlement,
)
from storage.db import Database

logger = logging.getLogger(__name__)


class OrderManager:
    """Manages live order placement, cancellation and settlement on Kalshi."""

    is_paper = False

    def __init__(self, client: KalshiClient, db: Database):
        self.client = client
        self.db = db

    async def execute(
        self,
        market: MarketSnapshot,
        decision: Decision,
        series: str = "",
    ) -> Optional[OrderResult]:
        """Place a limit buy for a BUY decision and record it as pending."""
        if decision.side is None:
            return None

        order = await self.client.place_order(
            OrderRequest(
                ticker=market.ticker,
                side=decision.side,
                shares=decision.shares,
                price_cents=decision.max_price_cents,
            )
        )

        try:
            trade_id = await self.db.append_trade(
                LedgerRow(
                    ticker=market.ticker,
                    series=series,
                    side=decision.side,
                    shares=decision.shares,
                    price_cents=decision.max_price_cents,
                    order_id=order.order_id,
                    is_paper=False,
                )
            )
        except Exception as e:
            logger.critical(
                "Order placed but ledger write failed",
                extra={"order_id": order.order_id, "ticker": market.ticker, "error": str(e)},
            )
            raise

        logger.info(
            "LIVE trade executed",
            extra={
                "order_id": order.order_id,
                "trade_id": trade_id,
                "ticker": market.ticker,
                "side": decision.side.value,
                "shares": decision.shares,
                "price_cents": decision.max_price_cents,
                "status": order.status,
            },
        )
        return order

    async def exit(self, order: OrderRequest) -> Optional[OrderResult]:
        return await self.client.sell_order(order)

    async def settle(self, row: LedgerRow) -> Optional[Settlement]:
        settlements = await self.client.settlements(row.ticker)
        return settlements[0] if settlements else None

    async def cancel_stale(self, series: str = "") -> list[str]:
        """Cancel resting orders in ``series`` and mark their ledger rows cancelled."""
        cancelled = []
        for order in await self.client.resting_orders():
            if series and not order.ticker.upper().startswith(series.upper()):
                continue
            await self.client.cancel_order(order.order_id)
            await self.db.cancel_trade(order.order_id)
            cancelled.append(order.order_id)
            logger.info(
                "Cancelled stale order",
                extra={"order_id": order.order_id, "ticker": order.ticker},
            )
        return cancelled

    async def has_exchange_position(self, ticker: str) -> bool:
        return any(p.ticker == ticker for p in await self.client.positions())

    async def balance(self) -> int:
        return await self.client.balance()
