"""Paper trading: simulate fills, settle from market results, track a virtual balance."""
import logging
import uuid
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


class PaperTrader:
    """Simulates trade execution without real money.

    Orders fill immediately at the limit price. Settlement reads the market's
    published result instead of the portfolio settlements endpoint.
    """

    is_paper = True

    def __init__(self, db: Database, client: KalshiClient, starting_balance_cents: int = 10000):
        self.db = db
        self.client = client
        self.starting_balance_cents = starting_balance_cents

    async def execute(
        self,
        market: MarketSnapshot,
        decision: Decision,
        series: str = "",
    ) -> Optional[OrderResult]:
        """Fill a BUY decision on paper and write its ledger row."""
        if decision.side is None:
            return None

        order_id = f"paper-{uuid.uuid4().hex[:12]}"
        order = OrderResult(
            order_id=order_id,
            ticker=market.ticker,
            side=decision.side,
            shares=decision.shares,
            price_cents=decision.max_price_cents,
            status="filled",
            is_paper=True,
        )

        trade_id = await self.db.append_trade(
            LedgerRow(
                ticker=market.ticker,
                series=series,
                side=decision.side,
                shares=decision.shares,
                price_cents=decision.max_price_cents,
                order_id=order_id,
                is_paper=True,
            )
        )

        logger.info(
            "Paper trade executed",
            extra={
                "order_id": order_id,
                "trade_id": trade_id,
                "ticker": market.ticker,
                "side": decision.side.value,
                "shares": decision.shares,
                "price_cents": decision.max_price_cents,
            },
        )
        return order

    async def exit(self, order: OrderRequest) -> Optional[OrderResult]:
        logger.info(
            "Paper exit",
            extra={
                "ticker": order.ticker,
                "side": order.side.value,
                "shares": order.shares,
                "price_cents": order.price_cents,
            },
        )
        return OrderResult(
            order_id=f"paper-exit-{uuid.uuid4().hex[:12]}",
            ticker=order.ticker,
            side=order.side,
            shares=order.shares,
            price_cents=order.price_cents,
            status="filled",
            is_paper=True,
        )

    async def settle(self, row: LedgerRow) -> Optional[Settlement]:
        """Settlement from the market result once Kalshi has determined it."""
        market = await self.client.market(row.ticker)
        if market is None or market.result not in ("yes", "no"):
            return None
        won = market.result == row.side.value
        return Settlement(
            ticker=row.ticker,
            market_result=market.result,
            result="win" if won else "loss",
            revenue_cents=100 * row.shares if won else 0,
        )

    async def cancel_stale(self, series: str = "") -> list[str]:
        # Paper orders fill on placement, so nothing ever rests
        return []

    async def has_exchange_position(self, ticker: str) -> bool:
        return False

    async def balance(self) -> int:
        summary = await self.db.get_pnl_summary()
        return self.starting_balance_cents + int(summary["total_pnl_cents"])
