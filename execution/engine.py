"""Entry cycle and early-exit execution for each configured series."""
import logging
from datetime import timedelta
from typing import Optional, Union

from brain.orchestrator import DecisionMaker
from execution.order_manager import OrderManager
from execution.paper_trader import PaperTrader
from execution.position_manager import SETTLED_STATUSES, PositionManager
from feeds.binance_feed import BinanceFeed
from feeds.kalshi_client import KalshiClient, asset_label, series_to_binance_symbol
from feeds.kalshi_ws import KalshiWebSocket
from shared.schemas import (
    Action,
    Decision,
    ExitEvent,
    ExitReason,
    OpenPosition,
    PerformanceState,
    PolicyLimits,
    utcnow,
)
from storage.db import Database
from storage.stats import compute_stats
from strategy import risk

logger = logging.getLogger(__name__)

ZOMBIE_AFTER = timedelta(minutes=30)

# Trading has ended; no exit is possible and the position waits for settlement
CLOSED_STATUSES = ("closed", "determined") + SETTLED_STATUSES

Executor = Union[PaperTrader, OrderManager]


class TradingEngine:
    """Runs one decision cycle per series and manages exits for open positions."""

    def __init__(
        self,
        client: KalshiClient,
        price_feed: BinanceFeed,
        decision_maker: DecisionMaker,
        executor: Executor,
        positions: PositionManager,
        db: Database,
        limits: PolicyLimits,
        min_minutes_to_expiry: float = 2.0,
        ws: Optional[KalshiWebSocket] = None,
    ):
        self.client = client
        self.price_feed = price_feed
        self.decision_maker = decision_maker
        self.executor = executor
        self.positions = positions
        self.db = db
        self.limits = limits
        self.min_minutes_to_expiry = min_minutes_to_expiry
        self.ws = ws

    async def performance(self) -> PerformanceState:
        return compute_stats(await self.db.get_ledger())

    async def settle_pending(self, series: str):
        """Settle the newest pending row for ``series``, or expire it after 30 minutes."""
        pending = await self.db.get_pending(series)
        if pending is None:
            return None

        settlement = await self.executor.settle(pending)
        if settlement is not None:
            return await self.db.settle_last_pending(settlement, series)

        age = utcnow() - pending.timestamp
        if age > ZOMBIE_AFTER:
            logger.warning(
                "Zombie cleanup",
                extra={"ticker": pending.ticker, "age_min": int(age.total_seconds() // 60)},
            )
            return await self.db.mark_unknown(pending)
        return None

    async def entry_cycle(self, series: str) -> Optional[Decision]:
        """One pass: settle, risk, market, signals, decide, execute."""
        asset = asset_label(series)
        log = {"series": series}

        if self.positions.has_position_for_series(series):
            logger.info("Holding position, skipping entry", extra=log)
            return None

        await self.executor.cancel_stale(series)
        await self.settle_pending(series)

        performance = await self.performance()
        balance = await self.executor.balance()
        veto = risk.check(performance, balance, self.limits)
        if veto:
            logger.info("Risk veto", extra={**log, "reason": veto})
            return None

        market = await self.client.active_market(series)
        if market is None:
            logger.info("No active market", extra=log)
            return None
        if market.minutes_to_expiry < self.min_minutes_to_expiry:
            logger.info(
                "Too close to expiry",
                extra={**log, "ticker": market.ticker, "minutes": round(market.minutes_to_expiry, 1)},
            )
            return None

        market.orderbook = await self.client.orderbook(market.ticker)
        price = await self.price_feed.snapshot(series_to_binance_symbol(series))

        decision = await self.decision_maker.decide(asset, market, price, performance)
        await self.db.log_decision(decision, market.ticker, series)

        if decision.action is Action.PASS:
            logger.info("PASS", extra={**log, "ticker": market.ticker, "reasoning": decision.reasoning[:300]})
            return decision

        shares = min(decision.shares, self.limits.max_shares)
        price_cents = max(1, min(decision.max_price_cents, self.limits.price_ceiling_cents))
        if shares != decision.shares or price_cents != decision.max_price_cents:
            decision = decision.model_copy(update={"shares": shares, "max_price_cents": price_cents})

        if self.positions.has_position(market.ticker) or await self.executor.has_exchange_position(market.ticker):
            logger.warning("Position already open, aborting order", extra={**log, "ticker": market.ticker})
            return decision

        order = await self.executor.execute(market, decision, series)
        if order is None:
            return decision

        if self.executor.is_paper:
            self.positions.open_position(
                OpenPosition(
                    ticker=order.ticker,
                    side=order.side,
                    shares=order.shares,
                    entry_price_cents=order.price_cents,
                    order_id=order.order_id,
                )
            )
        if self.ws is not None:
            await self.ws.subscribe(order.ticker)
        return decision

    async def execute_exit(self, ticker: str, reason: ExitReason) -> Optional[ExitEvent]:
        """Sell out of ``ticker`` at the best bid and close its ledger row."""
        exit_event = self.positions.build_exit_event(ticker, reason)
        exit_order = self.positions.build_exit_order(ticker)
        if exit_event is None or exit_order is None:
            logger.warning("Cannot build exit, no position or orderbook", extra={"ticker": ticker})
            return None

        logger.info(
            "Exit",
            extra={
                "ticker": ticker,
                "reason": reason.value,
                "shares": exit_order.shares,
                "entry_price_cents": exit_event.entry_price_cents,
                "exit_price_cents": exit_event.exit_price_cents,
                "pnl_cents": exit_event.pnl_cents,
            },
        )

        await self.executor.exit(exit_order)

        try:
            await self.db.record_early_exit(exit_event)
        except Exception as e:
            logger.error("Failed to record early exit", extra={"ticker": ticker, "error": str(e)})

        self.positions.clear_position(ticker)
        if self.ws is not None:
            await self.ws.unsubscribe(ticker)
        return exit_event

    async def refresh_position(self, ticker: str) -> bool:
        """Poll status and orderbook over REST. False once the market has settled."""
        market = await self.client.market(ticker)
        if market is not None and market.status.lower() in CLOSED_STATUSES:
            logger.info(
                "Market closed, releasing position",
                extra={"ticker": ticker, "status": market.status, "result": market.result},
            )
            self.positions.clear_position(ticker)
            return False
        self.positions.set_orderbook(ticker, await self.client.orderbook(ticker))
        return True

    async def check_positions(self, poll: bool = False) -> list[ExitEvent]:
        """Check every open position for take-profit or stop-loss."""
        exits = []
        for position in self.positions.open_positions():
            ticker = position.ticker
            if poll and not await self.refresh_position(ticker):
                continue
            pnl = self.positions.unrealized_pnl_per_share(ticker)
            if pnl is not None:
                logger.debug("Position check", extra={"ticker": ticker, "pnl_per_share": pnl})
            reason = self.positions.check_exit(ticker)
            if reason is None:
                continue
            exit_event = await self.execute_exit(ticker, reason)
            if exit_event is not None:
                exits.append(exit_event)
        return exits
