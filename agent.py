"""Main entry point: wires feeds, brain, execution and dashboard together."""
import asyncio
import logging
import signal
import sys
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from shared.config import Config
from shared.logging import setup_logging
from shared.safety import StartupError, resolve_prompt_path, validate_startup
from shared.schemas import (
    Disconnected,
    FillEvent,
    MarketLifecycleEvent,
    OrderbookDelta,
    OrderbookSnapshot,
)
from feeds.binance_feed import BinanceFeed
from feeds.kalshi_auth import KalshiAuth
from feeds.kalshi_client import KalshiClient, series_to_binance_symbol
from feeds.kalshi_ws import KalshiWebSocket
from brain.llm_client import OpenRouterClient
from brain.orchestrator import DecisionMaker
from brain.prompts import load_prompt
from brain.trade_judge import TradeJudge
from execution.engine import Executor, TradingEngine
from execution.order_manager import OrderManager
from execution.paper_trader import PaperTrader
from execution.position_manager import PositionManager
from storage.db import Database
from storage.stats import compute_stats
from dashboard.main import app as dashboard_app, set_database, set_mode, set_position_manager

logger = setup_logging("kalshi-agent")

STATUS_INTERVAL_SECS = 60


class TradingAgent:
    """Main trading agent orchestrating all components."""

    def __init__(self, config: Config):
        self.config = config
        self._shutdown = asyncio.Event()

        self.event_queue: asyncio.Queue = asyncio.Queue(maxsize=1000)

        # Components (initialized in start())
        self.db: Database | None = None
        self.client: KalshiClient | None = None
        self.binance_feed: BinanceFeed | None = None
        self.kalshi_ws: KalshiWebSocket | None = None
        self.positions: PositionManager | None = None
        self.executor: Executor | None = None
        self.engine: TradingEngine | None = None

    def _build_decision_maker(self) -> DecisionMaker:
        limits = self.config.limits()
        if not self.config.is_llm_mode:
            return DecisionMaker(limits, mode="rules")

        prompt_path = resolve_prompt_path(self.config)
        llm = OpenRouterClient(
            api_key=self.config.OPENROUTER_API_KEY,
            host=self.config.OPENROUTER_HOST,
            model=self.config.LLM_MODEL,
        )
        judge = TradeJudge(
            llm,
            model=self.config.LLM_MODEL,
            policy_prompt=load_prompt(str(prompt_path) if prompt_path else None),
        )
        return DecisionMaker(limits, mode="llm", judge=judge)

    async def start(self):
        """Initialize and run all components."""
        series = self.config.series_tickers_list
        logger.info(
            "Starting trading agent",
            extra={
                "mode": self.config.TRADING_MODE,
                "decision_mode": self.config.DECISION_MODE,
                "series": series,
                "max_shares": self.config.MAX_SHARES,
            },
        )

        # Database
        self.db = Database(self.config.DB_PATH)
        await self.db.init()

        # Kalshi
        auth: Optional[KalshiAuth] = None
        if self.config.has_kalshi_credentials:
            auth = KalshiAuth.from_file(
                self.config.KALSHI_API_KEY_ID, self.config.KALSHI_PRIVATE_KEY_PATH
            )
        else:
            logger.warning("No Kalshi credentials, using public REST and polling positions")
        self.client = KalshiClient(self.config.KALSHI_BASE_URL, auth=auth)
        if auth is not None:
            self.kalshi_ws = KalshiWebSocket(self.config.KALSHI_WS_URL, auth, self.event_queue)

        # Binance
        symbols = sorted({series_to_binance_symbol(s) for s in series})
        self.binance_feed = BinanceFeed(symbols, tld=self.config.BINANCE_TLD)

        # Execution
        self.positions = PositionManager(
            tp_cents=self.config.TP_CENTS_PER_SHARE,
            sl_cents=self.config.SL_CENTS_PER_SHARE,
        )
        if self.config.is_live:
            self.executor = OrderManager(self.client, self.db)
        else:
            self.executor = PaperTrader(
                self.db, self.client, starting_balance_cents=self.config.PAPER_BALANCE_CENTS
            )

        self.engine = TradingEngine(
            client=self.client,
            price_feed=self.binance_feed,
            decision_maker=self._build_decision_maker(),
            executor=self.executor,
            positions=self.positions,
            db=self.db,
            limits=self.config.limits(),
            min_minutes_to_expiry=self.config.MIN_MINUTES_TO_EXPIRY,
            ws=self.kalshi_ws,
        )

        # Dashboard
        set_database(self.db)
        set_position_manager(self.positions)
        set_mode(self.config.TRADING_MODE, self.config.DECISION_MODE)

        # Run all tasks
        tasks = [
            asyncio.create_task(self.binance_feed.start(), name="binance"),
            asyncio.create_task(self._entry_loop(), name="entry"),
            asyncio.create_task(self._position_loop(), name="positions"),
            asyncio.create_task(self._status_loop(), name="status"),
            asyncio.create_task(self._run_dashboard(), name="dashboard"),
        ]
        if self.kalshi_ws is not None:
            tasks.append(asyncio.create_task(self.kalshi_ws.start(), name="kalshi-ws"))
            tasks.append(asyncio.create_task(self._event_loop(), name="kalshi-events"))

        logger.info("All components started")

        # Wait for shutdown signal
        await self._shutdown.wait()

        # Cleanup
        logger.info("Shutting down...")
        self.binance_feed.stop()
        if self.kalshi_ws is not None:
            self.kalshi_ws.stop()
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.client.close()
        await self.binance_feed.close()
        await self.db.close()
        logger.info("Shutdown complete")

    async def _sleep(self, seconds: float):
        """Sleep, returning early on shutdown."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _entry_loop(self):
        """One entry cycle per series, every ENTRY_CYCLE_INTERVAL_SECS."""
        while not self._shutdown.is_set():
            for series in self.config.series_tickers_list:
                try:
                    await self.engine.entry_cycle(series)
                except Exception as e:
                    logger.error("Entry cycle error", extra={"series": series, "error": str(e)})
            await self._sleep(self.config.ENTRY_CYCLE_INTERVAL_SECS)

    async def _position_loop(self):
        """Take-profit / stop-loss checks for open positions."""
        poll = self.kalshi_ws is None
        while not self._shutdown.is_set():
            await self._sleep(self.config.POSITION_CHECK_INTERVAL_SECS)
            if not self.positions.has_position():
                continue
            try:
                await self.engine.check_positions(poll=poll)
            except Exception as e:
                logger.error("Position check error", extra={"error": str(e)})

    async def _event_loop(self):
        """Route Kalshi WS events into the position manager."""
        while not self._shutdown.is_set():
            try:
                event = await asyncio.wait_for(self.event_queue.get(), timeout=5.0)
            except asyncio.TimeoutError:
                continue
            await self.handle_event(event)

    async def handle_event(self, event):
        if isinstance(event, OrderbookSnapshot):
            self.positions.on_orderbook_snapshot(event)
        elif isinstance(event, OrderbookDelta):
            self.positions.on_orderbook_delta(event)
        elif isinstance(event, FillEvent):
            self.positions.on_fill(event)
        elif isinstance(event, MarketLifecycleEvent):
            if self.positions.on_lifecycle(event) and self.kalshi_ws is not None:
                await self.kalshi_ws.unsubscribe(event.ticker)
        elif isinstance(event, Disconnected):
            logger.warning("Kalshi WS disconnected", extra={"reason": event.reason})

    async def _status_loop(self):
        """Periodically log status."""
        while not self._shutdown.is_set():
            await self._sleep(STATUS_INTERVAL_SECS)
            try:
                stats = compute_stats(await self.db.get_ledger())
                balance = await self.executor.balance()
                logger.info(
                    "Status update",
                    extra={
                        "total_trades": stats.total_trades,
                        "win_rate": f"{stats.win_rate * 100:.1f}%",
                        "total_pnl_cents": stats.total_pnl_cents,
                        "today_pnl_cents": stats.today_pnl_cents,
                        "streak": stats.current_streak,
                        "balance_cents": balance,
                        "open_positions": len(self.positions.open_positions()),
                    },
                )
            except Exception as e:
                logger.error(f"Status loop error: {e}")

    async def _run_dashboard(self):
        """Run the FastAPI dashboard."""
        import uvicorn
        config = uvicorn.Config(
            dashboard_app,
            host="0.0.0.0",
            port=self.config.DASHBOARD_PORT,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        logger.info(
            "Dashboard starting",
            extra={"port": self.config.DASHBOARD_PORT},
        )
        await server.serve()

    def shutdown(self):
        self._shutdown.set()


def main():
    config = Config.from_env()
    logging.getLogger().setLevel(config.LOG_LEVEL.upper())

    try:
        validate_startup(config)
    except StartupError as e:
        logger.error("Startup validation failed", extra={"error": str(e)})
        sys.exit(1)

    agent = TradingAgent(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig, frame):
        logger.info(f"Received signal {sig}")
        agent.shutdown()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        loop.run_until_complete(agent.start())
    except KeyboardInterrupt:
        agent.shutdown()
        loop.run_until_complete(asyncio.sleep(1))
    finally:
        loop.close()


if __name__ == "__main__":
    main()
