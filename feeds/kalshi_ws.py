"""Authenticated Kalshi WebSocket feed: orderbook, fills and market lifecycle."""
import asyncio
import json
import logging
from typing import Optional, Union

from websockets.asyncio.client import connect

from feeds.kalshi_auth import KalshiAuth
from shared.schemas import (
    Disconnected,
    FillEvent,
    MarketLifecycleEvent,
    Orderbook,
    OrderbookDelta,
    OrderbookSnapshot,
    Side,
)

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECS = 5.0
POSITION_CHANNELS = ("orderbook_delta", "fill", "market_lifecycle_v2")

KalshiEvent = Union[
    OrderbookSnapshot, OrderbookDelta, FillEvent, MarketLifecycleEvent, Disconnected
]


def _side(value) -> Optional[Side]:
    try:
        return Side(str(value).lower())
    except ValueError:
        return None


def parse_message(text: str) -> Optional[KalshiEvent]:
    """Turn one WS frame into a typed event. Unknown or malformed frames give None."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None

    msg_type = data.get("type")
    msg = data.get("msg") or {}
    ticker = msg.get("market_ticker")
    if not ticker:
        return None

    try:
        if msg_type == "orderbook_snapshot":
            return OrderbookSnapshot(
                ticker=ticker,
                book=Orderbook.from_pairs(msg.get("yes") or [], msg.get("no") or []),
            )

        if msg_type == "orderbook_delta":
            side = _side(msg.get("side"))
            if side is None:
                return None
            return OrderbookDelta(
                ticker=ticker,
                side=side,
                price_cents=int(msg["price"]),
                delta=int(msg["delta"]),
            )

        if msg_type == "fill":
            side = _side(msg.get("side"))
            if side is None:
                return None
            if side is Side.NO and msg.get("no_price") is not None:
                price = int(msg["no_price"])
            elif msg.get("yes_price") is not None:
                yes_price = int(msg["yes_price"])
                price = yes_price if side is Side.YES else 100 - yes_price
            else:
                price = 0
            return FillEvent(
                order_id=msg["order_id"],
                ticker=ticker,
                side=side,
                shares=int(msg["count"]),
                price_cents=price,
            )

        if msg_type in ("market_lifecycle_v2", "market_lifecycle"):
            status = msg.get("status") or msg.get("event_type")
            if not status:
                return None
            return MarketLifecycleEvent(
                ticker=ticker,
                status=str(status),
                result=msg.get("result") or None,
            )
    except (KeyError, TypeError, ValueError) as e:
        logger.debug("Malformed Kalshi WS frame", extra={"type": msg_type, "error": str(e)})
        return None

    return None


class KalshiWebSocket:
    """Streams Kalshi events onto ``out_queue``; reconnects 5 s after any failure."""

    def __init__(
        self,
        ws_url: str,
        auth: KalshiAuth,
        out_queue: asyncio.Queue,
        reconnect_delay: float = RECONNECT_DELAY_SECS,
    ):
        self.ws_url = ws_url
        self.auth = auth
        self.out_queue = out_queue
        self.reconnect_delay = reconnect_delay
        self._commands: asyncio.Queue = asyncio.Queue()
        self._subscriptions: dict[str, tuple[str, ...]] = {}
        self._next_id = 1
        self._running = False

    def _command(self, cmd: str, channels: tuple[str, ...], ticker: str) -> str:
        msg_id = self._next_id
        self._next_id += 1
        return json.dumps({
            "id": msg_id,
            "cmd": cmd,
            "params": {"channels": list(channels), "market_tickers": [ticker]},
        })

    async def subscribe(self, ticker: str, channels: tuple[str, ...] = POSITION_CHANNELS):
        self._subscriptions[ticker] = tuple(channels)
        await self._commands.put(self._command("subscribe", tuple(channels), ticker))

    async def unsubscribe(self, ticker: str):
        channels = self._subscriptions.pop(ticker, POSITION_CHANNELS)
        await self._commands.put(self._command("unsubscribe", channels, ticker))

    async def start(self):
        """Connect, stream and reconnect until stopped."""
        self._running = True
        while self._running:
            logger.info("Kalshi WS connecting", extra={"url": self.ws_url})
            connected = False
            try:
                async with connect(
                    self.ws_url, additional_headers=self.auth.ws_headers()
                ) as ws:
                    connected = True
                    logger.info("Kalshi WS connected")
                    await self._resubscribe(ws)
                    await self._pump(ws)
            except Exception as e:
                logger.warning("Kalshi WS error", extra={"error": str(e)})

            if connected:
                await self.out_queue.put(Disconnected(reason="connection lost"))
            if not self._running:
                break
            logger.info("Kalshi WS reconnecting", extra={"delay_secs": self.reconnect_delay})
            await asyncio.sleep(self.reconnect_delay)

    async def _resubscribe(self, ws):
        # Pending commands are superseded by the subscription table
        while not self._commands.empty():
            self._commands.get_nowait()
        for ticker, channels in self._subscriptions.items():
            await ws.send(self._command("subscribe", channels, ticker))

    async def _pump(self, ws):
        reader = asyncio.create_task(self._read(ws))
        writer = asyncio.create_task(self._write(ws))
        done, pending = await asyncio.wait(
            {reader, writer}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        for task in done:
            task.result()

    async def _read(self, ws):
        async for frame in ws:
            event = parse_message(frame)
            if event is not None:
                await self.out_queue.put(event)
        logger.warning("Kalshi WS stream ended")

    async def _write(self, ws):
        while True:
            message = await self._commands.get()
            await ws.send(message)
            logger.debug("Kalshi WS command sent", extra={"command": message})

    def stop(self):
        self._running = False
