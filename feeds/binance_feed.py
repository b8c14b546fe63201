"""Binance spot data: kline stream for live price, REST for candles and indicators."""
import asyncio
import logging
import time
from typing import Optional

from binance import AsyncClient, BinanceSocketManager

from shared.schemas import Candle, PriceSignal
from strategy import indicators

logger = logging.getLogger(__name__)

CANDLES_1M = 15
CANDLES_5M = 12
STALE_PRICE_SECS = 30.0
RECONNECT_DELAY_SECS = 5.0
CLOSED_STREAM_ERRORS = ("BinanceWebsocketClosed", "BinanceWebsocketUnableToConnect")


def parse_candle(row: list) -> Optional[Candle]:
    """Binance kline row: [open_time, open, high, low, close, volume, close_time, ...]."""
    if len(row) < 7:
        return None
    try:
        return Candle(
            open_time=int(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
            close_time=int(row[6]),
        )
    except (TypeError, ValueError):
        return None


def parse_kline(msg: dict) -> Optional[tuple[str, float]]:
    """Symbol and latest close from a single or multiplexed kline frame."""
    data = msg.get("data", msg)
    if data.get("e") != "kline":
        return None
    k = data.get("k") or {}
    symbol = (k.get("s") or data.get("s") or "").upper()
    try:
        close = float(k["c"])
    except (KeyError, TypeError, ValueError):
        return None
    if not symbol:
        return None
    return symbol, close


class BinanceFeed:
    """Streams 1m klines for live spot and builds per-cycle price signals."""

    def __init__(
        self,
        symbols: list[str],
        tld: str = "us",
        client: Optional[AsyncClient] = None,
        reconnect_delay: float = RECONNECT_DELAY_SECS,
    ):
        self.symbols = [s.upper() for s in symbols]
        self.tld = tld
        self._client = client
        self.reconnect_delay = reconnect_delay
        self._latest: dict[str, tuple[float, float]] = {}
        self._running = False

    async def _ensure_client(self) -> AsyncClient:
        if self._client is None:
            self._client = await AsyncClient.create(tld=self.tld)
        return self._client

    async def start(self):
        """Stream klines for the latest price per symbol; reconnect after any failure."""
        self._running = True
        while self._running:
            try:
                await self._stream()
            except Exception as e:
                logger.warning("Binance WS error", extra={"error": str(e)})
            if not self._running:
                break
            logger.info("Binance WS reconnecting", extra={"delay_secs": self.reconnect_delay})
            await asyncio.sleep(self.reconnect_delay)

    async def _stream(self):
        client = await self._ensure_client()
        bm = BinanceSocketManager(client)
        streams = [f"{s.lower()}@kline_1m" for s in self.symbols]

        logger.info("Binance WS connecting", extra={"symbols": self.symbols})

        async with bm.multiplex_socket(streams) as stream:
            while self._running:
                try:
                    msg = await asyncio.wait_for(stream.recv(), timeout=30.0)
                except asyncio.TimeoutError:
                    logger.warning("Binance WS timeout")
                    continue

                if msg.get("e") == "error":
                    logger.error("Binance WS error", extra={"payload": msg})
                    if msg.get("type") in CLOSED_STREAM_ERRORS:
                        return
                    continue

                parsed = parse_kline(msg)
                if parsed is None:
                    continue
                symbol, price = parsed
                self._latest[symbol] = (price, time.monotonic())
                logger.debug("Price tick", extra={"symbol": symbol, "price": price})

    def stop(self):
        self._running = False

    async def close(self):
        self._running = False
        if self._client is not None:
            await self._client.close_connection()
            self._client = None

    def get_latest_price(self, symbol: str) -> Optional[float]:
        """Most recent streamed price, or None if missing or stale."""
        entry = self._latest.get(symbol.upper())
        if entry is None:
            return None
        price, seen_at = entry
        if time.monotonic() - seen_at > STALE_PRICE_SECS:
            return None
        return price

    async def candles(self, symbol: str, interval: str, limit: int) -> Optional[list[Candle]]:
        try:
            client = await self._ensure_client()
            raw = await client.get_klines(symbol=symbol.upper(), interval=interval, limit=limit)
        except Exception as e:
            logger.warning("Binance klines failed", extra={"symbol": symbol, "error": str(e)})
            return None
        candles = [c for c in (parse_candle(row) for row in raw) if c is not None]
        return candles or None

    async def spot_price(self, symbol: str) -> Optional[float]:
        streamed = self.get_latest_price(symbol)
        if streamed is not None:
            return streamed
        try:
            client = await self._ensure_client()
            ticker = await client.get_symbol_ticker(symbol=symbol.upper())
            return float(ticker["price"])
        except Exception as e:
            logger.warning("Binance ticker failed", extra={"symbol": symbol, "error": str(e)})
            return None

    async def snapshot(self, symbol: str) -> Optional[PriceSignal]:
        """Indicators from 15x1m and 12x5m candles plus spot; None if any piece is missing."""
        candles_1m, candles_5m, spot = await asyncio.gather(
            self.candles(symbol, AsyncClient.KLINE_INTERVAL_1MINUTE, CANDLES_1M),
            self.candles(symbol, AsyncClient.KLINE_INTERVAL_5MINUTE, CANDLES_5M),
            self.spot_price(symbol),
        )
        if candles_1m is None or candles_5m is None or spot is None:
            logger.warning("Price data unavailable", extra={"symbol": symbol})
            return None
        return indicators.compute(candles_1m, candles_5m, spot)
