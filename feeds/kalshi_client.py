"""Async Kalshi trade-API client over httpx."""
import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import httpx

from feeds.kalshi_auth import KalshiAuth
from shared.schemas import (
    MarketSnapshot,
    Orderbook,
    OrderRequest,
    OrderResult,
    Position,
    RestingOrder,
    Settlement,
    Side,
    utcnow,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/trade-api/v2"
RATE_LIMIT_RETRY_SECS = 2.0

# Kalshi series prefix -> Binance spot symbol
SERIES_SYMBOLS = {
    "KXBTC": "BTCUSDT",
    "KXETH": "ETHUSDT",
    "KXSOL": "SOLUSDT",
    "KXXRP": "XRPUSDT",
}


def series_to_binance_symbol(series: str) -> str:
    """Map a series ticker (e.g. KXBTC15M) to its Binance symbol."""
    series = series.upper()
    for prefix in sorted(SERIES_SYMBOLS, key=len, reverse=True):
        if series.startswith(prefix):
            return SERIES_SYMBOLS[prefix]
    return "BTCUSDT"


def asset_label(series: str) -> str:
    """Short asset name for prompts and logs: BTC, ETH, SOL."""
    return series_to_binance_symbol(series).removesuffix("USDT")


class KalshiAPIError(Exception):
    """Non-success response from the Kalshi API."""

    def __init__(self, method: str, path: str, status_code: int, body: str = ""):
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body
        super().__init__(f"Kalshi {method} {path} -> {status_code}: {body[:300]}")


def _cents(data: dict, key: str) -> Optional[int]:
    """Read a price in cents, falling back to the ``<key>_dollars`` string field."""
    value = data.get(key)
    if value is not None:
        return int(value)
    dollars = data.get(f"{key}_dollars")
    if dollars in (None, ""):
        return None
    return int(round(float(dollars) * 100))


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_market(data: dict, now: Optional[datetime] = None) -> Optional[MarketSnapshot]:
    """Build a MarketSnapshot from a /markets entry, or None without an expiry."""
    now = now or utcnow()
    exp_str = data.get("expected_expiration_time") or data.get("expiration_time")
    expires = _parse_time(exp_str)
    if expires is None:
        return None
    return MarketSnapshot(
        ticker=data["ticker"],
        event_ticker=data.get("event_ticker", ""),
        title=data.get("title", ""),
        yes_bid=_cents(data, "yes_bid"),
        yes_ask=_cents(data, "yes_ask"),
        no_bid=_cents(data, "no_bid"),
        no_ask=_cents(data, "no_ask"),
        last_price=_cents(data, "last_price"),
        volume=int(data.get("volume") or 0),
        volume_24h=int(data.get("volume_24h") or 0),
        open_interest=int(data.get("open_interest") or 0),
        expiration_time=exp_str,
        minutes_to_expiry=(expires - now).total_seconds() / 60.0,
        status=data.get("status") or "",
        result=data.get("result") or "",
    )


class KalshiClient:
    """Kalshi REST client. Signs requests when credentials are configured."""

    def __init__(
        self,
        base_url: str,
        auth: Optional[KalshiAuth] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = auth
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def close(self):
        await self._client.aclose()

    @property
    def authenticated(self) -> bool:
        return self.auth is not None

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        body: Optional[dict] = None,
    ) -> dict:
        path = f"{API_PREFIX}{path}"
        attempts = 0
        while True:
            headers = self.auth.headers(method, path) if self.auth else {}
            resp = await self._client.request(
                method, path, params=params, json=body, headers=headers
            )

            if resp.status_code == 429 and attempts < 1:
                attempts += 1
                logger.warning("Kalshi rate limited, retrying", extra={"path": path})
                await self._sleep(RATE_LIMIT_RETRY_SECS)
                continue

            if not resp.is_success:
                raise KalshiAPIError(method, path, resp.status_code, resp.text)

            if not resp.content:
                return {}
            return resp.json()

    # ── Market data ──

    async def markets(self, series: str, status: str = "open") -> list[dict]:
        data = await self._request(
            "GET", "/markets", params={"series_ticker": series, "status": status}
        )
        return data.get("markets") or []

    async def active_market(self, series: str) -> Optional[MarketSnapshot]:
        """The open market in ``series`` with the nearest positive expiry."""
        now = utcnow()
        candidates = []
        for m in await self.markets(series):
            snapshot = parse_market(m, now)
            if snapshot is not None and snapshot.minutes_to_expiry > 0:
                candidates.append(snapshot)
        if not candidates:
            return None
        return min(candidates, key=lambda s: s.minutes_to_expiry)

    async def orderbook(self, ticker: str) -> Orderbook:
        data = await self._request("GET", f"/markets/{ticker}/orderbook")
        book = data.get("orderbook") or {}
        return Orderbook.from_pairs(book.get("yes") or [], book.get("no") or [])

    async def market(self, ticker: str) -> Optional[MarketSnapshot]:
        """Single market including its status and, once determined, its result."""
        data = await self._request("GET", f"/markets/{ticker}")
        market = data.get("market")
        if not market:
            return None
        return parse_market(market)

    # ── Portfolio ──

    async def resting_orders(self) -> list[RestingOrder]:
        data = await self._request("GET", "/portfolio/orders", params={"status": "resting"})
        return [
            RestingOrder(order_id=o["order_id"], ticker=o["ticker"])
            for o in data.get("orders") or []
        ]

    async def cancel_order(self, order_id: str) -> None:
        await self._request("DELETE", f"/portfolio/orders/{order_id}")

    async def _submit(self, order: OrderRequest, action: str) -> OrderResult:
        price_key = "yes_price" if order.side is Side.YES else "no_price"
        body = {
            "ticker": order.ticker,
            "action": action,
            "side": order.side.value,
            "count": order.shares,
            "type": "limit",
            price_key: order.price_cents,
            "client_order_id": str(uuid.uuid4()),
        }
        data = await self._request("POST", "/portfolio/orders", body=body)
        info = data.get("order") or {}
        result = OrderResult(
            order_id=info.get("order_id", ""),
            ticker=order.ticker,
            side=order.side,
            shares=order.shares,
            price_cents=order.price_cents,
            status=info.get("status", "resting"),
            is_paper=False,
        )
        logger.info(
            "Order posted",
            extra={
                "ticker": order.ticker,
                "action": action,
                "side": order.side.value,
                "shares": order.shares,
                "price_cents": order.price_cents,
                "order_id": result.order_id,
                "status": result.status,
            },
        )
        return result

    async def place_order(self, order: OrderRequest) -> OrderResult:
        """Limit buy."""
        return await self._submit(order, "buy")

    async def sell_order(self, order: OrderRequest) -> OrderResult:
        """Limit sell of contracts already held."""
        return await self._submit(order, "sell")

    async def positions(self) -> list[Position]:
        """Markets with non-zero exposure. Positive position is YES, negative is NO."""
        data = await self._request("GET", "/portfolio/positions")
        positions = []
        for p in data.get("market_positions") or []:
            count = p.get("position")
            if count is None:
                count = p.get("market_exposure") or 0
            count = int(count)
            if count == 0:
                continue
            positions.append(
                Position(
                    ticker=p["ticker"],
                    side=Side.YES if count > 0 else Side.NO,
                    count=abs(count),
                )
            )
        return positions

    async def settlements(self, ticker: str) -> list[Settlement]:
        data = await self._request(
            "GET", "/portfolio/settlements", params={"ticker": ticker}
        )
        settlements = []
        for s in data.get("settlements") or []:
            revenue = int(s.get("revenue") or 0)
            settlements.append(
                Settlement(
                    ticker=s["ticker"],
                    market_result=s.get("market_result") or "",
                    result="win" if revenue > 0 else "loss",
                    revenue_cents=revenue,
                    settled_time=s.get("settled_time") or "",
                )
            )
        return settlements

    async def balance(self) -> int:
        """Available balance in cents."""
        data = await self._request("GET", "/portfolio/balance")
        return int(data.get("balance", 0))
