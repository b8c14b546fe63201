"""Pydantic models for all data flowing through the trading loop."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Side(str, Enum):
    YES = "yes"
    NO = "no"

    @property
    def opposite(self) -> "Side":
        return Side.NO if self is Side.YES else Side.YES


class Action(str, Enum):
    BUY = "BUY"
    PASS = "PASS"


# ── BTC price data ──


class Candle(BaseModel):
    """One Binance kline."""
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: int


class MomentumDirection(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    FLAT = "FLAT"


class TrendAlignment(str, Enum):
    ALL_UP = "ALL_UP"
    ALL_DOWN = "ALL_DOWN"
    ALL_FLAT = "ALL_FLAT"
    MIXED = "MIXED"


class PriceSignal(BaseModel):
    """Spot price plus the technical indicators derived from recent candles."""
    spot_price: float
    pct_change_5m: float = 0.0
    pct_change_15m: float = 0.0
    pct_change_1h: float = 0.0
    momentum: MomentumDirection = MomentumDirection.FLAT
    sma_15m: float = 0.0
    price_vs_sma: str = ""
    ema_9: float = 0.0
    price_vs_ema: str = ""
    rsi_9: float = 50.0
    volatility_1m: float = 0.0
    trend: TrendAlignment = TrendAlignment.MIXED
    last_3_candles: list[Candle] = Field(default_factory=list)


# ── Market data ──


class OrderbookLevel(BaseModel):
    price_cents: int
    quantity: int


class Orderbook(BaseModel):
    """Resting bids on each side, best (highest) price first."""
    yes: list[OrderbookLevel] = Field(default_factory=list)
    no: list[OrderbookLevel] = Field(default_factory=list)

    @classmethod
    def from_pairs(cls, yes: list, no: list) -> "Orderbook":
        def _levels(pairs):
            levels = [
                OrderbookLevel(price_cents=int(p[0]), quantity=int(p[1]))
                for p in pairs
                if len(p) >= 2
            ]
            return sorted(levels, key=lambda lvl: lvl.price_cents, reverse=True)

        return cls(yes=_levels(yes or []), no=_levels(no or []))

    def side(self, side: Side) -> list[OrderbookLevel]:
        return self.yes if side is Side.YES else self.no

    def best_bid(self, side: Side) -> Optional[int]:
        levels = self.side(side)
        return max(lvl.price_cents for lvl in levels) if levels else None


class MarketSnapshot(BaseModel):
    """Quote, activity and depth for one Kalshi market."""
    ticker: str
    event_ticker: str = ""
    title: str = ""
    yes_bid: Optional[int] = None
    yes_ask: Optional[int] = None
    no_bid: Optional[int] = None
    no_ask: Optional[int] = None
    last_price: Optional[int] = None
    volume: int = 0
    volume_24h: int = 0
    open_interest: int = 0
    expiration_time: str = ""
    minutes_to_expiry: float = 0.0
    status: str = ""
    result: str = ""
    orderbook: Orderbook = Field(default_factory=Orderbook)

    def ask(self, side: Side) -> Optional[int]:
        return self.yes_ask if side is Side.YES else self.no_ask

    def bid(self, side: Side) -> Optional[int]:
        return self.yes_bid if side is Side.YES else self.no_bid

    def spread(self, side: Side) -> Optional[int]:
        ask, bid = self.ask(side), self.bid(side)
        if ask is None or bid is None:
            return None
        return ask - bid


# ── Performance ──


class LedgerRow(BaseModel):
    """One trade in the ledger."""
    id: Optional[int] = None
    timestamp: datetime = Field(default_factory=utcnow)
    ticker: str
    series: str = ""
    side: Side
    shares: int
    price_cents: int
    result: str = "pending"
    pnl_cents: int = 0
    cumulative_cents: int = 0
    order_id: str = ""
    is_paper: bool = True


class PerformanceState(BaseModel):
    """Aggregated ledger statistics handed to the decision policy."""
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    total_pnl_cents: int = 0
    today_pnl_cents: int = 0
    current_streak: int = 0
    max_drawdown_cents: int = 0
    avg_win_cents: float = 0.0
    avg_loss_cents: float = 0.0
    recent_trades: list[LedgerRow] = Field(default_factory=list)


# ── Decisions ──


class DecisionSource(str, Enum):
    RULES = "rules"
    LLM = "llm"
    GUARD = "guard"


class Decision(BaseModel):
    """Fixed-shape trade decision, emitted every cycle including PASS."""
    action: Action
    side: Optional[Side] = None
    shares: Optional[int] = Field(default=None, ge=1, le=3)
    max_price_cents: Optional[int] = Field(default=None, ge=1, le=50)
    estimated_probability: int = Field(ge=1, le=99)
    estimated_edge: int = Field(ge=-50, le=50)
    reasoning: str = ""
    source: DecisionSource = DecisionSource.RULES

    @model_validator(mode="after")
    def _check_shape(self) -> "Decision":
        if self.action is Action.BUY:
            if self.side is None or self.shares is None or self.max_price_cents is None:
                raise ValueError("BUY requires side, shares and max_price_cents")
        else:
            self.side = None
            self.shares = None
            self.max_price_cents = None
        return self

    @classmethod
    def pass_(
        cls,
        probability: float,
        edge: float,
        reasoning: str,
        source: DecisionSource = DecisionSource.RULES,
    ) -> "Decision":
        return cls(
            action=Action.PASS,
            estimated_probability=clamp_probability(probability),
            estimated_edge=clamp_edge(edge),
            reasoning=reasoning,
            source=source,
        )

    def to_wire(self) -> dict:
        """The JSON shape the model is asked to produce."""
        return {
            "action": self.action.value,
            "side": self.side.value if self.side else None,
            "shares": self.shares,
            "max_price_cents": self.max_price_cents,
            "estimated_probability": self.estimated_probability,
            "estimated_edge": self.estimated_edge,
            "reasoning": self.reasoning,
        }


def clamp_probability(value: float) -> int:
    return int(max(1, min(99, round(value))))


def clamp_edge(value: float) -> int:
    return int(max(-50, min(50, round(value))))


class SignalSummary(BaseModel):
    """Deterministic read of the market used by both decision modes."""
    trend: Optional[TrendAlignment] = None
    rsi_signal: str = "UNAVAILABLE"
    orderbook_imbalance: float = 1.0
    probability_yes: float = 50.0
    recommended_side: Optional[Side] = None
    best_side: Side = Side.YES
    best_edge: float = 0.0
    best_price_cents: int = 99
    kelly_shares: int = 0
    price_available: bool = True
    narrative: str = ""

    def probability_for(self, side: Side) -> float:
        return self.probability_yes if side is Side.YES else 100.0 - self.probability_yes


class PolicyLimits(BaseModel):
    """Thresholds the policy and risk checks enforce."""
    max_shares: int = Field(default=3, ge=1, le=3)
    price_ceiling_cents: int = Field(default=50, ge=1, le=50)
    min_edge_pts: float = 8.0
    streak_min_edge_pts: float = 12.0
    losing_streak: int = -3
    wide_spread_cents: int = 10
    high_conviction_edge_pts: float = 20.0
    min_balance_cents: int = 500
    max_daily_loss_cents: int = 1000
    max_consecutive_losses: int = 7


# ── Orders & positions ──


class OrderRequest(BaseModel):
    ticker: str
    side: Side
    shares: int
    price_cents: int


class OrderResult(BaseModel):
    """Result of an order placement (paper or live)."""
    order_id: str
    ticker: str
    side: Side
    shares: int
    price_cents: int
    status: str = "resting"
    is_paper: bool = True
    timestamp: datetime = Field(default_factory=utcnow)


class RestingOrder(BaseModel):
    order_id: str
    ticker: str


class Position(BaseModel):
    ticker: str
    side: Side
    count: int


class Settlement(BaseModel):
    ticker: str
    market_result: str = ""
    result: str
    revenue_cents: int = 0
    settled_time: str = ""


class OpenPosition(BaseModel):
    ticker: str
    side: Side
    shares: int
    entry_price_cents: int
    order_id: str
    entered_at: datetime = Field(default_factory=utcnow)


class ExitReason(str, Enum):
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"


class ExitEvent(BaseModel):
    ticker: str
    reason: ExitReason
    entry_price_cents: int
    exit_price_cents: int
    shares: int
    pnl_cents: int
    order_id: str


# ── Kalshi websocket events ──


class FillEvent(BaseModel):
    order_id: str
    ticker: str
    side: Side
    shares: int
    price_cents: int


class OrderbookSnapshot(BaseModel):
    ticker: str
    book: Orderbook


class OrderbookDelta(BaseModel):
    ticker: str
    side: Side
    price_cents: int
    delta: int


class MarketLifecycleEvent(BaseModel):
    ticker: str
    status: str
    result: Optional[str] = None


class Disconnected(BaseModel):
    reason: str = ""
