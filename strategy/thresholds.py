"""Configurable constants for the strategy layer."""

# Minimum edge (points) between estimated and market-implied probability to BUY
MIN_EDGE_PTS = 8.0

# Losing-streak protocol: at or below this streak the bar rises
LOSING_STREAK = -3
STREAK_MIN_EDGE_PTS = 12.0
STREAK_MAX_SHARES = 1

# Edge tiers -> maximum shares (lower bound inclusive)
EDGE_TIERS = (
    (20.0, 3),
    (12.0, 2),
    (8.0, 1),
)

# Never pay more than this per share
PRICE_CEILING_CENTS = 50

# Spread above which we bid passively instead of lifting the ask
WIDE_SPREAD_CENTS = 10

# Edge at which a wide spread is crossed anyway
HIGH_CONVICTION_EDGE_PTS = 20.0

# Ask assumed when the market shows none
MISSING_ASK_CENTS = 99

# Probability model: base and clamp
BASE_PROBABILITY = 50.0
PROBABILITY_FLOOR = 5.0
PROBABILITY_CAP = 95.0

# Momentum thresholds (% over 15m) and their probability adjustments
STRONG_MOMENTUM_PCT = 0.15
WEAK_MOMENTUM_PCT = 0.05
STRONG_MOMENTUM_ADJ = 8.0
WEAK_MOMENTUM_ADJ = 3.0

# Trend alignment threshold (% per timeframe) and bonus
TREND_THRESHOLD_PCT = 0.05
TREND_ALIGNMENT_ADJ = 6.0

# EMA gap threshold (%) and adjustment
EMA_GAP_PCT = 0.05
EMA_ADJ = 3.0

# RSI bands and adjustment
RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0
RSI_ADJ = 4.0

# Orderbook imbalance bands and adjustment
IMBALANCE_HIGH = 2.0
IMBALANCE_LOW = 0.5
IMBALANCE_ADJ = 3.0

# Half-Kelly fraction -> shares scale
KELLY_SHARE_SCALE = 5.0

# Indicator periods
RSI_PERIOD = 9
EMA_PERIOD = 9
ORDERBOOK_DEPTH = 5
