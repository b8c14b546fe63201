"""Configuration management for kalshi-btc-agent."""
import os
from pydantic import BaseModel

from shared.schemas import PolicyLimits


class Config(BaseModel):
    """Application configuration loaded from environment variables."""
    TRADING_MODE: str = "paper"
    CONFIRM_LIVE: bool = False
    DECISION_MODE: str = "rules"
    KALSHI_API_KEY_ID: str = ""
    KALSHI_PRIVATE_KEY_PATH: str = "./kalshi_private_key.pem"
    KALSHI_BASE_URL: str = "https://api.elections.kalshi.com"
    KALSHI_WS_URL: str = "wss://api.elections.kalshi.com/trade-api/ws/v2"
    KALSHI_SERIES_TICKERS: str = "KXBTC15M"
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_HOST: str = "https://openrouter.ai/api/v1"
    LLM_MODEL: str = "anthropic/claude-3.5-sonnet"
    PROMPT_PATH: str = "brain/prompt.md"
    BINANCE_TLD: str = "us"
    ENTRY_CYCLE_INTERVAL_SECS: int = 60
    POSITION_CHECK_INTERVAL_SECS: int = 5
    TP_CENTS_PER_SHARE: int = 15
    SL_CENTS_PER_SHARE: int = 10
    MAX_SHARES: int = 3
    PRICE_CEILING_CENTS: int = 50
    MIN_EDGE_PTS: float = 8.0
    MAX_DAILY_LOSS_CENTS: int = 1000
    MAX_CONSECUTIVE_LOSSES: int = 7
    MIN_BALANCE_CENTS: int = 500
    MIN_MINUTES_TO_EXPIRY: float = 2.0
    PAPER_BALANCE_CENTS: int = 10000
    DASHBOARD_PORT: int = 8080
    DB_PATH: str = "data/ledger.db"
    LOG_LEVEL: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            TRADING_MODE=os.getenv("TRADING_MODE", "paper"),
            CONFIRM_LIVE=os.getenv("CONFIRM_LIVE", "false").lower() == "true",
            DECISION_MODE=os.getenv("DECISION_MODE", "rules"),
            KALSHI_API_KEY_ID=os.getenv("KALSHI_API_KEY_ID", ""),
            KALSHI_PRIVATE_KEY_PATH=os.getenv("KALSHI_PRIVATE_KEY_PATH", "./kalshi_private_key.pem"),
            KALSHI_BASE_URL=os.getenv("KALSHI_BASE_URL", "https://api.elections.kalshi.com"),
            KALSHI_WS_URL=os.getenv("KALSHI_WS_URL", "wss://api.elections.kalshi.com/trade-api/ws/v2"),
            KALSHI_SERIES_TICKERS=os.getenv("KALSHI_SERIES_TICKERS", "KXBTC15M"),
            OPENROUTER_API_KEY=os.getenv("OPENROUTER_API_KEY", ""),
            OPENROUTER_HOST=os.getenv("OPENROUTER_HOST", "https://openrouter.ai/api/v1"),
            LLM_MODEL=os.getenv("LLM_MODEL", "anthropic/claude-3.5-sonnet"),
            PROMPT_PATH=os.getenv("PROMPT_PATH", "brain/prompt.md"),
            BINANCE_TLD=os.getenv("BINANCE_TLD", "us"),
            ENTRY_CYCLE_INTERVAL_SECS=int(os.getenv("ENTRY_CYCLE_INTERVAL_SECS", "60")),
            POSITION_CHECK_INTERVAL_SECS=int(os.getenv("POSITION_CHECK_INTERVAL_SECS", "5")),
            TP_CENTS_PER_SHARE=int(os.getenv("TP_CENTS_PER_SHARE", "15")),
            SL_CENTS_PER_SHARE=int(os.getenv("SL_CENTS_PER_SHARE", "10")),
            MAX_SHARES=int(os.getenv("MAX_SHARES", "3")),
            PRICE_CEILING_CENTS=int(os.getenv("PRICE_CEILING_CENTS", "50")),
            MIN_EDGE_PTS=float(os.getenv("MIN_EDGE_PTS", "8")),
            MAX_DAILY_LOSS_CENTS=int(os.getenv("MAX_DAILY_LOSS_CENTS", "1000")),
            MAX_CONSECUTIVE_LOSSES=int(os.getenv("MAX_CONSECUTIVE_LOSSES", "7")),
            MIN_BALANCE_CENTS=int(os.getenv("MIN_BALANCE_CENTS", "500")),
            MIN_MINUTES_TO_EXPIRY=float(os.getenv("MIN_MINUTES_TO_EXPIRY", "2")),
            PAPER_BALANCE_CENTS=int(os.getenv("PAPER_BALANCE_CENTS", "10000")),
            DASHBOARD_PORT=int(os.getenv("DASHBOARD_PORT", "8080")),
            DB_PATH=os.getenv("DB_PATH", "data/ledger.db"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )

    @property
    def series_tickers_list(self) -> list[str]:
        return [s.strip().upper() for s in self.KALSHI_SERIES_TICKERS.split(",") if s.strip()]

    @property
    def is_live(self) -> bool:
        return self.TRADING_MODE == "live"

    @property
    def is_llm_mode(self) -> bool:
        return self.DECISION_MODE == "llm"

    @property
    def has_kalshi_credentials(self) -> bool:
        return bool(self.KALSHI_API_KEY_ID) and os.path.isfile(self.KALSHI_PRIVATE_KEY_PATH)

    def limits(self) -> PolicyLimits:
        return PolicyLimits(
            max_shares=min(3, max(1, self.MAX_SHARES)),
            price_ceiling_cents=min(50, max(1, self.PRICE_CEILING_CENTS)),
            min_edge_pts=self.MIN_EDGE_PTS,
            min_balance_cents=self.MIN_BALANCE_CENTS,
            max_daily_loss_cents=self.MAX_DAILY_LOSS_CENTS,
            max_consecutive_losses=self.MAX_CONSECUTIVE_LOSSES,
        )
