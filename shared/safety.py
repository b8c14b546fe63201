"""Startup validation: refuse to run with a configuration that cannot trade safely."""
import logging
from pathlib import Path
from typing import Optional

from shared.config import Config

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent

TRADING_MODES = ("paper", "live")
DECISION_MODES = ("rules", "llm")


class StartupError(Exception):
    """Configuration problem that must be fixed before the agent starts."""


def resolve_prompt_path(config: Config) -> Optional[Path]:
    """PROMPT_PATH as given, or relative to the project root."""
    candidate = Path(config.PROMPT_PATH)
    if candidate.is_file():
        return candidate
    if not candidate.is_absolute() and (PROJECT_ROOT / candidate).is_file():
        return PROJECT_ROOT / candidate
    return None


def _read_pem(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError:
        return ""


def validate_startup(config: Config):
    if config.TRADING_MODE not in TRADING_MODES:
        raise StartupError(f"TRADING_MODE must be one of {TRADING_MODES}, got {config.TRADING_MODE!r}")
    if config.DECISION_MODE not in DECISION_MODES:
        raise StartupError(f"DECISION_MODE must be one of {DECISION_MODES}, got {config.DECISION_MODE!r}")

    if not config.series_tickers_list:
        raise StartupError("KALSHI_SERIES_TICKERS not set")

    if config.is_llm_mode:
        if not config.OPENROUTER_API_KEY:
            raise StartupError("OPENROUTER_API_KEY not set (required for DECISION_MODE=llm)")
        if resolve_prompt_path(config) is None:
            raise StartupError(f"Prompt file not found: {config.PROMPT_PATH}")

    if config.is_live:
        if not config.KALSHI_API_KEY_ID:
            raise StartupError("KALSHI_API_KEY_ID not set (required for live trading)")
        pem = _read_pem(config.KALSHI_PRIVATE_KEY_PATH)
        if not pem:
            raise StartupError("KALSHI_PRIVATE_KEY_PATH is empty or file not found")
        if "BEGIN" not in pem:
            raise StartupError("PEM file doesn't look like a private key")
        if not config.CONFIRM_LIVE:
            raise StartupError(
                "TRADING_MODE=live but CONFIRM_LIVE is not true. "
                "Set CONFIRM_LIVE=true to acknowledge real money trading."
            )
        logger.warning("LIVE TRADING ENABLED, real money at risk")
