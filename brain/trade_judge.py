"""Trade judge: asks the model for a BUY/PASS decision on one market."""
import logging
import time
from typing import Optional

from brain.decision_parser import LLMDecision, parse_decision
from brain.llm_client import OpenRouterClient
from brain.prompts import build_prompt
from shared.schemas import MarketSnapshot, PerformanceState, PriceSignal, SignalSummary

logger = logging.getLogger(__name__)


class TradeJudge:
    """Builds the cycle prompt, calls the model and parses its JSON reply."""

    def __init__(self, client: OpenRouterClient, model: str, policy_prompt: str):
        self.client = client
        self.model = model
        self.policy_prompt = policy_prompt

    async def judge(
        self,
        asset: str,
        market: MarketSnapshot,
        performance: PerformanceState,
        price: Optional[PriceSignal],
        summary: Optional[SignalSummary] = None,
    ) -> LLMDecision:
        prompt = build_prompt(
            self.policy_prompt, asset, market, performance, price, summary
        )

        start = time.monotonic()
        try:
            result = await self.client.chat_async(
                messages=[{"role": "user", "content": prompt}],
                model=self.model,
                temperature=0.2,
                max_tokens=1200,
            )
        except Exception as e:
            latency = (time.monotonic() - start) * 1000
            logger.error(
                "Trade judge error",
                extra={"error": str(e), "latency_ms": round(latency)},
            )
            return LLMDecision(action="PASS", reasoning=f"LLM error: {e}")

        latency = (time.monotonic() - start) * 1000
        response = (result.get("response") or "").strip()

        # Prefer the clean reply; fall back to the reasoning trace
        decision = parse_decision(response) if response else None
        if decision is None or not decision.parsed:
            decision = parse_decision(result.get("merged", ""))

        logger.info(
            "Trade judge verdict",
            extra={
                "ticker": market.ticker,
                "action": decision.action,
                "side": decision.side,
                "parsed": decision.parsed,
                "latency_ms": round(latency),
            },
        )
        return decision
