"""Decision maker: deterministic rules, or the LLM judge behind the same policy guard."""
import logging
import time
from typing import Optional

from brain.decision_parser import LLMDecision
from brain.trade_judge import TradeJudge
from shared.schemas import (
    Action,
    Decision,
    DecisionSource,
    MarketSnapshot,
    PerformanceState,
    PolicyLimits,
    PriceSignal,
    Side,
    SignalSummary,
    clamp_edge,
    clamp_probability,
)
from strategy import policy
from strategy.risk import validate_edge
from strategy.signal import compute_signal_summary
from strategy.thresholds import MISSING_ASK_CENTS, STREAK_MAX_SHARES

logger = logging.getLogger(__name__)

RULES_MODE = "rules"
LLM_MODE = "llm"


class DecisionMaker:
    """Produces one Decision per market per cycle."""

    def __init__(
        self,
        limits: PolicyLimits,
        mode: str = RULES_MODE,
        judge: Optional[TradeJudge] = None,
    ):
        if mode == LLM_MODE and judge is None:
            raise ValueError("llm decision mode requires a trade judge")
        self.limits = limits
        self.mode = mode
        self.judge = judge

    async def decide(
        self,
        asset: str,
        market: MarketSnapshot,
        price: Optional[PriceSignal],
        performance: PerformanceState,
    ) -> Decision:
        start = time.monotonic()
        summary = compute_signal_summary(market, price, self.limits)

        if self.mode == LLM_MODE:
            raw = await self.judge.judge(asset, market, performance, price, summary)
            decision = self.guard(raw, market, performance, summary)
        else:
            decision = policy.evaluate(market, price, performance, self.limits, summary)

        logger.info(
            "Decision",
            extra={
                "ticker": market.ticker,
                "mode": self.mode,
                "action": decision.action.value,
                "side": decision.side.value if decision.side else None,
                "shares": decision.shares,
                "max_price_cents": decision.max_price_cents,
                "probability": decision.estimated_probability,
                "edge": decision.estimated_edge,
                "source": decision.source.value,
                "latency_ms": round((time.monotonic() - start) * 1000),
            },
        )
        return decision

    def guard(
        self,
        raw: LLMDecision,
        market: MarketSnapshot,
        performance: PerformanceState,
        summary: SignalSummary,
    ) -> Decision:
        """Hold a model decision to the same limits the rules policy obeys."""
        limits = self.limits
        fallback_prob = summary.probability_for(summary.best_side)

        def _pass(reasoning: str, source: DecisionSource, prob=None, edge=None) -> Decision:
            return Decision.pass_(
                fallback_prob if prob is None else prob,
                summary.best_edge if edge is None else edge,
                reasoning,
                source,
            )

        if not raw.parsed or raw.action == Action.PASS.value:
            prob = raw.estimated_probability
            edge = None
            if prob is not None:
                # Edge is always probability minus the ask of the side it refers to
                pass_side = Side(raw.side) if raw.side else summary.best_side
                pass_ask = market.ask(pass_side)
                edge = prob - (pass_ask if pass_ask is not None else MISSING_ASK_CENTS)
            return _pass(raw.reasoning, DecisionSource.LLM, prob, edge)

        if raw.side is None:
            return _pass("Guard: BUY without a side", DecisionSource.GUARD)
        side = Side(raw.side)

        ask = market.ask(side)
        if ask is None:
            ask = MISSING_ASK_CENTS
        prob = raw.estimated_probability
        edge = None if prob is None else prob - ask
        streak = performance.current_streak

        price_cents = raw.max_price_cents if raw.max_price_cents is not None else ask
        price_cents = max(1, min(price_cents, limits.price_ceiling_cents))

        veto = validate_edge(prob, edge, price_cents, streak, limits)
        if veto:
            return _pass(f"Guard: {veto}", DecisionSource.GUARD, prob, edge)

        losing = streak <= limits.losing_streak
        if losing and not policy.is_unanimous(summary.trend, side):
            return _pass(
                f"Guard: losing streak {streak} needs unanimous trend for {side.value}",
                DecisionSource.GUARD, prob, edge,
            )

        cap = min(limits.max_shares, max(1, policy.max_shares_for_edge(edge)))
        if losing:
            cap = min(cap, STREAK_MAX_SHARES)
        shares = max(1, min(raw.shares or 1, cap))

        if shares != raw.shares or price_cents != raw.max_price_cents:
            logger.info(
                "Guard clamped model decision",
                extra={
                    "ticker": market.ticker,
                    "shares": [raw.shares, shares],
                    "max_price_cents": [raw.max_price_cents, price_cents],
                },
            )

        return Decision(
            action=Action.BUY,
            side=side,
            shares=shares,
            max_price_cents=price_cents,
            estimated_probability=clamp_probability(prob),
            estimated_edge=clamp_edge(edge),
            reasoning=raw.reasoning,
            source=DecisionSource.LLM,
        )
