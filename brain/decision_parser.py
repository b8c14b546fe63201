"""Extract and validate the JSON decision from a model reply."""
import json
import logging
import re
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

FAILED_PARSE = "Failed to parse AI response"

THINK_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL)


class LLMDecision(BaseModel):
    """Decision as the model wrote it, before the policy guard clamps it."""
    action: Literal["BUY", "PASS"] = Field(..., description="BUY or PASS")
    side: Optional[Literal["yes", "no"]] = Field(None, description="Contract side")
    shares: Optional[int] = Field(None, description="Contracts to buy")
    max_price_cents: Optional[int] = Field(None, description="Limit price in cents")
    estimated_probability: Optional[float] = Field(None, description="Win probability of side")
    estimated_edge: Optional[float] = Field(None, description="Probability minus ask, points")
    reasoning: str = Field("", description="Short rationale")

    @field_validator("action", mode="before")
    @classmethod
    def _upper_action(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("side", mode="before")
    @classmethod
    def _lower_side(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return v or None
        return v

    @property
    def parsed(self) -> bool:
        return self.reasoning != FAILED_PARSE


def failed() -> LLMDecision:
    return LLMDecision(action="PASS", reasoning=FAILED_PARSE)


def extract_json(raw: str) -> Optional[str]:
    """JSON text from a ```json fence, a bare object, or the outermost braces."""
    text = THINK_PATTERN.sub("", raw or "").strip()

    fence = text.find("```json")
    if fence != -1:
        start = fence + len("```json")
        end = text.find("```", start)
        return text[start:end if end != -1 else len(text)].strip()

    if text.startswith("{"):
        return text

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]
    return None


def parse_decision(raw: str) -> LLMDecision:
    """Parse a model reply. Anything unusable becomes a PASS with FAILED_PARSE."""
    json_str = extract_json(raw)
    if json_str is None:
        logger.warning("No JSON in model reply", extra={"reply": (raw or "")[:200]})
        return failed()
    try:
        data = json.loads(json_str)
        if not isinstance(data, dict):
            return failed()
        return LLMDecision.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Invalid decision JSON", extra={"error": str(e)[:200]})
        return failed()
