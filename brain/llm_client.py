"""OpenRouter chat-completions client."""
import asyncio
import httpx
import os
import logging
from typing import List, Dict, Optional

logger = logging.getLogger(__name__)


def _merge_fields(content: str, reasoning: str) -> str:
    """Merge the reply and any reasoning trace into a single parseable text.

    With both present the reasoning is wrapped in <think> tags so parsers that
    strip them see only the reply. With only one present it is returned as-is.
    """
    c = (content or "").strip()
    r = (reasoning or "").strip()
    if not r:
        return c
    if not c:
        return r
    return f"<think>{r}</think>\n{c}"


class OpenRouterClient:
    """Client for the OpenRouter OpenAI-compatible chat API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        host: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 60.0,
    ):
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY", "")
        self.host = (host or os.getenv("OPENROUTER_HOST", "https://openrouter.ai/api/v1")).rstrip("/")
        self.default_model = model or os.getenv("LLM_MODEL", "anthropic/claude-3.5-sonnet")
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Title": "Kalshi BTC Agent",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def chat(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 1200,
    ) -> Dict:
        """
        Send a chat completion request.

        Returns dict with 'response' text, 'thinking' text (any reasoning
        trace), 'merged' text (normalized for parsing), 'model' and
        'usage' token counts.
        """
        payload = {
            "model": model or self.default_model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(
                f"{self.host}/chat/completions",
                json=payload,
                headers=self._get_headers(),
            )
            resp.raise_for_status()

        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            raise ValueError("No choices in OpenRouter response")
        msg = choices[0].get("message") or {}
        response = msg.get("content") or ""
        thinking = msg.get("reasoning") or ""
        return {
            "response": response,
            "thinking": thinking,
            "merged": _merge_fields(response, thinking),
            "model": data.get("model", payload["model"]),
            "usage": data.get("usage", {}),
        }

    async def chat_async(self, *args, **kwargs) -> Dict:
        """Async wrapper -- runs chat() in a thread pool to avoid blocking the event loop."""
        return await asyncio.to_thread(self.chat, *args, **kwargs)
