"""Test configuration and fixtures."""
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(project_root / "tests"))

from brain.llm_client import _merge_fields  # noqa: E402


def mcr(response="", thinking="", model="test-model", usage=None):
    """Build a mock OpenRouter chat return dict with merged field.

    Use instead of raw dicts so mocks match llm_client.chat() format.
    Short name (mock chat response) for compact test code.
    """
    return {
        "response": response,
        "thinking": thinking,
        "merged": _merge_fields(response, thinking),
        "model": model,
        "usage": usage or {},
    }
