"""Tests for brain.prompts."""
from helpers import make_market, make_price, make_row

from brain.prompts import DEFAULT_PROMPT_PATH, build_prompt, format_ledger, load_prompt
from shared.schemas import Orderbook, PerformanceState, PolicyLimits
from strategy.signal import compute_signal_summary


def test_load_prompt_falls_back_to_default(tmp_path):
    assert load_prompt(str(tmp_path / "missing.md")) == DEFAULT_PROMPT_PATH.read_text(encoding="utf-8")
    custom = tmp_path / "custom.md"
    custom.write_text("Custom policy")
    assert load_prompt(str(custom)) == "Custom policy"


def test_default_prompt_describes_output_schema():
    text = load_prompt()
    assert "estimated_probability" in text
    assert "max_price_cents" in text


def test_default_prompt_ties_probability_to_side():
    text = load_prompt()
    assert "probability that `side` wins" in text
    assert "report P(NO)" in text


def test_format_ledger_empty():
    assert format_ledger([]) == "No trades yet."


def test_build_prompt_sections():
    market = make_market(orderbook=Orderbook.from_pairs([[46, 10]], []))
    perf = PerformanceState(total_trades=1, wins=1, recent_trades=[make_row("win", 52)])
    price = make_price(spot_price=67250.5)
    summary = compute_signal_summary(market, price, PolicyLimits())
    prompt = build_prompt("POLICY", "BTC", market, perf, price, summary)

    sections = prompt.split("\n\n---\n")
    assert sections[0] == "POLICY"
    assert sections[1].startswith("## STATS")
    assert sections[2].startswith("## LAST 1 TRADES")
    assert "| win | 52¢" in sections[2]
    assert market.ticker in sections[3]
    assert "Yes bids: 46¢ x10" in sections[4]
    assert "No bids: empty" in sections[4]
    assert "$67,250.50" in sections[5]
    assert sections[6].startswith("## ENGINE SIGNALS")


def test_build_prompt_without_price():
    prompt = build_prompt("POLICY", "ETH", make_market(), PerformanceState(), None)
    assert "## ETH PRICE\nUnavailable this cycle." in prompt
    assert "No trades yet." in prompt
    assert "ENGINE SIGNALS" not in prompt
