"""Tests for brain.decision_parser."""
from brain.decision_parser import FAILED_PARSE, extract_json, parse_decision

BUY_JSON = (
    '{"action": "BUY", "side": "yes", "shares": 2, "max_price_cents": 48, '
    '"estimated_probability": 62, "estimated_edge": 14, "reasoning": "Trend up"}'
)


def test_parse_bare_json():
    d = parse_decision(BUY_JSON)
    assert d.parsed
    assert d.action == "BUY"
    assert d.side == "yes"
    assert d.shares == 2
    assert d.max_price_cents == 48
    assert d.estimated_probability == 62
    assert d.reasoning == "Trend up"


def test_parse_fenced_json_with_prose():
    raw = f"Here is my decision:\n```json\n{BUY_JSON}\n```\nGood luck."
    d = parse_decision(raw)
    assert d.parsed
    assert d.action == "BUY"


def test_parse_strips_think_block():
    raw = '<think>maybe {"action": "PASS"}</think>\n' + BUY_JSON
    d = parse_decision(raw)
    assert d.action == "BUY"


def test_parse_embedded_braces():
    d = parse_decision(f"Decision follows {BUY_JSON} end")
    assert d.parsed
    assert d.side == "yes"


def test_parse_normalizes_case():
    d = parse_decision('{"action": "buy", "side": "NO", "estimated_probability": 70}')
    assert d.action == "BUY"
    assert d.side == "no"


def test_parse_pass_without_side():
    d = parse_decision('{"action": "PASS", "side": null, "reasoning": "No edge"}')
    assert d.parsed
    assert d.action == "PASS"
    assert d.side is None


def test_parse_no_json_fails():
    d = parse_decision("I would not trade this market.")
    assert not d.parsed
    assert d.action == "PASS"
    assert d.reasoning == FAILED_PARSE


def test_parse_invalid_action_fails():
    d = parse_decision('{"action": "HOLD"}')
    assert not d.parsed


def test_parse_invalid_json_fails():
    assert not parse_decision('{"action": "BUY",').parsed
    assert not parse_decision("").parsed
    assert not parse_decision("[1, 2]").parsed


def test_extract_json_none_without_braces():
    assert extract_json("nothing here") is None
