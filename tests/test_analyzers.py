from __future__ import annotations

import pytest

from fraudnet.analyzers import STAGE_ONE_NODES, country_class, merchant_class, rule_heuristic
from fraudnet.schemas import ResultBundle, Transaction

from conftest import HIGH_RISK_VARIABLES, LOW_RISK_VARIABLES

SPECS = {spec.name: spec for spec in STAGE_ONE_NODES}


def evaluate(name: str, variables):
    node = SPECS[name].build("layer1")
    return node.evaluate(Transaction(id="t", variables=variables), ResultBundle())


def test_twelve_analyzers():
    assert len(STAGE_ONE_NODES) == 12
    assert len(SPECS) == 12


@pytest.mark.parametrize("name", sorted(SPECS))
def test_missing_variables_never_raise(name):
    """An empty transaction scores quietly."""
    out = evaluate(name, {})
    assert 0.0 <= out.score <= 1.0


@pytest.mark.parametrize("name", sorted(SPECS))
def test_unparsable_variables_never_raise(name):
    """Strings where numbers are expected read as missing."""
    variables = {key: "n/a" for key in (
        "amount", "client_age_days", "hour_of_day", "day_of_week", "transactions_last_hour",
        "transactions_last_24h", "distance_from_prev", "time_since_prev_transaction",
    )}
    out = evaluate(name, variables)
    assert 0.0 <= out.score <= 1.0


@pytest.mark.parametrize("name", ["amount", "location", "country"])
def test_high_risk_scenario_analyzers(name):
    """Huge foreign amount from a brand-new client lights up the core analyzers."""
    assert evaluate(name, HIGH_RISK_VARIABLES).score > 0.6


@pytest.mark.parametrize("name", sorted(SPECS))
def test_low_risk_scenario_analyzers(name):
    """Typical domestic purchase by an established client stays quiet."""
    assert evaluate(name, LOW_RISK_VARIABLES).score < 0.3


def test_distance_without_reference():
    """No previous transaction means zero score at reduced confidence."""
    out = evaluate("distance", {"amount": 100})
    assert out.score == 0.0
    assert out.confidence == 0.5
    assert out.reasons == ["No previous transaction to compare distance"]


def test_distance_impossible_speed():
    out = evaluate("distance", {"distance_from_prev": 2000, "time_since_prev_transaction": 30})
    assert out.score >= 0.9
    assert "Physically impossible travel speed" in out.reasons


def test_micro_amount_card_testing():
    out = evaluate("amount", {"amount": 0.5})
    assert out.score == pytest.approx(0.7)
    assert out.reasons == ["Micro amount typical of card testing"]


def test_online_without_device_or_ip():
    out = evaluate("device", {"channel": "online", "amount": 10})
    assert out.score == pytest.approx(0.7)


def test_device_offline_channel_ignores_missing_device():
    assert evaluate("device", {"channel": "pos", "amount": 10}).score == 0.0


def test_velocity_burst():
    out = evaluate("velocity", {"transactions_last_hour": 9, "transactions_last_24h": 40})
    assert out.score == pytest.approx(1.0)
    assert "Extreme number of transactions in the last hour" in out.reasons


def test_very_high_risk_country_first_time():
    out = evaluate("country", {"is_domestic": False, "country": "kp"})
    assert out.score == pytest.approx(1.0)
    assert "Very high-risk country" in out.reasons


def test_deep_night():
    out = evaluate("time", {"hour_of_day": 3})
    assert out.score == pytest.approx(0.6)
    assert out.reasons == ["Transaction in the early hours"]


def test_rule_heuristic_caps_at_one():
    params = {"rules": [("a", 0.8, "A"), ("b", 0.7, "B")], "confidence": 0.75}
    out = rule_heuristic({"a": 1.0, "b": 1.0}, params)
    assert out.score == 1.0
    assert out.confidence == 0.75
    assert out.reasons == ["A", "B"]


def test_country_and_merchant_classes():
    assert country_class({}) == "home"
    assert country_class({"is_domestic": False, "country": "NG"}) == "high"
    assert country_class({"is_domestic": False, "country": "FR"}) == "low"
    assert country_class({"is_domestic": "false", "country": "QQ"}) == "unknown"
    assert merchant_class({}) == "none"
    assert merchant_class({"merchant_type": "Crypto"}) == "very_high"
    assert merchant_class({"merchant_type": "grocery"}) == "low"
