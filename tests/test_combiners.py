from __future__ import annotations

import pytest

from fraudnet.combiners import STAGE_TWO_NODES, cascade_groups, threshold_avoidance
from fraudnet.config import COMBINER_THRESHOLDS
from fraudnet.schemas import Transaction

from conftest import make_bundle

SPECS = {spec.name: spec for spec in STAGE_TWO_NODES}


def evaluate(name: str, scores, variables=None):
    node = SPECS[name].build("layer2")
    return node.evaluate(Transaction(id="t", variables=variables or {}), make_bundle(scores, depth=1))


def test_six_combiners():
    assert list(SPECS) == [
        "amount_combiner", "behavior_combiner", "location_combiner",
        "timing_combiner", "device_combiner", "pattern_combiner",
    ]


@pytest.mark.parametrize("name", sorted(SPECS))
def test_quiet_inputs_score_zero(name):
    assert evaluate(name, {}).score == 0.0


def test_threshold_avoidance():
    assert threshold_avoidance(9500)
    assert threshold_avoidance(2900)
    assert not threshold_avoidance(10000)
    assert not threshold_avoidance(45)


def test_location_combiner_base_blend():
    """Weighted blend of location, distance and country."""
    out = evaluate("location_combiner", {"location": 1.0, "country": 0.5})
    assert out.score == pytest.approx(0.4 + 0.2)


def test_pattern_combiner_structuring():
    out = evaluate("pattern_combiner", {}, {"amount": 9500, "transactions_last_24h": 6})
    assert "Structuring meta-pattern" in out.reasons
    assert out.score == pytest.approx(0.2)


def test_cascade_groups_need_every_member():
    bundle = make_bundle({"time": 0.7, "day": 0.7, "frequency": 0.7}, depth=1)
    assert cascade_groups(bundle) == ["temporal"]

    averaged = make_bundle({"time": 0.95, "day": 0.95, "frequency": 0.5}, depth=1)
    assert cascade_groups(averaged) == []


def test_combiner_confidence_reflects_breadth():
    """More reporting stage-1 nodes raise the combined confidence."""
    narrow = evaluate("amount_combiner", {"amount": 0.9})
    broad = evaluate("amount_combiner", {name: 0.9 for name in ("amount", "pattern", "merchant", "location")})
    assert broad.confidence > narrow.confidence


def test_rapid_succession_cutoff_comes_from_config(monkeypatch):
    variables = {"time_since_prev_transaction": 1.5}
    assert evaluate("timing_combiner", {}, variables).features["rapid_succession"] == 1.0

    monkeypatch.setitem(COMBINER_THRESHOLDS, "rapid_succession_minutes", 1.0)
    assert evaluate("timing_combiner", {}, variables).features["rapid_succession"] == 0.0
