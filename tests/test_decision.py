from __future__ import annotations

import pytest

from fraudnet.decision import (
    DECISION_NODE,
    build_verdict,
    determine_risk_level,
    extract_primary_reasons,
    fallback_average,
    fallback_verdict,
    stage_weights,
)
from fraudnet.schemas import (
    DecisionMethod,
    ResultBundle,
    RiskLevel,
    ScoreOutput,
    ScoringMethod,
    StageResult,
    Transaction,
)

from conftest import STAGE_ONE, STAGE_THREE, STAGE_TWO, make_bundle, output


def bundle_of(*stage_scores):
    """One StageResult per list of scores; node names are synthetic."""
    stages = []
    for i, scores in enumerate(stage_scores):
        outputs = {f"s{i}n{j}": output(f"s{i}n{j}", score) for j, score in enumerate(scores)}
        stages.append(StageResult(name=f"layer{i + 1}", tag=f"L{i + 1}", outputs=outputs))
    return ResultBundle(stages=stages)


def decision_output(score: float, reasons=None, method=ScoringMethod.HEURISTIC) -> ScoreOutput:
    return ScoreOutput(node_id="decision", score=score, confidence=0.8, reasons=reasons or [], method=method)


@pytest.mark.parametrize("score, level", [
    (0.0, RiskLevel.MINIMAL),
    (0.29, RiskLevel.MINIMAL),
    (0.30, RiskLevel.LOW),
    (0.49, RiskLevel.LOW),
    (0.50, RiskLevel.MEDIUM),
    (0.69, RiskLevel.MEDIUM),
    (0.70, RiskLevel.HIGH),
    (0.89, RiskLevel.HIGH),
    (0.90, RiskLevel.CRITICAL),
    (1.0, RiskLevel.CRITICAL),
])
def test_risk_level_bands(score, level):
    assert determine_risk_level(score) == level


def test_threshold_boundaries():
    """fraud_detected is score >= threshold."""
    bundle = make_bundle(depth=3)
    assert build_verdict(decision_output(0.7), bundle).fraud_detected
    assert not build_verdict(decision_output(0.6999), bundle).fraud_detected
    assert not build_verdict(decision_output(1.0), bundle, fraud_threshold=1.1).fraud_detected
    assert build_verdict(decision_output(0.0), bundle, fraud_threshold=0.0).fraud_detected


def test_verdict_method_follows_scoring_method():
    bundle = make_bundle(depth=3)
    assert build_verdict(decision_output(0.2), bundle).decision_method == DecisionMethod.WEIGHTED_ENSEMBLE
    trained = build_verdict(decision_output(0.2, method=ScoringMethod.MODEL), bundle)
    assert trained.decision_method == DecisionMethod.TRAINED_MODEL


def test_fallback_average_exact_value():
    """0.3 * 0.3 + 0.3 * 0.6 + 0.4 * 0.9."""
    bundle = bundle_of([0.2, 0.4], [0.6], [0.8, 1.0])
    assert fallback_average(bundle) == pytest.approx(0.63)


def test_fallback_empty_stage_counts_as_neutral():
    bundle = bundle_of([], [0.6], [0.8])
    assert fallback_average(bundle) == pytest.approx(0.3 * 0.5 + 0.3 * 0.6 + 0.4 * 0.8)


def test_fallback_mismatched_stage_count_uses_plain_mean():
    assert fallback_average(bundle_of([0.2], [0.6])) == pytest.approx(0.4)


def test_fallback_empty_bundle_is_neutral():
    assert fallback_average(ResultBundle()) == 0.5


def test_fallback_verdict():
    verdict = fallback_verdict(bundle_of([0.2, 0.4], [0.6], [0.8, 1.0]), reason="decision timed out")
    assert verdict.fraud_score == 0.63
    assert verdict.confidence == 0.5
    assert verdict.decision_method == DecisionMethod.FALLBACK_AVERAGE
    assert verdict.risk_level == RiskLevel.MEDIUM
    assert not verdict.fraud_detected
    assert verdict.warnings[-1] == "Decision fallback applied: decision timed out"


def test_primary_reasons_tagged_and_ordered():
    stage_one = StageResult(name="layer1", tag="L1", outputs={
        "a": output("a", 0.9, ["r1", "r2"]),
        "b": output("b", 0.5, ["ignored"]),
        "c": output("c", 0.61, ["r3"]),
    })
    stage_two = StageResult(name="layer2", tag="L2", outputs={"d": output("d", 0.8, ["r4"])})
    bundle = ResultBundle(stages=[stage_one, stage_two])

    reasons = extract_primary_reasons(bundle, decision_output(0.9, ["final call"]))
    assert reasons == ["L1: r1", "L1: r2", "L1: r3", "L2: r4", "Final: final call"]


def test_primary_reasons_truncated_to_ten():
    outputs = {f"n{i}": output(f"n{i}", 0.9, [f"reason {i}"]) for i in range(12)}
    bundle = ResultBundle(stages=[StageResult(name="layer1", tag="L1", outputs=outputs)])
    reasons = extract_primary_reasons(bundle)
    assert len(reasons) == 10
    assert reasons[0] == "L1: reason 0"
    assert reasons[-1] == "L1: reason 9"


def test_stage_weights():
    assert list(stage_weights(3)) == [0.25, 0.30, 0.35]
    assert stage_weights(0) == ()
    assert sum(stage_weights(2)) == pytest.approx(0.9)


def test_decision_node_all_high():
    node = DECISION_NODE.build("decision")
    bundle = make_bundle({name: 0.95 for name in STAGE_ONE + STAGE_TWO + STAGE_THREE}, depth=3)
    out = node.evaluate(Transaction(id="t"), bundle)
    assert out.score > 0.9
    assert "Critical pattern: 22 nodes above 0.8" in out.reasons


def test_decision_node_all_low():
    node = DECISION_NODE.build("decision")
    out = node.evaluate(Transaction(id="t", variables={"client_age_days": 1000}), make_bundle(depth=3))
    assert out.score == 0.0
    assert 0.5 <= out.confidence <= 0.95
