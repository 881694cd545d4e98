from __future__ import annotations

import asyncio
import time

import pytest
from pydantic import ValidationError

from fraudnet.decision import fallback_average
from fraudnet.orchestrator import PipelineOrchestrator
from fraudnet.registry import NodeRegistry, Stage
from fraudnet.schemas import DecisionMethod, NodeStatus, ResultBundle, RiskLevel, ScoringMethod

from conftest import STAGE_ONE, constant_node, failing_node


def run(orchestrator, transaction):
    return asyncio.run(orchestrator.analyze(transaction))


def stage_scores(result, index):
    return {name: out.score for name, out in result.per_stage[index].outputs.items()}


def test_high_risk_scenario(orchestrator, high_risk_tx):
    """Huge foreign amount from a brand-new client is escalated."""
    result = run(orchestrator, high_risk_tx)

    assert sum(1 for score in stage_scores(result, 0).values() if score > 0.6) >= 2
    aggregator_reasons = [
        reason.lower()
        for out in result.per_stage[2].outputs.values()
        for reason in out.reasons
    ]
    assert any("cascade" in reason or "escalation" in reason for reason in aggregator_reasons)
    assert result.verdict.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
    assert result.verdict.fraud_detected
    assert result.verdict.decision_method == DecisionMethod.WEIGHTED_ENSEMBLE
    assert 0 < len(result.verdict.primary_reasons) <= 10


def test_unlisted_country_scenario(orchestrator, unknown_country_tx):
    """An unlisted foreign country code is treated as unknown, not as safe."""
    result = run(orchestrator, unknown_country_tx)
    country = result.per_stage[0].outputs["country"]

    assert country.features["unknown_country"] == 1.0
    assert "Unknown or unlisted foreign country" in country.reasons
    assert sum(1 for score in stage_scores(result, 0).values() if score > 0.6) >= 2
    assert result.verdict.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
    assert result.verdict.fraud_detected


def test_low_risk_scenario(orchestrator, low_risk_tx):
    """A typical domestic purchase is approved."""
    result = run(orchestrator, low_risk_tx)

    assert all(score < 0.3 for score in stage_scores(result, 0).values())
    assert result.verdict.risk_level == RiskLevel.MINIMAL
    assert not result.verdict.fraud_detected
    assert result.verdict.recommended_actions == ["Approve transaction"]


def test_result_shape(orchestrator, low_risk_tx):
    result = run(orchestrator, low_risk_tx)

    assert result.transaction_id == "tx-low"
    assert [stage.name for stage in result.per_stage] == ["layer1", "layer2", "layer3"]
    assert [len(stage.outputs) for stage in result.per_stage] == [12, 6, 4]
    assert set(result.timings) == {"layer1", "layer2", "layer3", "decision", "total"}
    assert len(result.network_versions) == 23
    assert result.decision is not None
    assert result.explanation is not None and result.explanation.narrative


def test_analysis_is_deterministic(orchestrator, high_risk_tx):
    first = run(orchestrator, high_risk_tx)
    second = run(orchestrator, high_risk_tx)
    for i in range(3):
        assert stage_scores(first, i) == stage_scores(second, i)
    assert first.verdict.fraud_score == second.verdict.fraud_score
    assert first.verdict.primary_reasons == second.verdict.primary_reasons


def test_mapping_input_is_validated(orchestrator):
    result = run(orchestrator, {"id": "tx-dict", "variables": {"amount": 10}})
    assert result.transaction_id == "tx-dict"

    with pytest.raises(ValidationError):
        run(orchestrator, {"variables": {"amount": 10}})


def test_stage_barrier(registry, high_risk_tx, monkeypatch):
    """Later stages see every earlier stage in full and nothing of their own."""
    seen = {}

    def spy(node):
        original = node.evaluate

        def evaluate(transaction, bundle):
            seen[node.node_id] = [sorted(stage.outputs) for stage in bundle.stages]
            return original(transaction, bundle)
        return evaluate

    for name in ("amount", "pattern_combiner", "context_analysis"):
        node = registry.node(name)
        monkeypatch.setattr(node, "evaluate", spy(node))

    run(PipelineOrchestrator(registry), high_risk_tx)

    stage_one = sorted(registry.stages[0].node_ids)
    stage_two = sorted(registry.stages[1].node_ids)
    assert seen["amount"] == []
    assert seen["pattern_combiner"] == [stage_one]
    assert seen["context_analysis"] == [stage_one, stage_two]


def test_failing_nodes_are_isolated(registry, high_risk_tx, monkeypatch):
    """All but one stage-1 node failing still yields a verdict."""
    def boom(transaction, bundle):
        raise RuntimeError("analyzer crashed")

    for node in registry.stages[0].nodes[1:]:
        monkeypatch.setattr(node, "evaluate", boom)

    orchestrator = PipelineOrchestrator(registry)
    result = run(orchestrator, high_risk_tx)
    outputs = result.per_stage[0].outputs

    assert len(outputs) == 12
    assert outputs["amount"].status == NodeStatus.OK
    for name in registry.stages[0].node_ids[1:]:
        placeholder = outputs[name]
        assert placeholder.status == NodeStatus.ERROR
        assert placeholder.score == 0.5
        assert placeholder.confidence == 0.1
        assert placeholder.reasons == ["error in analysis"]
        assert placeholder.method == ScoringMethod.PLACEHOLDER

    assert 0.0 <= result.verdict.fraud_score <= 1.0
    assert "L1/location: degraded (error), neutral placeholder used" in result.verdict.warnings
    assert orchestrator.get_stats().node_failures == 11


def test_failing_heuristic_gets_placeholder(registry, low_risk_tx, monkeypatch):
    def broken(features, params):
        raise ZeroDivisionError("division by zero")

    monkeypatch.setattr(registry.node("behavior_validation"), "_heuristic_fn", broken)
    result = run(PipelineOrchestrator(registry), low_risk_tx)

    out = result.per_stage[2].outputs["behavior_validation"]
    assert out.status == NodeStatus.ERROR
    assert out.score == 0.5


def test_slow_node_times_out(registry, low_risk_tx, monkeypatch):
    node = registry.node("merchant")
    original = node.evaluate

    def slow(transaction, bundle):
        time.sleep(1.5)
        return original(transaction, bundle)

    monkeypatch.setattr(node, "evaluate", slow)
    orchestrator = PipelineOrchestrator(registry, stage_timeout=0.3)
    result = run(orchestrator, low_risk_tx)

    out = result.per_stage[0].outputs["merchant"]
    assert out.status == NodeStatus.TIMEOUT
    assert out.reasons == ["error in analysis"]
    assert orchestrator.get_stats().node_timeouts == 1


def test_decision_failure_uses_fallback(registry, high_risk_tx, monkeypatch):
    def boom(transaction, bundle):
        raise RuntimeError("decision crashed")

    monkeypatch.setattr(registry.decision, "evaluate", boom)
    orchestrator = PipelineOrchestrator(registry)
    result = run(orchestrator, high_risk_tx)

    expected = round(fallback_average(ResultBundle(stages=result.per_stage)), 4)
    assert result.decision is None
    assert result.verdict.decision_method == DecisionMethod.FALLBACK_AVERAGE
    assert result.verdict.confidence == 0.5
    assert result.verdict.fraud_score == expected
    assert orchestrator.get_stats().fallback_decisions == 1


def test_fallback_on_fixed_pipeline(high_risk_tx):
    """Constant nodes with a crashing decision node give exactly 0.63."""
    stages = [
        Stage("layer1", "L1", (constant_node("a", 0.2), constant_node("b", 0.4))),
        Stage("layer2", "L2", (constant_node("c", 0.6),)),
        Stage("layer3", "L3", (constant_node("d", 0.8), constant_node("e", 1.0))),
    ]
    registry = NodeRegistry(stages, failing_node("decision"))
    result = run(PipelineOrchestrator(registry), high_risk_tx)

    assert result.verdict.fraud_score == 0.63
    assert result.verdict.confidence == 0.5
    assert result.verdict.decision_method == DecisionMethod.FALLBACK_AVERAGE


def test_stats(orchestrator, high_risk_tx, low_risk_tx):
    run(orchestrator, high_risk_tx)
    run(orchestrator, low_risk_tx)
    stats = orchestrator.get_stats()
    assert stats.total_analyses == 2
    assert stats.fraud_detected == 1
    assert stats.fraud_detection_rate == 0.5

    orchestrator.reset_stats()
    assert orchestrator.get_stats().total_analyses == 0


def slow_stage_one(registry, monkeypatch, delay):
    for name in STAGE_ONE:
        node = registry.node(name)
        original = node.evaluate

        def slow(transaction, bundle, original=original):
            time.sleep(delay)
            return original(transaction, bundle)

        monkeypatch.setattr(node, "evaluate", slow)


def test_queued_nodes_do_not_time_out(registry, high_risk_tx, monkeypatch):
    """Waiting for a free worker thread is not counted against the stage timeout."""
    slow_stage_one(registry, monkeypatch, delay=0.05)
    orchestrator = PipelineOrchestrator(registry, stage_timeout=0.5)

    async def analyze_many():
        return await asyncio.gather(*(orchestrator.analyze(high_risk_tx) for _ in range(10)))

    results = asyncio.run(analyze_many())

    assert orchestrator.get_stats().node_timeouts == 0
    assert all(result.verdict.fraud_detected for result in results)
    assert len({result.verdict.fraud_score for result in results}) == 1
