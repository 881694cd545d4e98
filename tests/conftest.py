"""
Shared fixtures: fresh pipelines, reference transactions and bundle builders.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import pytest

from fraudnet.node import NodeScore, ScoringNode
from fraudnet.orchestrator import PipelineOrchestrator
from fraudnet.registry import build_default_registry
from fraudnet.schemas import NodeStatus, ResultBundle, ScoreOutput, ScoringMethod, StageResult, Transaction

STAGE_ONE = [
    "amount", "location", "time", "velocity", "pattern", "channel",
    "country", "day", "device", "distance", "frequency", "merchant",
]
STAGE_TWO = [
    "amount_combiner", "behavior_combiner", "location_combiner",
    "timing_combiner", "device_combiner", "pattern_combiner",
]
STAGE_THREE = ["risk_assessment", "anomaly_detection", "behavior_validation", "context_analysis"]

HIGH_RISK_VARIABLES = {
    "amount": 50000,
    "client_age_days": 2,
    "historical_transaction_count": 0,
    "is_domestic": False,
    "country": "NG",
}

# Same profile with a code missing from every country list.
UNKNOWN_COUNTRY_VARIABLES = {**HIGH_RISK_VARIABLES, "country": "high-risk-code"}

LOW_RISK_VARIABLES = {
    "amount": 45,
    "client_age_days": 900,
    "historical_transaction_count": 300,
    "historical_avg_amount": 50,
    "is_domestic": True,
}


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def orchestrator(registry):
    return PipelineOrchestrator(registry)


@pytest.fixture
def high_risk_tx() -> Transaction:
    return Transaction(id="tx-high", variables=HIGH_RISK_VARIABLES)


@pytest.fixture
def low_risk_tx() -> Transaction:
    return Transaction(id="tx-low", variables=LOW_RISK_VARIABLES)


@pytest.fixture
def unknown_country_tx() -> Transaction:
    return Transaction(id="tx-unknown-country", variables=UNKNOWN_COUNTRY_VARIABLES)


def output(node_id: str, score: float, reasons: Optional[List[str]] = None,
           status: NodeStatus = NodeStatus.OK) -> ScoreOutput:
    return ScoreOutput(
        node_id=node_id,
        score=score,
        confidence=0.8,
        reasons=reasons or [],
        method=ScoringMethod.HEURISTIC if status == NodeStatus.OK else ScoringMethod.PLACEHOLDER,
        status=status,
    )


def stage(name: str, tag: str, nodes: Iterable[str], scores: Dict[str, float]) -> StageResult:
    return StageResult(
        name=name,
        tag=tag,
        outputs={node: output(node, scores.get(node, 0.0)) for node in nodes},
    )


def make_bundle(scores: Optional[Dict[str, float]] = None, depth: int = 2) -> ResultBundle:
    """Bundle of the first ``depth`` default stages; unspecified nodes score 0."""
    scores = scores or {}
    layout = [("layer1", "L1", STAGE_ONE), ("layer2", "L2", STAGE_TWO), ("layer3", "L3", STAGE_THREE)]
    return ResultBundle(stages=[stage(name, tag, nodes, scores) for name, tag, nodes in layout[:depth]])


def constant_node(name: str, score: float, reasons: Optional[List[str]] = None) -> ScoringNode:
    def features(transaction, bundle, params):
        return {"constant": score}

    def heuristic(features, params):
        return NodeScore(score=score, confidence=0.9, reasons=list(reasons or []))

    return ScoringNode(name, features, heuristic)


def failing_node(name: str) -> ScoringNode:
    def features(transaction, bundle, params):
        return {"constant": 1.0}

    def heuristic(features, params):
        raise RuntimeError("boom")

    return ScoringNode(name, features, heuristic)
