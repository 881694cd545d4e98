"""
FraudNet Ensemble - Confidence Logic
=====================================

Confidence of a combining node is computed from the breadth and consistency of
its inputs, never copied from any single upstream node.
"""

import math
from typing import Sequence

from .config import DECISION_CONFIDENCE, NON_TRIVIAL_SCORE
from .features import clamp, count_above, variance


def score_consistency(scores: Sequence[float]) -> float:
    """1 - standard deviation; 1.0 when fewer than two scores."""
    if len(scores) < 2:
        return 1.0
    return clamp(1.0 - math.sqrt(variance(scores)))


def reporting_breadth(scores: Sequence[float], scale: float = 10.0) -> float:
    """Share of nodes that produced a non-trivial score, scaled by ``scale`` reporters."""
    if not scores:
        return 0.0
    return min(1.0, count_above(scores, NON_TRIVIAL_SCORE) / scale)


def blend_confidence(breadth: float, consistency: float) -> float:
    return round(clamp(0.5 + min(breadth, 0.3) + 0.2 * consistency), 4)


def aggregate_confidence(scores: Sequence[float]) -> float:
    return blend_confidence(reporting_breadth(scores), score_consistency(scores))


def stage_agreement(signals: Sequence[float]) -> float:
    """Same variance-based agreement the ensemble uses across stages."""
    if len(signals) < 2:
        return 1.0
    return clamp(1.0 - min(1.0, variance(signals) * 4))


def decision_confidence(
    fraud_score: float,
    node_count: int,
    agreement: float,
    contradictory: bool,
) -> float:
    p = DECISION_CONFIDENCE
    confidence = p["base"]

    if node_count >= p["wide_coverage_nodes"]:
        confidence += p["wide_coverage_bonus"]
    if agreement >= p["agreement_level"]:
        confidence += p["agreement_bonus"]

    clarity = abs(fraud_score - 0.5) * 2
    if clarity >= p["clarity_level"]:
        confidence += p["clarity_bonus"]
    if contradictory:
        confidence -= p["contradiction_penalty"]

    return round(max(p["floor"], min(p["ceiling"], confidence)), 4)
