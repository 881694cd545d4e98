"""
FraudNet Ensemble - Explanation Helpers
========================================
"""

from typing import List, Optional

from .config import ANOMALY_SCORE_THRESHOLD, RECOMMENDED_ACTIONS, TOP_FACTORS_COUNT
from .schemas import (
    DecisionMethod,
    Explanation,
    NodeStatus,
    ResultBundle,
    RiskLevel,
    ScoreOutput,
    TopFactor,
    Verdict,
)


def display_name(node_id: str) -> str:
    return node_id.replace("_", " ").title()


def extract_top_factors(bundle: ResultBundle, num_factors: int = TOP_FACTORS_COUNT) -> List[TopFactor]:
    """Rank every node by its distance from the neutral 0.5, weighted by its confidence."""
    all_factors = []

    for output in bundle.all_outputs():
        if output.status != NodeStatus.OK:
            continue
        impact = abs(output.score - 0.5) * 2 * output.confidence
        direction = "positive" if output.score > 0.5 else "negative"
        all_factors.append(TopFactor(
            feature=display_name(output.node_id),
            impact=round(impact, 4),
            direction=direction,
        ))

    all_factors.sort(key=lambda f: f.impact, reverse=True)
    return all_factors[:num_factors]


def generate_narrative(
    fraud_score: float,
    risk_level: RiskLevel,
    top_factors: List[TopFactor],
    decision_method: DecisionMethod,
    degraded_nodes: int = 0,
) -> str:
    """Generate a human-readable explanation narrative."""
    if fraud_score < 0.30:
        risk_desc = "Low fraud risk"
    elif fraud_score < 0.50:
        risk_desc = "Moderate fraud risk"
    elif fraud_score < 0.70:
        risk_desc = "Elevated fraud risk"
    else:
        risk_desc = "High fraud risk"

    if decision_method == DecisionMethod.FALLBACK_AVERAGE:
        method_detail = "fallback average of stage means"
    elif decision_method == DecisionMethod.TRAINED_MODEL:
        method_detail = "trained decision model"
    else:
        method_detail = "weighted staged ensemble"

    positive = [f for f in top_factors if f.direction == "positive"]
    if positive:
        def impact_level(impact: float) -> str:
            if impact > 0.6:
                return "strong"
            elif impact > 0.3:
                return "moderate"
            else:
                return "minor"

        factor_strs = [f"{f.feature} ({impact_level(f.impact)} impact)" for f in positive[:3]]
        factors_desc = f"Primary factors: {', '.join(factor_strs)}."
    else:
        factors_desc = "No significant risk factors identified."

    narrative = (
        f"{risk_desc} ({fraud_score:.2f}, {risk_level.value}) detected using {method_detail}. {factors_desc}"
    )
    if degraded_nodes:
        narrative += f" {degraded_nodes} node(s) returned degraded results."
    return narrative


def generate_explanation(verdict: Verdict, bundle: ResultBundle) -> Explanation:
    top_factors = extract_top_factors(bundle)
    degraded = sum(len(stage.degraded()) for stage in bundle.stages)
    narrative = generate_narrative(
        verdict.fraud_score, verdict.risk_level, top_factors, verdict.decision_method, degraded,
    )
    return Explanation(top_factors=top_factors, narrative=narrative)


# =============================================================================
# VERDICT DETAILS
# =============================================================================

def collect_warnings(bundle: ResultBundle, decision: Optional[ScoreOutput] = None) -> List[str]:
    """Degraded-node notices first, then node warnings in stage order, de-duplicated."""
    warnings = []
    for stage in bundle.stages:
        for name in stage.degraded():
            status = stage.outputs[name].status.value
            warnings.append(f"{stage.tag}/{name}: degraded ({status}), neutral placeholder used")

    outputs = bundle.all_outputs()
    if decision is not None:
        outputs.append(decision)
    for output in outputs:
        for warning in output.warnings:
            if warning not in warnings:
                warnings.append(warning)
    return warnings


def count_anomalies(bundle: ResultBundle) -> int:
    return sum(1 for score in bundle.all_scores() if score > ANOMALY_SCORE_THRESHOLD)


def extract_risk_factors(bundle: ResultBundle) -> List[str]:
    return [
        output.node_id for output in bundle.all_outputs()
        if output.status == NodeStatus.OK and output.score > ANOMALY_SCORE_THRESHOLD
    ]


def recommended_actions(risk_level: RiskLevel) -> List[str]:
    return list(RECOMMENDED_ACTIONS.get(risk_level.value, []))
