"""
FraudNet Ensemble - Decision Node
==================================

The terminal aggregator. It turns the complete ResultBundle into a Verdict:

    score = sum(w_i * signal_i) + 0.10 * consensus + critical_adjustment - mitigation
    signal_i = 0.4 * mean(stage_i) + 0.6 * max(stage_i)

If the decision node itself fails, ``fallback_verdict`` applies the fixed
0.3/0.3/0.4 weighted mean of stage means and never raises.
"""

import logging
from typing import Any, List, Mapping, Optional, Sequence

from .config import (
    CONSENSUS_WEIGHT,
    CRITICAL_ADJUSTMENTS,
    CRITICAL_ALERT_SCORE,
    DECISION_MITIGATION,
    DECISION_STAGE_WEIGHTS,
    EMPTY_STAGE_MEAN,
    FALLBACK_CONFIDENCE,
    FALLBACK_STAGE_WEIGHTS,
    FINAL_REASON_TAG,
    FRAUD_THRESHOLD,
    FREQUENT_MERCHANT_COUNT,
    MAX_DECISION_MITIGATION,
    MAX_PRIMARY_REASONS,
    REASON_SCORE_THRESHOLD,
    RISK_LEVEL_THRESHOLDS,
    STAGE_SIGNAL_BLEND,
    TRUSTED_CUSTOMER_DAYS,
    TYPICAL_AMOUNT_RATIO,
)
from .confidence import decision_confidence, stage_agreement
from .explainer import collect_warnings, count_anomalies, extract_risk_factors, recommended_actions
from .features import amount_ratio, as_flag, clamp, client_age, count_above, is_domestic, is_night, mean, number
from .node import NodeScore, NodeSpec
from .schemas import (
    DecisionMethod,
    FeatureVector,
    ResultBundle,
    RiskLevel,
    ScoreOutput,
    ScoringMethod,
    Transaction,
    Verdict,
)

logger = logging.getLogger(__name__)

Params = Mapping[str, Any]


# =============================================================================
# RISK LEVEL AND REASONS
# =============================================================================

def determine_risk_level(fraud_score: float) -> RiskLevel:
    """
    Step function over the fraud score; each band includes its lower bound.

    0.29 -> minimal, 0.30 -> low, 0.50 -> medium, 0.70 -> high, 0.90 -> critical.
    """
    if fraud_score < RISK_LEVEL_THRESHOLDS["minimal"]:
        return RiskLevel.MINIMAL
    elif fraud_score < RISK_LEVEL_THRESHOLDS["low"]:
        return RiskLevel.LOW
    elif fraud_score < RISK_LEVEL_THRESHOLDS["medium"]:
        return RiskLevel.MEDIUM
    elif fraud_score < RISK_LEVEL_THRESHOLDS["high"]:
        return RiskLevel.HIGH
    else:
        return RiskLevel.CRITICAL


def extract_primary_reasons(
    bundle: ResultBundle,
    decision: Optional[ScoreOutput] = None,
    limit: int = MAX_PRIMARY_REASONS,
) -> List[str]:
    """
    Reasons of every node scoring above 0.6, tagged with its stage.

    Order is deterministic: stage order, then node declaration order, then the
    decision node's own reasons tagged ``Final``. The first ``limit`` are kept.
    """
    reasons = []
    for stage in bundle.stages:
        for output in stage.outputs.values():
            if output.score > REASON_SCORE_THRESHOLD:
                reasons.extend(f"{stage.tag}: {reason}" for reason in output.reasons)
    if decision is not None:
        reasons.extend(f"{FINAL_REASON_TAG}: {reason}" for reason in decision.reasons)
    return reasons[:limit]


# =============================================================================
# DECISION NODE
# =============================================================================

def decision_mitigation(variables, bundle: ResultBundle) -> float:
    m = DECISION_MITIGATION
    mitigation = 0.0
    if (client_age(variables) or 0.0) > TRUSTED_CUSTOMER_DAYS:
        mitigation += m["trusted_customer"]
    if is_domestic(variables) and not is_night(variables):
        mitigation += m["domestic_normal_hours"]
    if number(variables, "merchant_visit_count") >= FREQUENT_MERCHANT_COUNT:
        mitigation += m["frequent_merchant"]
    ratio = amount_ratio(variables)
    if ratio is not None and ratio <= TYPICAL_AMOUNT_RATIO:
        mitigation += m["typical_amount"]
    if not any(score > CRITICAL_ALERT_SCORE for score in bundle.all_scores()):
        mitigation += m["no_critical_alerts"]
    return min(mitigation, MAX_DECISION_MITIGATION)


def decision_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    w_mean, w_max = STAGE_SIGNAL_BLEND
    features = {}
    signals = []
    for i, stage in enumerate(bundle.stages):
        scores = stage.scores()
        stage_mean = mean(scores)
        stage_max = max(scores) if scores else 0.0
        signal = w_mean * stage_mean + w_max * stage_max
        features[f"stage{i}_mean"] = stage_mean
        features[f"stage{i}_max"] = stage_max
        features[f"stage{i}_signal"] = signal
        signals.append(signal)

    all_scores = bundle.all_scores()
    agreement = stage_agreement(signals)
    features.update({
        "stage_count": float(len(signals)),
        "agreement": agreement,
        "consensus": mean(signals) * agreement,
        "critical_count": float(count_above(all_scores, CRITICAL_ADJUSTMENTS["critical_score"])),
        "all_low": as_flag(bool(all_scores) and max(all_scores) < CRITICAL_ADJUSTMENTS["all_low_score"]),
        "mitigation": decision_mitigation(transaction.variables, bundle),
        "node_count": float(len(all_scores)),
        "contradictory": as_flag(bool(signals) and max(signals) > 0.7 and min(signals) < 0.3),
    })
    return features


def stage_weights(stage_count: int) -> Sequence[float]:
    """Configured weights for three stages; otherwise the same total shared equally."""
    if stage_count == len(DECISION_STAGE_WEIGHTS):
        return DECISION_STAGE_WEIGHTS
    if stage_count == 0:
        return ()
    share = sum(DECISION_STAGE_WEIGHTS) / stage_count
    return [share] * stage_count


def decision_heuristic(features: FeatureVector, params: Params) -> NodeScore:
    c = CRITICAL_ADJUSTMENTS
    stage_count = int(features.get("stage_count", 0))
    weights = stage_weights(stage_count)
    weighted = sum(w * features[f"stage{i}_signal"] for i, w in enumerate(weights))
    score = weighted + CONSENSUS_WEIGHT * features["consensus"]

    reasons = []
    critical = int(features["critical_count"])
    if critical >= c["many_critical_count"]:
        score += c["many_critical_bonus"]
        reasons.append(f"Critical pattern: {critical} nodes above {c['critical_score']}")
    elif critical >= c["some_critical_count"]:
        score += c["some_critical_bonus"]
        reasons.append(f"Several critical signals ({critical})")
    elif features["all_low"] >= 0.5:
        score -= c["all_low_penalty"]

    mitigation = features["mitigation"]
    score = clamp(score - mitigation)
    if mitigation > 0 and score > 0:
        reasons.append(f"Mitigation applied (-{mitigation:.2f})")

    warnings = ()
    if features["contradictory"] >= 0.5:
        warnings = ("Contradictory signals between stages",)

    confidence = decision_confidence(
        score,
        node_count=int(features["node_count"]),
        agreement=features["agreement"],
        contradictory=features["contradictory"] >= 0.5,
    )
    return NodeScore(score=score, confidence=confidence, reasons=reasons, warnings=warnings)


DECISION_NODE = NodeSpec("decision", decision_features, decision_heuristic, "Final fraud decision")


# =============================================================================
# VERDICTS
# =============================================================================

def build_verdict(
    decision: ScoreOutput,
    bundle: ResultBundle,
    fraud_threshold: float = FRAUD_THRESHOLD,
) -> Verdict:
    method = (
        DecisionMethod.TRAINED_MODEL if decision.method == ScoringMethod.MODEL
        else DecisionMethod.WEIGHTED_ENSEMBLE
    )
    fraud_score = round(decision.score, 4)
    risk_level = determine_risk_level(fraud_score)
    return Verdict(
        fraud_detected=fraud_score >= fraud_threshold,
        fraud_score=fraud_score,
        risk_level=risk_level,
        confidence=decision.confidence,
        primary_reasons=extract_primary_reasons(bundle, decision),
        warnings=collect_warnings(bundle, decision),
        decision_method=method,
        anomaly_count=count_anomalies(bundle),
        risk_factors=extract_risk_factors(bundle),
        recommended_actions=recommended_actions(risk_level),
    )


def fallback_average(
    bundle: ResultBundle,
    weights: Sequence[float] = FALLBACK_STAGE_WEIGHTS,
) -> float:
    """
    Weighted mean of stage means; an empty stage counts as 0.5.

    When the stage count does not match the weights, degrades to the plain
    mean of every available score (0.5 when there are none). Never raises.
    """
    try:
        if len(bundle.stages) == len(weights):
            stage_means = [mean(stage.scores(), EMPTY_STAGE_MEAN) for stage in bundle.stages]
            return clamp(sum(w * m for w, m in zip(weights, stage_means)))
        return clamp(mean(bundle.all_scores(), EMPTY_STAGE_MEAN))
    except Exception:
        logger.exception("Fallback average failed, using neutral score.")
        return EMPTY_STAGE_MEAN


def fallback_verdict(
    bundle: ResultBundle,
    fraud_threshold: float = FRAUD_THRESHOLD,
    reason: str = "decision node failed",
) -> Verdict:
    """Verdict from ``fallback_average`` with confidence 0.5."""
    fraud_score = round(fallback_average(bundle), 4)
    risk_level = determine_risk_level(fraud_score)
    try:
        reasons = extract_primary_reasons(bundle)
        warnings = collect_warnings(bundle)
        anomalies = count_anomalies(bundle)
        factors = extract_risk_factors(bundle)
    except Exception:
        logger.exception("Could not collect fallback details.")
        reasons, warnings, anomalies, factors = [], [], 0, []

    warnings.append(f"Decision fallback applied: {reason}")
    return Verdict(
        fraud_detected=fraud_score >= fraud_threshold,
        fraud_score=fraud_score,
        risk_level=risk_level,
        confidence=FALLBACK_CONFIDENCE,
        primary_reasons=reasons,
        warnings=warnings,
        decision_method=DecisionMethod.FALLBACK_AVERAGE,
        anomaly_count=anomalies,
        risk_factors=factors,
        recommended_actions=recommended_actions(risk_level),
    )
