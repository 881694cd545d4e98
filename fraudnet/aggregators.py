"""
FraudNet Ensemble - Stage 3 Aggregators
========================================

Aggregators read only prior ScoreOutputs (plus a handful of client context
variables for mitigation). They cover:
  - risk_assessment      category blend, escalation, urgency, impact, mitigation
  - anomaly_detection    eight anomaly families including cascades
  - behavior_validation  coherence of related signals across domains
  - context_analysis     summed contextual risk factors

Mitigation is multiplicative and bounded by ``MITIGATION_CAP``: it can shave
at most 30% off the aggregate, never push it below zero.
"""

from typing import Any, Dict, List, Mapping

from .combiners import cascade_groups, prior_flag
from .config import (
    AGGREGATOR_WARNING_LEVELS,
    ANOMALY_BLEND,
    ANOMALY_SCORE_THRESHOLD,
    CASCADE_GROUPS,
    CLIENT_RISK_FACTORS,
    COHERENCE_DOMAINS,
    COMBINER_BASE_WEIGHTS,
    CORRELATED_PAIRS,
    CORRELATION_THRESHOLD,
    ESCALATION_FACTORS,
    HIGH_RISK_COUNTRIES,
    HIGH_SCORE_THRESHOLD,
    IMPACT_FACTORS,
    INCOHERENCE_BUMP,
    INCOHERENCE_LEVEL,
    INTERACTION_GAP,
    MANY_COUNTRIES_COUNT,
    MITIGATION_CAP,
    MITIGATION_FACTORS,
    NODE_RULES,
    PHYSICAL_CHANNELS,
    RISK_BLEND,
    RISK_CATEGORY_MEMBERS,
    RISK_CATEGORY_WEIGHTS,
    SHARED_POLICY,
    THIN_HISTORY_COUNT,
    TYPICAL_AMOUNT_RANGE,
    UNEXPECTED_PAIRS,
    URGENCY_FACTORS,
    VERY_HIGH_RISK_COUNTRIES,
)
from .confidence import blend_confidence, reporting_breadth, score_consistency
from .features import (
    amount_ratio,
    as_flag,
    clamp,
    client_age,
    count_above,
    hour_of_day,
    is_domestic,
    is_hourly_burst,
    is_new_client,
    is_night,
    is_weekend,
    label,
    mean,
    number,
    optional_number,
)
from .node import NodeScore, NodeSpec
from .schemas import FeatureVector, ResultBundle, Transaction

Params = Mapping[str, Any]


def _breadth_features(bundle: ResultBundle) -> FeatureVector:
    scores = bundle.all_scores()
    return {
        "reporting": reporting_breadth(scores, scale=len(scores) or 1),
        "consistency": score_consistency(scores),
    }


def _confidence(features: FeatureVector) -> float:
    return blend_confidence(features.get("reporting", 0.0), features.get("consistency", 1.0))


def _pair_key(prefix: str, pair) -> str:
    return f"{prefix}__{pair[0]}__{pair[1]}"


# =============================================================================
# RISK ASSESSMENT
# =============================================================================

def client_risk(variables) -> float:
    f = CLIENT_RISK_FACTORS
    risk = 0.0
    if is_new_client(variables, SHARED_POLICY["very_new_client_days"]):
        risk += f["very_new"]
    elif is_new_client(variables):
        risk += f["new"]

    profile = label(variables, "client_risk_profile")
    if profile == "high":
        risk += f["profile_high"]
    elif profile == "medium":
        risk += f["profile_medium"]

    history = optional_number(variables, "historical_transaction_count")
    if history is not None and history < THIN_HISTORY_COUNT:
        risk += f["thin_history"]
    if number(variables, "unique_countries") > MANY_COUNTRIES_COUNT:
        risk += f["many_countries"]
    return clamp(risk)


def urgency_score(variables, bundle: ResultBundle) -> float:
    f = URGENCY_FACTORS
    amount = number(variables, "amount")
    urgency = 0.0

    if amount > f["very_large_amount"][0]:
        urgency += f["very_large_amount"][1]
    elif amount > f["large_amount"][0]:
        urgency += f["large_amount"][1]

    if is_hourly_burst(variables):
        urgency += f["hourly_burst"][1]

    simultaneous = count_above(bundle.all_scores(), ANOMALY_SCORE_THRESHOLD)
    if simultaneous >= f["many_simultaneous"][0]:
        urgency += f["many_simultaneous"][1]
    elif simultaneous >= f["some_simultaneous"][0]:
        urgency += f["some_simultaneous"][1]

    if bundle.score("behavior_combiner") > f["behavior_spike"][0]:
        urgency += f["behavior_spike"][1]
    return clamp(urgency)


def impact_score(variables) -> float:
    f = IMPACT_FACTORS
    impact = min(number(variables, "amount") / f["amount_scale"], f["amount_cap"])
    if (client_age(variables) or 0.0) > SHARED_POLICY["established_client_days"]:
        impact += f["established_client"]
    if number(variables, "transactions_last_24h") > f["busy_day_count"]:
        impact += f["busy_day"]
    if not is_domestic(variables):
        impact += f["international"]
    return clamp(impact)


def mitigation_score(variables) -> float:
    """Strength of counter-evidence in [0, 1]; the caller applies ``MITIGATION_CAP``."""
    f = MITIGATION_FACTORS
    mitigation = 0.0

    age = client_age(variables) or 0.0
    history = number(variables, "historical_transaction_count")
    if age > SHARED_POLICY["established_client_days"] and history > SHARED_POLICY["established_history_count"]:
        mitigation += f["established_client"]
    if is_domestic(variables):
        mitigation += f["domestic"]

    hour = hour_of_day(variables)
    business_hours = (
        hour is not None
        and SHARED_POLICY["business_start_hour"] <= hour < SHARED_POLICY["business_end_hour"]
    )
    if business_hours and not is_night(variables) and not is_weekend(variables):
        mitigation += f["business_hours"]

    if label(variables, "channel") in PHYSICAL_CHANNELS:
        mitigation += f["physical_channel"]

    ratio = amount_ratio(variables)
    low, high = TYPICAL_AMOUNT_RANGE
    if ratio is not None and low <= ratio <= high:
        mitigation += f["typical_amount"]
    return clamp(mitigation)


def risk_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    s = bundle.score
    scores = bundle.all_scores()

    categories = {"client": client_risk(v)}
    for name, groups in RISK_CATEGORY_MEMBERS.items():
        categories[name] = clamp(sum(max(s(node) for node in nodes) * weight for nodes, weight in groups))
    blend = sum(categories[name] * weight for name, weight in RISK_CATEGORY_WEIGHTS.items())

    e = ESCALATION_FACTORS
    high_count = count_above(scores, HIGH_SCORE_THRESHOLD)
    pairs = [pair for pair in CORRELATED_PAIRS if s(pair[0]) > CORRELATION_THRESHOLD and s(pair[1]) > CORRELATION_THRESHOLD]
    escalation = clamp(
        min(high_count / e["high_count_divisor"], e["high_count_cap"])
        + (max(scores) if scores else 0.0) * e["max_score_weight"]
        + min(len(pairs) / e["pair_divisor"], e["pair_cap"])
    )

    features = {f"category_{name}": value for name, value in categories.items()}
    features.update({
        "category_blend": clamp(blend),
        "escalation": escalation,
        "high_count": float(high_count),
        "correlated_pairs": float(len(pairs)),
        "urgency": urgency_score(v, bundle),
        "impact": impact_score(v),
        "mitigation": mitigation_score(v),
    })
    features.update(_breadth_features(bundle))
    return features


def risk_heuristic(features: FeatureVector, params: Params) -> NodeScore:
    w_categories, w_escalation = RISK_BLEND
    levels = AGGREGATOR_WARNING_LEVELS
    raw = w_categories * features["category_blend"] + w_escalation * features["escalation"]
    mitigation = features["mitigation"]
    score = clamp(raw * (1 - MITIGATION_CAP * mitigation))

    reasons = []
    high_count = int(features["high_count"])
    if high_count >= 2:
        reasons.append(f"Risk escalation: {high_count} simultaneous high alerts")
    for name in RISK_CATEGORY_WEIGHTS:
        if features[f"category_{name}"] > 0.6:
            reasons.append(f"High {name} risk")
    pairs = int(features["correlated_pairs"])
    if pairs:
        reasons.append(f"{pairs} correlated signal pair(s) above threshold")
    if mitigation > 0 and raw > 0:
        reasons.append(f"Mitigating factors reduce risk by {MITIGATION_CAP * mitigation:.0%}")

    warnings = []
    if score >= levels["critical_risk"]:
        warnings.append("CRITICAL RISK: immediate action required")
    if features["urgency"] >= levels["urgent"]:
        warnings.append("URGENT: time-sensitive risk signals")
    if features["impact"] >= levels["high_impact"]:
        warnings.append("HIGH IMPACT: significant potential loss")
    if features["escalation"] >= levels["escalation"]:
        warnings.append("ESCALATION: multiple simultaneous alerts")

    return NodeScore(score=score, confidence=_confidence(features), reasons=reasons, warnings=tuple(warnings))


# =============================================================================
# ANOMALY DETECTION
# =============================================================================

ANOMALY_FAMILIES = (
    "statistical", "emergent", "correlation", "cascade",
    "context", "system", "interaction", "synthetic",
)


def anomaly_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    s = bundle.score
    scores = bundle.all_scores()
    threshold = ANOMALY_SCORE_THRESHOLD
    features: Dict[str, float] = {}

    high = count_above(scores, threshold)
    features["family_statistical"] = min(1.0, high / 5)

    emergent = 0
    for combiner, weights in COMBINER_BASE_WEIGHTS.items():
        if s(combiner) > threshold and all(s(node) <= threshold for node in weights):
            emergent += 1
    features["emergent_count"] = float(emergent)
    features["family_emergent"] = min(1.0, emergent / 2)

    correlated = 0
    for pair in CORRELATED_PAIRS:
        hit = s(pair[0]) > threshold and s(pair[1]) > threshold
        features[_pair_key("correlated", pair)] = as_flag(hit)
        correlated += hit
    features["family_correlation"] = min(1.0, correlated / 2)

    # All members above threshold, no averaging.
    cascading = cascade_groups(bundle)
    for name in CASCADE_GROUPS:
        features[f"cascade__{name}"] = as_flag(name in cascading)
    features["family_cascade"] = min(1.0, sum(CASCADE_GROUPS[name][1] for name in cascading))

    unexpected = 0
    for pair in UNEXPECTED_PAIRS:
        hit = s(pair[0]) > threshold and s(pair[1]) > threshold
        features[_pair_key("unexpected", pair)] = as_flag(hit)
        unexpected += hit
    features["family_context"] = min(1.0, unexpected / 2)

    degraded = sum(len(stage.degraded()) for stage in bundle.stages)
    features["degraded_count"] = float(degraded)
    features["family_system"] = min(1.0, degraded / 3)

    gap = abs(mean(bundle.stage_scores(1)) - mean(bundle.stage_scores(0)))
    features["interaction_gap"] = gap
    features["family_interaction"] = gap if gap > INTERACTION_GAP else 0.0

    synthetic = (
        prior_flag(bundle, "pattern_combiner", "synthetic_identity")
        or prior_flag(bundle, "pattern_combiner", "testing_escalation")
    )
    features["family_synthetic"] = as_flag(synthetic)

    family_scores = [features[f"family_{name}"] for name in ANOMALY_FAMILIES]
    active = sum(1 for value in family_scores if value > 0)
    features["anomaly_count"] = float(active)
    features["diversity"] = active / len(ANOMALY_FAMILIES)
    features["severity"] = max(family_scores)
    features["family_mean"] = mean(family_scores)
    features["high_count"] = float(high)
    features.update(_breadth_features(bundle))
    return features


def anomaly_heuristic(features: FeatureVector, params: Params) -> NodeScore:
    w_severity, w_mean = ANOMALY_BLEND
    score = clamp(w_severity * features["severity"] + w_mean * features["family_mean"])

    reasons: List[str] = []
    if features["family_statistical"] > 0:
        reasons.append(f"Statistical anomaly: {int(features['high_count'])} scores above threshold")
    if features["family_emergent"] > 0:
        reasons.append(f"Emergent pattern in {int(features['emergent_count'])} combiner(s)")
    for pair in CORRELATED_PAIRS:
        if features.get(_pair_key("correlated", pair), 0.0) >= 0.5:
            reasons.append(f"Correlated anomaly: {pair[0]} and {pair[1]}")
    for name, (members, _) in CASCADE_GROUPS.items():
        if features.get(f"cascade__{name}", 0.0) >= 0.5:
            reasons.append(f"Cascade detected: {name} ({', '.join(members)})")
    for pair in UNEXPECTED_PAIRS:
        if features.get(_pair_key("unexpected", pair), 0.0) >= 0.5:
            reasons.append(f"Unexpected combination: {pair[0]} and {pair[1]}")
    if features["family_system"] > 0:
        reasons.append(f"System anomaly: {int(features['degraded_count'])} degraded node(s)")
    if features["family_interaction"] > 0:
        reasons.append(f"Stage interaction gap of {features['interaction_gap']:.2f}")
    if features["family_synthetic"] > 0:
        reasons.append("Synthetic identity or testing pattern")

    warnings = []
    if features["anomaly_count"] >= AGGREGATOR_WARNING_LEVELS["anomaly_families"]:
        warnings.append(f"Multiple anomaly families detected ({int(features['anomaly_count'])})")

    return NodeScore(score=score, confidence=_confidence(features), reasons=reasons, warnings=tuple(warnings))


# =============================================================================
# BEHAVIOR VALIDATION
# =============================================================================

def behavior_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    features = {
        f"domain_{name}": mean([bundle.score(node) for node in members])
        for name, members in COHERENCE_DOMAINS.items()
    }
    features["incoherent_count"] = float(
        count_above(features.values(), INCOHERENCE_LEVEL)
    )
    features.update(_breadth_features(bundle))
    return features


def behavior_heuristic(features: FeatureVector, params: Params) -> NodeScore:
    domains = {name: features[f"domain_{name}"] for name in COHERENCE_DOMAINS}
    incoherent = [name for name, value in domains.items() if value > INCOHERENCE_LEVEL]
    score = clamp(mean(list(domains.values())) + INCOHERENCE_BUMP * len(incoherent))

    reasons = [f"Incoherent {name} behaviour" for name in incoherent]
    warnings = []
    if len(incoherent) >= AGGREGATOR_WARNING_LEVELS["incoherent_domains"]:
        warnings.append(f"Behaviour incoherent across {len(incoherent)} domains")

    return NodeScore(score=score, confidence=_confidence(features), reasons=reasons, warnings=tuple(warnings))


# =============================================================================
# CONTEXT ANALYSIS
# =============================================================================

def context_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    domestic = is_domestic(v)
    night = is_night(v)
    country = (label(v, "country") or "").upper()
    risky_country = bundle.score("country") > ANOMALY_SCORE_THRESHOLD or country in (
        HIGH_RISK_COUNTRIES | VERY_HIGH_RISK_COUNTRIES
    )

    features = {
        "new_client": as_flag(is_new_client(v)),
        "very_new_client": as_flag(is_new_client(v, SHARED_POLICY["very_new_client_days"])),
        "international": as_flag(not domestic),
        "risky_country": as_flag(not domestic and risky_country),
        "very_large_amount": as_flag(number(v, "amount") > SHARED_POLICY["very_large_amount"]),
        "night": as_flag(night),
        "weekend_night": as_flag(night and is_weekend(v)),
        "hourly_burst": as_flag(is_hourly_burst(v)),
        "online_no_device": as_flag(label(v, "channel") == "online" and label(v, "device_info") is None),
    }
    features.update(_breadth_features(bundle))
    return features


def context_heuristic(features: FeatureVector, params: Params) -> NodeScore:
    levels = AGGREGATOR_WARNING_LEVELS
    score = 0.0
    reasons = []
    for flag_name, weight, reason in params["rules"]:
        if features.get(flag_name, 0.0) >= 0.5:
            score += weight
            reasons.append(reason)
    score = clamp(score)

    warnings = []
    if score >= levels["context_score"]:
        warnings.append("Highly risky transaction context")
    if len(reasons) > levels["context_factors"]:
        warnings.append(f"{len(reasons)} contextual risk factors combined")

    return NodeScore(score=score, confidence=_confidence(features), reasons=reasons, warnings=tuple(warnings))


# =============================================================================
# STAGE TABLE
# =============================================================================

STAGE_THREE_NODES = [
    NodeSpec("risk_assessment", risk_features, risk_heuristic, "Category, escalation and mitigation blend"),
    NodeSpec("anomaly_detection", anomaly_features, anomaly_heuristic, "Anomaly families and cascades"),
    NodeSpec("behavior_validation", behavior_features, behavior_heuristic, "Cross-domain coherence"),
    NodeSpec("context_analysis", context_features, context_heuristic, "Contextual risk factors",
             {"rules": NODE_RULES["context_analysis"]}),
]
