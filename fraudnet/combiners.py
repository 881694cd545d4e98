"""
FraudNet Ensemble - Stage 2 Combiners
======================================

Six combiners read every stage-1 output. Each starts from a base index (a
weighted blend of related stage-1 scores) and adds bumps for recognised
multi-signal patterns listed in ``NODE_RULES``.
"""

from typing import Any, Dict, Mapping

from .analyzers import suspicious_device, suspicious_ip
from .config import (
    BEHAVIOR_CATEGORY_WEIGHTS,
    CASCADE_GROUPS,
    CASCADE_THRESHOLD,
    COMBINER_BASE_WEIGHTS,
    COMBINER_THRESHOLDS,
    NODE_RULES,
    NODE_THRESHOLDS,
    REASON_SCORE_THRESHOLD,
    REPORTING_THRESHOLDS,
    SHARED_POLICY,
)
from .confidence import blend_confidence, reporting_breadth, score_consistency
from .features import (
    amount_ratio,
    as_flag,
    clamp,
    count_above,
    historical_daily_rate,
    is_domestic,
    is_hourly_burst,
    is_new_client,
    is_night,
    is_weekend,
    label,
    mean,
    number,
    optional_number,
    travel_speed_kmh,
)
from .node import NodeScore, NodeSpec
from .schemas import FeatureVector, ResultBundle, Transaction

Params = Mapping[str, Any]


# =============================================================================
# SHARED HELPERS
# =============================================================================

def threshold_avoidance(amount: float) -> bool:
    """Amount sits just below one of the reporting thresholds."""
    margin = SHARED_POLICY["threshold_avoidance_margin"]
    return any(limit * (1 - margin) <= amount < limit for limit in REPORTING_THRESHOLDS)


def prior_flag(bundle: ResultBundle, node: str, feature: str) -> bool:
    output = bundle.output(node)
    return output is not None and output.features.get(feature, 0.0) >= 0.5


def weighted_base(bundle: ResultBundle, weights: Mapping[str, float]) -> float:
    return sum(weight * bundle.score(node) for node, weight in weights.items())


def cascade_groups(bundle: ResultBundle):
    """Names of every cascade group whose members all exceed the threshold."""
    return [
        name for name, (members, _) in CASCADE_GROUPS.items()
        if all(bundle.score(member) > CASCADE_THRESHOLD for member in members)
    ]


def _common(bundle: ResultBundle, base: float) -> FeatureVector:
    scores = bundle.stage_scores(0)
    return {
        "base": clamp(base),
        "reporting": reporting_breadth(scores),
        "consistency": score_consistency(scores),
    }


def combined_heuristic(features: FeatureVector, params: Params) -> NodeScore:
    """Base index plus the weights of raised pattern flags."""
    score = features.get("base", 0.0)
    reasons = []
    for flag_name, weight, reason in params["rules"]:
        if features.get(flag_name, 0.0) >= 0.5:
            score += weight
            reasons.append(reason)

    confidence = blend_confidence(features.get("reporting", 0.0), features.get("consistency", 1.0))
    return NodeScore(score=min(score, 1.0), confidence=confidence, reasons=reasons)


def _combiner_params(name: str) -> Dict[str, Any]:
    return {"rules": NODE_RULES[name], "weights": COMBINER_BASE_WEIGHTS.get(name, {})}


# =============================================================================
# COMBINERS
# =============================================================================

def amount_combiner_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    amount = number(v, "amount")
    ratio = amount_ratio(v)
    daily = number(v, "transactions_last_24h")
    spent = number(v, "amount_last_24h")
    large = amount > SHARED_POLICY["large_amount"]
    c = COMBINER_THRESHOLDS
    rapid = bundle.score("velocity") > c["active_signal"] or bundle.score("frequency") > c["active_signal"]

    features = _common(bundle, weighted_base(bundle, params["weights"]))
    features.update({
        "escalation": as_flag(
            ratio is not None and ratio > c["escalation_ratio"] and bundle.score("pattern") > c["active_signal"]
        ),
        "card_testing": as_flag(0 < amount < NODE_THRESHOLDS["amount"]["small"] and rapid),
        "fragmentation": as_flag(
            daily > c["fragmentation_daily_count"]
            and spent > SHARED_POLICY["large_amount"]
            and 0 < amount < spent / c["fragmentation_parts"]
        ),
        "threshold_avoidance": as_flag(threshold_avoidance(amount)),
        "new_client_large": as_flag(is_new_client(v) and large),
        "night_large": as_flag(is_night(v) and large),
    })
    return features


def behavior_combiner_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    scores = bundle.stage_scores(0)
    category_means = {
        name: mean([bundle.score(node) for node in members])
        for name, (members, _) in BEHAVIOR_CATEGORY_WEIGHTS.items()
    }
    blend = sum(category_means[name] * weight for name, (_, weight) in BEHAVIOR_CATEGORY_WEIGHTS.items())
    high_share = count_above(scores, REASON_SCORE_THRESHOLD) / len(scores) if scores else 0.0
    c = COMBINER_THRESHOLDS

    features = _common(bundle, blend + c["high_share_weight"] * high_share)
    features.update({
        "night_international": as_flag(is_night(v) and not is_domestic(v)),
        "amount_velocity": as_flag(
            bundle.score("amount") > c["strong_signal"] and bundle.score("velocity") > c["strong_signal"]
        ),
        "new_client_cluster": as_flag(
            is_new_client(v) and count_above(scores, REASON_SCORE_THRESHOLD) >= c["cluster_count"]
        ),
        "correlated_categories": as_flag(
            count_above(category_means.values(), c["active_signal"]) >= c["correlated_category_count"]
        ),
    })
    return features


def location_combiner_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    domestic = is_domestic(v)
    speed = travel_speed_kmh(v)
    gap = optional_number(v, "time_since_prev_transaction")
    c = COMBINER_THRESHOLDS

    features = _common(bundle, weighted_base(bundle, params["weights"]))
    features.update({
        "impossible_travel": as_flag(
            speed is not None and speed > NODE_THRESHOLDS["distance"]["impossible_speed_kmh"]
        ),
        "location_hopping": as_flag(
            bundle.score("location") > c["active_signal"] and bundle.score("distance") > c["active_signal"]
        ),
        "international_jump": as_flag(not domestic and number(v, "unique_countries") <= c["single_country_count"]),
        "night_foreign": as_flag(not domestic and is_night(v)),
        "risky_country_large": as_flag(
            bundle.score("country") > c["strong_signal"] and number(v, "amount") > SHARED_POLICY["large_amount"]
        ),
        "rapid_international": as_flag(not domestic and gap is not None and gap < c["rapid_international_minutes"]),
    })
    return features


def timing_combiner_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    gap = optional_number(v, "time_since_prev_transaction")
    c = COMBINER_THRESHOLDS

    features = _common(bundle, weighted_base(bundle, params["weights"]))
    features.update({
        "critical_time": as_flag(
            bundle.score("time") > c["strong_signal"] and bundle.score("day") > c["active_signal"]
        ),
        "rapid_succession": as_flag(gap is not None and gap < c["rapid_succession_minutes"]),
        "burst_activity": as_flag(is_hourly_burst(v)),
        "dormant_then_active": as_flag(prior_flag(bundle, "frequency", "dormant_reactivation")),
        "night_weekend": as_flag(is_night(v) and is_weekend(v)),
        "early_morning": as_flag(prior_flag(bundle, "time", "early_morning")),
    })
    return features


def device_combiner_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    online = label(v, "channel") == "online"
    agent = suspicious_device(v)
    c = COMBINER_THRESHOLDS

    features = _common(bundle, weighted_base(bundle, params["weights"]))
    features.update({
        "automation": as_flag(agent and bundle.score("velocity") > c["active_signal"]),
        "geo_tech_conflict": as_flag(suspicious_ip(v) and not is_domestic(v)),
        "suspicious_agent": as_flag(agent),
        "missing_tech": as_flag(
            online and label(v, "device_info") is None and label(v, "ip_address") is None
        ),
        "rapid_online": as_flag(online and is_hourly_burst(v)),
        "night_online": as_flag(online and is_night(v)),
    })
    return features


def pattern_combiner_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    scores = bundle.stage_scores(0)
    c = COMBINER_THRESHOLDS
    active = c["active_signal"]
    top = sorted(scores, reverse=True)[:int(c["top_signal_count"])]
    rate = historical_daily_rate(v)
    testing = prior_flag(bundle, "amount", "tiny_amount") or prior_flag(bundle, "amount", "small_amount")
    remote_risk = bundle.score("device") > active or bundle.score("channel") > active
    geo_risk = bundle.score("location") > active or bundle.score("distance") > active

    features = _common(bundle, mean(top))
    features.update({
        "testing_escalation": as_flag(testing and bundle.score("pattern") > active),
        "account_takeover": as_flag(remote_risk and geo_risk and bundle.score("amount") > active),
        "synthetic_identity": as_flag(
            is_new_client(v, SHARED_POLICY["very_new_client_days"])
            and number(v, "historical_transaction_count") < c["synthetic_history_count"]
            and bundle.score("amount") > active
        ),
        "structuring": as_flag(
            threshold_avoidance(number(v, "amount"))
            and (
                number(v, "transactions_last_24h") > c["structuring_daily_count"]
                or (rate is not None and rate > c["structuring_daily_rate"])
            )
        ),
        "multi_anomaly": as_flag(count_above(scores, REASON_SCORE_THRESHOLD) >= c["multi_anomaly_count"]),
        "cascading_risk": as_flag(bool(cascade_groups(bundle))),
    })
    return features


# =============================================================================
# STAGE TABLE
# =============================================================================

STAGE_TWO_NODES = [
    NodeSpec("amount_combiner", amount_combiner_features, combined_heuristic,
             "Amount meta-patterns", _combiner_params("amount_combiner")),
    NodeSpec("behavior_combiner", behavior_combiner_features, combined_heuristic,
             "Behavioural category blend", _combiner_params("behavior_combiner")),
    NodeSpec("location_combiner", location_combiner_features, combined_heuristic,
             "Geographic meta-patterns", _combiner_params("location_combiner")),
    NodeSpec("timing_combiner", timing_combiner_features, combined_heuristic,
             "Temporal meta-patterns", _combiner_params("timing_combiner")),
    NodeSpec("device_combiner", device_combiner_features, combined_heuristic,
             "Technology meta-patterns", _combiner_params("device_combiner")),
    NodeSpec("pattern_combiner", pattern_combiner_features, combined_heuristic,
             "Cross-signal meta-patterns", _combiner_params("pattern_combiner")),
]
