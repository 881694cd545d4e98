"""
FraudNet Ensemble - Stage 1 Analyzers
======================================

Twelve analyzers over raw transaction variables. Each feature function turns
the variables into ratios plus 0/1 rule flags (thresholds come from
``NODE_THRESHOLDS``); ``rule_heuristic`` sums the weights of raised flags
from ``NODE_RULES``. The trained model consumes the same feature vector.
"""

import math
from typing import Any, Dict, Mapping

from .config import (
    HIGH_RISK_COUNTRIES,
    HIGH_RISK_MERCHANTS,
    KNOWN_CHANNELS,
    LOW_RISK_COUNTRIES,
    LOW_RISK_MERCHANTS,
    MEDIUM_RISK_MERCHANTS,
    MERCHANT_AMOUNT_LIMITS,
    NO_REFERENCE_CONFIDENCE,
    NODE_CONFIDENCE,
    NODE_RULES,
    NODE_THRESHOLDS,
    REMOTE_CHANNELS,
    SHARED_POLICY,
    SUSPICIOUS_DEVICE_MARKERS,
    SUSPICIOUS_IP_MARKERS,
    VERY_HIGH_RISK_COUNTRIES,
    VERY_HIGH_RISK_MERCHANTS,
)
from .features import (
    amount_ratio,
    as_flag,
    clamp,
    client_age,
    day_of_week,
    exclusive_tiers,
    flag,
    historical_daily_rate,
    hour_of_day,
    is_domestic,
    is_new_client,
    is_night,
    is_weekend,
    label,
    number,
    optional_number,
    scaled,
    travel_speed_kmh,
)
from .node import NodeScore, NodeSpec
from .schemas import FeatureVector, ResultBundle, Transaction

Params = Mapping[str, Any]


# =============================================================================
# SHARED HEURISTIC
# =============================================================================

def rule_heuristic(features: FeatureVector, params: Params) -> NodeScore:
    """Sum the weights of every raised rule flag, capped at 1."""
    total = 0.0
    reasons = []
    for flag_name, weight, reason in params["rules"]:
        if features.get(flag_name, 0.0) >= 0.5:
            total += weight
            reasons.append(reason)
    return NodeScore(score=min(total, 1.0), confidence=params["confidence"], reasons=reasons)


def _rule_params(name: str) -> Dict[str, Any]:
    return {
        "thresholds": NODE_THRESHOLDS.get(name, {}),
        "rules": NODE_RULES[name],
        "confidence": NODE_CONFIDENCE.get(name, 0.8),
    }


def _country_code(variables) -> str:
    code = label(variables, "country")
    return code.upper() if code else ""


def country_class(variables) -> str:
    """home | very_high | high | low | unknown"""
    if is_domestic(variables):
        return "home"
    code = _country_code(variables)
    if code in VERY_HIGH_RISK_COUNTRIES:
        return "very_high"
    if code in HIGH_RISK_COUNTRIES:
        return "high"
    if code in LOW_RISK_COUNTRIES:
        return "low"
    return "unknown"


def merchant_class(variables) -> str:
    merchant = label(variables, "merchant_type")
    if merchant is None:
        return "none"
    if merchant in VERY_HIGH_RISK_MERCHANTS:
        return "very_high"
    if merchant in HIGH_RISK_MERCHANTS:
        return "high"
    if merchant in MEDIUM_RISK_MERCHANTS:
        return "medium"
    if merchant in LOW_RISK_MERCHANTS:
        return "low"
    return "unknown"


# =============================================================================
# AMOUNT
# =============================================================================

def amount_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    amount = optional_number(v, "amount")
    ratio = amount_ratio(v)
    maximum = optional_number(v, "historical_max_amount")

    very_large, large = exclusive_tiers(amount, [t["very_large"], t["large"]])
    ratio_extreme, ratio_high = exclusive_tiers(ratio, [t["ratio_extreme"], t["ratio_high"]])
    tiny = amount is not None and amount < t["tiny"]
    small = amount is not None and t["tiny"] <= amount < t["small"]

    return {
        "amount_scale": clamp(math.log10(max(amount or 0.0, 0.0) + 1) / 6),
        "ratio_to_avg": scaled(ratio, 10.0),
        "ratio_to_max": scaled(amount / maximum, 1.0) if amount is not None and maximum else 0.0,
        "client_age": scaled(client_age(v), 365.0),
        "tiny_amount": as_flag(tiny),
        "small_amount": as_flag(small),
        "very_large_amount": very_large,
        "large_amount": large,
        "ratio_extreme": ratio_extreme,
        "ratio_high": ratio_high,
        "new_client_large": as_flag(is_new_client(v) and (amount or 0.0) > t["new_client_amount"]),
    }


# =============================================================================
# LOCATION
# =============================================================================

def location_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    domestic = is_domestic(v)
    locations = optional_number(v, "historical_location_count")
    speed = travel_speed_kmh(v)
    impossible, fast = exclusive_tiers(speed, [t["impossible_speed_kmh"], t["fast_speed_kmh"]])
    risky_country = _country_code(v) in (HIGH_RISK_COUNTRIES | VERY_HIGH_RISK_COUNTRIES)

    return {
        "is_foreign": as_flag(not domestic),
        "travel_speed": scaled(speed if speed != math.inf else t["impossible_speed_kmh"], t["impossible_speed_kmh"]),
        "location_count": scaled(locations, t["many_locations"]),
        "high_risk_country": as_flag(risky_country and not domestic),
        "foreign_unfamiliar": as_flag(not domestic and (locations or 0.0) < t["familiar_locations"]),
        "impossible_travel": impossible,
        "fast_travel": fast,
        "many_locations": as_flag(locations is not None and locations > t["many_locations"]),
    }


# =============================================================================
# TIME
# =============================================================================

def time_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    hour = hour_of_day(v)
    night = is_night(v)
    known = hour is not None

    deep_night = known and t["deep_night_start"] <= hour <= t["deep_night_end"]
    late_night = known and (hour >= SHARED_POLICY["night_start_hour"] or hour <= 1)
    early_morning = known and t["deep_night_end"] < hour <= t["early_morning_end"]
    off_hours = known and (hour < t["weekend_morning"] or hour > t["weekend_evening"])

    return {
        "hour": hour / 23.0 if known else 0.0,
        "is_night": as_flag(night),
        "is_weekend": as_flag(is_weekend(v)),
        "deep_night": as_flag(deep_night),
        "late_night": as_flag(late_night and not deep_night),
        "early_morning": as_flag(early_morning),
        "weekend_off_hours": as_flag(is_weekend(v) and off_hours),
        "new_client_night": as_flag(is_new_client(v, SHARED_POLICY["very_new_client_days"]) and night),
    }


# =============================================================================
# VELOCITY
# =============================================================================

def velocity_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    hourly = optional_number(v, "transactions_last_hour")
    daily = optional_number(v, "transactions_last_24h")
    gap = optional_number(v, "time_since_prev_transaction")
    spent = optional_number(v, "amount_last_24h")
    rate = historical_daily_rate(v)
    activity = daily / rate if daily is not None and rate else None

    hourly_extreme, hourly_high = exclusive_tiers(hourly, [t["hourly_extreme"] - 1, t["hourly_high"] - 1])
    daily_extreme, daily_high = exclusive_tiers(daily, [t["daily_extreme"] - 1, t["daily_high"] - 1])
    spent_extreme, spent_high = exclusive_tiers(spent, [t["daily_amount_extreme"], t["daily_amount_high"]])
    ratio_extreme, ratio_high = exclusive_tiers(
        activity, [t["activity_ratio_extreme"], t["activity_ratio_high"]]
    )

    return {
        "hourly_count": scaled(hourly, t["hourly_extreme"]),
        "daily_count": scaled(daily, t["daily_extreme"]),
        "daily_amount": scaled(spent, t["daily_amount_extreme"]),
        "hourly_extreme": hourly_extreme,
        "hourly_high": hourly_high,
        "daily_extreme": daily_extreme,
        "daily_high": daily_high,
        "gap_rapid": as_flag(gap is not None and gap < t["gap_rapid_minutes"]),
        "gap_short": as_flag(gap is not None and t["gap_rapid_minutes"] <= gap < t["gap_short_minutes"]),
        "daily_amount_extreme": spent_extreme,
        "daily_amount_high": spent_high,
        "new_client_active": as_flag(
            is_new_client(v, SHARED_POLICY["very_new_client_days"]) and (daily or 0.0) > t["new_client_daily"]
        ),
        "activity_ratio_extreme": ratio_extreme,
        "activity_ratio_high": ratio_high,
    }


# =============================================================================
# PATTERN
# =============================================================================

def pattern_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    amount = number(v, "amount")
    ratio = amount_ratio(v)
    history = optional_number(v, "historical_transaction_count")
    locations = optional_number(v, "historical_location_count")
    daily = optional_number(v, "transactions_last_24h")
    rate = historical_daily_rate(v)
    activity = daily / rate if daily is not None and rate else None
    established = history is not None and history > t["established_history"]
    new_client = is_new_client(v)

    ratio_extreme, ratio_high = exclusive_tiers(ratio, [t["ratio_extreme"], t["ratio_high"]])
    activity_extreme, activity_high = exclusive_tiers(
        activity, [t["activity_ratio_extreme"], t["activity_ratio_high"]]
    )

    return {
        "amount_ratio": scaled(ratio, t["ratio_extreme"]),
        "history_depth": scaled(history, 100.0),
        "ratio_extreme": ratio_extreme,
        "ratio_high": ratio_high,
        "ratio_tiny": as_flag(ratio is not None and ratio < t["ratio_tiny"]),
        "unusual_location": as_flag(
            established and locations is not None and locations < t["single_location"] and not is_domestic(v)
        ),
        "unusual_hour": as_flag(established and is_night(v)),
        "activity_extreme": activity_extreme,
        "activity_high": activity_high,
        "new_client_large": as_flag(new_client and amount > SHARED_POLICY["large_amount"]),
        "new_client_busy": as_flag(new_client and (daily or 0.0) > t["new_client_daily"]),
    }


# =============================================================================
# CHANNEL
# =============================================================================

def channel_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    channel = label(v, "channel")
    amount = number(v, "amount")
    online = channel == "online"
    phone = channel == "phone"
    no_device = label(v, "device_info") is None and label(v, "ip_address") is None

    return {
        "is_remote": as_flag(channel in REMOTE_CHANNELS),
        "unknown_channel": as_flag(channel is not None and channel not in KNOWN_CHANNELS),
        "phone_channel": as_flag(phone),
        "online_high_amount": as_flag(online and amount > t["online_high_amount"]),
        "phone_high_amount": as_flag(phone and amount > t["phone_high_amount"]),
        "online_night": as_flag(online and is_night(v)),
        "online_foreign": as_flag(online and not is_domestic(v)),
        "new_client_remote": as_flag(is_new_client(v) and channel in REMOTE_CHANNELS),
        "online_no_device": as_flag(online and no_device),
    }


# =============================================================================
# COUNTRY
# =============================================================================

def country_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    domestic = is_domestic(v)
    classification = country_class(v)
    risky = classification in ("very_high", "high")
    countries = optional_number(v, "unique_countries")

    return {
        "is_foreign": as_flag(not domestic),
        "country_count": scaled(countries, t["many_countries"]),
        "very_high_risk": as_flag(classification == "very_high"),
        "high_risk": as_flag(classification == "high"),
        "unknown_country": as_flag(classification == "unknown"),
        "first_international": as_flag(not domestic and (countries or 0.0) <= 1),
        "risky_large_amount": as_flag(risky and number(v, "amount") > t["risky_amount"]),
        "many_countries": as_flag(countries is not None and countries > t["many_countries"]),
        "foreign_night": as_flag(not domestic and is_night(v)),
        "new_client_risky": as_flag(is_new_client(v) and (risky or classification == "unknown")),
    }


# =============================================================================
# DAY
# =============================================================================

def day_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    day = day_of_week(v)
    hour = hour_of_day(v)
    amount = number(v, "amount")
    daily = number(v, "transactions_last_24h")
    weekend = is_weekend(v)
    new_client = is_new_client(v, t["new_client_days"])
    late = hour is not None and hour >= SHARED_POLICY["night_start_hour"]
    weekday_late = day is not None and not weekend and late

    return {
        "day": day / 6.0 if day is not None else 0.0,
        "is_weekend": as_flag(weekend),
        "sunday_early": as_flag(day == 0 and hour is not None and hour < t["sunday_early_hour"]),
        "weekend_large": as_flag(weekend and amount > SHARED_POLICY["very_large_amount"]),
        "sunday_busy": as_flag(day == 0 and daily > t["busy_day_count"]),
        "weekday_late": as_flag(weekday_late),
        "new_client_weekend": as_flag(new_client and weekend and amount > t["new_client_amount"]),
        "new_client_sunday_busy": as_flag(new_client and day == 0 and daily > t["new_client_busy"]),
        "saturday_early": as_flag(day == 6 and hour is not None and hour < t["saturday_early_hour"]),
        "weekday_late_large": as_flag(weekday_late and amount > SHARED_POLICY["large_amount"]),
    }


# =============================================================================
# DEVICE
# =============================================================================

def suspicious_device(variables) -> bool:
    device = label(variables, "device_info")
    return device is not None and any(marker in device for marker in SUSPICIOUS_DEVICE_MARKERS)


def suspicious_ip(variables) -> bool:
    if flag(variables, "is_proxy") or flag(variables, "is_vpn"):
        return True
    ip = label(variables, "ip_address")
    return ip is not None and any(marker in ip for marker in SUSPICIOUS_IP_MARKERS)


def device_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    online = label(v, "channel") == "online"
    has_device = label(v, "device_info") is not None
    has_ip = label(v, "ip_address") is not None
    risky = suspicious_device(v) or suspicious_ip(v)

    return {
        "has_device": as_flag(has_device),
        "has_ip": as_flag(has_ip),
        "missing_device_and_ip": as_flag(online and not has_device and not has_ip),
        "missing_device": as_flag(online and not has_device and has_ip),
        "missing_ip": as_flag(online and has_device and not has_ip),
        "suspicious_device": as_flag(suspicious_device(v)),
        "suspicious_ip": as_flag(suspicious_ip(v)),
        "risky_device_large_amount": as_flag(risky and number(v, "amount") > t["risky_amount"]),
        "new_client_risky_device": as_flag(risky and is_new_client(v)),
        "foreign_night_no_device": as_flag(online and not is_domestic(v) and is_night(v) and not has_device),
    }


# =============================================================================
# DISTANCE
# =============================================================================

def distance_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    distance = optional_number(v, "distance_from_prev")
    if distance is None or distance <= 0:
        return {"distance": 0.0, "no_reference": 1.0}

    minutes = optional_number(v, "time_since_prev_transaction")
    speed = travel_speed_kmh(v)
    locations = optional_number(v, "historical_location_count")
    amount = number(v, "amount")

    def within(window: float) -> bool:
        return minutes is not None and minutes < window

    impossible, very_fast = exclusive_tiers(speed, [t["impossible_speed_kmh"], t["car_speed_kmh"]])

    return {
        "distance": scaled(distance, t["international_distance_km"]),
        "no_reference": 0.0,
        "impossible_speed": impossible,
        "very_fast": very_fast,
        "extreme_distance": as_flag(distance > t["extreme_distance_km"] and within(t["extreme_window_minutes"])),
        "local_client_far": as_flag(
            locations is not None and locations <= t["local_client_locations"]
            and distance > t["local_client_distance_km"]
        ),
        "rapid_hop": as_flag(distance > t["hop_distance_km"] and within(t["hop_window_minutes"])),
        "first_international_far": as_flag(
            number(v, "unique_countries") <= 1 and not is_domestic(v)
            and distance > t["international_distance_km"]
        ),
        "large_amount_trip": as_flag(
            amount > SHARED_POLICY["large_amount"] and distance > t["trip_distance_km"]
            and within(t["trip_window_minutes"])
        ),
        "new_client_trip": as_flag(is_new_client(v) and distance > t["new_client_distance_km"]),
    }


def distance_heuristic(features: FeatureVector, params: Params) -> NodeScore:
    if features.get("no_reference", 0.0) >= 0.5:
        return NodeScore(
            score=0.0,
            confidence=NO_REFERENCE_CONFIDENCE,
            reasons=["No previous transaction to compare distance"],
        )
    return rule_heuristic(features, params)


# =============================================================================
# FREQUENCY
# =============================================================================

def frequency_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    daily = optional_number(v, "transactions_last_24h")
    hourly = optional_number(v, "transactions_last_hour")
    gap = optional_number(v, "time_since_prev_transaction")
    rate = historical_daily_rate(v)
    age = client_age(v)
    ratio = daily / rate if daily is not None and rate else None

    daily_extreme, daily_high = exclusive_tiers(daily, [t["daily_extreme"], t["daily_high"]])
    hourly_extreme, hourly_high = exclusive_tiers(hourly, [t["hourly_extreme"], t["hourly_high"]])
    ratio_extreme, ratio_high = exclusive_tiers(ratio, [t["ratio_extreme"], t["ratio_high"]])
    dormant = (
        age is not None and age > t["dormant_age_days"]
        and rate is not None and rate < t["dormant_daily_rate"]
        and (daily or 0.0) > t["dormant_burst"]
    )

    return {
        "daily_rate": scaled(daily, t["daily_extreme"]),
        "hourly_rate": scaled(hourly, t["hourly_extreme"]),
        "historical_rate": scaled(rate, 10.0),
        "daily_extreme": daily_extreme,
        "daily_high": daily_high,
        "hourly_extreme": hourly_extreme,
        "hourly_high": hourly_high,
        "gap_rapid": as_flag(gap is not None and gap < t["gap_rapid_minutes"]),
        "gap_quick": as_flag(gap is not None and t["gap_rapid_minutes"] <= gap < t["gap_quick_minutes"]),
        "ratio_extreme": ratio_extreme,
        "ratio_high": ratio_high,
        "dormant_reactivation": as_flag(dormant),
        "new_client_burst": as_flag(
            is_new_client(v, SHARED_POLICY["very_new_client_days"]) and (daily or 0.0) > t["new_client_burst"]
        ),
    }


# =============================================================================
# MERCHANT
# =============================================================================

def merchant_features(transaction: Transaction, bundle: ResultBundle, params: Params) -> FeatureVector:
    v = transaction.variables
    t = params["thresholds"]
    classification = merchant_class(v)
    if classification == "none":
        return {"merchant_risk": 0.0}

    amount = optional_number(v, "amount")
    suspicious, extreme = MERCHANT_AMOUNT_LIMITS.get(classification, MERCHANT_AMOUNT_LIMITS["unknown"])
    extreme_amount, suspicious_amount = exclusive_tiers(amount, [extreme, suspicious])
    very_high = classification == "very_high"
    risky = classification in ("very_high", "high")
    merchant_types = optional_number(v, "historical_merchant_types")

    return {
        "merchant_risk": {"very_high": 1.0, "high": 0.75, "unknown": 0.5, "medium": 0.35}.get(classification, 0.1),
        "very_high_risk": as_flag(very_high),
        "high_risk": as_flag(classification == "high"),
        "unknown_merchant": as_flag(classification == "unknown"),
        "extreme_amount": extreme_amount,
        "suspicious_amount": suspicious_amount,
        "risky_night": as_flag(risky and is_night(v)),
        "new_client_risky": as_flag(risky and is_new_client(v)),
        "risky_foreign": as_flag(risky and not is_domestic(v)),
        "first_time_very_high": as_flag(
            very_high and merchant_types is not None and merchant_types < t["first_time_types"]
        ),
        "busy_very_high": as_flag(very_high and number(v, "transactions_last_24h") > t["busy_day_count"]),
    }


# =============================================================================
# STAGE TABLE
# =============================================================================

STAGE_ONE_NODES = [
    NodeSpec("amount", amount_features, rule_heuristic, "Amount anomalies", _rule_params("amount")),
    NodeSpec("location", location_features, rule_heuristic, "Geographic risk", _rule_params("location")),
    NodeSpec("time", time_features, rule_heuristic, "Hour-of-day risk", _rule_params("time")),
    NodeSpec("velocity", velocity_features, rule_heuristic, "Transaction velocity", _rule_params("velocity")),
    NodeSpec("pattern", pattern_features, rule_heuristic, "Deviation from history", _rule_params("pattern")),
    NodeSpec("channel", channel_features, rule_heuristic, "Channel risk", _rule_params("channel")),
    NodeSpec("country", country_features, rule_heuristic, "Country risk", _rule_params("country")),
    NodeSpec("day", day_features, rule_heuristic, "Day-of-week risk", _rule_params("day")),
    NodeSpec("device", device_features, rule_heuristic, "Device and IP risk", _rule_params("device")),
    NodeSpec("distance", distance_features, distance_heuristic, "Travel distance", _rule_params("distance")),
    NodeSpec("frequency", frequency_features, rule_heuristic, "Activity frequency", _rule_params("frequency")),
    NodeSpec("merchant", merchant_features, rule_heuristic, "Merchant risk", _rule_params("merchant")),
]
