"""
FraudNet Ensemble - Configuration Constants
============================================

Every heuristic threshold and rule weight used by the scoring nodes lives
here as data. Nodes read their own block through ``NODE_THRESHOLDS``,
``NODE_RULES`` and ``NODE_CONFIDENCE``; cut-offs that several nodes must
agree on live in ``SHARED_POLICY``.
"""

from pathlib import Path
from typing import Dict, FrozenSet, List, Tuple

# =============================================================================
# VERSIONING
# =============================================================================

MODEL_VERSION: str = "1.0.0"
NODE_MODEL_VERSION: str = "1.0.0"

ROOT = Path(__file__).resolve().parent.parent
MODELS_DIR = ROOT / "models"

# =============================================================================
# PIPELINE
# =============================================================================

FRAUD_THRESHOLD: float = 0.7
STAGE_TIMEOUT_SECONDS: float = 5.0
# Transactions analysed at once by a batch call.
BATCH_CONCURRENCY: int = 4

# Upper bounds (exclusive) of each band; anything above "high" is critical.
RISK_LEVEL_THRESHOLDS: Dict[str, float] = {
    "minimal": 0.30,
    "low": 0.50,
    "medium": 0.70,
    "high": 0.90,
}

PLACEHOLDER_SCORE: float = 0.5
PLACEHOLDER_CONFIDENCE: float = 0.1
PLACEHOLDER_REASON: str = "error in analysis"

REASON_SCORE_THRESHOLD: float = 0.6
ANOMALY_SCORE_THRESHOLD: float = 0.6
MAX_PRIMARY_REASONS: int = 10
TOP_FACTORS_COUNT: int = 5
FINAL_REASON_TAG: str = "Final"

# =============================================================================
# DECISION NODE
# =============================================================================

FALLBACK_STAGE_WEIGHTS: Tuple[float, ...] = (0.3, 0.3, 0.4)
FALLBACK_CONFIDENCE: float = 0.5
EMPTY_STAGE_MEAN: float = 0.5

DECISION_STAGE_WEIGHTS: Tuple[float, ...] = (0.25, 0.30, 0.35)
CONSENSUS_WEIGHT: float = 0.10
# Blend of stage mean and stage max into one stage signal.
STAGE_SIGNAL_BLEND: Tuple[float, float] = (0.4, 0.6)

CRITICAL_ADJUSTMENTS: Dict[str, float] = {
    "critical_score": 0.8,
    "many_critical_count": 5,
    "many_critical_bonus": 0.2,
    "some_critical_count": 3,
    "some_critical_bonus": 0.1,
    "all_low_score": 0.3,
    "all_low_penalty": 0.1,
}

DECISION_MITIGATION: Dict[str, float] = {
    "trusted_customer": 0.20,
    "domestic_normal_hours": 0.15,
    "frequent_merchant": 0.10,
    "typical_amount": 0.10,
    "no_critical_alerts": 0.05,
}
MAX_DECISION_MITIGATION: float = 0.4
TRUSTED_CUSTOMER_DAYS: int = 730
FREQUENT_MERCHANT_COUNT: int = 10
TYPICAL_AMOUNT_RATIO: float = 1.5
CRITICAL_ALERT_SCORE: float = 0.9

DECISION_CONFIDENCE: Dict[str, float] = {
    "base": 0.70,
    "wide_coverage_nodes": 18,
    "wide_coverage_bonus": 0.15,
    "agreement_level": 0.80,
    "agreement_bonus": 0.10,
    "clarity_level": 0.70,
    "clarity_bonus": 0.05,
    "contradiction_penalty": 0.10,
    "floor": 0.50,
    "ceiling": 0.95,
}

RECOMMENDED_ACTIONS: Dict[str, List[str]] = {
    "critical": [
        "Block transaction immediately",
        "Freeze card pending verification",
        "Notify client through verified channel",
        "Escalate to fraud team",
    ],
    "high": [
        "Hold transaction for manual review",
        "Request additional client verification",
        "Notify client through verified channel",
    ],
    "medium": [
        "Flag transaction for review",
        "Monitor subsequent account activity",
    ],
    "low": [
        "Approve with passive monitoring",
    ],
    "minimal": [
        "Approve transaction",
    ],
}

# =============================================================================
# AGGREGATORS
# =============================================================================

MITIGATION_CAP: float = 0.30
HIGH_SCORE_THRESHOLD: float = 0.7
CORRELATION_THRESHOLD: float = 0.6
CASCADE_THRESHOLD: float = 0.6
NON_TRIVIAL_SCORE: float = 0.1

RISK_CATEGORY_WEIGHTS: Dict[str, float] = {
    "client": 0.25,
    "transaction": 0.30,
    "behavior": 0.25,
    "technology": 0.20,
}

# Scored members of each stage-derived risk category: (nodes, weight), where a
# group contributes the highest score among its nodes. Weights sum to 1 within
# a category. "client" is scored from the transaction variables instead.
RISK_CATEGORY_MEMBERS: Dict[str, Tuple[Tuple[Tuple[str, ...], float], ...]] = {
    "transaction": (
        (("amount",), 0.3),
        (("location", "country"), 0.3),
        (("time", "day"), 0.2),
        (("merchant",), 0.2),
    ),
    "behavior": (
        (("pattern",), 0.3),
        (("velocity", "frequency"), 0.3),
        (("behavior_combiner",), 0.4),
    ),
    "technology": (
        (("channel",), 0.3),
        (("device",), 0.3),
        (("device_combiner",), 0.4),
    ),
}

# Escalation: min(high_count / divisor, cap) + max_score * weight + min(pairs / divisor, cap).
ESCALATION_FACTORS: Dict[str, float] = {
    "high_count_divisor": 5,
    "high_count_cap": 0.4,
    "max_score_weight": 0.3,
    "pair_divisor": 3,
    "pair_cap": 0.3,
}

# Share of the category blend vs. escalation in the overall risk.
RISK_BLEND: Tuple[float, float] = (0.7, 0.3)

CORRELATED_PAIRS: List[Tuple[str, str]] = [
    ("amount", "merchant"),
    ("location", "country"),
    ("time", "day"),
    ("velocity", "frequency"),
]

CASCADE_GROUPS: Dict[str, Tuple[Tuple[str, ...], float]] = {
    "temporal": (("time", "day", "frequency"), 0.3),
    "spatial": (("location", "distance", "country"), 0.3),
    "behavioral": (("pattern", "velocity", "frequency"), 0.4),
}

UNEXPECTED_PAIRS: List[Tuple[str, str]] = [
    ("amount", "day"),
    ("time", "merchant"),
    ("device", "location"),
]

BEHAVIOR_CATEGORY_WEIGHTS: Dict[str, Tuple[Tuple[str, ...], float]] = {
    "temporal": (("time", "day"), 0.25),
    "spending": (("amount", "pattern"), 0.25),
    "location": (("location", "distance", "country"), 0.20),
    "frequency": (("velocity", "frequency"), 0.15),
    "context": (("channel", "device", "merchant"), 0.15),
}

COMBINER_BASE_WEIGHTS: Dict[str, Dict[str, float]] = {
    "amount_combiner": {"amount": 0.50, "pattern": 0.25, "merchant": 0.25},
    "location_combiner": {"location": 0.40, "distance": 0.20, "country": 0.40},
    "timing_combiner": {"time": 0.35, "day": 0.25, "velocity": 0.20, "frequency": 0.20},
    "device_combiner": {"channel": 0.40, "device": 0.60},
}

# Stage-2 pattern cut-offs. Upstream scores are compared with ``>``; counts are
# in transactions and gaps in minutes.
COMBINER_THRESHOLDS: Dict[str, float] = {
    "active_signal": 0.5,
    "strong_signal": 0.6,
    "escalation_ratio": 3.0,
    "fragmentation_daily_count": 5,
    "fragmentation_parts": 5,
    "high_share_weight": 0.3,
    "cluster_count": 3,
    "correlated_category_count": 3,
    "single_country_count": 1,
    "rapid_international_minutes": 60.0,
    "rapid_succession_minutes": 2.0,
    "top_signal_count": 3,
    "synthetic_history_count": 5,
    "structuring_daily_count": 3,
    "structuring_daily_rate": 3.0,
    "multi_anomaly_count": 4,
}

# =============================================================================
# SHARED POLICY
# =============================================================================

SHARED_POLICY: Dict[str, float] = {
    "new_client_days": 30,
    "very_new_client_days": 7,
    "established_client_days": 365,
    "established_history_count": 100,
    "night_start_hour": 23,
    "night_end_hour": 6,
    "business_start_hour": 6,
    "business_end_hour": 22,
    "large_amount": 5000,
    "very_large_amount": 10000,
    "threshold_avoidance_margin": 0.10,
    # Transactions in the last hour that count as a burst (inclusive).
    "hourly_burst_count": 5,
}

# Amounts just below these figures are treated as reporting-threshold avoidance.
REPORTING_THRESHOLDS: Tuple[float, ...] = (3000.0, 10000.0)

REMOTE_CHANNELS: FrozenSet[str] = frozenset({"online", "phone"})
PHYSICAL_CHANNELS: FrozenSet[str] = frozenset({"physical", "in_person", "atm", "pos"})
KNOWN_CHANNELS: FrozenSet[str] = REMOTE_CHANNELS | PHYSICAL_CHANNELS

VERY_HIGH_RISK_COUNTRIES: FrozenSet[str] = frozenset({"KP", "IR", "SY", "MM", "AF"})
HIGH_RISK_COUNTRIES: FrozenSet[str] = frozenset({"NG", "RU", "UA", "VE", "PK", "KH", "YE", "HT"})
LOW_RISK_COUNTRIES: FrozenSet[str] = frozenset({
    "US", "CA", "GB", "AU", "DE", "FR", "JP", "NL", "SE", "CH",
    "ES", "IT", "MX", "BR", "AR", "CL", "CO", "PE", "IN", "CN",
})

VERY_HIGH_RISK_MERCHANTS: FrozenSet[str] = frozenset({
    "gambling", "crypto", "cash_advance", "wire_transfer",
})
HIGH_RISK_MERCHANTS: FrozenSet[str] = frozenset({
    "jewelry", "electronics", "money_transfer", "pawn_shop", "gift_cards", "adult",
})
LOW_RISK_MERCHANTS: FrozenSet[str] = frozenset({
    "grocery", "pharmacy", "utilities", "transport", "restaurant", "fuel",
})
MEDIUM_RISK_MERCHANTS: FrozenSet[str] = frozenset({
    "retail", "clothing", "online_retail", "travel", "hotel", "entertainment", "services",
})

# (suspicious, extreme) amount per merchant risk class.
MERCHANT_AMOUNT_LIMITS: Dict[str, Tuple[float, float]] = {
    "very_high": (500.0, 2000.0),
    "high": (1000.0, 5000.0),
    "medium": (3000.0, 10000.0),
    "low": (5000.0, 20000.0),
    "unknown": (3000.0, 10000.0),
}

SUSPICIOUS_DEVICE_MARKERS: Tuple[str, ...] = (
    "emulator", "headless", "selenium", "phantom", "bot", "curl", "python-requests",
)
SUSPICIOUS_IP_MARKERS: Tuple[str, ...] = ("tor", "vpn", "proxy")

# =============================================================================
# STAGE-1 THRESHOLDS (raw units)
# =============================================================================

NODE_THRESHOLDS: Dict[str, Dict[str, float]] = {
    "amount": {
        "tiny": 1.0,
        "small": 5.0,
        "large": 10000.0,
        "very_large": 20000.0,
        "ratio_high": 5.0,
        "ratio_extreme": 10.0,
        "new_client_amount": 1000.0,
    },
    "location": {
        "familiar_locations": 3,
        "fast_speed_kmh": 500.0,
        "impossible_speed_kmh": 900.0,
        "many_locations": 20,
    },
    "time": {
        "deep_night_start": 2,
        "deep_night_end": 4,
        "early_morning_end": 6,
        "weekend_morning": 8,
        "weekend_evening": 22,
    },
    "velocity": {
        "hourly_high": 5,
        "hourly_extreme": 8,
        "daily_high": 15,
        "daily_extreme": 30,
        "gap_short_minutes": 5.0,
        "gap_rapid_minutes": 2.0,
        "daily_amount_high": 8000.0,
        "daily_amount_extreme": 15000.0,
        "new_client_daily": 5,
        "activity_ratio_high": 3.0,
        "activity_ratio_extreme": 5.0,
    },
    "pattern": {
        "ratio_high": 5.0,
        "ratio_extreme": 10.0,
        "ratio_tiny": 0.1,
        "established_history": 20,
        "single_location": 2,
        "activity_ratio_high": 4.0,
        "activity_ratio_extreme": 8.0,
        "new_client_daily": 10,
    },
    "channel": {
        "online_high_amount": 10000.0,
        "phone_high_amount": 2000.0,
    },
    "country": {
        "risky_amount": 2000.0,
        "many_countries": 10,
    },
    "day": {
        "sunday_early_hour": 7,
        "saturday_early_hour": 6,
        "busy_day_count": 10,
        "new_client_days": 14,
        "new_client_amount": 2000.0,
        "new_client_busy": 5,
    },
    "device": {
        "risky_amount": 5000.0,
    },
    "distance": {
        "car_speed_kmh": 120.0,
        "impossible_speed_kmh": 900.0,
        "extreme_distance_km": 500.0,
        "extreme_window_minutes": 120.0,
        "local_client_locations": 2,
        "local_client_distance_km": 200.0,
        "hop_distance_km": 100.0,
        "hop_window_minutes": 30.0,
        "international_distance_km": 1000.0,
        "trip_distance_km": 500.0,
        "trip_window_minutes": 180.0,
        "new_client_distance_km": 300.0,
    },
    "frequency": {
        "daily_high": 15,
        "daily_extreme": 20,
        "hourly_high": 5,
        "hourly_extreme": 8,
        "gap_quick_minutes": 3.0,
        "gap_rapid_minutes": 1.0,
        "ratio_high": 5.0,
        "ratio_extreme": 10.0,
        "dormant_age_days": 90,
        "dormant_daily_rate": 0.1,
        "dormant_burst": 3,
        "new_client_burst": 8,
    },
    "merchant": {
        "first_time_types": 3,
        "busy_day_count": 10,
    },
}

# =============================================================================
# RULE TABLES: (feature flag, weight, reason)
# =============================================================================

NODE_RULES: Dict[str, List[Tuple[str, float, str]]] = {
    "amount": [
        ("tiny_amount", 0.7, "Micro amount typical of card testing"),
        ("small_amount", 0.4, "Very small amount"),
        ("very_large_amount", 0.8, "Very large amount"),
        ("large_amount", 0.5, "Large amount"),
        ("ratio_extreme", 0.6, "Amount far above client average"),
        ("ratio_high", 0.3, "Amount above client average"),
        ("new_client_large", 0.4, "New client with significant amount"),
    ],
    "location": [
        ("high_risk_country", 0.6, "Transaction from high-risk country"),
        ("foreign_unfamiliar", 0.4, "International location unfamiliar to client"),
        ("impossible_travel", 0.8, "Physically impossible travel speed"),
        ("fast_travel", 0.5, "Suspiciously fast travel between transactions"),
        ("many_locations", 0.3, "Client active in many locations"),
    ],
    "time": [
        ("deep_night", 0.6, "Transaction in the early hours"),
        ("late_night", 0.3, "Late night transaction"),
        ("early_morning", 0.2, "Early morning transaction"),
        ("weekend_off_hours", 0.2, "Weekend transaction outside normal hours"),
        ("new_client_night", 0.4, "New client transacting at night"),
    ],
    "velocity": [
        ("hourly_extreme", 0.8, "Extreme number of transactions in the last hour"),
        ("hourly_high", 0.5, "High number of transactions in the last hour"),
        ("daily_extreme", 0.7, "Extreme number of transactions in 24h"),
        ("daily_high", 0.4, "High number of transactions in 24h"),
        ("gap_rapid", 0.6, "Transactions in rapid succession"),
        ("gap_short", 0.3, "Short gap since previous transaction"),
        ("daily_amount_extreme", 0.6, "Extreme amount spent in 24h"),
        ("daily_amount_high", 0.3, "High amount spent in 24h"),
        ("new_client_active", 0.4, "New client with high activity"),
        ("activity_ratio_extreme", 0.5, "Activity far above historical rate"),
        ("activity_ratio_high", 0.3, "Activity above historical rate"),
    ],
    "pattern": [
        ("ratio_extreme", 0.7, "Amount breaks historical spending pattern"),
        ("ratio_high", 0.4, "Amount deviates from spending pattern"),
        ("ratio_tiny", 0.5, "Amount far below usual spending"),
        ("unusual_location", 0.5, "Established single-location client transacting abroad"),
        ("unusual_hour", 0.3, "Established client active at unusual hour"),
        ("activity_extreme", 0.6, "Activity pattern far above history"),
        ("activity_high", 0.3, "Activity pattern above history"),
        ("new_client_large", 0.4, "New client with large amount"),
        ("new_client_busy", 0.3, "New client with intense activity"),
    ],
    "channel": [
        ("unknown_channel", 0.7, "Unknown transaction channel"),
        ("phone_channel", 0.4, "Phone transaction (risky channel)"),
        ("online_high_amount", 0.5, "Very high amount for online transaction"),
        ("phone_high_amount", 0.6, "High amount for phone transaction"),
        ("online_night", 0.3, "Online transaction at night"),
        ("online_foreign", 0.4, "Online transaction from abroad"),
        ("new_client_remote", 0.3, "New client using remote channel"),
        ("online_no_device", 0.4, "Online transaction without device information"),
    ],
    "country": [
        ("very_high_risk", 0.8, "Very high-risk country"),
        ("high_risk", 0.6, "High-risk country"),
        ("unknown_country", 0.7, "Unknown or unlisted foreign country"),
        ("first_international", 0.4, "First international transaction for client"),
        ("risky_large_amount", 0.5, "High amount from risky country"),
        ("many_countries", 0.4, "Client active in many countries"),
        ("foreign_night", 0.3, "International transaction at night"),
        ("new_client_risky", 0.4, "New client transacting from risky country"),
    ],
    "day": [
        ("sunday_early", 0.5, "Very early Sunday transaction"),
        ("weekend_large", 0.4, "Large amount on weekend"),
        ("sunday_busy", 0.6, "Unusual Sunday activity"),
        ("weekday_late", 0.3, "Very late weekday transaction"),
        ("new_client_weekend", 0.3, "New client with significant weekend transaction"),
        ("new_client_sunday_busy", 0.4, "New client with high Sunday activity"),
        ("saturday_early", 0.3, "Very early Saturday transaction"),
        ("weekday_late_large", 0.4, "Large amount very late on weekday"),
    ],
    "device": [
        ("missing_device_and_ip", 0.7, "No device or IP information"),
        ("missing_device", 0.4, "No device information"),
        ("missing_ip", 0.3, "No IP address"),
        ("suspicious_device", 0.4, "Suspicious device fingerprint"),
        ("suspicious_ip", 0.4, "IP associated with anonymising service"),
        ("risky_device_large_amount", 0.3, "High amount from risky device"),
        ("new_client_risky_device", 0.3, "New client with suspicious device"),
        ("foreign_night_no_device", 0.4, "International night transaction without device information"),
    ],
    "distance": [
        ("impossible_speed", 0.9, "Physically impossible travel speed"),
        ("very_fast", 0.6, "Travel speed faster than ground transport"),
        ("extreme_distance", 0.7, "Extreme distance in short time"),
        ("local_client_far", 0.5, "Local client suddenly far away"),
        ("rapid_hop", 0.6, "Large distance in very short time"),
        ("first_international_far", 0.4, "First international transaction at long distance"),
        ("large_amount_trip", 0.3, "High amount with suspicious travel"),
        ("new_client_trip", 0.3, "New client with long trip"),
    ],
    "frequency": [
        ("daily_extreme", 0.8, "Extreme daily activity"),
        ("daily_high", 0.6, "Very high daily activity"),
        ("hourly_extreme", 0.7, "Burst of activity within one hour"),
        ("hourly_high", 0.4, "High hourly activity"),
        ("gap_rapid", 0.6, "Back-to-back transactions"),
        ("gap_quick", 0.3, "Closely spaced transactions"),
        ("ratio_extreme", 0.7, "Activity far above historical pattern"),
        ("ratio_high", 0.4, "Activity above historical pattern"),
        ("dormant_reactivation", 0.6, "Sudden reactivation of dormant account"),
        ("new_client_burst", 0.5, "New client with extreme activity"),
    ],
    "merchant": [
        ("very_high_risk", 0.7, "Very high-risk merchant type"),
        ("high_risk", 0.5, "High-risk merchant type"),
        ("unknown_merchant", 0.4, "Unknown merchant type"),
        ("extreme_amount", 0.6, "Extreme amount for merchant type"),
        ("suspicious_amount", 0.3, "High amount for merchant type"),
        ("risky_night", 0.4, "Risky merchant at night"),
        ("new_client_risky", 0.5, "New client at risky merchant"),
        ("risky_foreign", 0.4, "International risky merchant"),
        ("first_time_very_high", 0.4, "First visit to very high-risk merchant type"),
        ("busy_very_high", 0.3, "High activity at very high-risk merchants"),
    ],
    "amount_combiner": [
        ("escalation", 0.20, "Amount escalation pattern detected"),
        ("card_testing", 0.25, "Card testing pattern detected"),
        ("fragmentation", 0.20, "Amount fragmentation pattern"),
        ("threshold_avoidance", 0.15, "Amount just below reporting threshold"),
        ("new_client_large", 0.15, "New client with large amount"),
        ("night_large", 0.10, "Large amount at night"),
    ],
    "behavior_combiner": [
        ("night_international", 0.15, "Night-time international behaviour"),
        ("amount_velocity", 0.20, "High amount combined with high velocity"),
        ("new_client_cluster", 0.20, "New client with clustered alerts"),
        ("correlated_categories", 0.15, "Correlated behaviour categories"),
    ],
    "location_combiner": [
        ("impossible_travel", 0.30, "Impossible travel pattern"),
        ("location_hopping", 0.20, "Location hopping pattern"),
        ("international_jump", 0.20, "Sudden international jump"),
        ("night_foreign", 0.15, "Night transaction abroad"),
        ("risky_country_large", 0.15, "High-risk country with large amount"),
        ("rapid_international", 0.10, "Rapid international movement"),
    ],
    "timing_combiner": [
        ("critical_time", 0.30, "Critical time combination detected"),
        ("rapid_succession", 0.20, "Rapid succession pattern"),
        ("burst_activity", 0.20, "Burst activity pattern"),
        ("dormant_then_active", 0.20, "Dormant account reactivated"),
        ("night_weekend", 0.15, "Night-time weekend combination"),
        ("early_morning", 0.15, "Early morning activity"),
    ],
    "device_combiner": [
        ("automation", 0.30, "Automation indicators detected"),
        ("geo_tech_conflict", 0.20, "Geography and technology conflict"),
        ("suspicious_agent", 0.25, "Suspicious user agent"),
        ("missing_tech", 0.20, "Missing technology information"),
        ("rapid_online", 0.15, "Accelerated online activity"),
        ("night_online", 0.10, "Online activity at night"),
    ],
    "pattern_combiner": [
        ("testing_escalation", 0.20, "Testing and escalation meta-pattern"),
        ("account_takeover", 0.25, "Account takeover meta-pattern"),
        ("synthetic_identity", 0.20, "Synthetic identity meta-pattern"),
        ("structuring", 0.20, "Structuring meta-pattern"),
        ("multi_anomaly", 0.15, "Multiple correlated anomalies"),
        ("cascading_risk", 0.10, "Cascading risk meta-pattern"),
    ],
    "context_analysis": [
        ("new_client", 0.25, "New client"),
        ("very_new_client", 0.10, "Account opened within the last week"),
        ("international", 0.20, "International transaction"),
        ("risky_country", 0.20, "Risky destination country"),
        ("very_large_amount", 0.25, "Very large amount in context"),
        ("night", 0.15, "Night-time context"),
        ("weekend_night", 0.10, "Weekend night context"),
        ("hourly_burst", 0.20, "Burst of activity in the last hour"),
        ("online_no_device", 0.15, "Online without device fingerprint"),
    ],
}

# =============================================================================
# STAGE-3 AGGREGATOR POLICY
# =============================================================================

CLIENT_RISK_FACTORS: Dict[str, float] = {
    "very_new": 0.4,
    "new": 0.2,
    "profile_high": 0.3,
    "profile_medium": 0.1,
    "thin_history": 0.2,
    "many_countries": 0.1,
}
THIN_HISTORY_COUNT: int = 5
MANY_COUNTRIES_COUNT: int = 10

# (limit, bump); amount limits in raw currency, counts in transactions.
# The hourly burst limit is inclusive, see ``is_hourly_burst``.
URGENCY_FACTORS: Dict[str, Tuple[float, float]] = {
    "very_large_amount": (20000.0, 0.3),
    "large_amount": (10000.0, 0.2),
    "hourly_burst": (SHARED_POLICY["hourly_burst_count"], 0.2),
    "many_simultaneous": (4, 0.3),
    "some_simultaneous": (2, 0.2),
    "behavior_spike": (0.8, 0.2),
}

IMPACT_FACTORS: Dict[str, float] = {
    "amount_scale": 50000.0,
    "amount_cap": 0.4,
    "established_client": 0.2,
    "busy_day_count": 10,
    "busy_day": 0.2,
    "international": 0.2,
}

MITIGATION_FACTORS: Dict[str, float] = {
    "established_client": 0.3,
    "domestic": 0.2,
    "business_hours": 0.2,
    "physical_channel": 0.2,
    "typical_amount": 0.1,
}
TYPICAL_AMOUNT_RANGE: Tuple[float, float] = (0.5, 2.0)

AGGREGATOR_WARNING_LEVELS: Dict[str, float] = {
    "critical_risk": 0.9,
    "urgent": 0.6,
    "high_impact": 0.6,
    "escalation": 0.7,
    "anomaly_families": 3,
    "incoherent_domains": 3,
    "context_score": 0.8,
    "context_factors": 3,
}

# Blend of the strongest anomaly family and the family mean.
ANOMALY_BLEND: Tuple[float, float] = (0.6, 0.4)
INTERACTION_GAP: float = 0.4
INCOHERENCE_LEVEL: float = 0.5
INCOHERENCE_BUMP: float = 0.1

COHERENCE_DOMAINS: Dict[str, Tuple[str, ...]] = {
    "temporal": ("time", "day", "timing_combiner"),
    "spatial": ("location", "distance", "country", "location_combiner"),
    "spending": ("amount", "pattern", "amount_combiner"),
    "channel": ("channel", "device", "device_combiner"),
    "merchant": ("merchant", "amount_combiner"),
    "evolution": ("velocity", "frequency", "behavior_combiner", "pattern_combiner"),
}

NODE_CONFIDENCE: Dict[str, float] = {
    "amount": 0.7,
    "location": 0.7,
    "time": 0.8,
    "velocity": 0.8,
    "pattern": 0.7,
    "channel": 0.7,
    "country": 0.8,
    "day": 0.7,
    "device": 0.7,
    "distance": 0.8,
    "frequency": 0.8,
    "merchant": 0.8,
}

NO_REFERENCE_CONFIDENCE: float = 0.5

# =============================================================================
# TRAINING
# =============================================================================

XGB_PARAMS: Dict = {
    "n_estimators": 60,
    "max_depth": 3,
    "learning_rate": 0.1,
    "subsample": 1.0,
    "objective": "reg:squarederror",
    "random_state": 42,
    "n_jobs": 1,
}

TRAINED_BASE_CONFIDENCE: float = 0.8
TRAINED_FIT_BONUS: float = 0.1
TRAINED_FIT_RESIDUAL: float = 0.05
MODEL_REASON_FEATURES: int = 3

TRAINING_SEED: int = 42
SYNTHETIC_PRIOR_JITTER: Tuple[float, float] = (0.8, 1.2)
SYNTHETIC_PRIOR_CONFIDENCE: float = 0.8
