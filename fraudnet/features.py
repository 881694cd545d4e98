"""
FraudNet Ensemble - Feature Helpers
====================================

Typed accessors over ``Transaction.variables`` and small numeric helpers
shared by every feature function. A missing or unparsable variable reads
as ``None`` (or the given default) and never raises.
"""

import math
from typing import Iterable, List, Mapping, Optional, Sequence

from .config import SHARED_POLICY
from .schemas import Scalar

_TRUE_STRINGS = {"true", "yes", "1", "y", "t"}
_FALSE_STRINGS = {"false", "no", "0", "n", "f"}


# =============================================================================
# VARIABLE ACCESSORS
# =============================================================================

def optional_number(variables: Mapping[str, Scalar], key: str) -> Optional[float]:
    value = variables.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number_value = float(value)
    else:
        try:
            number_value = float(str(value).strip())
        except ValueError:
            return None
    if math.isnan(number_value) or math.isinf(number_value):
        return None
    return number_value


def number(variables: Mapping[str, Scalar], key: str, default: float = 0.0) -> float:
    value = optional_number(variables, key)
    return default if value is None else value


def optional_flag(variables: Mapping[str, Scalar], key: str) -> Optional[bool]:
    value = variables.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def flag(variables: Mapping[str, Scalar], key: str, default: bool = False) -> bool:
    value = optional_flag(variables, key)
    return default if value is None else value


def label(variables: Mapping[str, Scalar], key: str) -> Optional[str]:
    value = variables.get(key)
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text.lower() if text else None


def is_domestic(variables: Mapping[str, Scalar]) -> bool:
    # Absent means no cross-border evidence.
    return flag(variables, "is_domestic", default=True)


def hour_of_day(variables: Mapping[str, Scalar]) -> Optional[int]:
    hour = optional_number(variables, "hour_of_day")
    if hour is None or not 0 <= hour < 24:
        return None
    return int(hour)


def day_of_week(variables: Mapping[str, Scalar]) -> Optional[int]:
    """0 = Sunday ... 6 = Saturday."""
    day = optional_number(variables, "day_of_week")
    if day is None or not 0 <= day <= 6:
        return None
    return int(day)


def is_night(variables: Mapping[str, Scalar]) -> bool:
    explicit = optional_flag(variables, "is_night_transaction")
    if explicit is not None:
        return explicit
    hour = hour_of_day(variables)
    if hour is None:
        return False
    return hour >= SHARED_POLICY["night_start_hour"] or hour < SHARED_POLICY["night_end_hour"]


def is_weekend(variables: Mapping[str, Scalar]) -> bool:
    explicit = optional_flag(variables, "is_weekend")
    if explicit is not None:
        return explicit
    day = day_of_week(variables)
    return day in (0, 6)


def client_age(variables: Mapping[str, Scalar]) -> Optional[float]:
    return optional_number(variables, "client_age_days")


def is_new_client(variables: Mapping[str, Scalar], days: Optional[float] = None) -> bool:
    age = client_age(variables)
    limit = SHARED_POLICY["new_client_days"] if days is None else days
    return age is not None and age < limit


def is_hourly_burst(variables: Mapping[str, Scalar]) -> bool:
    return number(variables, "transactions_last_hour") >= SHARED_POLICY["hourly_burst_count"]


def historical_daily_rate(variables: Mapping[str, Scalar]) -> Optional[float]:
    """Average transactions per day over the client's lifetime, when known."""
    count = optional_number(variables, "historical_transaction_count")
    age = client_age(variables)
    if count is None or age is None or age <= 0:
        return None
    return count / max(age, 1.0)


def amount_ratio(variables: Mapping[str, Scalar]) -> Optional[float]:
    amount = optional_number(variables, "amount")
    average = optional_number(variables, "historical_avg_amount")
    if amount is None or average is None or average <= 0:
        return None
    return amount / average


def travel_speed_kmh(variables: Mapping[str, Scalar]) -> Optional[float]:
    distance = optional_number(variables, "distance_from_prev")
    minutes = optional_number(variables, "time_since_prev_transaction")
    if distance is None or distance <= 0 or minutes is None:
        return None
    if minutes <= 0:
        return math.inf
    return distance / (minutes / 60.0)


# =============================================================================
# NUMERIC HELPERS
# =============================================================================

def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    if value != value:  # NaN
        return low
    return max(low, min(high, value))


def scaled(value: Optional[float], ceiling: float) -> float:
    if value is None or ceiling <= 0:
        return 0.0
    return clamp(value / ceiling)


def as_flag(condition: bool) -> float:
    return 1.0 if condition else 0.0


def mean(values: Sequence[float], default: float = 0.0) -> float:
    return sum(values) / len(values) if values else default


def variance(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    centre = mean(values)
    return sum((v - centre) ** 2 for v in values) / len(values)


def std(values: Sequence[float]) -> float:
    return math.sqrt(variance(values))


def count_above(values: Iterable[float], threshold: float) -> int:
    return sum(1 for v in values if v > threshold)


def exclusive_tiers(value: Optional[float], tiers: List[float]) -> List[float]:
    """
    One-hot over descending tiers: ``[v > t0, t1 < v <= t0, ...]``.

    Used for "large / very large" style rules where only the strongest
    matching tier should fire.
    """
    flags = [0.0] * len(tiers)
    if value is None:
        return flags
    for i, tier in enumerate(tiers):
        if value > tier:
            flags[i] = 1.0
            break
    return flags
