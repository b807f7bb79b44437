"""
Basic aggregates and magnitude ranges for the stats tables.

Missing and non-finite values never contribute to an aggregate: they are
filtered out before the denominator is taken.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from healthdash.schemas import RangeEventStat


@dataclass
class MinMax:
    min: float
    max: float


def _finite(values: Iterable[Optional[float]]) -> list[float]:
    return [
        v for v in values
        if isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
    ]


def average_metric(values: Iterable[Optional[float]]) -> float | None:
    filtered = _finite(values)
    if not filtered:
        return None
    return sum(filtered) / len(filtered)


def get_min_max(values: Iterable[Optional[float]]) -> MinMax | None:
    filtered = _finite(values)
    if not filtered:
        return None
    return MinMax(min=min(filtered), max=max(filtered))


def get_magnitude_class(
    value: float,
    min_value: float,
    max_value: float,
    palette: Sequence[str],
    neutral: str,
) -> str:
    """Map *value* onto a palette slot relative to the observed range.

    When every bucket has the same value the middle slot is used.
    """
    if value is None or not math.isfinite(value) or not palette:
        return neutral
    if max_value == min_value:
        return palette[len(palette) // 2]
    normalized = (value - min_value) / (max_value - min_value)
    index = min(len(palette) - 1, max(0, math.floor(normalized * len(palette))))
    return palette[index]


MAGNITUDE_COLUMNS: dict[str, str] = {
    "steps": "avg_steps",
    "sleep": "avg_sleep_seconds",
    "asleep": "avg_asleep_time",
    "wake": "avg_wake_time",
    "deep": "avg_deep_sleep_seconds",
    "light": "avg_light_sleep_seconds",
    "rem": "avg_rem_sleep_seconds",
    "awake": "avg_awake_seconds",
    "sleepLatency": "avg_time_to_sleep_seconds",
    "wakeLatency": "avg_time_to_wake_seconds",
    "hr": "avg_hr_average",
}


def build_magnitude_ranges(stats: Sequence[RangeEventStat]) -> dict[str, MinMax | None]:
    ranges = {
        key: get_min_max(getattr(row, column) for row in stats)
        for key, column in MAGNITUDE_COLUMNS.items()
    }
    ranges["weightAbs"] = get_min_max(
        abs(row.weight_delta) if row.weight_delta is not None else None for row in stats
    )
    return ranges
