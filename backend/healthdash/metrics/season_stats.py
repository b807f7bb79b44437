"""Spring / summer / autumn / winter comparison rows."""

from typing import Sequence

from healthdash.metrics.event_stats import (
    build_range_stat,
    select,
    sleep_moment,
    step_moment,
    weight_moment,
)
from healthdash.metrics.statistics import average_metric
from healthdash.schemas import (
    PatternEvent,
    RangeEventStat,
    SleepCountingMode,
    SleepData,
    StepData,
    WeightData,
)

# meteorological seasons, calendar months
SEASONS = (
    ("spring", (3, 4, 5), "#22c55e"),
    ("summer", (6, 7, 8), "#f97316"),
    ("autumn", (9, 10, 11), "#a855f7"),
    ("winter", (12, 1, 2), "#38bdf8"),
)


def season_weight_delta(weights: Sequence[WeightData], months: Sequence[int]) -> float | None:
    """Mean over years of (last - first) weigh-in within the season."""
    by_year: dict[int, list] = {}
    for item in weights:
        when = weight_moment(item)
        if when is not None and when.month in months:
            by_year.setdefault(when.year, []).append((when, item.weight))

    deltas = []
    for entries in by_year.values():
        if len(entries) < 2:
            continue
        entries.sort(key=lambda pair: pair[0])
        deltas.append(entries[-1][1] - entries[0][1])
    return average_metric(deltas)


def calculate_season_stats(
    steps: Sequence[StepData],
    sleep: Sequence[SleepData],
    weight: Sequence[WeightData],
    mode: SleepCountingMode = "average",
) -> list[RangeEventStat]:
    rows = []
    for key, months, color in SEASONS:
        def in_season(when) -> bool:
            return when.month in months

        event = PatternEvent(
            id=f"season-{key}",
            title=key,
            title_key=f"seasons.{key}",
            type="range",
            start_date="1970-01-01",
            end_date="1970-12-31",
            color=color,
        )
        rows.append(
            build_range_stat(
                event,
                select(steps, step_moment, in_season),
                select(sleep, sleep_moment, in_season),
                mode,
                season_weight_delta(weight, months),
            )
        )
    return rows
