"""Weekday versus weekend comparison rows."""

from typing import Iterable, Sequence

from healthdash.metrics.event_stats import build_range_stat, select, sleep_moment, step_moment
from healthdash.metrics.time_utils import day_of_week
from healthdash.schemas import PatternEvent, RangeEventStat, SleepCountingMode, SleepData, StepData

DAY_GROUPS = (
    ("weekday", "Week days", False, "#6366f1"),
    ("weekend", "Weekend days", True, "#f59e0b"),
)


def calculate_day_type_stats(
    steps: Sequence[StepData],
    sleep: Sequence[SleepData],
    weekend_days: Iterable[int],
    mode: SleepCountingMode = "average",
) -> list[RangeEventStat]:
    """Split the records on *weekend_days* (0 = Sunday) and average each half.

    Always two rows, weekday first. Weight is not compared across day types.
    """
    weekend = set(weekend_days)
    rows = []
    for key, title, is_weekend, color in DAY_GROUPS:
        def in_group(when) -> bool:
            return (day_of_week(when.date()) in weekend) == is_weekend

        event = PatternEvent(
            id=f"daytype-{key}",
            title=title,
            type="range",
            start_date="1970-01-01",
            end_date="1970-12-31",
            color=color,
        )
        rows.append(
            build_range_stat(
                event,
                select(steps, step_moment, in_group),
                select(sleep, sleep_moment, in_group),
                mode,
            )
        )
    return rows
