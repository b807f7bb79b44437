"""Per-event averages for range events, and the shared row builder."""

from datetime import datetime, time
from typing import Callable, Iterable, Optional, Sequence

from healthdash.metrics.sleep_stats import calculate_sleep_stats
from healthdash.metrics.statistics import average_metric
from healthdash.metrics.time_utils import compute_average_time, day_of_week, parse_day, parse_timestamp
from healthdash.schemas import (
    PatternEvent,
    RangeEventStat,
    SleepCountingMode,
    SleepData,
    StepData,
    WeightData,
)


def step_moment(item: StepData) -> datetime | None:
    day = parse_day(item.date)
    return datetime.combine(day, time.min) if day else None


def sleep_moment(item: SleepData) -> datetime | None:
    """When a sleep record is placed on the calendar: its start, else its night."""
    moment = parse_timestamp(item.start)
    if moment is not None:
        return moment
    day = parse_day(item.date)
    return datetime.combine(day, time.min) if day else None


def weight_moment(item: WeightData) -> datetime | None:
    return parse_timestamp(item.date)


def select(items: Iterable, moment: Callable, keep: Callable[[datetime], bool]) -> list:
    selected = []
    for item in items:
        when = moment(item)
        if when is not None and keep(when):
            selected.append(item)
    return selected


def build_range_stat(
    event: PatternEvent,
    steps: Sequence[StepData],
    sleep: Sequence[SleepData],
    mode: SleepCountingMode,
    weight_delta: Optional[float] = None,
) -> RangeEventStat:
    sleep_stats = calculate_sleep_stats(sleep, mode)
    return RangeEventStat(
        event=event,
        avg_steps=average_metric(item.steps for item in steps),
        avg_sleep_seconds=sleep_stats.avg_sleep_seconds,
        avg_deep_sleep_seconds=sleep_stats.avg_deep_sleep_seconds,
        avg_light_sleep_seconds=sleep_stats.avg_light_sleep_seconds,
        avg_rem_sleep_seconds=sleep_stats.avg_rem_sleep_seconds,
        avg_awake_seconds=sleep_stats.avg_awake_seconds,
        avg_asleep_time=compute_average_time(sleep_stats.asleep_times),
        avg_wake_time=compute_average_time(sleep_stats.wake_times),
        avg_time_to_sleep_seconds=sleep_stats.avg_time_to_sleep_seconds,
        avg_time_to_wake_seconds=sleep_stats.avg_time_to_wake_seconds,
        avg_hr_average=sleep_stats.avg_hr_average,
        weight_delta=weight_delta,
    )


def _closest_weight(weights: Sequence[tuple[datetime, WeightData]], target: datetime) -> WeightData:
    return min(weights, key=lambda pair: abs((pair[0] - target).total_seconds()))[1]


def _event_bounds(event: PatternEvent) -> tuple[datetime, datetime] | None:
    first = parse_day(event.start_date)
    if first is None:
        return None
    last = parse_day(event.end_date) or first
    return datetime.combine(first, time.min), datetime.combine(last, time.max)


def calculate_event_stats(
    events: Sequence[PatternEvent],
    steps: Sequence[StepData],
    sleep: Sequence[SleepData],
    weight: Sequence[WeightData],
    mode: SleepCountingMode = "average",
    exclude_weekends: bool = False,
    weekend_days: Iterable[int] = (),
) -> list[RangeEventStat]:
    """One row per range event, ordered by start date.

    The weight delta compares the weigh-ins closest to the first and the
    last day of the event. Point events are ignored.
    """
    weekend = set(weekend_days)
    timed_weights = [(when, item) for item in weight if (when := weight_moment(item)) is not None]

    bounded = []
    for event in events:
        if event.type != "range":
            continue
        bounds = _event_bounds(event)
        if bounds is not None:
            bounded.append((bounds, event))
    bounded.sort(key=lambda pair: pair[0][0])

    rows = []
    for (start, end), event in bounded:
        def inside(when: datetime) -> bool:
            return start <= when <= end

        steps_in_range = select(steps, step_moment, inside)
        sleep_in_range = select(sleep, sleep_moment, inside)
        if exclude_weekends and weekend:
            sleep_in_range = select(
                sleep_in_range, sleep_moment, lambda when: day_of_week(when.date()) not in weekend
            )

        weight_delta = None
        if timed_weights:
            weight_delta = (
                _closest_weight(timed_weights, end).weight
                - _closest_weight(timed_weights, start).weight
            )

        rows.append(build_range_stat(event, steps_in_range, sleep_in_range, mode, weight_delta))
    return rows
