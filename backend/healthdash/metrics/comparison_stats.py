"""
Side-by-side statistics for two date periods.

Each period is summarized on its own (steps, reconciled sleep nights,
weigh-ins) and the second period is then compared against the first.
Deltas are always ``B - A``; percentages are relative to A.
"""

from datetime import date, datetime, time
from typing import Iterable, Literal, Optional, Sequence

from pydantic import Field

from healthdash.metrics.event_stats import select, sleep_moment, step_moment, weight_moment
from healthdash.metrics.sleep_stats import calculate_sleep_stats
from healthdash.metrics.statistics import average_metric
from healthdash.metrics.time_utils import compute_average_time, day_of_week
from healthdash.schemas import Record, SleepCountingMode, SleepData, StepData, WeightData

Trend = Literal["better", "worse", "neutral"]

# deltas smaller than this count as no change
TREND_EPSILON = 0.01


class ComparisonPeriod(Record):
    label: str
    start: date
    end: date


class ComparisonConfig(Record):
    period_a: ComparisonPeriod
    period_b: ComparisonPeriod


class PeriodStats(Record):
    total_steps: int = 0
    avg_steps: Optional[float] = None
    steps_days: int = 0

    total_sleep_seconds: float = 0.0
    avg_sleep_seconds: Optional[float] = None
    avg_deep_sleep_seconds: Optional[float] = None
    avg_light_sleep_seconds: Optional[float] = None
    avg_rem_sleep_seconds: Optional[float] = None
    avg_awake_seconds: Optional[float] = None
    avg_sleep_score: Optional[float] = None
    avg_hr_average: Optional[float] = None
    sleep_nights: int = 0
    avg_bedtime_seconds: Optional[float] = None
    avg_wake_time_seconds: Optional[float] = None

    avg_weight: Optional[float] = None
    weight_start: Optional[float] = None
    weight_end: Optional[float] = None
    weight_delta: Optional[float] = None
    weight_entries: int = 0

    days_in_period: int = 0


class ComparisonDelta(Record):
    total_steps_delta: float = 0.0
    total_steps_percent: Optional[float] = None
    avg_steps_delta: float = 0.0
    avg_steps_percent: Optional[float] = None

    avg_sleep_delta_seconds: float = 0.0
    avg_sleep_percent: Optional[float] = None
    avg_deep_sleep_delta_seconds: float = 0.0
    avg_deep_sleep_percent: Optional[float] = None
    avg_light_sleep_delta_seconds: float = 0.0
    avg_light_sleep_percent: Optional[float] = None
    avg_rem_sleep_delta_seconds: float = 0.0
    avg_rem_sleep_percent: Optional[float] = None
    avg_awake_delta_seconds: float = 0.0
    avg_awake_percent: Optional[float] = None
    avg_sleep_score_delta: float = 0.0
    avg_sleep_score_percent: Optional[float] = None
    avg_hr_delta: float = 0.0
    avg_hr_percent: Optional[float] = None

    avg_weight_delta: float = 0.0
    avg_weight_percent: Optional[float] = None
    weight_delta_diff: float = 0.0

    sleep_trend: Trend = "neutral"
    steps_trend: Trend = "neutral"
    weight_trend: Trend = "neutral"


class ComparisonResult(Record):
    period_a: PeriodStats
    period_b: PeriodStats
    delta: ComparisonDelta
    config: ComparisonConfig


class ComparisonMetric(Record):
    name: str
    unit: str
    period_a_value: Optional[float] = None
    period_b_value: Optional[float] = None
    delta: Optional[float] = None
    percent_change: Optional[float] = None
    higher_is_better: bool = True


class ComparisonChartData(Record):
    period_a_label: str
    period_b_label: str
    metrics: list[ComparisonMetric] = Field(default_factory=list)


def calculate_period_stats(
    steps: Sequence[StepData],
    sleep: Sequence[SleepData],
    weight: Sequence[WeightData],
    period: ComparisonPeriod,
    mode: SleepCountingMode = "average",
    exclude_naps: bool = False,
    exclude_weekends: bool = False,
    weekend_days: Iterable[int] = (),
) -> PeriodStats:
    """Summarize one period. Both ends of the period are inclusive days."""
    start = datetime.combine(period.start, time.min)
    end = datetime.combine(period.end, time.max)

    def inside(when: datetime) -> bool:
        return start <= when <= end

    period_steps = select(steps, step_moment, inside)
    period_sleep = select(sleep, sleep_moment, inside)
    period_weight = select(weight, weight_moment, inside)

    if exclude_naps:
        period_sleep = [item for item in period_sleep if not item.is_nap]
    weekend = set(weekend_days)
    if exclude_weekends and weekend:
        period_sleep = select(
            period_sleep, sleep_moment, lambda when: day_of_week(when.date()) not in weekend
        )

    sleep_stats = calculate_sleep_stats(period_sleep, mode)

    ordered_weight = sorted(period_weight, key=weight_moment)
    weights = [item.weight for item in ordered_weight]
    weight_start = weights[0] if weights else None
    weight_end = weights[-1] if weights else None

    return PeriodStats(
        total_steps=sum(item.steps for item in period_steps),
        avg_steps=average_metric(item.steps for item in period_steps),
        steps_days=len(period_steps),
        total_sleep_seconds=sleep_stats.total_duration,
        avg_sleep_seconds=sleep_stats.avg_sleep_seconds,
        avg_deep_sleep_seconds=sleep_stats.avg_deep_sleep_seconds,
        avg_light_sleep_seconds=sleep_stats.avg_light_sleep_seconds,
        avg_rem_sleep_seconds=sleep_stats.avg_rem_sleep_seconds,
        avg_awake_seconds=sleep_stats.avg_awake_seconds,
        avg_sleep_score=sleep_stats.avg_sleep_score,
        avg_hr_average=sleep_stats.avg_hr_average,
        sleep_nights=sleep_stats.count,
        avg_bedtime_seconds=compute_average_time(sleep_stats.asleep_times),
        avg_wake_time_seconds=compute_average_time(sleep_stats.wake_times),
        avg_weight=average_metric(weights),
        weight_start=weight_start,
        weight_end=weight_end,
        weight_delta=weight_end - weight_start if len(weights) >= 2 else None,
        weight_entries=len(weights),
        days_in_period=(period.end - period.start).days + 1,
    )


def percent_change(a: float | None, b: float | None) -> float | None:
    if a is None or b is None or a == 0:
        return None
    return (b - a) / a * 100


def _delta(a: float | None, b: float | None) -> float:
    # a side without data contributes no change
    if a is None or b is None:
        return 0.0
    return b - a


def determine_trend(delta: float | None, higher_is_better: bool) -> Trend:
    if delta is None or abs(delta) < TREND_EPSILON:
        return "neutral"
    return "better" if (delta > 0) == higher_is_better else "worse"


def calculate_comparison_delta(period_a: PeriodStats, period_b: PeriodStats) -> ComparisonDelta:
    def pair(name: str) -> tuple[float, float | None]:
        a, b = getattr(period_a, name), getattr(period_b, name)
        return _delta(a, b), percent_change(a, b)

    total_steps, total_steps_pct = pair("total_steps")
    avg_steps, avg_steps_pct = pair("avg_steps")
    sleep, sleep_pct = pair("avg_sleep_seconds")
    deep, deep_pct = pair("avg_deep_sleep_seconds")
    light, light_pct = pair("avg_light_sleep_seconds")
    rem, rem_pct = pair("avg_rem_sleep_seconds")
    awake, awake_pct = pair("avg_awake_seconds")
    score, score_pct = pair("avg_sleep_score")
    hr, hr_pct = pair("avg_hr_average")
    weight, weight_pct = pair("avg_weight")

    return ComparisonDelta(
        total_steps_delta=total_steps,
        total_steps_percent=total_steps_pct,
        avg_steps_delta=avg_steps,
        avg_steps_percent=avg_steps_pct,
        avg_sleep_delta_seconds=sleep,
        avg_sleep_percent=sleep_pct,
        avg_deep_sleep_delta_seconds=deep,
        avg_deep_sleep_percent=deep_pct,
        avg_light_sleep_delta_seconds=light,
        avg_light_sleep_percent=light_pct,
        avg_rem_sleep_delta_seconds=rem,
        avg_rem_sleep_percent=rem_pct,
        avg_awake_delta_seconds=awake,
        avg_awake_percent=awake_pct,
        avg_sleep_score_delta=score,
        avg_sleep_score_percent=score_pct,
        avg_hr_delta=hr,
        avg_hr_percent=hr_pct,
        avg_weight_delta=weight,
        avg_weight_percent=weight_pct,
        weight_delta_diff=_delta(period_a.weight_delta, period_b.weight_delta),
        sleep_trend=determine_trend(sleep_pct, higher_is_better=True),
        steps_trend=determine_trend(avg_steps_pct, higher_is_better=True),
        # gaining weight during the later period counts as worse
        weight_trend=determine_trend(period_b.weight_delta or 0.0, higher_is_better=False),
    )


def calculate_comparison(
    steps: Sequence[StepData],
    sleep: Sequence[SleepData],
    weight: Sequence[WeightData],
    config: ComparisonConfig,
    mode: SleepCountingMode = "average",
    exclude_naps: bool = False,
    exclude_weekends: bool = False,
    weekend_days: Iterable[int] = (),
) -> ComparisonResult:
    filters = dict(
        mode=mode,
        exclude_naps=exclude_naps,
        exclude_weekends=exclude_weekends,
        weekend_days=tuple(weekend_days),
    )
    period_a = calculate_period_stats(steps, sleep, weight, config.period_a, **filters)
    period_b = calculate_period_stats(steps, sleep, weight, config.period_b, **filters)
    return ComparisonResult(
        period_a=period_a,
        period_b=period_b,
        delta=calculate_comparison_delta(period_a, period_b),
        config=config,
    )


def _hours(seconds: float | None) -> float | None:
    return None if seconds is None else seconds / 3600


def generate_comparison_chart_data(result: ComparisonResult) -> ComparisonChartData:
    """Flatten a comparison into one bar pair per headline metric."""
    a, b, delta = result.period_a, result.period_b, result.delta
    metrics = [
        ComparisonMetric(
            name="Average Steps",
            unit="steps/day",
            period_a_value=a.avg_steps,
            period_b_value=b.avg_steps,
            delta=delta.avg_steps_delta,
            percent_change=delta.avg_steps_percent,
        ),
        ComparisonMetric(
            name="Average Sleep",
            unit="hours",
            period_a_value=_hours(a.avg_sleep_seconds),
            period_b_value=_hours(b.avg_sleep_seconds),
            delta=_hours(delta.avg_sleep_delta_seconds),
            percent_change=delta.avg_sleep_percent,
        ),
        ComparisonMetric(
            name="Deep Sleep",
            unit="hours",
            period_a_value=_hours(a.avg_deep_sleep_seconds),
            period_b_value=_hours(b.avg_deep_sleep_seconds),
            delta=_hours(delta.avg_deep_sleep_delta_seconds),
            percent_change=delta.avg_deep_sleep_percent,
        ),
        ComparisonMetric(
            name="REM Sleep",
            unit="hours",
            period_a_value=_hours(a.avg_rem_sleep_seconds),
            period_b_value=_hours(b.avg_rem_sleep_seconds),
            delta=_hours(delta.avg_rem_sleep_delta_seconds),
            percent_change=delta.avg_rem_sleep_percent,
        ),
        ComparisonMetric(
            name="Sleep Score",
            unit="points",
            period_a_value=a.avg_sleep_score,
            period_b_value=b.avg_sleep_score,
            delta=delta.avg_sleep_score_delta,
            percent_change=delta.avg_sleep_score_percent,
        ),
        ComparisonMetric(
            name="Average Weight",
            unit="kg",
            period_a_value=a.avg_weight,
            period_b_value=b.avg_weight,
            delta=delta.avg_weight_delta,
            percent_change=delta.avg_weight_percent,
            higher_is_better=False,
        ),
    ]
    return ComparisonChartData(
        period_a_label=result.config.period_a.label,
        period_b_label=result.config.period_b.label,
        metrics=metrics,
    )
