"""
Weekly and monthly health reports.

A report covers the week (seven days ending on ``end_date``) or the calendar
month containing ``end_date``, and compares it with the period right before.
It bundles:

- per-period sleep, activity and body metrics and the change between them
- the best and worst days of the current period
- the effect of each event that overlaps the period, measured as the
  average during the event minus the average over the rest of the history
- daily series for charts
- a plain-text summary for sharing
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Literal, Optional, Sequence

from pydantic import Field

from healthdash.metrics.event_stats import select, sleep_moment, step_moment, weight_moment
from healthdash.metrics.sleep_stats import calculate_sleep_stats
from healthdash.metrics.statistics import average_metric
from healthdash.metrics.time_utils import compute_average_time, day_of_week, parse_day
from healthdash.schemas import (
    ActivityData,
    HealthMetrics,
    PatternEvent,
    PatternEventType,
    Record,
    SleepCountingMode,
    SleepData,
    StepData,
    WeightData,
)

ReportPeriod = Literal["weekly", "monthly"]
ChangeTrend = Literal["up", "down", "stable", "no-data"]

# relative change (percent) below which a metric is "stable"
STABLE_PERCENT = 5.0


class ReportDateRange(Record):
    start: date
    end: date
    label: str


class MetricChange(Record):
    current: Optional[float] = None
    previous: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    trend: ChangeTrend = "no-data"


class SleepReportMetrics(Record):
    avg_duration: Optional[float] = None
    avg_deep_sleep: Optional[float] = None
    avg_light_sleep: Optional[float] = None
    avg_rem_sleep: Optional[float] = None
    avg_awake: Optional[float] = None
    avg_sleep_score: Optional[float] = None
    avg_hr_average: Optional[float] = None
    avg_time_to_sleep: Optional[float] = None
    avg_time_to_wake: Optional[float] = None
    total_sessions: int = 0
    avg_bedtime: Optional[float] = None  # seconds since midnight
    avg_wake_time: Optional[float] = None


class ActivityReportMetrics(Record):
    avg_steps: Optional[float] = None
    total_steps: int = 0
    avg_distance: Optional[float] = None  # km
    total_distance: float = 0.0
    avg_calories: Optional[float] = None
    total_calories: float = 0.0
    active_days: int = 0
    total_days: int = 0


class BodyReportMetrics(Record):
    avg_weight: Optional[float] = None
    weight_change: Optional[float] = None
    start_weight: Optional[float] = None
    end_weight: Optional[float] = None
    avg_fat_mass: Optional[float] = None
    avg_muscle_mass: Optional[float] = None
    avg_hydration: Optional[float] = None
    measurements: int = 0


class PeriodMetrics(Record):
    sleep: SleepReportMetrics
    activity: ActivityReportMetrics
    body: BodyReportMetrics


class DayRating(Record):
    date: str
    label: str
    value: float
    metric: Literal["sleepDuration", "sleepScore", "steps"]
    is_best: bool


class EventImpactValues(Record):
    sleep_duration_delta: Optional[float] = None
    steps_delta: Optional[float] = None
    weight_delta: Optional[float] = None


class EventImpact(Record):
    event_id: str
    event_title: str
    event_type: PatternEventType
    start_date: str
    end_date: Optional[str] = None
    impact: EventImpactValues
    description: str


class ReportDailyPoint(Record):
    date: str
    value: Optional[float] = None


class ReportDailyData(Record):
    sleep: list[ReportDailyPoint] = Field(default_factory=list)
    steps: list[ReportDailyPoint] = Field(default_factory=list)
    weight: list[ReportDailyPoint] = Field(default_factory=list)


class HealthReport(Record):
    generated_at: datetime
    period: ReportPeriod
    current_range: ReportDateRange
    previous_range: Optional[ReportDateRange] = None
    daily_data: ReportDailyData
    changes: dict[str, dict[str, MetricChange]]
    current_metrics: PeriodMetrics
    previous_metrics: Optional[PeriodMetrics] = None
    highlights: list[DayRating] = Field(default_factory=list)
    event_impacts: list[EventImpact] = Field(default_factory=list)
    summary: str = ""


# ─── Periods ──────────────────────────────────────────────────

def _day_label(day: date) -> str:
    return f"{day:%b} {day.day}, {day.year}"


def _date_range(start: date, end: date) -> ReportDateRange:
    return ReportDateRange(start=start, end=end, label=f"{_day_label(start)} - {_day_label(end)}")


def calculate_period_ranges(
    period: ReportPeriod,
    end_date: date,
) -> tuple[ReportDateRange, ReportDateRange]:
    """The current period ending on *end_date* and the period right before it.

    Weekly periods are seven days. Monthly periods run from the first of the
    month; the previous month is always complete.
    """
    if period == "weekly":
        current_start = end_date - timedelta(days=6)
        previous_end = current_start - timedelta(days=1)
        previous_start = previous_end - timedelta(days=6)
    elif period == "monthly":
        current_start = end_date.replace(day=1)
        previous_end = current_start - timedelta(days=1)
        previous_start = previous_end.replace(day=1)
    else:
        raise ValueError(f"Unknown report period: {period}")
    return _date_range(current_start, end_date), _date_range(previous_start, previous_end)


def _in_days(items: Iterable, start: date, end: date) -> list:
    """Items whose ``date`` field falls on a day in [start, end]."""
    return [item for item in items if (day := parse_day(item.date)) is not None and start <= day <= end]


def _bounds(start: date, end: date) -> tuple[datetime, datetime]:
    return datetime.combine(start, time.min), datetime.combine(end, time.max)


# ─── Per-period metrics ───────────────────────────────────────

def filter_report_sleep(
    sleep: Sequence[SleepData],
    period: ReportDateRange,
    exclude_naps: bool = False,
    exclude_weekends: bool = False,
    weekend_days: Iterable[int] = (),
) -> list[SleepData]:
    selected = _in_days(sleep, period.start, period.end)
    if exclude_naps:
        selected = [item for item in selected if not item.is_nap]
    weekend = set(weekend_days)
    if exclude_weekends and weekend:
        selected = select(selected, sleep_moment, lambda when: day_of_week(when.date()) not in weekend)
    return selected


def sleep_report_metrics(sleep: Sequence[SleepData], mode: SleepCountingMode) -> SleepReportMetrics:
    stats = calculate_sleep_stats(sleep, mode)
    return SleepReportMetrics(
        avg_duration=stats.avg_sleep_seconds,
        avg_deep_sleep=stats.avg_deep_sleep_seconds,
        avg_light_sleep=stats.avg_light_sleep_seconds,
        avg_rem_sleep=stats.avg_rem_sleep_seconds,
        avg_awake=stats.avg_awake_seconds,
        avg_sleep_score=stats.avg_sleep_score,
        avg_hr_average=stats.avg_hr_average,
        avg_time_to_sleep=stats.avg_time_to_sleep_seconds,
        avg_time_to_wake=stats.avg_time_to_wake_seconds,
        total_sessions=stats.count,
        avg_bedtime=compute_average_time(stats.asleep_times),
        avg_wake_time=compute_average_time(stats.wake_times),
    )


def activity_report_metrics(
    steps: Sequence[StepData],
    activities: Sequence[ActivityData],
    period: ReportDateRange,
) -> ActivityReportMetrics:
    """Step totals and per-day averages. Calories include logged activities."""
    days = _in_days(steps, period.start, period.end)
    sessions = _in_days(activities, period.start, period.end)

    total_steps = sum(item.steps for item in days)
    total_distance = sum(item.distance for item in days)
    total_calories = sum(item.calories for item in days) + sum(item.calories for item in sessions)
    count = len(days)

    return ActivityReportMetrics(
        avg_steps=total_steps / count if count else None,
        total_steps=total_steps,
        avg_distance=total_distance / count if count else None,
        total_distance=total_distance,
        avg_calories=total_calories / count if count else None,
        total_calories=total_calories,
        active_days=len({item.date for item in days}),
        total_days=(period.end - period.start).days + 1,
    )


def _nonzero_mean(values: Iterable[float]) -> float | None:
    # the export leaves body composition at zero when the scale did not measure it
    return average_metric(value for value in values if value)


def body_report_metrics(weight: Sequence[WeightData], period: ReportDateRange) -> BodyReportMetrics:
    measurements = sorted(_in_days(weight, period.start, period.end), key=lambda item: item.date)
    if not measurements:
        return BodyReportMetrics()

    first, last = measurements[0].weight, measurements[-1].weight
    return BodyReportMetrics(
        avg_weight=average_metric(item.weight for item in measurements),
        weight_change=last - first if len(measurements) > 1 else None,
        start_weight=first,
        end_weight=last,
        avg_fat_mass=_nonzero_mean(item.fat_mass for item in measurements),
        avg_muscle_mass=_nonzero_mean(item.muscle_mass for item in measurements),
        avg_hydration=_nonzero_mean(item.hydration for item in measurements),
        measurements=len(measurements),
    )


def calculate_metric_change(current: float | None, previous: float | None) -> MetricChange:
    if current is None or previous is None:
        return MetricChange(current=current, previous=previous)

    change = current - previous
    change_percent = change / previous * 100 if previous != 0 else None
    trend: ChangeTrend = "stable"
    if change_percent is not None:
        if change_percent > STABLE_PERCENT:
            trend = "up"
        elif change_percent < -STABLE_PERCENT:
            trend = "down"
    return MetricChange(
        current=current,
        previous=previous,
        change=change,
        change_percent=change_percent,
        trend=trend,
    )


# fields compared between periods: group -> {change name: metric field}
CHANGE_FIELDS: dict[str, dict[str, str]] = {
    "sleep": {
        "duration": "avg_duration",
        "deepSleep": "avg_deep_sleep",
        "remSleep": "avg_rem_sleep",
        "sleepScore": "avg_sleep_score",
        "hrAverage": "avg_hr_average",
    },
    "activity": {
        "steps": "avg_steps",
        "distance": "avg_distance",
        "calories": "avg_calories",
    },
    "body": {
        "weight": "avg_weight",
        "fatMass": "avg_fat_mass",
        "muscleMass": "avg_muscle_mass",
    },
}


def _changes(current: PeriodMetrics, previous: PeriodMetrics | None) -> dict[str, dict[str, MetricChange]]:
    changes = {}
    for group, fields in CHANGE_FIELDS.items():
        now = getattr(current, group)
        before = getattr(previous, group) if previous is not None else None
        changes[group] = {
            name: calculate_metric_change(
                getattr(now, field),
                getattr(before, field) if before is not None else None,
            )
            for name, field in fields.items()
        }
    return changes


# ─── Highlights and events ────────────────────────────────────

def _rating_label(raw: str) -> str:
    day = parse_day(raw)
    if day is None:
        return raw
    return f"{day:%a}, {day:%b} {day.day}"


def _rating(item, value: float, metric: str, is_best: bool) -> DayRating:
    return DayRating(
        date=item.date,
        label=_rating_label(item.date),
        value=value,
        metric=metric,
        is_best=is_best,
    )


def identify_day_ratings(
    sleep: Sequence[SleepData],
    steps: Sequence[StepData],
    period: ReportDateRange,
) -> list[DayRating]:
    """Best and worst day for sleep duration, sleep score and steps.

    A sleep score rating is dropped when a duration rating already names the
    same day.
    """
    ratings: list[DayRating] = []
    nights = [item for item in _in_days(sleep, period.start, period.end) if not item.is_nap]
    days = _in_days(steps, period.start, period.end)

    def duration_day(day: str) -> bool:
        return any(r.date == day and r.metric == "sleepDuration" for r in ratings)

    if nights:
        ordered = sorted(nights, key=lambda item: item.duration, reverse=True)
        best, worst = ordered[0], ordered[-1]
        ratings.append(_rating(best, best.duration, "sleepDuration", True))
        if worst.date != best.date:
            ratings.append(_rating(worst, worst.duration, "sleepDuration", False))

    scored = [item for item in nights if item.sleep_score]
    if scored:
        ordered = sorted(scored, key=lambda item: item.sleep_score, reverse=True)
        best, worst = ordered[0], ordered[-1]
        if not duration_day(best.date):
            ratings.append(_rating(best, best.sleep_score, "sleepScore", True))
        if worst.date != best.date and not duration_day(worst.date):
            ratings.append(_rating(worst, worst.sleep_score, "sleepScore", False))

    if days:
        ordered = sorted(days, key=lambda item: item.steps, reverse=True)
        best, worst = ordered[0], ordered[-1]
        ratings.append(_rating(best, best.steps, "steps", True))
        if worst.date != best.date:
            ratings.append(_rating(worst, worst.steps, "steps", False))

    return ratings


def _impact_description(values: EventImpactValues) -> str:
    parts = []
    if values.sleep_duration_delta is not None:
        sign = "+" if values.sleep_duration_delta > 0 else "-"
        parts.append(f"Sleep {sign}{abs(values.sleep_duration_delta) / 3600:.1f}h vs. baseline")
    if values.steps_delta is not None:
        sign = "+" if values.steps_delta > 0 else ""
        parts.append(f"Steps {sign}{round(values.steps_delta)} vs. baseline")
    if values.weight_delta is not None:
        sign = "+" if values.weight_delta > 0 else ""
        parts.append(f"Weight {sign}{values.weight_delta:.1f} kg")
    return "; ".join(parts) or "No significant metric changes detected"


def calculate_event_impacts(
    events: Sequence[PatternEvent],
    sleep: Sequence[SleepData],
    steps: Sequence[StepData],
    weight: Sequence[WeightData],
    period: ReportDateRange,
    mode: SleepCountingMode = "average",
) -> list[EventImpact]:
    """Compare each overlapping event against the rest of the history."""
    report_start, report_end = _bounds(period.start, period.end)
    nights = [item for item in sleep if not item.is_nap]

    impacts = []
    for event in events:
        first = parse_day(event.start_date)
        if first is None:
            continue
        last = parse_day(event.end_date) or first
        start, end = _bounds(first, last)
        if start > report_end or end < report_start:
            continue

        def during(when: datetime) -> bool:
            return start <= when <= end

        def outside(when: datetime) -> bool:
            return not during(when)

        sleep_during = calculate_sleep_stats(select(nights, sleep_moment, during), mode)
        sleep_outside = calculate_sleep_stats(select(nights, sleep_moment, outside), mode)
        steps_during = average_metric(item.steps for item in select(steps, step_moment, during))
        steps_outside = average_metric(item.steps for item in select(steps, step_moment, outside))

        weigh_ins = sorted(select(weight, weight_moment, during), key=weight_moment)
        values = EventImpactValues(
            sleep_duration_delta=(
                sleep_during.avg_sleep_seconds - sleep_outside.avg_sleep_seconds
                if sleep_during.avg_sleep_seconds is not None
                and sleep_outside.avg_sleep_seconds is not None
                else None
            ),
            steps_delta=(
                steps_during - steps_outside
                if steps_during is not None and steps_outside is not None
                else None
            ),
            weight_delta=weigh_ins[-1].weight - weigh_ins[0].weight if len(weigh_ins) >= 2 else None,
        )
        impacts.append(
            EventImpact(
                event_id=event.id,
                event_title=event.title,
                event_type=event.type,
                start_date=event.start_date,
                end_date=event.end_date,
                impact=values,
                description=_impact_description(values),
            )
        )
    return impacts


# ─── Daily series and summary ─────────────────────────────────

def build_daily_data(
    sleep: Sequence[SleepData],
    steps: Sequence[StepData],
    weight: Sequence[WeightData],
    period: ReportDateRange,
    exclude_naps: bool = False,
    mode: SleepCountingMode = "average",
) -> ReportDailyData:
    """One point per calendar day of the period; days without data are ``None``.

    Sleep uses the reconciled night, steps are summed per day and weight is
    the last weigh-in of the day.
    """
    days = [period.start + timedelta(days=offset) for offset in range((period.end - period.start).days + 1)]

    nights = _in_days(sleep, period.start, period.end)
    if exclude_naps:
        nights = [item for item in nights if not item.is_nap]
    sleep_by_day = {
        parse_day(entry.date): entry.duration
        for entry in calculate_sleep_stats(nights, mode).daily_entries
    }

    steps_by_day: dict[date, float] = {}
    for item in _in_days(steps, period.start, period.end):
        day = parse_day(item.date)
        steps_by_day[day] = steps_by_day.get(day, 0) + item.steps

    weight_by_day: dict[date, float] = {}
    for item in sorted(_in_days(weight, period.start, period.end), key=lambda item: item.date):
        weight_by_day[parse_day(item.date)] = item.weight

    def series(values: dict[date, float]) -> list[ReportDailyPoint]:
        return [ReportDailyPoint(date=day.isoformat(), value=values.get(day)) for day in days]

    return ReportDailyData(
        sleep=series(sleep_by_day),
        steps=series(steps_by_day),
        weight=series(weight_by_day),
    )


def _signed(value: float, fmt: str) -> str:
    return f"{'+' if value > 0 else ''}{value:{fmt}}"


def _rating_value(rating: DayRating) -> str:
    if rating.metric == "sleepDuration":
        return f"{rating.value / 3600:.1f}h sleep"
    if rating.metric == "sleepScore":
        return f"Score {rating.value:g}"
    return f"{rating.value:,.0f} steps"


def generate_summary(report: HealthReport) -> str:
    lines = [f"Health Report: {report.current_range.label}", ""]

    sleep = report.current_metrics.sleep
    if sleep.avg_duration is not None:
        lines.append(f"Average sleep: {sleep.avg_duration / 3600:.1f}h/night ({sleep.total_sessions} sessions)")
        change = report.changes["sleep"]["duration"].change
        if change is not None:
            lines.append(f"  Change vs. previous: {_signed(change / 3600, '.1f')}h")

    activity = report.current_metrics.activity
    if activity.avg_steps is not None:
        lines.append(f"Average steps: {activity.avg_steps:,.0f}/day")
        lines.append(f"Active days: {activity.active_days}/{activity.total_days}")
        percent = report.changes["activity"]["steps"].change_percent
        if percent is not None:
            lines.append(f"  Change vs. previous: {_signed(percent, '.1f')}%")

    body = report.current_metrics.body
    if body.avg_weight is not None:
        lines.append(f"Average weight: {body.avg_weight:.1f} kg ({body.measurements} measurements)")
        if body.weight_change is not None:
            lines.append(f"  Change within period: {_signed(body.weight_change, '.1f')} kg")

    if report.highlights:
        lines += ["", "Highlights:"]
        best = [r for r in report.highlights if r.is_best]
        worst = [r for r in report.highlights if not r.is_best]
        if best:
            lines.append("  Best days:")
            lines += [f"    {r.label}: {_rating_value(r)}" for r in best]
        if worst:
            lines.append("  Days to improve:")
            lines += [f"    {r.label}: {_rating_value(r)}" for r in worst]

    if report.event_impacts:
        lines += ["", "Event impacts:"]
        lines += [f"  {impact.event_title}: {impact.description}" for impact in report.event_impacts]

    return "\n".join(lines)


def generate_health_report(
    data: HealthMetrics,
    events: Sequence[PatternEvent],
    period: ReportPeriod,
    end_date: date,
    mode: SleepCountingMode = "average",
    exclude_naps: bool = False,
    exclude_weekends: bool = False,
    weekend_days: Iterable[int] = (),
    generated_at: datetime | None = None,
) -> HealthReport:
    current_range, previous_range = calculate_period_ranges(period, end_date)
    weekend_days = tuple(weekend_days)

    def period_metrics(span: ReportDateRange) -> PeriodMetrics:
        sleep = filter_report_sleep(data.sleep, span, exclude_naps, exclude_weekends, weekend_days)
        return PeriodMetrics(
            sleep=sleep_report_metrics(sleep, mode),
            activity=activity_report_metrics(data.steps, data.activities, span),
            body=body_report_metrics(data.weight, span),
        )

    current = period_metrics(current_range)
    previous = period_metrics(previous_range)

    report = HealthReport(
        generated_at=generated_at or datetime.now(timezone.utc),
        period=period,
        current_range=current_range,
        previous_range=previous_range,
        daily_data=build_daily_data(
            data.sleep, data.steps, data.weight, current_range, exclude_naps, mode
        ),
        changes=_changes(current, previous),
        current_metrics=current,
        previous_metrics=previous,
        highlights=identify_day_ratings(data.sleep, data.steps, current_range),
        event_impacts=calculate_event_impacts(
            events, data.sleep, data.steps, data.weight, current_range, mode
        ),
    )
    report.summary = generate_summary(report)
    return report
