from datetime import date, datetime, time
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from healthdash.config import settings
from healthdash.database import get_db
from healthdash.metrics.comparison_stats import (
    ComparisonConfig,
    ComparisonPeriod,
    calculate_comparison,
    generate_comparison_chart_data,
)
from healthdash.metrics.day_type_stats import calculate_day_type_stats
from healthdash.metrics.event_stats import (
    calculate_event_stats,
    sleep_moment,
    step_moment,
    weight_moment,
)
from healthdash.metrics.health_report import generate_health_report
from healthdash.metrics.season_stats import calculate_season_stats
from healthdash.metrics.sleep_debt import DEFAULT_SLEEP_GOAL_SECONDS, calculate_sleep_debt
from healthdash.metrics.sleep_stats import calculate_sleep_stats
from healthdash.metrics.statistics import average_metric, build_magnitude_ranges
from healthdash.metrics.time_utils import (
    SeriesPoint,
    compute_average_time,
    compute_rolling_average_with_exclusions,
    compute_rolling_time_average,
    day_of_week,
    filter_by_range,
    parse_day,
    parse_timestamp,
    to_seconds_of_day,
)
from healthdash.schemas import HealthData, HealthDataStore, PatternEvent, SleepCountingMode
from healthdash.services.health_store import aggregate_health_data, remove_source, update_events
from healthdash.services.store_repository import (
    clear_health_data_store,
    get_health_data_store,
    save_health_data_store,
)

router = APIRouter(tags=["data"])


# ─── Helpers ──────────────────────────────────────────────────

def _load(db: Session) -> HealthDataStore:
    return get_health_data_store(db) or HealthDataStore()


def _weekend_days(raw: Optional[str]) -> set[int]:
    """Parse ``weekend_days=0,6``; falls back to the configured default."""
    if raw is None:
        return set(settings.DEFAULT_WEEKEND_DAYS)
    try:
        days = {int(part) for part in raw.split(",") if part.strip()}
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid weekend_days: {raw}")
    if any(day < 0 or day > 6 for day in days):
        raise HTTPException(status_code=400, detail="weekend_days must be between 0 and 6")
    return days


def _custom_range(start: Optional[str], end: Optional[str]):
    if not start or not end:
        return None
    start_day, end_day = parse_day(start), parse_day(end)
    if start_day is None or end_day is None:
        raise HTTPException(status_code=400, detail="Invalid start or end date")
    return datetime.combine(start_day, time.min), datetime.combine(end_day, time.max)


class _Filters:
    """Query parameters shared by every stats endpoint."""

    def __init__(
        self,
        mode: SleepCountingMode = Query(settings.SLEEP_COUNTING_MODE),
        range_option: str = Query("all", alias="range"),
        start: Optional[str] = None,
        end: Optional[str] = None,
        weekend_days: Optional[str] = None,
        exclude_naps: bool = False,
        exclude_weekends: bool = False,
    ):
        self.mode = mode
        self.range_option = range_option
        self.custom_range = _custom_range(start, end)
        self.weekend_days = _weekend_days(weekend_days)
        self.exclude_naps = exclude_naps
        self.exclude_weekends = exclude_weekends

    def analysis_sleep(self, data: HealthData):
        if self.exclude_naps:
            return [item for item in data.sleep if not item.is_nap]
        return list(data.sleep)

    def in_range(self, items, moment):
        try:
            return filter_by_range(items, moment, self.range_option, self.custom_range)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    def weekday_sleep(self, sleep):
        if not self.exclude_weekends:
            return sleep
        return [
            item for item in sleep
            if (when := sleep_moment(item)) is None
            or day_of_week(when.date()) not in self.weekend_days
        ]


# ─── Store ────────────────────────────────────────────────────

@router.get("/data")
def get_data(db: Session = Depends(get_db)):
    """Every source's records concatenated, plus the shared events."""
    return aggregate_health_data(_load(db))


@router.get("/sources")
def get_sources(db: Session = Depends(get_db)):
    store = _load(db)
    return {
        "sources": [
            {
                "id": source.id,
                "label": source.label,
                "importedAt": source.imported_at,
                "counts": {name: len(items) for name, items in source.data},
            }
            for source in store.sources.values()
        ]
    }


@router.delete("/sources/{source_id}")
def delete_source(source_id: str, db: Session = Depends(get_db)):
    store = _load(db)
    if source_id not in store.sources:
        raise HTTPException(status_code=404, detail=f"No data for source: {source_id}")
    save_health_data_store(db, remove_source(store, source_id))
    return {"status": "deleted", "source": source_id}


@router.delete("/data")
def delete_all_data(db: Session = Depends(get_db)):
    clear_health_data_store(db)
    return {"status": "deleted"}


@router.put("/events")
def put_events(events: list[PatternEvent], db: Session = Depends(get_db)):
    """Replace the event list. Sources are left untouched."""
    store = update_events(_load(db), events)
    save_health_data_store(db, store)
    return {"events": store.events}


# ─── Stats ────────────────────────────────────────────────────

@router.get("/stats/overview")
def get_overview(filters: _Filters = Depends(), db: Session = Depends(get_db)):
    data = aggregate_health_data(_load(db))
    steps = filters.in_range(data.steps, step_moment)
    sleep = filters.in_range(filters.analysis_sleep(data), sleep_moment)
    weight = filters.in_range(data.weight, weight_moment)

    sleep_stats = calculate_sleep_stats(filters.weekday_sleep(sleep), filters.mode)

    dated_weight = sorted(
        ((when, item.weight) for item in weight if (when := weight_moment(item)) is not None),
        key=lambda pair: pair[0],
    )
    latest_weight = dated_weight[-1][1] if dated_weight else None
    weight_delta = latest_weight - dated_weight[0][1] if len(dated_weight) >= 2 else None

    return {
        "stepsDays": len(steps),
        "sleepNights": sleep_stats.count,
        "weightEntries": len(weight),
        "totalSteps": sum(item.steps for item in steps),
        "avgSteps": average_metric(item.steps for item in steps),
        "avgSleepSeconds": sleep_stats.avg_sleep_seconds,
        "avgBedSeconds": compute_average_time(sleep_stats.asleep_times),
        "avgWakeSeconds": compute_average_time(sleep_stats.wake_times),
        "avgSleepScore": sleep_stats.avg_sleep_score,
        "latestWeight": latest_weight,
        "weightDelta": weight_delta,
    }


@router.get("/stats/sleep")
def get_sleep_stats(filters: _Filters = Depends(), db: Session = Depends(get_db)):
    data = aggregate_health_data(_load(db))
    sleep = filters.in_range(filters.analysis_sleep(data), sleep_moment)
    return calculate_sleep_stats(filters.weekday_sleep(sleep), filters.mode)


def _table(rows):
    return {"rows": rows, "magnitudeRanges": build_magnitude_ranges(rows)}


@router.get("/stats/day-type")
def get_day_type_stats(filters: _Filters = Depends(), db: Session = Depends(get_db)):
    data = aggregate_health_data(_load(db))
    rows = calculate_day_type_stats(
        filters.in_range(data.steps, step_moment),
        filters.in_range(filters.analysis_sleep(data), sleep_moment),
        filters.weekend_days,
        filters.mode,
    )
    return _table(rows)


@router.get("/stats/events")
def get_event_stats(filters: _Filters = Depends(), db: Session = Depends(get_db)):
    """Event rows use the full history; the date range does not apply."""
    data = aggregate_health_data(_load(db))
    rows = calculate_event_stats(
        data.events,
        data.steps,
        filters.analysis_sleep(data),
        data.weight,
        filters.mode,
        filters.exclude_weekends,
        filters.weekend_days,
    )
    return _table(rows)


@router.get("/stats/seasons")
def get_season_stats(filters: _Filters = Depends(), db: Session = Depends(get_db)):
    data = aggregate_health_data(_load(db))
    rows = calculate_season_stats(
        filters.in_range(data.steps, step_moment),
        filters.in_range(filters.analysis_sleep(data), sleep_moment),
        filters.in_range(data.weight, weight_moment),
        filters.mode,
    )
    return _table(rows)


@router.get("/stats/sleep-debt")
def get_sleep_debt(
    filters: _Filters = Depends(),
    goal_hours: float = Query(DEFAULT_SLEEP_GOAL_SECONDS / 3600, gt=0),
    include_naps: bool = False,
    db: Session = Depends(get_db),
):
    data = aggregate_health_data(_load(db))
    sleep = filters.in_range(list(data.sleep), sleep_moment)
    return calculate_sleep_debt(sleep, goal_hours * 3600, include_naps)


@router.get("/stats/rolling")
def get_rolling(
    metric: Literal["steps", "sleep", "asleep", "wake"] = "sleep",
    window: int = Query(7, ge=1, le=365),
    filters: _Filters = Depends(),
    db: Session = Depends(get_db),
):
    """Centered rolling average of one daily series.

    ``asleep`` and ``wake`` are clock times in seconds since midnight and
    are averaged on the 24 h circle.
    """
    data = aggregate_health_data(_load(db))
    exclude = filters.weekend_days if filters.exclude_weekends else set()

    if metric == "steps":
        points = [
            SeriesPoint(date=when, value=item.steps)
            for item in filters.in_range(data.steps, step_moment)
            if (when := step_moment(item)) is not None
        ]
    else:
        sleep = filters.in_range(filters.analysis_sleep(data), sleep_moment)
        nights = calculate_sleep_stats(sleep, filters.mode).daily_entries
        points = []
        for night in nights:
            day = parse_day(night.date)
            if day is None:
                continue
            if metric == "sleep":
                value = night.duration
            else:
                moment = parse_timestamp(night.start if metric == "asleep" else night.end)
                if moment is None:
                    continue
                value = to_seconds_of_day(moment)
            points.append(SeriesPoint(date=datetime.combine(day, time.min), value=value))

    points.sort(key=lambda point: point.date)
    if metric in ("asleep", "wake"):
        rolled = compute_rolling_time_average(points, window, exclude)
    else:
        rolled = compute_rolling_average_with_exclusions(points, window, exclude)

    return {
        "metric": metric,
        "window": window,
        "points": [
            {"date": raw.date.date().isoformat(), "value": raw.value, "rolling": avg.value}
            for raw, avg in zip(points, rolled)
        ],
    }


def _period(label: str, start: str, end: str) -> ComparisonPeriod:
    start_day, end_day = parse_day(start), parse_day(end)
    if start_day is None or end_day is None:
        raise HTTPException(status_code=400, detail=f"Invalid dates for {label}")
    if start_day > end_day:
        raise HTTPException(status_code=400, detail=f"{label} starts after it ends")
    return ComparisonPeriod(label=label, start=start_day, end=end_day)


@router.get("/stats/comparison")
def get_comparison(
    a_start: str,
    a_end: str,
    b_start: str,
    b_end: str,
    a_label: str = "Period A",
    b_label: str = "Period B",
    filters: _Filters = Depends(),
    db: Session = Depends(get_db),
):
    """Compare two explicit periods; deltas are period B minus period A."""
    config = ComparisonConfig(
        period_a=_period(a_label, a_start, a_end),
        period_b=_period(b_label, b_start, b_end),
    )
    data = aggregate_health_data(_load(db))
    result = calculate_comparison(
        data.steps,
        data.sleep,
        data.weight,
        config,
        mode=filters.mode,
        exclude_naps=filters.exclude_naps,
        exclude_weekends=filters.exclude_weekends,
        weekend_days=filters.weekend_days,
    )
    return {"comparison": result, "chart": generate_comparison_chart_data(result)}


@router.get("/stats/report")
def get_report(
    period: Literal["weekly", "monthly"] = "weekly",
    end_date: Optional[str] = None,
    filters: _Filters = Depends(),
    db: Session = Depends(get_db),
):
    """Weekly or monthly report ending on ``end_date`` (default: today)."""
    end_day = parse_day(end_date) if end_date else date.today()
    if end_day is None:
        raise HTTPException(status_code=400, detail=f"Invalid end_date: {end_date}")
    data = aggregate_health_data(_load(db))
    return generate_health_report(
        data,
        data.events,
        period,
        end_day,
        mode=filters.mode,
        exclude_naps=filters.exclude_naps,
        exclude_weekends=filters.exclude_weekends,
        weekend_days=filters.weekend_days,
    )
