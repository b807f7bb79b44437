"""
Date, clock-time and rolling-window helpers.

Clock times are handled as seconds since midnight. Averages of clock times
are circular (a 23:00 and a 01:00 bedtime average to 00:00, not 12:00).

Weekday indices follow the export's convention: 0 = Sunday ... 6 = Saturday.
"""

import calendar
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence, TypeVar

SECONDS_IN_DAY = 24 * 60 * 60

T = TypeVar("T")


@dataclass
class SeriesPoint:
    date: datetime
    value: Optional[float]


def parse_timestamp(raw: str | None) -> datetime | None:
    """Parse an export timestamp into naive local wall-clock time.

    The UTC offset is dropped after parsing: statistics compare clock
    positions as the wearer experienced them.
    """
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.strip())
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def parse_day(raw: str | None) -> date | None:
    """Parse the calendar day of a ``YYYY-MM-DD`` string or ISO timestamp."""
    parsed = parse_timestamp(raw)
    if parsed is not None:
        return parsed.date()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError:
        return None


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def to_seconds_of_day(moment: datetime) -> int:
    return moment.hour * 3600 + moment.minute * 60 + moment.second


def shift_night_seconds(value: float, threshold_seconds: float = 12 * 3600) -> float:
    """Move early-morning clock times past 24:00 (02:00 -> 26:00) for plotting."""
    return value + SECONDS_IN_DAY if value < threshold_seconds else value


def signed_time_diff(first: float, second: float) -> float:
    """Shortest signed distance from *second* to *first* on the 24 h clock."""
    diff = first - second
    if diff > SECONDS_IN_DAY / 2:
        diff -= SECONDS_IN_DAY
    if diff < -SECONDS_IN_DAY / 2:
        diff += SECONDS_IN_DAY
    return diff


def _mean_angle_seconds(sum_sin: float, sum_cos: float, count: int) -> float:
    mean_angle = math.atan2(sum_sin / count, sum_cos / count)
    return ((mean_angle / (2 * math.pi)) * SECONDS_IN_DAY + SECONDS_IN_DAY) % SECONDS_IN_DAY


def _angle(value: float) -> float:
    return (value / SECONDS_IN_DAY) * 2 * math.pi


def compute_average_time(values: Sequence[float]) -> float | None:
    """Circular mean of clock times given in seconds since midnight."""
    if not values:
        return None
    sum_sin = sum(math.sin(_angle(v)) for v in values)
    sum_cos = sum(math.cos(_angle(v)) for v in values)
    return _mean_angle_seconds(sum_sin, sum_cos, len(values))


def _half_windows(window_days: int) -> tuple[timedelta, timedelta]:
    before = (window_days - 1) // 2
    after = window_days - 1 - before
    return timedelta(days=before), timedelta(days=after)


def compute_rolling_average_with_exclusions(
    points: Sequence[SeriesPoint],
    window_days: int = 7,
    exclude_days: Iterable[int] = (),
) -> list[SeriesPoint]:
    """Centered rolling mean over a calendar window.

    *points* must be sorted by date. Points falling on a weekday listed in
    *exclude_days* are skipped when averaging but still get an output value.
    A window with no contributing point yields ``None``.
    """
    if not points:
        return []

    excluded = set(exclude_days)
    before, after = _half_windows(window_days)
    result: list[SeriesPoint] = []
    total = 0.0
    count = 0
    start = end = 0

    def counts(point: SeriesPoint) -> bool:
        return point.value is not None and day_of_week(point.date.date()) not in excluded

    for current in points:
        window_start = current.date - before
        window_end = current.date + after

        while start < end and points[start].date < window_start:
            if counts(points[start]):
                total -= points[start].value
                count -= 1
            start += 1

        while end < len(points) and points[end].date <= window_end:
            if counts(points[end]):
                total += points[end].value
                count += 1
            end += 1

        result.append(SeriesPoint(date=current.date, value=total / count if count else None))

    return result


def compute_rolling_average(
    points: Sequence[SeriesPoint],
    window_days: int = 7,
) -> list[SeriesPoint]:
    return compute_rolling_average_with_exclusions(points, window_days)


def compute_rolling_time_average(
    points: Sequence[SeriesPoint],
    window_days: int = 7,
    exclude_days: Iterable[int] = (),
) -> list[SeriesPoint]:
    """Rolling circular mean for clock-time series (seconds since midnight)."""
    if not points:
        return []

    excluded = set(exclude_days)
    before, after = _half_windows(window_days)
    result: list[SeriesPoint] = []
    sum_sin = sum_cos = 0.0
    count = 0
    start = end = 0

    def counts(point: SeriesPoint) -> bool:
        return point.value is not None and day_of_week(point.date.date()) not in excluded

    for current in points:
        window_start = current.date - before
        window_end = current.date + after

        while start < end and points[start].date < window_start:
            if counts(points[start]):
                sum_sin -= math.sin(_angle(points[start].value))
                sum_cos -= math.cos(_angle(points[start].value))
                count -= 1
            start += 1

        while end < len(points) and points[end].date <= window_end:
            if counts(points[end]):
                sum_sin += math.sin(_angle(points[end].value))
                sum_cos += math.cos(_angle(points[end].value))
                count += 1
            end += 1

        value = _mean_angle_seconds(sum_sin, sum_cos, count) if count > 0 else None
        result.append(SeriesPoint(date=current.date, value=value))

    return result


def _subtract_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


RANGE_MONTHS = {"12m": 12, "3m": 3, "1m": 1}


def filter_by_range(
    items: Sequence[T],
    get_date: Callable[[T], Optional[datetime]],
    range_option: str,
    custom_range: tuple[datetime, datetime] | None = None,
) -> list[T]:
    """Keep items inside a dashboard date range.

    ``12m``/``3m``/``1m`` are measured back from the latest item, ``all``
    keeps everything, ``custom`` uses *custom_range* (inclusive) when given.
    Items without a parseable date are dropped from bounded ranges.
    """
    if range_option == "all" or not items:
        return list(items)

    if range_option == "custom":
        if custom_range is None:
            return list(items)
        start, end = custom_range
        return [item for item in items if (d := get_date(item)) is not None and start <= d <= end]

    months = RANGE_MONTHS.get(range_option)
    if months is None:
        raise ValueError(f"Unknown range option: {range_option!r}")

    dated = [(item, get_date(item)) for item in items]
    known = [d for _, d in dated if d is not None]
    if not known:
        return []
    latest = max(known)
    start = _subtract_months(latest, months)
    return [item for item, d in dated if d is not None and start <= d <= latest]
