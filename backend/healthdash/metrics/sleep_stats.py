"""
Nightly sleep statistics with bed mat / tracker reconciliation.

Records are grouped by their night label (the day of waking up). Within a
night, sessions from the same device category are combined first, then the
per-category results are reconciled according to the counting mode:

- ``mat-first``: the bed mat night, falling back to the tracker.
- ``tracker-first``: the tracker night, falling back to the bed mat.
- ``average``: when both exist every numeric field is averaged and the
  clock positions of falling asleep and waking up are averaged on the
  24 h circle.

Sessions with no device category only count when neither device recorded
the night.
"""

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Optional, Sequence

from pydantic import Field

from healthdash.metrics.statistics import average_metric
from healthdash.metrics.time_utils import (
    parse_timestamp,
    signed_time_diff,
    to_seconds_of_day,
)
from healthdash.schemas import Record, SleepCountingMode, SleepData

logger = logging.getLogger(__name__)

# fields averaged when a bed night and a tracker night are merged
AVERAGED_FIELDS = (
    "duration",
    "deep_sleep",
    "light_sleep",
    "rem_sleep",
    "awake",
    "duration_to_sleep",
    "duration_to_wake_up",
    "snoring",
)
# zero means "not measured" for these
NONZERO_FIELDS = ("sleep_score", "hr_average", "hr_min", "hr_max")
COUNT_FIELDS = ("snoring_episodes", "wakeup_count")

DELTA_FIELDS = (
    "duration",
    "light_sleep",
    "deep_sleep",
    "rem_sleep",
    "awake",
    "asleep_time",
    "wake_time",
    "hr_average",
)


class SleepDelta(Record):
    """Bed mat minus tracker, per field. Clock deltas are signed seconds."""
    duration: float = 0.0
    light_sleep: float = 0.0
    deep_sleep: float = 0.0
    rem_sleep: float = 0.0
    awake: float = 0.0
    asleep_time: float = 0.0
    wake_time: float = 0.0
    hr_average: float = 0.0


class DoubleTrackerStats(Record):
    night_count: int = 0
    mean_deltas: Optional[SleepDelta] = None
    abs_avg_deltas: Optional[SleepDelta] = None
    std_deltas: Optional[SleepDelta] = None


class SleepStatsResult(Record):
    total_duration: float = 0.0
    count: int = 0
    avg_sleep_seconds: Optional[float] = None
    avg_deep_sleep_seconds: Optional[float] = None
    avg_light_sleep_seconds: Optional[float] = None
    avg_rem_sleep_seconds: Optional[float] = None
    avg_awake_seconds: Optional[float] = None
    avg_time_to_sleep_seconds: Optional[float] = None
    avg_time_to_wake_seconds: Optional[float] = None
    avg_hr_average: Optional[float] = None
    avg_sleep_score: Optional[float] = None
    asleep_times: list[float] = Field(default_factory=list)
    wake_times: list[float] = Field(default_factory=list)
    daily_entries: list[SleepData] = Field(default_factory=list)
    double_tracker_stats: DoubleTrackerStats = Field(default_factory=DoubleTrackerStats)


@dataclass
class NightPairing:
    """The candidate records for one night, one slot per device category."""
    bed: Optional[SleepData] = None
    tracker: Optional[SleepData] = None
    other: Optional[SleepData] = None


def _mean_present(values: Iterable[Optional[float]], zero_is_missing: bool = False) -> float | None:
    present = [v for v in values if v is not None and not (zero_is_missing and v == 0)]
    return average_metric(present)


def _session_bounds(record: SleepData):
    start = parse_timestamp(record.start)
    end = parse_timestamp(record.end)
    if start is None or end is None:
        return None
    return start, end


def combine_sessions(sessions: Sequence[SleepData]) -> SleepData | None:
    """Fold the sessions of one device category into a single night.

    Overlapping sessions are duplicates of the same sleep: only the longer
    one is kept. The remaining sessions are summed.
    """
    timed = []
    for record in sessions:
        bounds = _session_bounds(record)
        if bounds is None:
            logger.debug("Ignoring sleep session without timestamps on %s", record.date)
            continue
        timed.append((bounds[0], bounds[1], record))
    if not timed:
        return None
    timed.sort(key=lambda item: item[0])

    kept: list[tuple] = []
    for start, end, record in timed:
        if kept and start < kept[-1][1]:
            if record.duration > kept[-1][2].duration:
                kept[-1] = (start, end, record)
            continue
        kept.append((start, end, record))

    if len(kept) == 1:
        return kept[0][2].model_copy()

    records = [record for _, _, record in kept]
    first, last = records[0], records[-1]
    return first.model_copy(
        update={
            "start": kept[0][0].isoformat(),
            "end": max(end for _, end, _ in kept).isoformat(),
            "duration": sum(r.duration for r in records),
            "deep_sleep": sum(r.deep_sleep or 0 for r in records),
            "light_sleep": sum(r.light_sleep or 0 for r in records),
            "rem_sleep": sum(r.rem_sleep or 0 for r in records),
            "awake": sum(r.awake or 0 for r in records),
            "sleep_score": _mean_present((r.sleep_score for r in records), zero_is_missing=True),
            "hr_average": _mean_present((r.hr_average for r in records), zero_is_missing=True),
            "duration_to_sleep": first.duration_to_sleep,
            "duration_to_wake_up": last.duration_to_wake_up,
            "is_nap": all(r.is_nap for r in records),
        }
    )


def _average_clock(first: str, second: str) -> str:
    """Midpoint of two timestamps taken on the 24 h circle, anchored on *first*."""
    a = parse_timestamp(first)
    b = parse_timestamp(second)
    if a is None or b is None:
        return first if a is not None else second
    diff = signed_time_diff(to_seconds_of_day(b), to_seconds_of_day(a))
    return (a + timedelta(seconds=diff / 2)).isoformat()


def average_pair(bed: SleepData, tracker: SleepData) -> SleepData:
    update: dict = {
        "start": _average_clock(bed.start, tracker.start),
        "end": _average_clock(bed.end, tracker.end),
        "device_category": None,
        "is_nap": bed.is_nap and tracker.is_nap,
    }
    for name in AVERAGED_FIELDS:
        update[name] = _mean_present((getattr(bed, name), getattr(tracker, name)))
    for name in NONZERO_FIELDS:
        update[name] = _mean_present(
            (getattr(bed, name), getattr(tracker, name)), zero_is_missing=True
        )
    for name in COUNT_FIELDS:
        value = _mean_present((getattr(bed, name), getattr(tracker, name)))
        update[name] = round(value) if value is not None else None
    return bed.model_copy(update=update)


def resolve_night(pairing: NightPairing, mode: SleepCountingMode = "average") -> SleepData | None:
    """Pick or merge the record that counts for a night."""
    bed, tracker = pairing.bed, pairing.tracker
    if bed is not None and tracker is not None:
        if mode == "mat-first":
            return bed
        if mode == "tracker-first":
            return tracker
        if mode == "average":
            return average_pair(bed, tracker)
        raise ValueError(f"Unknown sleep counting mode: {mode!r}")
    return bed or tracker or pairing.other


def build_pairing(sessions: Sequence[SleepData]) -> NightPairing:
    return NightPairing(
        bed=combine_sessions([s for s in sessions if s.device_category == "bed"]),
        tracker=combine_sessions([s for s in sessions if s.device_category == "tracker"]),
        other=combine_sessions([s for s in sessions if s.device_category is None]),
    )


def _double_tracker_delta(sessions: Sequence[SleepData]) -> SleepDelta | None:
    """Delta for a night recorded by both devices, or None.

    The first non-nap session of each device forms the pair; it only counts
    when their overlap exceeds half of the shorter session.
    """
    non_naps = [s for s in sessions if not s.is_nap]
    bed = next((s for s in non_naps if s.device_category == "bed"), None)
    tracker = next((s for s in non_naps if s.device_category == "tracker"), None)
    if bed is None or tracker is None:
        return None

    bed_bounds = _session_bounds(bed)
    tracker_bounds = _session_bounds(tracker)
    if bed_bounds is None or tracker_bounds is None:
        return None
    (s1, f1), (s2, f2) = bed_bounds, tracker_bounds
    overlap = max(0.0, (min(f1, f2) - max(s1, s2)).total_seconds())
    shortest = min((f1 - s1).total_seconds(), (f2 - s2).total_seconds())
    if shortest <= 0 or overlap <= 0.5 * shortest:
        return None

    return SleepDelta(
        duration=bed.duration - tracker.duration,
        light_sleep=(bed.light_sleep or 0) - (tracker.light_sleep or 0),
        deep_sleep=(bed.deep_sleep or 0) - (tracker.deep_sleep or 0),
        rem_sleep=(bed.rem_sleep or 0) - (tracker.rem_sleep or 0),
        awake=(bed.awake or 0) - (tracker.awake or 0),
        asleep_time=signed_time_diff(to_seconds_of_day(s1), to_seconds_of_day(s2)),
        wake_time=signed_time_diff(to_seconds_of_day(f1), to_seconds_of_day(f2)),
        hr_average=(bed.hr_average or 0) - (tracker.hr_average or 0),
    )


def summarize_deltas(deltas: Sequence[SleepDelta]) -> DoubleTrackerStats:
    count = len(deltas)
    if count == 0:
        return DoubleTrackerStats()

    means = {name: sum(getattr(d, name) for d in deltas) / count for name in DELTA_FIELDS}
    abs_means = {name: sum(abs(getattr(d, name)) for d in deltas) / count for name in DELTA_FIELDS}
    stds = None
    if count > 1:
        stds = SleepDelta(**{
            name: math.sqrt(sum((getattr(d, name) - means[name]) ** 2 for d in deltas) / count)
            for name in DELTA_FIELDS
        })

    return DoubleTrackerStats(
        night_count=count,
        mean_deltas=SleepDelta(**means),
        abs_avg_deltas=SleepDelta(**abs_means),
        std_deltas=stds,
    )


def calculate_sleep_stats(
    records: Sequence[SleepData],
    mode: SleepCountingMode = "average",
) -> SleepStatsResult:
    """Aggregate sleep records into one value per night, then over nights."""
    if not records:
        return SleepStatsResult()

    by_night: dict[str, list[SleepData]] = {}
    for record in records:
        if not record.date:
            continue
        by_night.setdefault(record.date, []).append(record)

    daily: list[SleepData] = []
    deltas: list[SleepDelta] = []
    for night in sorted(by_night):
        sessions = by_night[night]
        delta = _double_tracker_delta(sessions)
        if delta is not None:
            deltas.append(delta)

        resolved = resolve_night(build_pairing(sessions), mode)
        if resolved is None or resolved.duration <= 0:
            continue
        daily.append(resolved)

    count = len(daily)
    total = sum(entry.duration for entry in daily)
    asleep_times = []
    wake_times = []
    for entry in daily:
        start = parse_timestamp(entry.start)
        end = parse_timestamp(entry.end)
        if start is not None:
            asleep_times.append(to_seconds_of_day(start))
        if end is not None:
            wake_times.append(to_seconds_of_day(end))

    def per_night(name: str) -> float | None:
        if count == 0:
            return None
        return sum(getattr(entry, name) or 0 for entry in daily) / count

    return SleepStatsResult(
        total_duration=total,
        count=count,
        avg_sleep_seconds=total / count if count else None,
        avg_deep_sleep_seconds=per_night("deep_sleep"),
        avg_light_sleep_seconds=per_night("light_sleep"),
        avg_rem_sleep_seconds=per_night("rem_sleep"),
        avg_awake_seconds=per_night("awake"),
        avg_time_to_sleep_seconds=average_metric(e.duration_to_sleep for e in daily),
        avg_time_to_wake_seconds=average_metric(e.duration_to_wake_up for e in daily),
        avg_hr_average=_mean_present((e.hr_average for e in daily), zero_is_missing=True),
        avg_sleep_score=_mean_present((e.sleep_score for e in daily), zero_is_missing=True),
        asleep_times=asleep_times,
        wake_times=wake_times,
        daily_entries=daily,
        double_tracker_stats=summarize_deltas(deltas),
    )
