"""
Sleep sessions from sleep.csv.

Rules applied to every session:
  1. A missing or zero total duration is rebuilt as the sum of the phases.
  2. A session is a nap when it starts between 09:00 and 20:00 and the time
     in bed is at most four hours.
  3. The stored duration excludes awake time.

The device that recorded a session is found by looking its start timestamp
up in the raw bed / raw tracker sleep-state exports. Sessions found in
neither fall back to "bed" when night events (snoring, breathing) are
present, since only the mat records those.
"""

import logging
import zipfile
from datetime import datetime

from healthdash.parsers.common import (
    date_only,
    find_entries,
    pick,
    read_entry_rows,
    read_optional_csv,
    safe_int,
)
from healthdash.schemas import SleepData

logger = logging.getLogger(__name__)

SLEEP_PATTERN = r"sleep\.csv$"
RAW_BED_PATTERN = r"raw_bed_sleep-state\.csv$"
RAW_TRACKER_PATTERN = r"raw_tracker_sleep-state\.csv$"

NAP_WINDOW_HOURS = (9, 20)
NAP_MAX_SECONDS = 4 * 60 * 60


def _raw_start_times(zf: zipfile.ZipFile, pattern: str) -> set[str]:
    starts: set[str] = set()
    for path in find_entries(zf, pattern):
        for row in read_entry_rows(zf, path):
            start = pick(row, "start", "Start")
            if start:
                starts.add(start)
    return starts


def is_nap_session(start: str, duration_seconds: int) -> bool:
    if not start or duration_seconds <= 0:
        return False
    try:
        started = datetime.fromisoformat(start.strip())
    except ValueError:
        return False
    first_hour, last_hour = NAP_WINDOW_HOURS
    return first_hour <= started.hour < last_hour and duration_seconds <= NAP_MAX_SECONDS


def _device_category(
    start: str,
    night_events: str,
    bed_starts: set[str],
    tracker_starts: set[str],
) -> str | None:
    if start in bed_starts:
        return "bed"
    if start in tracker_starts:
        return "tracker"
    if night_events and night_events != "{}":
        return "bed"
    return None


def parse_sleep(zf: zipfile.ZipFile) -> list[SleepData]:
    rows = read_optional_csv(zf, SLEEP_PATTERN, "sleep")
    if not rows:
        return []

    bed_starts = _raw_start_times(zf, RAW_BED_PATTERN)
    tracker_starts = _raw_start_times(zf, RAW_TRACKER_PATTERN)

    records: list[SleepData] = []
    for row in rows:
        start = pick(row, "Start date", "start", "Start", "from")
        end = pick(row, "End date", "end", "End", "to")

        light = safe_int(pick(row, "Light sleep duration (s)", "lightSleep", "light (s)"), 0)
        deep = safe_int(pick(row, "Deep sleep duration (s)", "deepSleep", "deep (s)"), 0)
        rem = safe_int(pick(row, "REM sleep duration (s)", "remSleep", "rem (s)"), 0)
        awake = safe_int(pick(row, "Awake duration (s)", "awake", "awake (s)"), 0)

        in_bed = safe_int(pick(row, "Sleep duration (s)", "duration", "Duration"), 0)
        if in_bed == 0:
            in_bed = light + deep + rem + awake

        is_nap = is_nap_session(start, in_bed)
        duration = max(0, in_bed - awake)
        if duration <= 0:
            logger.debug("Sleep row without duration skipped: %s", start)
            continue

        night = date_only(end) or date_only(start)
        if not night:
            logger.debug("Sleep row without start or end skipped")
            continue

        night_events = pick(row, "Night events", "nightEvents")
        records.append(
            SleepData(
                date=night,
                start=start,
                end=end,
                duration=duration,
                deep_sleep=deep,
                light_sleep=light,
                rem_sleep=rem,
                awake=awake,
                is_nap=is_nap,
                device_category=_device_category(start, night_events, bed_starts, tracker_starts),
                sleep_score=safe_int(pick(row, "Sleep score", "sleepScore"), 0),
                hr_average=safe_int(pick(row, "Average heart rate", "hrAverage"), 0),
                hr_min=safe_int(pick(row, "Heart rate (min)", "hrMin"), 0),
                hr_max=safe_int(pick(row, "Heart rate (max)", "hrMax"), 0),
                duration_to_sleep=safe_int(pick(row, "Duration to sleep (s)", "durationToSleep"), 0),
                duration_to_wake_up=safe_int(
                    pick(row, "Duration to wake up (s)", "durationToWakeUp"), 0
                ),
                snoring=safe_int(pick(row, "Snoring (s)", "snoring"), 0),
                snoring_episodes=safe_int(pick(row, "Snoring episodes", "snoringEpisodes"), 0),
                wakeup_count=safe_int(pick(row, "wake up", "wakeupCount"), 0),
                night_events=night_events,
                notes=pick(row, "Notes", "notes"),
            )
        )
    return records
