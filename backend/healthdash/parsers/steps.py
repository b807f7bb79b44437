"""
Daily steps, assembled from the aggregate_steps export plus its side files.

The steps file defines which days exist. Distance, elevation and calories
are exported separately and only enrich days already seen in the steps
file; side-file rows for unknown days are dropped.
"""

import logging
import zipfile

from healthdash.parsers.common import pick, read_optional_csv, safe_float, safe_int
from healthdash.schemas import StepData

logger = logging.getLogger(__name__)

STEPS_PATTERN = r"aggregates?_steps\.csv$"
DISTANCE_PATTERN = r"aggregates?_distance\.csv$"
ELEVATION_PATTERN = r"aggregates?_elevation\.csv$"
CALORIES_PATTERN = r"aggregates?_calories_earned\.csv$"


def _enrich(
    by_date: dict[str, StepData],
    rows: list[dict],
    field: str,
    divisor: float = 1.0,
) -> None:
    for row in rows:
        day = pick(row, "date", "Date")
        if not day:
            continue
        existing = by_date.get(day)
        if existing is None:
            continue
        setattr(existing, field, safe_float(pick(row, "value", "Value"), 0.0) / divisor)


def parse_steps(zf: zipfile.ZipFile) -> list[StepData]:
    rows = read_optional_csv(zf, STEPS_PATTERN, "steps")
    if not rows:
        return []

    by_date: dict[str, StepData] = {}
    for row in rows:
        day = pick(row, "date", "Date", "DATE")
        steps = safe_int(pick(row, "steps", "Steps", "STEPS", "value"), 0)
        if day and steps > 0:
            by_date[day] = StepData(date=day, steps=steps)

    _enrich(by_date, read_optional_csv(zf, DISTANCE_PATTERN, "distance"), "distance", 1000)
    _enrich(by_date, read_optional_csv(zf, ELEVATION_PATTERN, "elevation"), "elevation")
    _enrich(by_date, read_optional_csv(zf, CALORIES_PATTERN, "calories"), "calories")

    return list(by_date.values())
