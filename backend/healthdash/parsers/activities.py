import zipfile

from healthdash.parsers.common import dated_rows, pick, read_optional_csv, safe_float, safe_int
from healthdash.schemas import ActivityData

ACTIVITIES_PATTERN = r"activities\.csv$"


def parse_activities(zf: zipfile.ZipFile) -> list[ActivityData]:
    """Parse activities.csv, keeping only rows with steps or active time.

    Rows with neither are device noise (zero-length auto detections).
    """
    records = []
    rows = read_optional_csv(zf, ACTIVITIES_PATTERN, "activities")
    for day, row in dated_rows(rows, "date", "Date"):
        steps = safe_int(pick(row, "steps", "Steps"), 0)
        active_time = safe_int(pick(row, "Active time", "activeTime"), 0)
        if steps <= 0 and active_time <= 0:
            continue
        records.append(
            ActivityData(
                date=day,
                duration=active_time,
                calories=safe_float(pick(row, "calories", "Calories"), 0.0),
                distance=safe_float(pick(row, "distance", "Distance"), 0.0),
            )
        )
    return records
