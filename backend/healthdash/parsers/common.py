"""
Helpers shared by every metric parser.

Vendor CSV headers drift between export versions ("steps", "Steps",
"STEPS"), so every column is resolved through :func:`pick`, an ordered
candidate lookup: the first header with a non-empty value wins.
"""

import csv
import io
import logging
import math
import posixpath
import re
import zipfile
import zlib
from typing import Any, Iterator, Mapping

logger = logging.getLogger(__name__)


def pick(row: Mapping[str, Any], *candidates: str) -> str:
    """Return the first non-empty value among *candidates*, or ``""``."""
    for header in candidates:
        value = row.get(header)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value
    return ""


def safe_int(value: Any, default: int | None = None) -> int | None:
    """Safely convert a value to int, returning *default* on failure."""
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (ValueError, TypeError):
        return default
    if not math.isfinite(number):
        return default
    return int(number)


def safe_float(value: Any, default: float | None = None) -> float | None:
    """Safely convert a value to a finite float, returning *default* on failure."""
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (ValueError, TypeError):
        return default
    if not math.isfinite(number):
        return default
    return number


def date_only(timestamp: str) -> str:
    """'2024-01-15T08:30:00+01:00' -> '2024-01-15'."""
    if not timestamp:
        return ""
    return re.split(r"[T ]", timestamp.strip(), maxsplit=1)[0]


def find_entries(zf: zipfile.ZipFile, pattern: str) -> list[str]:
    """Return archive members whose file name matches *pattern* (case-insensitive).

    Matching is done on the base name so the export's folder layout does not
    matter. Archive order is preserved.
    """
    regex = re.compile(pattern, re.IGNORECASE)
    return [
        name
        for name in zf.namelist()
        if not name.endswith("/") and regex.search(posixpath.basename(name))
    ]


def find_entry(zf: zipfile.ZipFile, pattern: str) -> str | None:
    matches = find_entries(zf, pattern)
    return matches[0] if matches else None


def read_csv_rows(zf: zipfile.ZipFile, path: str) -> list[dict]:
    """Read a CSV file from inside the ZIP and return non-blank rows as dicts.

    Undecodable bytes become U+FFFD so a stray Latin-1 character in a notes
    column only affects that value, not the whole file.
    """
    with zf.open(path) as f:
        text = f.read().decode("utf-8-sig", errors="replace")  # handle BOM
    reader = csv.DictReader(io.StringIO(text))
    return [
        row for row in reader
        if any((value or "").strip() for value in row.values() if isinstance(value, str))
    ]


def read_entry_rows(zf: zipfile.ZipFile, path: str) -> list[dict]:
    """Like :func:`read_csv_rows`, but an unreadable entry is logged and yields ``[]``."""
    try:
        return read_csv_rows(zf, path)
    except (csv.Error, zipfile.BadZipFile, zlib.error) as exc:
        logger.warning("Skipping %s: %s", path, exc)
        return []


def read_optional_csv(zf: zipfile.ZipFile, pattern: str, label: str) -> list[dict]:
    """Locate and read the first entry matching *pattern*.

    A missing entry yields an empty list; an unreadable one is logged and
    also yields an empty list so the remaining metrics still parse.
    """
    path = find_entry(zf, pattern)
    if path is None:
        logger.info("%s file not found", label)
        return []
    rows = read_entry_rows(zf, path)
    logger.debug("Parsed %d potential %s rows from %s", len(rows), label, path)
    return rows


def dated_rows(rows: list[dict], *candidates: str) -> Iterator[tuple[str, dict]]:
    """Yield ``(date, row)`` for rows whose date column is filled in."""
    for row in rows:
        day = pick(row, *candidates)
        if not day:
            logger.debug("Row without date skipped: %s", row)
            continue
        yield day, row
