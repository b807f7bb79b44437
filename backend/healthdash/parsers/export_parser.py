"""
Parser for Withings "download my data" export ZIP files.

The archive is a flat collection of CSV files whose names drift slightly
between export versions (``aggregates_steps.csv`` vs ``aggregate_steps.csv``),
so entries are located by case-insensitive file-name patterns rather than
fixed paths.

Every metric parser runs as its own task. Tasks share only the immutable
archive bytes; each opens a private ``ZipFile`` over them. A metric whose
file is absent, or whose parser fails, resolves to an empty list; only an
unreadable container aborts the import.
"""

import asyncio
import csv
import io
import logging
import os
import posixpath
import re
import zipfile
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Union

from healthdash.parsers import activities, body, sleep, steps
from healthdash.schemas import HealthMetrics

logger = logging.getLogger(__name__)

ArchiveSource = Union[str, os.PathLike, bytes, BinaryIO]


class InvalidArchiveError(ValueError):
    """The uploaded file is not a readable ZIP container."""


# metric name -> (parser, primary entry pattern)
METRIC_PARSERS: dict[str, tuple[Callable[[zipfile.ZipFile], list], str]] = {
    "steps": (steps.parse_steps, steps.STEPS_PATTERN),
    "sleep": (sleep.parse_sleep, sleep.SLEEP_PATTERN),
    "weight": (body.parse_weight, body.WEIGHT_PATTERN),
    "bp": (body.parse_blood_pressure, body.BP_PATTERN),
    "height": (body.parse_height, body.HEIGHT_PATTERN),
    "spo2": (body.parse_spo2, body.SPO2_PATTERN),
    "activities": (activities.parse_activities, activities.ACTIVITIES_PATTERN),
}

SIDE_PATTERNS: tuple[str, ...] = (
    steps.DISTANCE_PATTERN,
    steps.ELEVATION_PATTERN,
    steps.CALORIES_PATTERN,
    sleep.RAW_BED_PATTERN,
    sleep.RAW_TRACKER_PATTERN,
)


@dataclass
class ParseDiagnostics:
    """Optional report of what an import found and what it skipped.

    Missing metrics are not errors; callers that want to surface them to
    the user pass an instance to :func:`parse_archive`.
    """
    missing: list[str] = field(default_factory=list)
    unrecognized: list[str] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)


def _read_source(source: ArchiveSource) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if isinstance(source, (str, os.PathLike)):
        if not os.path.isfile(source):
            raise FileNotFoundError(f"ZIP file not found: {source}")
        with open(source, "rb") as f:
            return f.read()
    return source.read()


def _open_archive(data: bytes) -> zipfile.ZipFile:
    if not zipfile.is_zipfile(io.BytesIO(data)):
        raise InvalidArchiveError("File is not a ZIP archive")
    try:
        return zipfile.ZipFile(io.BytesIO(data), "r")
    except zipfile.BadZipFile as exc:
        raise InvalidArchiveError(f"Corrupt ZIP archive: {exc}") from exc


def _run_parser(
    name: str,
    parser: Callable[[zipfile.ZipFile], list],
    data: bytes,
) -> list | None:
    """Run one metric parser; a failure yields ``None`` instead of aborting the batch."""
    with _open_archive(data) as zf:
        try:
            return parser(zf)
        except (csv.Error, zipfile.BadZipFile, zlib.error, ValueError) as exc:
            logger.warning("Failed to parse %s, metric left empty: %s", name, exc)
            return None


def _inspect(zf: zipfile.ZipFile, diagnostics: ParseDiagnostics) -> None:
    known = [re.compile(p, re.IGNORECASE) for _, p in METRIC_PARSERS.values()]
    known += [re.compile(p, re.IGNORECASE) for p in SIDE_PATTERNS]

    files = [name for name in zf.namelist() if not name.endswith("/")]
    for metric, (_, pattern) in METRIC_PARSERS.items():
        regex = re.compile(pattern, re.IGNORECASE)
        if not any(regex.search(posixpath.basename(name)) for name in files):
            diagnostics.missing.append(metric)
    diagnostics.unrecognized = [
        name for name in files
        if not any(regex.search(posixpath.basename(name)) for regex in known)
    ]


async def parse_archive(
    source: ArchiveSource,
    diagnostics: ParseDiagnostics | None = None,
) -> HealthMetrics:
    """Parse a Withings export into one :class:`HealthMetrics` bundle.

    Args:
        source: Path to the .zip file, its raw bytes, or a binary file object.
        diagnostics: Optional collector for missing / unrecognized entries
            and per-metric record counts.

    Raises:
        FileNotFoundError: *source* is a path that does not exist.
        InvalidArchiveError: the content is not a ZIP container.
    """
    data = _read_source(source)

    with _open_archive(data) as zf:
        files = zf.namelist()
        logger.info("Starting ZIP parsing (%d bytes, %d entries)", len(data), len(files))
        logger.debug("Files found in ZIP: %s", files)
        if diagnostics is not None:
            _inspect(zf, diagnostics)

    names = list(METRIC_PARSERS)
    results = await asyncio.gather(
        *(asyncio.to_thread(_run_parser, name, METRIC_PARSERS[name][0], data) for name in names)
    )
    failed = [name for name, result in zip(names, results) if result is None]
    metrics = HealthMetrics(**{name: result or [] for name, result in zip(names, results)})

    counts = {name: len(getattr(metrics, name)) for name in names}
    if diagnostics is not None:
        diagnostics.counts = counts
        diagnostics.failed = failed
        for name in diagnostics.missing:
            logger.info("No %s entry in archive; metric left empty", name)
    logger.info("Parsing complete. Counts: %s", counts)
    return metrics


def parse_archive_sync(
    source: ArchiveSource,
    diagnostics: ParseDiagnostics | None = None,
) -> HealthMetrics:
    """Blocking wrapper around :func:`parse_archive` for scripts and tests."""
    return asyncio.run(parse_archive(source, diagnostics))
