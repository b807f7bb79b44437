"""Registry of importable data sources."""

from dataclasses import dataclass
from typing import Awaitable, Callable

from healthdash.parsers.export_parser import parse_archive
from healthdash.schemas import HealthMetrics


@dataclass(frozen=True)
class DataSourceDefinition:
    id: str
    label: str
    parse: Callable[..., Awaitable[HealthMetrics]]


DATA_SOURCES: dict[str, DataSourceDefinition] = {
    "withings": DataSourceDefinition(id="withings", label="Withings", parse=parse_archive),
}

LEGACY_SOURCE_ID = "withings"


def get_data_source(source_id: str) -> DataSourceDefinition | None:
    return DATA_SOURCES.get(source_id)
