"""
Multi-source health data store.

The store is an immutable value: every operation returns a new
``HealthDataStore`` and leaves its argument untouched, so callers swap
their reference after each update. Sources and events are owned
separately and only combined by :func:`aggregate_health_data`.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from healthdash.schemas import (
    METRIC_NAMES,
    HealthData,
    HealthDataSource,
    HealthDataStore,
    HealthMetrics,
    PatternEvent,
)
from healthdash.services.data_sources import LEGACY_SOURCE_ID, get_data_source


def create_empty_metrics() -> HealthMetrics:
    return HealthMetrics()


def normalize_metrics(data: HealthMetrics | Mapping[str, Any] | None) -> HealthMetrics:
    """Return a HealthMetrics whose seven lists are all present.

    Accepts a model, a partial mapping (missing or ``None`` lists become
    empty) or ``None``. Unrelated keys are ignored.
    """
    if data is None:
        return create_empty_metrics()
    if isinstance(data, HealthMetrics):
        return HealthMetrics(**{name: list(getattr(data, name)) for name in METRIC_NAMES})
    return HealthMetrics.model_validate(
        {name: data.get(name) or [] for name in METRIC_NAMES}
    )


def create_data_source(
    source_id: str,
    metrics: HealthMetrics | Mapping[str, Any] | None,
    imported_at: datetime | None = None,
) -> HealthDataSource:
    definition = get_data_source(source_id)
    stamp = imported_at or datetime.now(timezone.utc)
    return HealthDataSource(
        id=source_id,
        label=definition.label if definition else source_id,
        data=normalize_metrics(metrics),
        imported_at=stamp.isoformat(),
    )


def upsert_source(store: HealthDataStore, source: HealthDataSource) -> HealthDataStore:
    """Replace (or add) a source wholesale. No record-level merging."""
    sources = dict(store.sources)
    sources[source.id] = source
    return HealthDataStore(sources=sources, events=list(store.events))


def remove_source(store: HealthDataStore, source_id: str) -> HealthDataStore:
    sources = {key: value for key, value in store.sources.items() if key != source_id}
    return HealthDataStore(sources=sources, events=list(store.events))


def update_events(store: HealthDataStore, events: Iterable[PatternEvent]) -> HealthDataStore:
    return HealthDataStore(sources=dict(store.sources), events=list(events))


def aggregate_health_data(store: HealthDataStore) -> HealthData:
    """Concatenate every source's metric lists into one flat view.

    Overlapping dates across sources are kept as distinct records: a bed
    mat night and a tracker night must both reach the sleep statistics.
    """
    merged: dict[str, list] = {name: [] for name in METRIC_NAMES}
    for source in store.sources.values():
        for name in METRIC_NAMES:
            merged[name].extend(getattr(source.data, name))

    return HealthData(
        **merged,
        events=list(store.events),
        sources=list(store.sources),
    )


def migrate_store_payload(payload: Mapping[str, Any]) -> HealthDataStore:
    """Load a persisted payload, upgrading the single-source layout.

    Payloads written before multi-source support hold the metric lists at
    the top level and have no ``sources`` key. They become one source under
    the legacy id, keeping their events.
    """
    if "sources" in payload:
        return HealthDataStore.model_validate(
            {
                "sources": payload.get("sources") or {},
                "events": payload.get("events") or [],
            }
        )

    source = create_data_source(LEGACY_SOURCE_ID, normalize_metrics(payload))
    return HealthDataStore(
        sources={source.id: source},
        events=[PatternEvent.model_validate(e) for e in payload.get("events") or []],
    )
