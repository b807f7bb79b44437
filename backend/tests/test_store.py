"""
Tests for the multi-source health data store (healthdash.services.health_store)
and its persistence (healthdash.services.store_repository).

Covers:
  - Metric normalization and data source creation
  - Re-import replaces a source wholesale
  - Aggregation keeps every record from every source
  - Event updates leave sources untouched
  - Legacy single-source payload migration
  - Save / load / clear through the key-value adapter
"""

from datetime import datetime, timezone

from healthdash.schemas import (
    HealthDataStore,
    HealthMetrics,
    PatternEvent,
    SleepData,
    StepData,
)
from healthdash.services.health_store import (
    aggregate_health_data,
    create_data_source,
    create_empty_metrics,
    migrate_store_payload,
    normalize_metrics,
    remove_source,
    update_events,
    upsert_source,
)
from healthdash.services.store_repository import (
    KeyValueStore,
    clear_health_data_store,
    get_health_data_store,
    save_health_data_store,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _steps(*days: str, steps: int = 1000) -> list[StepData]:
    return [StepData(date=day, steps=steps) for day in days]


def _event(event_id: str = "evt-1") -> PatternEvent:
    return PatternEvent(id=event_id, title="Trip", type="range", start_date="2024-01-01", end_date="2024-01-05")


# ======================================================================
# normalize_metrics / create_data_source
# ======================================================================

class TestNormalizeMetrics:
    def test_none_gives_empty_lists(self):
        metrics = normalize_metrics(None)
        assert metrics == create_empty_metrics()
        assert metrics.steps == []
        assert metrics.activities == []

    def test_partial_mapping(self):
        metrics = normalize_metrics({"steps": [{"date": "2024-01-01", "steps": 10}], "sleep": None})
        assert len(metrics.steps) == 1
        assert metrics.sleep == []
        assert metrics.weight == []

    def test_camel_case_payload(self):
        metrics = normalize_metrics({
            "sleep": [{
                "date": "2024-01-02",
                "start": "2024-01-01T23:00:00",
                "end": "2024-01-02T07:00:00",
                "duration": 28800,
                "deepSleep": 3600,
                "deviceCategory": "bed",
            }]
        })
        assert metrics.sleep[0].deep_sleep == 3600
        assert metrics.sleep[0].device_category == "bed"

    def test_copy_of_model(self):
        original = HealthMetrics(steps=_steps("2024-01-01"))
        copy = normalize_metrics(original)
        copy.steps.append(StepData(date="2024-01-02", steps=5))
        assert len(original.steps) == 1


class TestCreateDataSource:
    def test_known_source_label(self):
        source = create_data_source("withings", HealthMetrics())
        assert source.id == "withings"
        assert source.label == "Withings"

    def test_unknown_source_uses_id_as_label(self):
        assert create_data_source("garmin", None).label == "garmin"

    def test_imported_at(self):
        stamp = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        source = create_data_source("withings", None, imported_at=stamp)
        assert source.imported_at == "2024-03-01T12:00:00+00:00"

    def test_metrics_normalized(self):
        source = create_data_source("withings", {"steps": _steps("2024-01-01")})
        assert len(source.data.steps) == 1
        assert source.data.sleep == []


# ======================================================================
# upsert / remove / events
# ======================================================================

class TestStoreOperations:
    def test_reimport_replaces_source(self):
        store = upsert_source(
            HealthDataStore(),
            create_data_source("withings", HealthMetrics(steps=_steps("2024-01-01", "2024-01-02"))),
        )
        store = upsert_source(
            store,
            create_data_source("withings", HealthMetrics(steps=_steps("2024-02-01"))),
        )
        aggregated = aggregate_health_data(store)
        assert [s.date for s in aggregated.steps] == ["2024-02-01"]
        assert aggregated.sources == ["withings"]

    def test_upsert_does_not_mutate_input(self):
        empty = HealthDataStore()
        upsert_source(empty, create_data_source("withings", None))
        assert empty.sources == {}

    def test_remove_source(self):
        store = upsert_source(HealthDataStore(), create_data_source("withings", None))
        store = upsert_source(store, create_data_source("tracker", None))
        removed = remove_source(store, "withings")
        assert list(removed.sources) == ["tracker"]
        assert list(store.sources) == ["withings", "tracker"]

    def test_update_events_keeps_sources(self):
        store = upsert_source(
            HealthDataStore(),
            create_data_source("withings", HealthMetrics(steps=_steps("2024-01-01"))),
        )
        updated = update_events(store, [_event()])
        assert updated.events == [_event()]
        assert updated.sources == store.sources
        assert store.events == []


# ======================================================================
# aggregate_health_data
# ======================================================================

class TestAggregate:
    def test_no_deduplication(self):
        store = upsert_source(
            HealthDataStore(),
            create_data_source("withings", HealthMetrics(steps=_steps("2024-01-01", "2024-01-02"))),
        )
        store = upsert_source(
            store,
            create_data_source("tracker", HealthMetrics(steps=_steps("2024-01-01", "2024-01-02", "2024-01-03"))),
        )
        aggregated = aggregate_health_data(store)
        assert len(aggregated.steps) == 2 + 3

    def test_source_order_then_record_order(self):
        store = upsert_source(
            HealthDataStore(), create_data_source("a", HealthMetrics(steps=_steps("2024-01-05")))
        )
        store = upsert_source(store, create_data_source("b", HealthMetrics(steps=_steps("2024-01-01"))))
        aggregated = aggregate_health_data(store)
        assert [s.date for s in aggregated.steps] == ["2024-01-05", "2024-01-01"]
        assert aggregated.sources == ["a", "b"]

    def test_dual_device_nights_both_kept(self):
        bed = SleepData(date="2024-01-02", start="2024-01-01T23:00:00", end="2024-01-02T07:00:00",
                        duration=28800, device_category="bed")
        tracker = bed.model_copy(update={"device_category": "tracker", "duration": 27000})
        store = upsert_source(HealthDataStore(), create_data_source("a", HealthMetrics(sleep=[bed])))
        store = upsert_source(store, create_data_source("b", HealthMetrics(sleep=[tracker])))
        assert len(aggregate_health_data(store).sleep) == 2

    def test_events_attached(self):
        store = update_events(HealthDataStore(), [_event()])
        aggregated = aggregate_health_data(store)
        assert aggregated.events == [_event()]
        assert aggregated.steps == []


# ======================================================================
# migrate_store_payload
# ======================================================================

class TestMigration:
    def test_legacy_payload_wrapped_in_one_source(self):
        events = [
            {"id": "e1", "title": "Flu", "type": "range", "startDate": "2024-01-01", "endDate": "2024-01-04"},
            {"id": "e2", "title": "Race", "type": "point", "startDate": "2024-02-01"},
        ]
        payload = {"steps": [{"date": "2024-01-01", "steps": 4000}], "events": events}
        store = migrate_store_payload(payload)

        assert list(store.sources) == ["withings"]
        assert len(store.sources["withings"].data.steps) == 1
        assert store.sources["withings"].data.sleep == []
        assert [e.id for e in store.events] == ["e1", "e2"]
        assert store.events[0].start_date == "2024-01-01"
        assert store.events[0].end_date == "2024-01-04"

    def test_legacy_payload_without_events(self):
        store = migrate_store_payload({"weight": []})
        assert list(store.sources) == ["withings"]
        assert store.events == []

    def test_current_payload_defaults(self):
        store = migrate_store_payload({"sources": None})
        assert store.sources == {}
        assert store.events == []

    def test_current_payload_round_trip(self):
        store = upsert_source(
            HealthDataStore(), create_data_source("withings", HealthMetrics(steps=_steps("2024-01-01")))
        )
        store = update_events(store, [_event()])
        assert migrate_store_payload(store.model_dump(mode="json")) == store


# ======================================================================
# Persistence
# ======================================================================

class TestStoreRepository:
    def test_missing_store_is_none(self, db):
        assert get_health_data_store(db) is None

    def test_save_and_load(self, db):
        store = upsert_source(
            HealthDataStore(), create_data_source("withings", HealthMetrics(steps=_steps("2024-01-01")))
        )
        save_health_data_store(db, store)
        loaded = get_health_data_store(db)
        assert loaded == store

    def test_save_overwrites(self, db):
        save_health_data_store(db, update_events(HealthDataStore(), [_event("a")]))
        save_health_data_store(db, update_events(HealthDataStore(), [_event("b")]))
        assert [e.id for e in get_health_data_store(db).events] == ["b"]

    def test_clear(self, db):
        save_health_data_store(db, HealthDataStore())
        clear_health_data_store(db)
        assert get_health_data_store(db) is None

    def test_clear_when_empty(self, db):
        clear_health_data_store(db)
        assert get_health_data_store(db) is None

    def test_legacy_payload_migrated_on_read(self, db):
        KeyValueStore(db, version=1).put("current", {"steps": [{"date": "2024-01-01", "steps": 5}]})
        store = get_health_data_store(db)
        assert list(store.sources) == ["withings"]
        assert store.sources["withings"].data.steps[0].steps == 5
