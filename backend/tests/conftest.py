"""
Shared pytest fixtures for the health dashboard backend test suite.

Provides:
  - db:           An in-memory SQLite session (isolated per test).
  - client:       A FastAPI TestClient wired to the in-memory DB.
  - make_zip:     Builds an export ZIP in memory from {path: text}.
  - stored_data:  A persisted store with one Withings source and one event.
"""

import io
import os
import zipfile

# keep the app's own engine off the working directory during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from healthdash.database import Base, get_db
from healthdash.main import app
from healthdash.schemas import (
    HealthDataStore,
    HealthMetrics,
    PatternEvent,
    SleepData,
    StepData,
    WeightData,
)
from healthdash.services.health_store import create_data_source, update_events, upsert_source
from healthdash.services.store_repository import save_health_data_store


# ---------------------------------------------------------------------------
# Database fixture
# ---------------------------------------------------------------------------

@pytest.fixture()
def db():
    """Create a fresh in-memory SQLite database for each test.

    ``StaticPool`` shares one connection across threads: the TestClient
    runs requests in a worker thread and in-memory SQLite databases are
    per-connection.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=engine
    )
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


# ---------------------------------------------------------------------------
# FastAPI TestClient fixture
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(db):
    """TestClient whose ``get_db`` dependency yields the test session."""

    def _override_get_db():
        try:
            yield db
        finally:
            pass  # session lifecycle managed by the db fixture

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Archive builder
# ---------------------------------------------------------------------------

def build_zip(file_map: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for path, content in file_map.items():
            zf.writestr(path, content)
    return buffer.getvalue()


@pytest.fixture()
def make_zip():
    return build_zip


# ---------------------------------------------------------------------------
# Sample-data fixture
# ---------------------------------------------------------------------------

@pytest.fixture()
def stored_data(db):
    """Persist a store holding a small Withings import and one range event."""
    metrics = HealthMetrics(
        steps=[
            StepData(date="2024-01-07", steps=12000),  # Sunday
            StepData(date="2024-01-09", steps=6000),   # Tuesday
        ],
        sleep=[
            SleepData(
                date="2024-01-09",
                start="2024-01-08T23:00:00",
                end="2024-01-09T07:00:00",
                duration=28800,
                deep_sleep=5400,
                light_sleep=16200,
                rem_sleep=7200,
                awake=0,
                device_category="bed",
            ),
            SleepData(
                date="2024-01-09",
                start="2024-01-08T23:30:00",
                end="2024-01-09T07:00:00",
                duration=27000,
                deep_sleep=4800,
                light_sleep=15000,
                rem_sleep=7200,
                awake=0,
                device_category="tracker",
            ),
        ],
        weight=[
            WeightData(date="2024-01-07T08:00:00", weight=80.0),
            WeightData(date="2024-01-09T08:00:00", weight=79.5),
        ],
    )
    event = PatternEvent(
        id="evt-1",
        title="Holiday",
        type="range",
        start_date="2024-01-07",
        end_date="2024-01-09",
    )
    store = upsert_source(HealthDataStore(), create_data_source("withings", metrics))
    store = update_events(store, [event])
    save_health_data_store(db, store)
    return store
