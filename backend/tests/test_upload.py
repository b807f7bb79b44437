"""
Tests for the export upload endpoint.
"""

from io import BytesIO

from conftest import build_zip
from healthdash.services.store_repository import get_health_data_store


EXPORT = {
    "aggregates_steps.csv": "date,value\n2024-01-01,5000\n2024-01-02,7000\n",
    "aggregates_distance.csv": "date,value\n2024-01-01,3000\n2024-01-05,100\n",
    "activities.csv": "date,steps,activeTime\n2024-01-01,0,0\n2024-01-02,0,30\n",
    "readme.txt": "hello",
}


def _post(client, content: bytes, filename: str = "export.zip", **params):
    return client.post(
        "/api/upload",
        params=params,
        files={"file": (filename, BytesIO(content), "application/zip")},
    )


def test_upload_export(client, db):
    """Uploading an export stores it as the withings source."""
    response = _post(client, build_zip(EXPORT))

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["source"] == "withings"
    assert data["summary"]["steps"] == 2
    assert data["summary"]["activities"] == 1
    assert "sleep" in data["missing"]
    assert data["unrecognized"] == ["readme.txt"]

    store = get_health_data_store(db)
    steps = store.sources["withings"].data.steps
    assert [s.date for s in steps] == ["2024-01-01", "2024-01-02"]
    assert steps[0].distance == 3


def test_reupload_replaces_source(client, db):
    """A second import of the same source leaves no records from the first."""
    _post(client, build_zip(EXPORT))
    _post(client, build_zip({"aggregates_steps.csv": "date,value\n2024-03-01,100\n"}))

    data = client.get("/api/data").json()
    assert [s["date"] for s in data["steps"]] == ["2024-03-01"]
    assert data["activities"] == []


def test_upload_keeps_events(client, db):
    client.put(
        "/api/events",
        json=[{"id": "e1", "title": "Trip", "type": "point", "startDate": "2024-01-01"}],
    )
    _post(client, build_zip(EXPORT))
    assert [e["id"] for e in client.get("/api/data").json()["events"]] == ["e1"]


def test_upload_rejects_non_zip_name(client):
    response = _post(client, b"date,value\n", filename="steps.csv")
    assert response.status_code == 400


def test_upload_rejects_corrupt_zip(client, db):
    response = _post(client, b"definitely not a zip archive")
    assert response.status_code == 400
    assert get_health_data_store(db) is None


def test_upload_unknown_source(client):
    response = _post(client, build_zip(EXPORT), source="fitbit")
    assert response.status_code == 400


def test_upload_empty_archive(client):
    response = _post(client, build_zip({}))
    assert response.status_code == 200
    assert set(response.json()["missing"]) == {
        "steps", "sleep", "weight", "bp", "height", "spo2", "activities",
    }


def test_upload_survives_unreadable_side_file(client):
    export = dict(EXPORT)
    export["raw_bed_sleep-state.csv"] = 'start,duration,value\n"' + "x" * 200_000 + '",[60],[1]\n'
    response = _post(client, build_zip(export))
    assert response.status_code == 200
    assert response.json()["summary"]["steps"] == 2
    assert response.json()["failed"] == []
