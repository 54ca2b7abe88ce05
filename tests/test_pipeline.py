import json
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

from travel_matrix.config import settings
from travel_matrix.errors import BatchFailure, BulkMatrixFailure
from travel_matrix.models.domain import MatrixResult
from travel_matrix.persistence.filesystem import FileStorage
from travel_matrix.persistence.ledger import BudgetLedger
from travel_matrix.services import pipeline
from travel_matrix.services.google.client import BudgetedBatchMatrixClient
from travel_matrix.services.google.departure import DepartureMode
from travel_matrix.services.zones.resolver import ZoneCentroidResolver

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _square(name: str, lng: float, lat: float) -> dict:
    ring = [[lng, lat], [lng + 0.01, lat], [lng + 0.01, lat + 0.01], [lng, lat + 0.01], [lng, lat]]
    return {"type": "Feature", "properties": {"name": name}, "geometry": {"type": "Polygon", "coordinates": [ring]}}


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FileStorage:
    storage = FileStorage(root=tmp_path)
    storage.write_json(
        "communes.geojson",
        {
            "type": "FeatureCollection",
            "features": [_square("Gombe", 15.30, -4.32), _square("Kalamu", 15.32, -4.35), _square("Lemba", 15.31, -4.40)],
        },
    )
    monkeypatch.setattr(settings, "data_root", tmp_path)
    monkeypatch.setattr(settings, "communes_file", tmp_path / "communes.geojson")
    monkeypatch.setattr(settings, "osrm_artifact_file", tmp_path / "travel-osrm.json")
    monkeypatch.setattr(settings, "google_artifact_file", tmp_path / "travel-google.json")
    monkeypatch.setattr(settings, "profiles_artifact_file", tmp_path / "travel-profiles.json")
    monkeypatch.setattr(settings, "budget_ledger_file", tmp_path / "google-api-usage.json")
    return storage


class DummyOSRM:
    def __init__(self, fail_table: bool = False) -> None:
        self.fail_table = fail_table
        self.table_calls = 0

    def nearest(self, lat, lng):
        return {"location": [lng, lat + 0.001], "name": "Avenue"}

    def table(self, coordinates):
        self.table_calls += 1
        if self.fail_table:
            raise BulkMatrixFailure("OSRM table error: NoTable")
        count = len(coordinates)
        return MatrixResult(
            durations=[[0 if i == j else 10 * abs(i - j) for j in range(count)] for i in range(count)],
            distances=[[0 if i == j else 8.0 * abs(i - j) for j in range(count)] for i in range(count)],
        )


def _resolver(osrm) -> ZoneCentroidResolver:
    return ZoneCentroidResolver(osrm, delay_seconds=0, sleep=lambda seconds: None)


def test_osrm_pipeline_persists_artifact(workspace: FileStorage, tmp_path: Path) -> None:
    osrm = DummyOSRM()

    artifact = pipeline.run_osrm_pipeline(storage=workspace, osrm=osrm, resolver=_resolver(osrm))

    payload = json.loads((tmp_path / "travel-osrm.json").read_text(encoding="utf-8"))
    assert payload["communes"] == ["Gombe", "Kalamu", "Lemba"]
    assert payload["durations"][0][2] == 20
    assert payload["metadata"]["units"] == {"durations": "minutes", "distances": "km"}
    assert [item["commune"] for item in payload["metadata"]["snappingDetails"]] == ["Gombe", "Kalamu", "Lemba"]
    assert artifact.communes == payload["communes"]


def test_osrm_pipeline_failure_writes_nothing(workspace: FileStorage, tmp_path: Path) -> None:
    osrm = DummyOSRM(fail_table=True)

    with pytest.raises(BulkMatrixFailure):
        pipeline.run_osrm_pipeline(storage=workspace, osrm=osrm, resolver=_resolver(osrm))

    assert not (tmp_path / "travel-osrm.json").exists()


def test_osrm_dry_run_only_computes_centroids(workspace: FileStorage, tmp_path: Path) -> None:
    zones = pipeline.run_osrm_pipeline(storage=workspace, dry_run=True)

    assert [zone.name for zone in zones] == ["Gombe", "Kalamu", "Lemba"]
    assert not (tmp_path / "travel-osrm.json").exists()


def test_reference_zones_prefer_snapped_points(workspace: FileStorage) -> None:
    osrm = DummyOSRM()
    pipeline.run_osrm_pipeline(storage=workspace, osrm=osrm, resolver=_resolver(osrm))

    zones = pipeline.load_reference_zones(workspace)

    assert all(zone.snapped for zone in zones)
    assert zones[0].snapped_lat == pytest.approx(zones[0].centroid_lat + 0.001)


def test_reference_zones_fall_back_to_centroids(workspace: FileStorage) -> None:
    zones = pipeline.load_reference_zones(workspace)

    assert [zone.snapped for zone in zones] == [False, False, False]


def test_google_output_path_suffix(workspace: FileStorage, tmp_path: Path) -> None:
    assert pipeline.google_output_path(DepartureMode.NOW) == tmp_path / "travel-google.json"
    assert pipeline.google_output_path(DepartureMode.EVENING) == tmp_path / "travel-google-evening.json"


def _google_handler(request: httpx.Request) -> httpx.Response:
    origins = request.url.params["origins"].split("|")
    destinations = request.url.params["destinations"].split("|")
    element = {"status": "OK", "duration": {"value": 900}, "distance": {"value": 5000}}
    return httpx.Response(200, json={"status": "OK", "rows": [{"elements": [element] * len(destinations)} for _ in origins]})


def _google_client(tmp_path: Path, handler) -> BudgetedBatchMatrixClient:
    ledger = BudgetLedger(storage=FileStorage(root=tmp_path), clock=lambda: NOW)
    return BudgetedBatchMatrixClient(
        "key",
        ledger=ledger,
        base_url="https://maps.example.test/json",
        batch_size=2,
        element_ceiling=4,
        delay_seconds=0,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=lambda seconds: None,
        clock=lambda: NOW,
    )


def test_google_pipeline_records_one_entry_and_saves(workspace: FileStorage, tmp_path: Path) -> None:
    client = _google_client(tmp_path, _google_handler)
    zones = pipeline.load_reference_zones(workspace)

    artifact, target = pipeline.run_google_pipeline(client, zones, DepartureMode.MORNING, storage=workspace)

    assert target == tmp_path / "travel-google-morning.json"
    assert artifact.durations == [[0, 15, 15], [15, 0, 15], [15, 15, 0]]
    assert artifact.metadata["batchStats"]["totalBatches"] == 4
    assert artifact.metadata["batchStats"]["totalElements"] == 9
    assert artifact.metadata["mode"] == "morning_rush"
    entries = client.ledger.entries()
    assert len(entries) == 1
    assert entries[0].elements == 9
    assert entries[0].output == str(target)
    assert json.loads(target.read_text(encoding="utf-8"))["communes"] == ["Gombe", "Kalamu", "Lemba"]


def test_google_pipeline_failure_leaves_no_artifact(workspace: FileStorage, tmp_path: Path) -> None:
    client = _google_client(tmp_path, lambda request: httpx.Response(200, json={"status": "REQUEST_DENIED"}))
    zones = pipeline.load_reference_zones(workspace)

    with pytest.raises(BatchFailure):
        pipeline.run_google_pipeline(client, zones, storage=workspace)

    assert not (tmp_path / "travel-google.json").exists()
    assert not (tmp_path / "google-api-usage.json").exists()


def test_build_profiles_from_osrm_artifact(workspace: FileStorage, tmp_path: Path) -> None:
    osrm = DummyOSRM()
    pipeline.run_osrm_pipeline(storage=workspace, osrm=osrm, resolver=_resolver(osrm))

    derived = pipeline.build_profiles(storage=workspace)

    saved = pipeline.load_artifact(tmp_path / "travel-profiles.json", workspace)
    assert saved.profiles.keys() == derived.profiles.keys()
    # 8 km at 40 km/h
    assert saved.durations[0][1] == 12.0
    assert saved.profiles["night"].durations[0][1] == 12
    assert saved.metadata["basedOn"] == "travel-osrm.json"
