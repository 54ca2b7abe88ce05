"""Pipeline orchestration: zones -> raw matrix -> profiles -> persisted artifacts."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from ..config import settings
from ..models.domain import Zone
from ..persistence.filesystem import FileStorage
from ..schemas.artifact import TravelMatrixArtifact
from .google.client import BatchedRunResult, BudgetedBatchMatrixClient
from .google.departure import DepartureMode, departure_label
from .profiles.deriver import CongestionProfileDeriver
from .routing.matrix import count_missing, summarize_durations
from .routing.osrm_client import OSRMClient
from .zones.resolver import ZoneCentroidResolver, snapping_diagnostics, zone_features, zones_from_diagnostics

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _log_summary(artifact: TravelMatrixArtifact) -> None:
    summary = summarize_durations(artifact.durations or [])
    size = len(artifact.communes)
    logger.info(
        f"{size}x{size} matrix: avg travel time {summary['avg_minutes']} min, max {summary['max_minutes']} min"
    )


def load_zone_features(storage: FileStorage, path: Path | None = None) -> list[dict]:
    return zone_features(storage.read_json(path or settings.communes_file))


def load_artifact(path: Path | str, storage: FileStorage | None = None) -> TravelMatrixArtifact:
    storage = storage or FileStorage()
    return TravelMatrixArtifact.model_validate(storage.read_json(path))


def save_artifact(artifact: TravelMatrixArtifact, path: Path | str, storage: FileStorage) -> Path:
    target = storage.write_json(path, artifact.to_document())
    logger.info(f"Saved {target}")
    return target


def run_osrm_pipeline(
    *,
    storage: FileStorage | None = None,
    osrm: OSRMClient | None = None,
    resolver: ZoneCentroidResolver | None = None,
    output: Path | None = None,
    dry_run: bool = False,
) -> TravelMatrixArtifact | list[Zone]:
    """Centroids, snapping and one bulk OSRM table call.

    In dry-run mode only the centroids are computed and returned; nothing is
    requested or written.
    """
    storage = storage or FileStorage()
    features = load_zone_features(storage)
    logger.info(f"Loaded {len(features)} communes")

    if dry_run:
        zones = (resolver or ZoneCentroidResolver()).resolve(features, snap=False)
        for zone in zones:
            logger.info(f"[dry-run] {zone.name}: {zone.centroid_lat:.5f}, {zone.centroid_lng:.5f}")
        logger.info(f"[dry-run] Would compute a {len(zones)}x{len(zones)} matrix")
        return zones

    osrm = osrm or OSRMClient()
    resolver = resolver or ZoneCentroidResolver(osrm)
    zones = resolver.resolve(features)
    matrix = osrm.table([zone.point for zone in zones])

    artifact = TravelMatrixArtifact(
        metadata={
            "source": "OSRM (Open Source Routing Machine)",
            "dataSource": "OpenStreetMap",
            "computedAt": _timestamp(),
            "methodology": (
                "Area-weighted centroid of each commune snapped to the nearest road via OSRM /nearest, "
                f"then a {len(zones)}x{len(zones)} matrix from OSRM /table (driving, no live traffic)."
            ),
            "units": {"durations": "minutes", "distances": "km"},
            "snappingDetails": snapping_diagnostics(zones),
            "unavailableCells": count_missing(matrix.durations),
        },
        communes=[zone.name for zone in zones],
        distances=matrix.distances,
        durations=matrix.durations,
    )
    save_artifact(artifact, output or settings.osrm_artifact_file, storage)
    _log_summary(artifact)
    return artifact


def load_reference_zones(storage: FileStorage, osrm_artifact: Path | None = None) -> list[Zone]:
    """Snapped points from the last OSRM run when available, raw centroids otherwise."""
    path = osrm_artifact or settings.osrm_artifact_file
    if storage.exists(path):
        details = load_artifact(path, storage).metadata.get("snappingDetails")
        if details:
            logger.info("Using snapped centroids from the OSRM computation")
            return zones_from_diagnostics(details)
    logger.warning("No OSRM snapping data found; computing centroids from the commune polygons")
    return ZoneCentroidResolver().resolve(load_zone_features(storage), snap=False)


def google_output_path(mode: DepartureMode, base: Path | None = None) -> Path:
    base = Path(base or settings.google_artifact_file)
    return base.with_name(f"{base.stem}{mode.file_suffix}{base.suffix}")


def google_artifact(zones: Sequence[Zone], result: BatchedRunResult) -> TravelMatrixArtifact:
    plan = result.plan
    return TravelMatrixArtifact(
        metadata={
            "source": "Google Distance Matrix API",
            "computedAt": _timestamp(),
            "mode": result.mode.ledger_mode,
            "departureTime": departure_label(result.departure),
            "methodology": (
                "Reference points are commune centroids snapped to roads via OSRM /nearest. "
                f"Matrix from the Google Distance Matrix API (driving, departure: {result.mode.description}), "
                f"in {len(plan)} requests of at most {plan.batch_size}x{plan.batch_size} elements. "
                "duration_in_traffic is used when available."
            ),
            "units": {"durations": "minutes", "distances": "km"},
            "batchStats": {
                "batchSize": plan.batch_size,
                "totalBatches": len(plan),
                "totalElements": result.elements,
                "cost": round(result.cost, 2),
                "unavailableCells": result.unavailable_cells,
            },
        },
        communes=[zone.name for zone in zones],
        distances=result.matrix.distances,
        durations=result.matrix.durations,
    )


def run_google_pipeline(
    client: BudgetedBatchMatrixClient,
    zones: Sequence[Zone],
    mode: DepartureMode = DepartureMode.NOW,
    *,
    storage: FileStorage | None = None,
    output: Path | None = None,
    cancel_event: threading.Event | None = None,
) -> tuple[TravelMatrixArtifact, Path]:
    """Paid batched run. The ledger entry is written once the full matrix is in hand."""
    storage = storage or FileStorage()
    target = storage.resolve(output or google_output_path(mode))
    result = client.compute([zone.point for zone in zones], mode, cancel_event=cancel_event)
    artifact = google_artifact(zones, result)

    client.record_run(result, output=str(target))
    save_artifact(artifact, target, storage)
    _log_summary(artifact)
    logger.info(f"Budget updated: ${client.ledger.monthly_spend():.2f} spent this month")
    return artifact, target


def build_profiles(
    *,
    storage: FileStorage | None = None,
    source: Path | None = None,
    output: Path | None = None,
    deriver: CongestionProfileDeriver | None = None,
) -> TravelMatrixArtifact:
    storage = storage or FileStorage()
    source_path = source or settings.osrm_artifact_file
    raw = load_artifact(source_path, storage)
    logger.info(f"Loaded raw matrix: {len(raw.communes)} communes")
    derived = (deriver or CongestionProfileDeriver()).derive(raw, based_on=Path(source_path).name)
    save_artifact(derived, output or settings.profiles_artifact_file, storage)
    return derived
