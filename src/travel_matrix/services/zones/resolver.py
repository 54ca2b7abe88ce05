"""Centroid computation and road snapping for commune polygons."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Sequence

from ...config import settings
from ...errors import SnapFailure
from ...models.domain import Zone
from ..geospatial import area_weighted_centroid, haversine_m
from ..routing.osrm_client import OSRMClient

logger = logging.getLogger(__name__)


def zone_features(collection: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    features = collection.get("features")
    if not isinstance(features, list) or not features:
        raise ValueError("Zone GeoJSON must be a FeatureCollection with at least one feature.")
    return features


class ZoneCentroidResolver:
    """Turn an ordered polygon set into ``Zone`` records with snapped reference points.

    Snapping is one request per zone, issued sequentially with a fixed delay.
    A failed snap is not fatal: the zone keeps its raw centroid.
    """

    def __init__(
        self,
        osrm: OSRMClient | None = None,
        *,
        name_property: str | None = None,
        delay_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.osrm = osrm
        self.name_property = name_property or settings.zone_name_property
        self.delay_seconds = settings.snap_delay_seconds if delay_seconds is None else delay_seconds
        self.sleep = sleep

    def centroids(self, features: Sequence[Mapping[str, Any]]) -> list[Zone]:
        zones: list[Zone] = []
        seen: set[str] = set()
        for index, feature in enumerate(features):
            name = str((feature.get("properties") or {}).get(self.name_property) or "").strip()
            if not name:
                raise ValueError(f"Feature {index} has no '{self.name_property}' property.")
            if name in seen:
                raise ValueError(f"Duplicate zone name '{name}'.")
            seen.add(name)
            lat, lng = area_weighted_centroid(feature)
            zones.append(
                Zone(
                    index=index,
                    name=name,
                    centroid_lat=lat,
                    centroid_lng=lng,
                    snapped_lat=lat,
                    snapped_lng=lng,
                )
            )
        return zones

    def resolve(self, features: Sequence[Mapping[str, Any]], *, snap: bool = True) -> list[Zone]:
        zones = self.centroids(features)
        logger.info(f"Computed {len(zones)} centroids")
        if not snap:
            return zones
        if self.osrm is None:
            raise ValueError("An OSRM client is required to snap centroids.")

        snapped: list[Zone] = []
        for position, zone in enumerate(zones):
            snapped.append(self._snap(zone))
            if position < len(zones) - 1:
                self.sleep(self.delay_seconds)
        failures = sum(1 for zone in snapped if not zone.snapped)
        if failures:
            logger.warning(f"{failures}/{len(snapped)} centroids could not be snapped; raw centroids kept")
        return snapped

    def _snap(self, zone: Zone) -> Zone:
        try:
            waypoint = self.osrm.nearest(zone.centroid_lat, zone.centroid_lng)
        except SnapFailure as exc:
            logger.warning(f"{zone.name}: could not snap ({exc}); using raw centroid")
            return zone

        lng, lat = waypoint["location"]
        offset = haversine_m(zone.centroid_lat, zone.centroid_lng, lat, lng)
        road = waypoint.get("name") or None
        logger.info(f"{zone.name}: snapped {offset:.0f}m to road \"{road or 'unnamed'}\"")
        return Zone(
            index=zone.index,
            name=zone.name,
            centroid_lat=zone.centroid_lat,
            centroid_lng=zone.centroid_lng,
            snapped_lat=lat,
            snapped_lng=lng,
            snap_offset_m=offset,
            road_name=road,
            snapped=True,
        )


def snapping_diagnostics(zones: Sequence[Zone]) -> list[dict]:
    """Per-zone record persisted in the OSRM artifact metadata (coordinates as [lng, lat])."""
    return [
        {
            "commune": zone.name,
            "centroid": [zone.centroid_lng, zone.centroid_lat],
            "snapped": [zone.snapped_lng, zone.snapped_lat],
            "offsetMeters": round(zone.snap_offset_m),
            "roadName": zone.road_name,
            "snappedToRoad": zone.snapped,
        }
        for zone in zones
    ]


def zones_from_diagnostics(diagnostics: Sequence[Mapping[str, Any]]) -> list[Zone]:
    """Rebuild zones from a previous OSRM run so paid calls reuse the same snapped points."""
    zones: list[Zone] = []
    for index, item in enumerate(diagnostics):
        centroid_lng, centroid_lat = item["centroid"]
        snapped_lng, snapped_lat = item["snapped"]
        zones.append(
            Zone(
                index=index,
                name=item["commune"],
                centroid_lat=centroid_lat,
                centroid_lng=centroid_lng,
                snapped_lat=snapped_lat,
                snapped_lng=snapped_lng,
                snap_offset_m=float(item.get("offsetMeters") or 0),
                road_name=item.get("roadName"),
                snapped=bool(item.get("snappedToRoad", True)),
            )
        )
    return zones
