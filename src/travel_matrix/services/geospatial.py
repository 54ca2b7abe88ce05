"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Any, Mapping

from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_km(lat1, lon1, lat2, lon2) * 1000.0


def feature_geometry(feature: Mapping[str, Any]) -> BaseGeometry:
    """Build a shapely geometry from a GeoJSON feature (Polygon or MultiPolygon)."""

    geometry = feature.get("geometry")
    if not geometry:
        raise ValueError("Feature has no geometry.")
    polygon = shape(geometry)
    if polygon.is_empty:
        raise ValueError("Feature geometry is empty.")
    return polygon


def area_weighted_centroid(feature: Mapping[str, Any]) -> tuple[float, float]:
    """Return the (lat, lng) centroid of a polygon feature, weighted by area."""

    centroid = feature_geometry(feature).centroid
    return centroid.y, centroid.x
