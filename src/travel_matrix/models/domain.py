"""Domain models for zones and reference points."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class Zone:
    """A commune with its raw centroid and the point snapped onto the road network.

    ``index`` is the row/column of this zone in every matrix built from the run.
    """

    index: int
    name: str
    centroid_lat: float
    centroid_lng: float
    snapped_lat: float
    snapped_lng: float
    snap_offset_m: float = 0.0
    road_name: Optional[str] = None
    snapped: bool = False

    @property
    def point(self) -> tuple[float, float]:
        """(lat, lng) used for routing requests."""
        return (self.snapped_lat, self.snapped_lng)


@dataclass(frozen=True, slots=True)
class MatrixResult:
    """Raw N×N matrices in canonical units (minutes, km)."""

    durations: list[list[Optional[float]]]
    distances: list[list[Optional[float]]]

    @property
    def size(self) -> int:
        return len(self.durations)
