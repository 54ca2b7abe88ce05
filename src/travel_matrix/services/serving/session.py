"""Read-only interactive session over a travel matrix artifact.

The session is either idle or has an origin selected with an active profile.
Selecting an origin colours every destination by travel time from it; hovering
yields a transient duration/distance/speed readout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ...config import settings
from ...errors import SessionStateError
from ...schemas.artifact import Matrix, TravelMatrixArtifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ZoneStyle:
    fill_color: str
    weight: int
    color: str
    fill_opacity: float


ORIGIN_STYLE = ZoneStyle(fill_color="#2ecc71", weight=3, color="#27ae60", fill_opacity=0.9)
NO_DATA_STYLE = ZoneStyle(fill_color="#bdc3c7", weight=1, color="#fff", fill_opacity=0.4)
IDLE_STYLE = ZoneStyle(fill_color="#e0e0e0", weight=2, color="#fff", fill_opacity=0.5)


def bucket_index(value: float, thresholds: Sequence[float]) -> int:
    """Index of the first threshold strictly above ``value``; len(thresholds) past the last."""
    for index, threshold in enumerate(thresholds):
        if value < threshold:
            return index
    return len(thresholds)


def format_duration(minutes: float) -> str:
    if minutes < 60:
        return f"{round(minutes)} min"
    hours = int(minutes // 60)
    rest = round(minutes % 60)
    if rest == 60:
        hours, rest = hours + 1, 0
    return f"{hours}h{rest:02d}" if rest > 0 else f"{hours}h"


def average_speed_kmh(duration_minutes: Optional[float], distance_km: Optional[float]) -> Optional[float]:
    if not duration_minutes or distance_km is None or duration_minutes <= 0:
        return None
    return distance_km / (duration_minutes / 60.0)


@dataclass(frozen=True, slots=True)
class DestinationView:
    index: int
    name: str
    duration_minutes: Optional[float]
    distance_km: Optional[float]
    bucket: Optional[int]
    style: ZoneStyle
    is_origin: bool = False

    @property
    def has_data(self) -> bool:
        return self.is_origin or self.duration_minutes is not None

    def popup(self, origin_name: str) -> str:
        if self.is_origin:
            return f"{self.name}\nStarting point"
        lines = [
            self.name,
            f"From {origin_name}:",
            format_duration(self.duration_minutes) if self.duration_minutes is not None else "—",
            f"{self.distance_km} km" if self.distance_km is not None else "—",
        ]
        speed = average_speed_kmh(self.duration_minutes, self.distance_km)
        if speed is not None:
            lines.append(f"Avg. speed: {speed:.0f} km/h")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class HoverInfo:
    origin_index: int
    destination_index: int
    destination_name: str
    duration_minutes: Optional[float]
    distance_km: Optional[float]
    speed_kmh: Optional[float]


class MatrixServingSession:
    def __init__(
        self,
        artifact: TravelMatrixArtifact,
        *,
        thresholds: Sequence[float] | None = None,
        colors: Sequence[str] | None = None,
    ) -> None:
        self.artifact = artifact
        self.thresholds = tuple(settings.duration_thresholds if thresholds is None else thresholds)
        self.colors = tuple(settings.duration_colors if colors is None else colors)
        if len(self.colors) != len(self.thresholds) + 1:
            raise ValueError("Palette must hold exactly one colour more than there are thresholds.")
        if list(self.thresholds) != sorted(self.thresholds):
            raise ValueError("Thresholds must be in ascending order.")

        self.origin_index: Optional[int] = None
        self.active_profile: Optional[str] = self._initial_profile()
        self._row: list[DestinationView] = []

    def _initial_profile(self) -> Optional[str]:
        profiles = self.artifact.profiles or {}
        if not profiles:
            return None
        if self.artifact.default_profile in profiles:
            return self.artifact.default_profile
        return next(iter(profiles))

    @property
    def is_idle(self) -> bool:
        return self.origin_index is None

    @property
    def size(self) -> int:
        return len(self.artifact.communes)

    @property
    def row(self) -> list[DestinationView]:
        """Destinations as last coloured; empty while idle."""
        return list(self._row)

    def available_profiles(self) -> list[dict]:
        return [
            {
                "key": key,
                "label": profile.label,
                "hours": profile.hours,
                "speedRange": profile.speed_range,
                "traffic": profile.traffic,
            }
            for key, profile in (self.artifact.profiles or {}).items()
        ]

    def instructions(self) -> str:
        """Text of the transient popup shown when the matrix is first displayed."""
        label = self.active_profile or "single matrix"
        if self.active_profile and self.artifact.profiles:
            label = self.artifact.profiles[self.active_profile].label
        return f"Travel time mode\nProfile: {label}\nClick a commune to see travel times from it."

    def durations(self) -> Matrix:
        if self.active_profile is not None:
            return self.artifact.profiles[self.active_profile].durations
        return self.artifact.durations or []

    def index_of(self, name: str) -> int:
        try:
            return self.artifact.communes.index(name)
        except ValueError as exc:
            raise KeyError(f"Unknown commune '{name}'.") from exc

    def _check_index(self, zone_index: int) -> None:
        if not 0 <= zone_index < self.size:
            raise IndexError(f"Zone index {zone_index} is outside 0..{self.size - 1}.")

    def select_origin(self, zone_index: int) -> list[DestinationView]:
        """Idle -> OriginSelected, or move the selection. Re-selecting the current origin is a no-op."""
        self._check_index(zone_index)
        if zone_index == self.origin_index:
            return self.row
        self.origin_index = zone_index
        logger.debug(f"Origin selected: {self.artifact.communes[zone_index]}")
        return self._recolor()

    def switch_profile(self, profile_key: str) -> list[DestinationView]:
        """Swap the active profile and recolour from the same origin."""
        if self.is_idle:
            raise SessionStateError("Select an origin before switching profile.")
        profiles = self.artifact.profiles or {}
        if profile_key not in profiles:
            raise KeyError(f"Unknown profile '{profile_key}'.")
        self.active_profile = profile_key
        return self._recolor()

    def clear(self) -> None:
        self.origin_index = None
        self._row = []

    def hover(self, zone_index: int) -> Optional[HoverInfo]:
        """Transient readout for one destination; ``None`` while idle."""
        self._check_index(zone_index)
        if self.is_idle:
            return None
        duration = self.durations()[self.origin_index][zone_index]
        distance = self.artifact.distances[self.origin_index][zone_index]
        return HoverInfo(
            origin_index=self.origin_index,
            destination_index=zone_index,
            destination_name=self.artifact.communes[zone_index],
            duration_minutes=duration,
            distance_km=distance,
            speed_kmh=average_speed_kmh(duration, distance),
        )

    def style_for(self, duration: Optional[float], *, is_origin: bool = False) -> tuple[Optional[int], ZoneStyle]:
        if is_origin:
            return None, ORIGIN_STYLE
        if duration is None:
            return None, NO_DATA_STYLE
        bucket = bucket_index(duration, self.thresholds)
        return bucket, ZoneStyle(fill_color=self.colors[bucket], weight=2, color="#fff", fill_opacity=0.75)

    def _recolor(self) -> list[DestinationView]:
        origin = self.origin_index
        durations = self.durations()[origin]
        distances = self.artifact.distances[origin]
        views: list[DestinationView] = []
        for index, name in enumerate(self.artifact.communes):
            is_origin = index == origin
            bucket, style = self.style_for(durations[index], is_origin=is_origin)
            views.append(
                DestinationView(
                    index=index,
                    name=name,
                    duration_minutes=durations[index],
                    distance_km=distances[index],
                    bucket=bucket,
                    style=style,
                    is_origin=is_origin,
                )
            )
        self._row = views
        return self.row
