"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="TRAVEL_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Commune Travel Matrix API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for inputs and artifacts.")
    communes_file: Path = Field(
        default=Path("data/communes.geojson"),
        description="Zone polygons (GeoJSON FeatureCollection, one feature per commune).",
    )
    zone_name_property: str = Field(default="name", description="Feature property holding the zone name.")
    osrm_artifact_file: Path = Field(default=Path("data/travel-osrm.json"))
    google_artifact_file: Path = Field(
        default=Path("data/travel-google.json"),
        description="Google matrix output; departure modes other than 'now' get a suffix.",
    )
    profiles_artifact_file: Path = Field(default=Path("data/travel-profiles.json"))
    budget_ledger_file: Path = Field(default=Path("data/google-api-usage.json"))

    osrm_base_url: Optional[str] = Field(
        default="https://router.project-osrm.org",
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(default="driving")
    snap_delay_seconds: float = Field(default=0.5, ge=0.0)
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)

    google_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("TRAVEL_GOOGLE_API_KEY", "GOOGLE_MAPS_API_KEY"),
    )
    google_base_url: str = "https://maps.googleapis.com/maps/api/distancematrix/json"
    google_language: str = "fr"
    element_ceiling: int = Field(default=100, ge=1, description="Max elements per Distance Matrix call.")
    batch_size: Optional[int] = Field(default=None, ge=1)
    cost_per_1000_elements: float = Field(default=5.0, ge=0.0)
    monthly_budget_limit: float = Field(default=180.0, ge=0.0)
    batch_delay_seconds: float = Field(default=0.6, ge=0.0)
    partial_spend_policy: Literal["discard", "record_partial"] = "discard"

    speed_cap_kmh: float = Field(default=40.0, gt=0.0)
    default_profile: str = "midday"
    local_utc_offset_hours: int = Field(default=1, ge=-12, le=14)
    morning_departure_hour: int = Field(default=8, ge=0, le=23)
    evening_departure_hour: int = Field(default=17, ge=0, le=23)

    duration_thresholds: tuple[float, ...] = Field(
        default=(15, 30, 45, 60, 90),
        description="Upper bounds (minutes) of the duration colour buckets.",
    )
    duration_colors: tuple[str, ...] = Field(
        default=("#1a9850", "#91cf60", "#d9ef8b", "#fee08b", "#fc8d59", "#d73027"),
        description="Palette, one colour more than there are thresholds.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=("http://localhost:5173", "http://127.0.0.1:5173"),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator(
        "data_root",
        "communes_file",
        "osrm_artifact_file",
        "google_artifact_file",
        "profiles_artifact_file",
        "budget_ledger_file",
        mode="before",
    )
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", "duration_colors", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("duration_thresholds", mode="before")
    @classmethod
    def _parse_float_tuple_from_env(cls, value: Any) -> tuple[float, ...]:
        """Parse numeric tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return tuple(float(item) for item in value)
        if isinstance(value, list):
            return tuple(float(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(float(item) for item in parsed)
            except (json.JSONDecodeError, TypeError, ValueError):
                pass
            if "," in value:
                return tuple(float(item.strip()) for item in value.split(",") if item.strip())
            if value.strip():
                return (float(value.strip()),)
        return tuple()

    def resolved_batch_size(self) -> int:
        """Largest square batch side that stays under the element ceiling."""
        if self.batch_size is not None:
            return self.batch_size
        side = 1
        while (side + 1) * (side + 1) <= self.element_ceiling:
            side += 1
        return side


settings = Settings()
