"""Serving request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class ProfileSummary(BaseModel):
    key: str
    label: str
    hours: str
    speedRange: str
    traffic: str


class MatrixSummaryResponse(BaseModel):
    communes: List[str]
    default_profile: Optional[str]
    profiles: List[ProfileSummary]
    metadata: dict


class ZoneStyleModel(BaseModel):
    fill_color: str
    weight: int
    color: str
    fill_opacity: float


class DestinationModel(BaseModel):
    index: int
    name: str
    duration_minutes: Optional[float]
    distance_km: Optional[float]
    bucket: Optional[int]
    is_origin: bool
    style: ZoneStyleModel
    popup: str


class OriginRowResponse(BaseModel):
    origin_index: int
    origin: str
    profile: Optional[str]
    destinations: List[DestinationModel]


class LookupResponse(BaseModel):
    origin: str
    destination: str
    profile: Optional[str]
    duration_minutes: Optional[float]
    distance_km: Optional[float]
    speed_kmh: Optional[float]
