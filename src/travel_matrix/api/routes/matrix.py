"""Travel matrix endpoints."""

from __future__ import annotations

import os
from dataclasses import asdict
from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from ...config import settings
from ...errors import SessionStateError
from ...schemas.artifact import TravelMatrixArtifact
from ...schemas.serving import (
    DestinationModel,
    LookupResponse,
    MatrixSummaryResponse,
    OriginRowResponse,
    ProfileSummary,
    ZoneStyleModel,
)
from ...services.pipeline import load_artifact
from ...services.serving.session import MatrixServingSession

router = APIRouter(prefix="/matrix", tags=["matrix"])


@lru_cache(maxsize=4)
def _cached_artifact(path: str, mtime_ns: int, size: int) -> TravelMatrixArtifact:
    return load_artifact(path)


def load_served_artifact(path: Path | str) -> TravelMatrixArtifact:
    """Parsed artifact, re-read whenever the file on disk is rewritten."""
    stat = os.stat(path)
    return _cached_artifact(str(path), stat.st_mtime_ns, stat.st_size)


def _session() -> MatrixServingSession:
    path = settings.profiles_artifact_file
    try:
        artifact = load_served_artifact(path)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No travel matrix at {path.name}.") from exc
    return MatrixServingSession(artifact)


def _select(session: MatrixServingSession, origin: int, profile: Optional[str]) -> None:
    try:
        session.select_origin(origin)
        if profile and profile != session.active_profile:
            session.switch_profile(profile)
    except IndexError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (KeyError, SessionStateError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc).strip("'\"")) from exc


@router.get("", response_model=MatrixSummaryResponse, status_code=status.HTTP_200_OK)
def matrix_summary() -> MatrixSummaryResponse:
    session = _session()
    return MatrixSummaryResponse(
        communes=session.artifact.communes,
        default_profile=session.active_profile,
        profiles=[ProfileSummary(**item) for item in session.available_profiles()],
        metadata=session.artifact.metadata,
    )


@router.get("/origins/{origin}", response_model=OriginRowResponse, status_code=status.HTTP_200_OK)
def origin_row(origin: int, profile: Optional[str] = Query(default=None)) -> OriginRowResponse:
    session = _session()
    _select(session, origin, profile)
    origin_name = session.artifact.communes[origin]
    return OriginRowResponse(
        origin_index=origin,
        origin=origin_name,
        profile=session.active_profile,
        destinations=[
            DestinationModel(
                index=view.index,
                name=view.name,
                duration_minutes=view.duration_minutes,
                distance_km=view.distance_km,
                bucket=view.bucket,
                is_origin=view.is_origin,
                style=ZoneStyleModel(**asdict(view.style)),
                popup=view.popup(origin_name),
            )
            for view in session.row
        ],
    )


@router.get("/lookup", response_model=LookupResponse, status_code=status.HTTP_200_OK)
def lookup(
    origin: int = Query(..., ge=0),
    destination: int = Query(..., ge=0),
    profile: Optional[str] = Query(default=None),
) -> LookupResponse:
    session = _session()
    _select(session, origin, profile)
    try:
        info = session.hover(destination)
    except IndexError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return LookupResponse(
        origin=session.artifact.communes[origin],
        destination=info.destination_name,
        profile=session.active_profile,
        duration_minutes=info.duration_minutes,
        distance_km=info.distance_km,
        speed_kmh=round(info.speed_kmh, 1) if info.speed_kmh is not None else None,
    )
