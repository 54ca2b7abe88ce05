"""Persisted travel matrix artifact schemas."""

from __future__ import annotations

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

Matrix = List[List[Optional[Union[int, float]]]]


class ProfileMatrix(BaseModel):
    """One time-of-day profile with its derived duration matrix."""

    label: str
    hours: str
    coeff: float = Field(..., gt=0)
    speed_range: str = Field(..., alias="speedRange")
    traffic: str
    durations: Matrix

    model_config = ConfigDict(populate_by_name=True)


class TravelMatrixArtifact(BaseModel):
    """JSON document shared by the OSRM, Google and profile outputs."""

    metadata: dict = Field(default_factory=dict)
    communes: List[str]
    distances: Matrix
    durations: Optional[Matrix] = None
    default_profile: Optional[str] = Field(default=None, alias="defaultProfile")
    profiles: Optional[Dict[str, ProfileMatrix]] = None

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def _check_square(self) -> "TravelMatrixArtifact":
        size = len(self.communes)
        matrices: list[tuple[str, Matrix]] = [("distances", self.distances)]
        if self.durations is not None:
            matrices.append(("durations", self.durations))
        for key, profile in (self.profiles or {}).items():
            matrices.append((f"profiles.{key}.durations", profile.durations))
        for name, matrix in matrices:
            if len(matrix) != size or any(len(row) != size for row in matrix):
                raise ValueError(f"{name} must be {size}x{size} to match communes.")
        if self.durations is None and not self.profiles:
            raise ValueError("Artifact carries neither durations nor profiles.")
        return self

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class LedgerEntry(BaseModel):
    """One billed run in the Distance Matrix usage ledger."""

    date: str
    elements: int = Field(..., ge=0)
    cost: float = Field(..., ge=0)
    mode: str
    output: Optional[str] = None


class LedgerDocument(BaseModel):
    runs: List[LedgerEntry] = Field(default_factory=list)
