"""Matrix helpers shared by the OSRM and Distance Matrix clients."""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence

Matrix = list[list[Optional[float]]]


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a map UI does: halves go up, not to even."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def seconds_to_minutes(value: Optional[float]) -> Optional[int]:
    if value is None:
        return None
    return int(round_half_up(value / 60.0))


def meters_to_km(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round_half_up(value / 1000.0, 1)


def empty_matrix(size: int) -> Matrix:
    return [[None] * size for _ in range(size)]


def force_zero_diagonal(matrix: Matrix) -> Matrix:
    for index, row in enumerate(matrix):
        row[index] = 0
    return matrix


def convert_table(rows: Sequence[Sequence[Optional[float]]], converter) -> Matrix:
    return [[converter(value) for value in row] for row in rows]


def off_diagonal_values(matrix: Matrix) -> Iterable[float]:
    for i, row in enumerate(matrix):
        for j, value in enumerate(row):
            if i != j and value is not None:
                yield value


def summarize_durations(durations: Matrix) -> dict:
    """Average and maximum positive travel time, as logged after every run."""
    values = [value for value in off_diagonal_values(durations) if value > 0]
    if not values:
        return {"avg_minutes": None, "max_minutes": None, "pairs": 0}
    return {
        "avg_minutes": round(sum(values) / len(values), 1),
        "max_minutes": max(values),
        "pairs": len(values),
    }


def count_missing(matrix: Matrix) -> int:
    return sum(1 for i, row in enumerate(matrix) for j, value in enumerate(row) if i != j and value is None)
