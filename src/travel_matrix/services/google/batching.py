"""Partition of an N×N request into rectangles under the per-call element ceiling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True, slots=True)
class Batch:
    """Half-open origin and destination ranges of one Distance Matrix call."""

    number: int
    origin_start: int
    origin_end: int
    dest_start: int
    dest_end: int

    @property
    def origins(self) -> range:
        return range(self.origin_start, self.origin_end)

    @property
    def destinations(self) -> range:
        return range(self.dest_start, self.dest_end)

    @property
    def elements(self) -> int:
        return len(self.origins) * len(self.destinations)

    def describe(self) -> str:
        return (
            f"Batch {self.number}: origins [{self.origin_start}-{self.origin_end - 1}] x "
            f"dests [{self.dest_start}-{self.dest_end - 1}] = {self.elements} elements"
        )


@dataclass(frozen=True, slots=True)
class BatchPlan:
    size: int
    batch_size: int
    batches: tuple[Batch, ...]

    def __iter__(self) -> Iterator[Batch]:
        return iter(self.batches)

    def __len__(self) -> int:
        return len(self.batches)

    @property
    def total_elements(self) -> int:
        return sum(batch.elements for batch in self.batches)

    def as_dict(self) -> dict:
        return {
            "size": self.size,
            "batchSize": self.batch_size,
            "totalBatches": len(self.batches),
            "totalElements": self.total_elements,
            "batches": [
                {
                    "number": batch.number,
                    "origins": [batch.origin_start, batch.origin_end],
                    "destinations": [batch.dest_start, batch.dest_end],
                    "elements": batch.elements,
                }
                for batch in self.batches
            ],
        }


def _chunks(size: int, batch_size: int) -> list[tuple[int, int]]:
    return [(start, min(start + batch_size, size)) for start in range(0, size, batch_size)]


def plan_batches(size: int, batch_size: int, element_ceiling: int | None = None) -> BatchPlan:
    """Split ``size`` origins and destinations into ``ceil(size/batch_size)²`` rectangles.

    Rectangles are enumerated row-major (origin chunk, then destination chunk) and
    cover every (i, j) pair exactly once. No network access.
    """
    if size < 1:
        raise ValueError("A batch plan needs at least one zone.")
    if batch_size < 1:
        raise ValueError("Batch size must be positive.")
    if element_ceiling is not None and batch_size * batch_size > element_ceiling:
        raise ValueError(
            f"Batch size {batch_size} gives {batch_size * batch_size} elements per call, "
            f"above the ceiling of {element_ceiling}."
        )

    ranges = _chunks(size, batch_size)
    batches: list[Batch] = []
    for origin_start, origin_end in ranges:
        for dest_start, dest_end in ranges:
            batches.append(
                Batch(
                    number=len(batches) + 1,
                    origin_start=origin_start,
                    origin_end=origin_end,
                    dest_start=dest_start,
                    dest_end=dest_end,
                )
            )
    return BatchPlan(size=size, batch_size=batch_size, batches=tuple(batches))
