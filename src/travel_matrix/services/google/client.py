"""Budget-guarded, batched client for the Google Distance Matrix API."""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

import httpx

from ...config import settings
from ...errors import BatchFailure, ConfigurationError, RunCancelled
from ...models.domain import MatrixResult
from ...persistence.ledger import BudgetLedger, estimate_cost, utc_now
from ...schemas.artifact import LedgerEntry
from ..routing.matrix import empty_matrix, force_zero_diagonal, meters_to_km, seconds_to_minutes
from .batching import Batch, BatchPlan, plan_batches
from .departure import DepartureMode, departure_time

logger = logging.getLogger(__name__)

PARTIAL_SPEND_POLICIES = ("discard", "record_partial")


def _rows_match(rows: object, origins: int, destinations: int) -> bool:
    if not isinstance(rows, list) or len(rows) != origins:
        return False
    for row in rows:
        elements = row.get("elements") if isinstance(row, dict) else None
        if not isinstance(elements, list) or len(elements) != destinations:
            return False
        if not all(isinstance(element, dict) for element in elements):
            return False
    return True


def _element_value(batch: Batch, element: dict, field: str) -> Optional[float]:
    """Numeric ``value`` of one element field; ``None`` when the field is absent."""
    entry = element.get(field)
    if entry is None:
        return None
    value = entry.get("value") if isinstance(entry, dict) else entry
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise BatchFailure(batch.number, f"element {field} has a non-numeric value: {value!r}")
    return value


@dataclass(frozen=True, slots=True)
class RunPreview:
    """What a run would cost, computed without any network call."""

    plan: BatchPlan
    projected_cost: float
    spent_this_month: float
    monthly_limit: float

    @property
    def projected_spend(self) -> float:
        return self.spent_this_month + self.projected_cost

    @property
    def within_budget(self) -> bool:
        return self.projected_spend <= self.monthly_limit


@dataclass(frozen=True, slots=True)
class BatchedRunResult:
    matrix: MatrixResult
    plan: BatchPlan
    mode: DepartureMode
    departure: int | str
    elements: int
    cost: float
    unavailable_cells: int


def preview_run(
    size: int,
    ledger: BudgetLedger,
    *,
    batch_size: int | None = None,
    element_ceiling: int | None = None,
    cost_per_1000: float | None = None,
    monthly_limit: float | None = None,
) -> RunPreview:
    ceiling = element_ceiling or settings.element_ceiling
    plan = plan_batches(size, batch_size or settings.resolved_batch_size(), ceiling)
    price = settings.cost_per_1000_elements if cost_per_1000 is None else cost_per_1000
    limit = settings.monthly_budget_limit if monthly_limit is None else monthly_limit
    return RunPreview(
        plan=plan,
        projected_cost=estimate_cost(plan.total_elements, price),
        spent_this_month=ledger.monthly_spend(),
        monthly_limit=limit,
    )


class BudgetedBatchMatrixClient:
    """Fetch an N×N matrix in sequential batches under a monthly spending ceiling.

    The budget is checked before the first call. Batches run one at a time with a
    fixed delay; any failed batch aborts the run without retry, since a retried
    paid call may be billed twice.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        ledger: BudgetLedger | None = None,
        base_url: str | None = None,
        language: str | None = None,
        batch_size: int | None = None,
        element_ceiling: int | None = None,
        cost_per_1000: float | None = None,
        monthly_limit: float | None = None,
        delay_seconds: float | None = None,
        timeout: float | None = None,
        partial_spend_policy: str | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        key = api_key if api_key is not None else settings.google_api_key
        if not key or not key.strip():
            raise ConfigurationError(
                "Google Maps API key is not configured. Set GOOGLE_MAPS_API_KEY (or TRAVEL_GOOGLE_API_KEY)."
            )
        self.api_key = key.strip()
        self.ledger = ledger or BudgetLedger(clock=clock)
        self.base_url = base_url or settings.google_base_url
        self.language = language or settings.google_language
        self.element_ceiling = element_ceiling or settings.element_ceiling
        self.batch_size = batch_size or settings.resolved_batch_size()
        self.cost_per_1000 = settings.cost_per_1000_elements if cost_per_1000 is None else cost_per_1000
        self.monthly_limit = settings.monthly_budget_limit if monthly_limit is None else monthly_limit
        self.delay_seconds = settings.batch_delay_seconds if delay_seconds is None else delay_seconds
        self.partial_spend_policy = partial_spend_policy or settings.partial_spend_policy
        if self.partial_spend_policy not in PARTIAL_SPEND_POLICIES:
            raise ConfigurationError(f"Unknown partial spend policy '{self.partial_spend_policy}'.")
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._client = client or httpx.Client(timeout=httpx.Timeout(self.timeout, connect=10.0))
        self.sleep = sleep
        self.clock = clock

    def close(self) -> None:
        self._client.close()

    def plan(self, size: int) -> BatchPlan:
        return plan_batches(size, self.batch_size, self.element_ceiling)

    def projected_cost(self, plan: BatchPlan) -> float:
        return estimate_cost(plan.total_elements, self.cost_per_1000)

    def compute(
        self,
        points: Sequence[tuple[float, float]],
        mode: DepartureMode = DepartureMode.NOW,
        *,
        cancel_event: threading.Event | None = None,
    ) -> BatchedRunResult:
        """Run every batch of the plan for ``points`` given as (lat, lng)."""
        size = len(points)
        plan = self.plan(size)
        cost = self.projected_cost(plan)
        self.ledger.check(cost, self.monthly_limit, self.clock())

        departure = departure_time(mode, self.clock())
        durations = empty_matrix(size)
        distances = empty_matrix(size)
        billed_elements = 0
        unavailable = 0

        logger.info(
            f"{size} communes -> {plan.total_elements} elements in {len(plan)} batches "
            f"({self.batch_size}x{self.batch_size} max), estimated cost ${cost:.2f}, mode: {mode.description}"
        )
        for batch in plan:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Run cancelled before batch {batch.number}/{len(plan)}; nothing recorded")
                raise RunCancelled(f"Cancelled after {batch.number - 1} of {len(plan)} batches.")

            logger.info(f"Batch {batch.number}/{len(plan)}: {batch.elements} elements")
            try:
                payload = self._request_batch(batch, points, departure)
                unavailable += self._fill(batch, payload, durations, distances)
            except BatchFailure as exc:
                logger.error(f"Aborting run: {exc}")
                self._settle_partial_spend(billed_elements, mode)
                raise
            billed_elements += batch.elements

            if batch.number < len(plan):
                self.sleep(self.delay_seconds)

        if unavailable:
            logger.warning(f"{unavailable} origin/destination pairs had no route; stored as null")
        return BatchedRunResult(
            matrix=MatrixResult(
                durations=force_zero_diagonal(durations),
                distances=force_zero_diagonal(distances),
            ),
            plan=plan,
            mode=mode,
            departure=departure,
            elements=billed_elements,
            cost=estimate_cost(billed_elements, self.cost_per_1000),
            unavailable_cells=unavailable,
        )

    def record_run(self, result: BatchedRunResult, output: str) -> LedgerEntry:
        """Write the single ledger entry for a completed run."""
        return self.ledger.record(
            elements=result.elements,
            cost=result.cost,
            mode=result.mode.ledger_mode,
            output=output,
        )

    def _settle_partial_spend(self, billed_elements: int, mode: DepartureMode) -> Optional[LedgerEntry]:
        if self.partial_spend_policy != "record_partial" or billed_elements == 0:
            return None
        return self.ledger.record(
            elements=billed_elements,
            cost=estimate_cost(billed_elements, self.cost_per_1000),
            mode=f"{mode.ledger_mode}:partial",
            output=None,
        )

    def _redact(self, message: str) -> str:
        return message.replace(self.api_key, "***") if self.api_key else message

    def _request_batch(self, batch: Batch, points: Sequence[tuple[float, float]], departure: int | str) -> dict:
        params = {
            "origins": "|".join(f"{points[i][0]},{points[i][1]}" for i in batch.origins),
            "destinations": "|".join(f"{points[j][0]},{points[j][1]}" for j in batch.destinations),
            "mode": "driving",
            "language": self.language,
            "departure_time": str(departure),
            "key": self.api_key,
        }
        try:
            response = self._client.get(self.base_url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as exc:
            raise BatchFailure(batch.number, f"request timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise BatchFailure(batch.number, self._redact(f"transport error: {exc}")) from exc
        except ValueError as exc:
            raise BatchFailure(batch.number, "response is not valid JSON") from exc

        if not isinstance(data, dict):
            raise BatchFailure(batch.number, "response is not a JSON object")
        if data.get("status") != "OK":
            detail = data.get("error_message") or ""
            raise BatchFailure(batch.number, self._redact(f"Google API error {data.get('status')} {detail}".strip()))
        rows = data.get("rows")
        if not _rows_match(rows, len(batch.origins), len(batch.destinations)):
            raise BatchFailure(batch.number, "response shape does not match the requested batch")
        return data

    @staticmethod
    def _fill(batch: Batch, payload: dict, durations: list, distances: list) -> int:
        """Copy one batch into the global matrices; returns the count of unavailable cells."""
        unavailable = 0
        for local_i, global_i in enumerate(batch.origins):
            elements = payload["rows"][local_i]["elements"]
            for local_j, global_j in enumerate(batch.destinations):
                element = elements[local_j]
                if element.get("status") != "OK":
                    if global_i != global_j:
                        unavailable += 1
                    continue
                duration = _element_value(batch, element, "duration_in_traffic") or _element_value(batch, element, "duration")
                distance = _element_value(batch, element, "distance")
                if duration is None or distance is None:
                    if global_i != global_j:
                        unavailable += 1
                    continue
                durations[global_i][global_j] = seconds_to_minutes(duration)
                distances[global_i][global_j] = meters_to_km(distance)
        return unavailable
