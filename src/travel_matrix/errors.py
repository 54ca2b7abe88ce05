"""Error taxonomy for matrix computation and serving."""

from __future__ import annotations


class TravelMatrixError(Exception):
    """Base class for every failure that should end a pipeline run."""


class ConfigurationError(TravelMatrixError, ValueError):
    """A required setting or credential is missing or malformed."""


class BudgetExceededError(TravelMatrixError):
    """The projected spend would push the month over its limit."""

    def __init__(self, spent: float, projected_cost: float, limit: float) -> None:
        self.spent = spent
        self.projected_cost = projected_cost
        self.limit = limit
        super().__init__(
            f"Budget limit: this run would bring monthly spend to ${spent + projected_cost:.2f}, "
            f"exceeding the ${limit:.2f} limit "
            f"(spent this month: ${spent:.2f}, this run: ${projected_cost:.2f})."
        )


class SnapFailure(TravelMatrixError):
    """A single nearest-road lookup failed. Callers degrade to the raw centroid."""


class BulkMatrixFailure(TravelMatrixError, ConnectionError):
    """The single bulk OSRM table call did not succeed."""


class BatchFailure(TravelMatrixError, ConnectionError):
    """One paid Distance Matrix batch failed at the transport or service level."""

    def __init__(self, batch_number: int, message: str) -> None:
        self.batch_number = batch_number
        super().__init__(f"Batch {batch_number}: {message}")


class RunCancelled(TravelMatrixError):
    """A cancellation signal stopped a batched run between two calls."""


class SessionStateError(TravelMatrixError):
    """A serving-session transition was requested from the wrong state."""
