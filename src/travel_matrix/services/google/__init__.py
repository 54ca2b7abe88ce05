"""Google Distance Matrix batching under a monthly budget."""

from .batching import Batch, BatchPlan, plan_batches
from .client import BatchedRunResult, BudgetedBatchMatrixClient, RunPreview, preview_run
from .departure import DepartureMode

__all__ = [
    "Batch",
    "BatchPlan",
    "BatchedRunResult",
    "BudgetedBatchMatrixClient",
    "DepartureMode",
    "RunPreview",
    "plan_batches",
    "preview_run",
]
