"""Append-only usage ledger enforcing the monthly Distance Matrix budget."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from ..config import settings
from ..errors import BudgetExceededError
from ..schemas.artifact import LedgerDocument, LedgerEntry
from .filesystem import FileStorage

logger = logging.getLogger(__name__)

_LEDGER_LOCK = threading.Lock()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_key(moment: datetime) -> str:
    """Year-month prefix (``2026-10``) matched against ISO entry dates."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m")


def estimate_cost(elements: int, cost_per_1000: float) -> float:
    return elements * cost_per_1000 / 1000


class BudgetLedger:
    """Reads and appends billed runs; monthly spend is always recomputed from entries."""

    def __init__(
        self,
        path: Path | None = None,
        storage: FileStorage | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.storage = storage or FileStorage()
        self.path = self.storage.resolve(path or settings.budget_ledger_file)
        self.clock = clock

    def load(self) -> LedgerDocument:
        if not self.path.exists():
            return LedgerDocument()
        return LedgerDocument.model_validate(self.storage.read_json(self.path))

    def entries(self) -> list[LedgerEntry]:
        return list(self.load().runs)

    def monthly_spend(self, now: datetime | None = None) -> float:
        key = month_key(now or self.clock())
        return sum(entry.cost for entry in self.entries() if entry.date.startswith(key))

    def check(self, projected_cost: float, limit: float, now: datetime | None = None) -> float:
        """Raise ``BudgetExceededError`` if the run would exceed ``limit``; return current spend."""
        spent = self.monthly_spend(now)
        logger.info(
            f"Monthly spend so far: ${spent:.2f}; projected after this run: "
            f"${spent + projected_cost:.2f} / ${limit:.2f}"
        )
        if spent + projected_cost > limit:
            raise BudgetExceededError(spent=spent, projected_cost=projected_cost, limit=limit)
        return spent

    def record(self, *, elements: int, cost: float, mode: str, output: str | None) -> LedgerEntry:
        """Append one run. The read-modify-write happens under a lock and lands atomically."""
        entry = LedgerEntry(
            date=self.clock().astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
            elements=elements,
            cost=cost,
            mode=mode,
            output=output,
        )
        with _LEDGER_LOCK:
            document = self.load()
            document.runs.append(entry)
            self.storage.write_json(self.path, document.model_dump())
        logger.info(f"Ledger updated: {elements} elements, ${cost:.2f} ({mode})")
        return entry
