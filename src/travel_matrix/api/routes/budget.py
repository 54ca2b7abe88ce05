"""Distance Matrix budget endpoint."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings
from ...persistence.ledger import BudgetLedger, month_key, utc_now

router = APIRouter(prefix="/budget", tags=["budget"])


def get_ledger() -> BudgetLedger:
    return BudgetLedger()


@router.get("", status_code=status.HTTP_200_OK)
def current_budget() -> dict:
    ledger = get_ledger()
    now = utc_now()
    spent = ledger.monthly_spend(now)
    return {
        "month": month_key(now),
        "spent": round(spent, 2),
        "limit": settings.monthly_budget_limit,
        "remaining": round(max(settings.monthly_budget_limit - spent, 0.0), 2),
        "runs": len(ledger.entries()),
    }
