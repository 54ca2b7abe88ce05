"""Departure time selection for traffic-aware Distance Matrix runs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from ...config import settings


class DepartureMode(str, Enum):
    NOW = "now"
    MORNING = "morning"
    EVENING = "evening"

    @property
    def ledger_mode(self) -> str:
        return {"now": "realtime", "morning": "morning_rush", "evening": "evening_rush"}[self.value]

    @property
    def description(self) -> str:
        return {
            "now": "current traffic",
            "morning": f"morning rush ({settings.morning_departure_hour}h)",
            "evening": f"evening rush ({settings.evening_departure_hour}h)",
        }[self.value]

    @property
    def file_suffix(self) -> str:
        return "" if self is DepartureMode.NOW else f"-{self.value}"


def next_weekday(moment: datetime) -> datetime:
    """The first Monday-Friday date strictly after ``moment``."""
    candidate = moment + timedelta(days=1)
    while candidate.weekday() >= 5:
        candidate += timedelta(days=1)
    return candidate


def departure_time(
    mode: DepartureMode,
    now: datetime | None = None,
    *,
    utc_offset_hours: int | None = None,
) -> int | str:
    """``"now"`` or a unix timestamp for the next weekday at the mode's local hour."""
    if mode is DepartureMode.NOW:
        return "now"
    offset = settings.local_utc_offset_hours if utc_offset_hours is None else utc_offset_hours
    local_tz = timezone(timedelta(hours=offset))
    local_now = (now or datetime.now(timezone.utc)).astimezone(local_tz)
    hour = settings.morning_departure_hour if mode is DepartureMode.MORNING else settings.evening_departure_hour
    target = next_weekday(local_now).replace(hour=hour, minute=0, second=0, microsecond=0)
    return int(target.timestamp())


def departure_label(value: int | str) -> str:
    if isinstance(value, int):
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    return value
