from __future__ import annotations
from datetime import date, datetime, timezone

def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

def now_local() -> datetime:
    # Pickup slots and daily tokens follow the canteen's wall clock
    return datetime.now()

def fmt_dt(dt: datetime) -> str:
    # Render in a human-friendly format (server local time)
    return dt.strftime("%Y-%m-%d %H:%M")

def date_key(day: date) -> str:
    return day.strftime("%Y%m%d")

def rupees(v: float | None) -> str:
    if v is None:
        return "-"
    return f"₹{v:.2f}"
