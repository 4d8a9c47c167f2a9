from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any


def iso(v: date | datetime | None) -> str | None:
    return v.isoformat() if v is not None else None


def money(v: float | None) -> float:
    return round(float(v or 0.0), 2)


def clamp_limit(limit: int | None, default: int = 50, maximum: int = 200) -> int:
    if limit is None:
        return default
    return max(1, min(maximum, int(limit)))


def like(term: str) -> str:
    return f"%{term.strip().lower()}%"


def apply_updates(row: Any, data: dict[str, Any], allowed: tuple[str, ...]) -> list[str]:
    """Copy known, non-None keys onto row. Returns the changed field names."""
    changed = []
    for k in allowed:
        if k in data and data[k] is not None and getattr(row, k) != data[k]:
            setattr(row, k, data[k])
            changed.append(k)
    return changed


def naive(v: datetime | None) -> datetime | None:
    """Convert aware values to UTC and drop tzinfo; the database stores naive UTC."""
    if v is None or v.tzinfo is None:
        return v
    return v.astimezone(timezone.utc).replace(tzinfo=None)
