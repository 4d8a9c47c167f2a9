from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from studiocrm.core.config import settings
from studiocrm.db import clients_crud
from studiocrm.db.errors import CrmError, CrmNotFound
from studiocrm.db.models import PhotographySession, utcnow
from studiocrm.db.utils import apply_updates, clamp_limit, iso, money, naive

SESSION_FIELDS = ("title", "session_type", "status", "client_id", "location", "notes", "price", "voucher_code")
SESSION_STATUSES = ("scheduled", "confirmed", "completed", "cancelled", "no_show")
SESSION_TYPES = ("family", "newborn", "maternity", "baby", "portrait", "business", "wedding", "event", "other")


def list_sessions(
    db: Session,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    status: str | None = None,
    client_id: int | None = None,
    limit: int | None = None,
) -> list[PhotographySession]:
    q = db.query(PhotographySession)
    if start is not None:
        q = q.filter(PhotographySession.end_time > start)
    if end is not None:
        q = q.filter(PhotographySession.start_time < end)
    if status:
        q = q.filter(PhotographySession.status == status)
    if client_id is not None:
        q = q.filter(PhotographySession.client_id == client_id)
    return q.order_by(PhotographySession.start_time.asc()).limit(clamp_limit(limit)).all()


def get_session(db: Session, session_id: int) -> PhotographySession:
    row = db.get(PhotographySession, session_id)
    if row is None:
        raise CrmNotFound("session", session_id)
    return row


def find_conflicts(
    db: Session, start: datetime, end: datetime, *, exclude_id: int | None = None
) -> list[PhotographySession]:
    q = db.query(PhotographySession).filter(
        PhotographySession.status != "cancelled",
        PhotographySession.start_time < end,
        PhotographySession.end_time > start,
    )
    if exclude_id is not None:
        q = q.filter(PhotographySession.id != exclude_id)
    return q.all()


def _resolve_window(data: dict[str, Any], current: PhotographySession | None = None) -> tuple[datetime, datetime]:
    start = naive(data.get("start_time")) or (current.start_time if current else None)
    if start is None:
        raise CrmError("start_time is required")
    end = naive(data.get("end_time"))
    if end is None and data.get("duration_minutes"):
        end = start + timedelta(minutes=int(data["duration_minutes"]))
    if end is None and current is not None:
        end = start + (current.end_time - current.start_time)
    if end is None:
        raise CrmError("end_time or duration_minutes is required")
    if end <= start:
        raise CrmError("end_time must be after start_time")
    return start, end


def _check_enums(data: dict[str, Any]) -> None:
    if data.get("status") and data["status"] not in SESSION_STATUSES:
        raise CrmError(f"Unknown session status: {data['status']}")
    if data.get("session_type") and data["session_type"] not in SESSION_TYPES:
        raise CrmError(f"Unknown session type: {data['session_type']}")


def create_session(db: Session, data: dict[str, Any]) -> PhotographySession:
    if not (data.get("title") or "").strip():
        raise CrmError("title is required")
    if not data.get("session_type"):
        raise CrmError("session_type is required")
    _check_enums(data)
    start, end = _resolve_window(data)

    conflicts = find_conflicts(db, start, end)
    if conflicts:
        raise CrmError(f"Time slot conflicts with session {conflicts[0].id} ({conflicts[0].title})")

    client = clients_crud.get_client(db, data["client_id"]) if data.get("client_id") else None

    row = PhotographySession(status="scheduled", start_time=start, end_time=end)
    apply_updates(row, data, SESSION_FIELDS)
    db.add(row)
    if client is not None and (client.last_session_date is None or client.last_session_date < start):
        client.last_session_date = start
    db.commit()
    db.refresh(row)
    return row


def update_session(db: Session, session_id: int, data: dict[str, Any]) -> PhotographySession:
    row = get_session(db, session_id)
    _check_enums(data)
    if data.get("client_id"):
        clients_crud.get_client(db, data["client_id"])

    new_status = data.get("status") or row.status
    moved = any(data.get(k) is not None for k in ("start_time", "end_time", "duration_minutes"))
    reactivated = row.status == "cancelled" and new_status != "cancelled"
    if moved or reactivated:
        start, end = _resolve_window(data, row) if moved else (row.start_time, row.end_time)
        conflicts = find_conflicts(db, start, end, exclude_id=row.id)
        if conflicts and new_status != "cancelled":
            raise CrmError(f"Time slot conflicts with session {conflicts[0].id} ({conflicts[0].title})")
        row.start_time = start
        row.end_time = end

    apply_updates(row, data, SESSION_FIELDS)
    row.updated_at = utcnow()
    db.commit()
    db.refresh(row)
    return row


def cancel_session(db: Session, session_id: int, reason: str | None = None) -> PhotographySession:
    row = get_session(db, session_id)
    if row.status == "completed":
        raise CrmError("Completed sessions cannot be cancelled")
    row.status = "cancelled"
    if reason:
        row.notes = f"{row.notes}\nCancelled: {reason}" if row.notes else f"Cancelled: {reason}"
    row.updated_at = utcnow()
    db.commit()
    db.refresh(row)
    return row


def count_sessions(db: Session, *, status: str | None = None, upcoming_only: bool = False) -> int:
    q = db.query(func.count(PhotographySession.id))
    if status:
        q = q.filter(PhotographySession.status == status)
    if upcoming_only:
        q = q.filter(PhotographySession.start_time >= utcnow(), PhotographySession.status != "cancelled")
    return int(q.scalar() or 0)


def available_slots(
    db: Session, day: date, *, duration_minutes: int = 60, step_minutes: int = 30
) -> list[dict[str, str]]:
    """Free start times on ``day`` inside working hours, for a session of the given length."""
    if duration_minutes <= 0:
        raise CrmError("duration_minutes must be positive")
    day_start = datetime.combine(day, time(hour=settings.WORKDAY_START_HOUR))
    day_end = datetime.combine(day, time(hour=settings.WORKDAY_END_HOUR))
    booked = list_sessions(db, start=day_start, end=day_end, limit=200)
    booked = [b for b in booked if b.status != "cancelled"]

    slots = []
    length = timedelta(minutes=duration_minutes)
    cursor = day_start
    while cursor + length <= day_end:
        slot_end = cursor + length
        if not any(b.start_time < slot_end and b.end_time > cursor for b in booked):
            slots.append({"start_time": cursor.isoformat(), "end_time": slot_end.isoformat()})
        cursor += timedelta(minutes=step_minutes)
    return slots


def to_public_dict(row: PhotographySession) -> dict[str, Any]:
    return {
        "id": row.id,
        "title": row.title,
        "session_type": row.session_type,
        "status": row.status,
        "start_time": iso(row.start_time),
        "end_time": iso(row.end_time),
        "duration_minutes": int((row.end_time - row.start_time).total_seconds() // 60),
        "client_id": row.client_id,
        "location": row.location,
        "notes": row.notes,
        "price": money(row.price) if row.price is not None else None,
        "voucher_code": row.voucher_code,
    }
