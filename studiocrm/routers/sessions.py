from datetime import date, datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studiocrm.db import sessions_crud
from studiocrm.db.database import get_db
from studiocrm.db.utils import naive
from studiocrm.routers.deps import get_current_user, require_writer
from studiocrm.schemas.sessions import SessionCancelIn, SessionCreateIn, SessionUpdateIn

router = APIRouter(tags=["sessions"])


@router.get("/sessions")
def list_sessions(
    start: datetime | None = None,
    end: datetime | None = None,
    status: str | None = None,
    client_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    rows = sessions_crud.list_sessions(
        db, start=naive(start), end=naive(end), status=status, client_id=client_id, limit=limit
    )
    return {"ok": True, "sessions": [sessions_crud.to_public_dict(s) for s in rows]}


@router.get("/sessions/available-slots")
def available_slots(
    day: date,
    duration_minutes: int = Query(default=60, ge=15, le=12 * 60),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    slots = sessions_crud.available_slots(db, day, duration_minutes=duration_minutes)
    return {"ok": True, "day": day.isoformat(), "slots": slots}


@router.get("/sessions/{session_id}")
def get_session(session_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"ok": True, "session": sessions_crud.to_public_dict(sessions_crud.get_session(db, session_id))}


@router.post("/sessions")
def create_session(payload: SessionCreateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    row = sessions_crud.create_session(db, payload.model_dump(exclude_none=True))
    return {"ok": True, "session": sessions_crud.to_public_dict(row)}


@router.patch("/sessions/{session_id}")
def update_session(session_id: int, payload: SessionUpdateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    row = sessions_crud.update_session(db, session_id, payload.model_dump(exclude_none=True))
    return {"ok": True, "session": sessions_crud.to_public_dict(row)}


@router.post("/sessions/{session_id}/cancel")
def cancel_session(session_id: int, payload: SessionCancelIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    row = sessions_crud.cancel_session(db, session_id, payload.reason)
    return {"ok": True, "session": sessions_crud.to_public_dict(row)}
