from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studiocrm.db.database import get_db
from studiocrm.routers.deps import require_admin
from studiocrm.schemas.agent import ChatIn, ReviewIn
from studiocrm.services import shadow

router = APIRouter(tags=["agent-shadow"])


@router.post("/agent/shadow/chat")
async def shadow_chat(payload: ChatIn, db: Session = Depends(get_db), admin=Depends(require_admin)):
    result = await shadow.run_shadow(db, admin, payload.message, session_id=payload.session_id)
    return {"ok": True, **result}


@router.get("/agent/shadow/stats")
def shadow_stats(db: Session = Depends(get_db), admin=Depends(require_admin)):
    return {"ok": True, "stats": shadow.shadow_stats(db)}


@router.get("/agent/shadow/diffs")
def list_diffs(
    limit: int = Query(default=50, ge=1, le=200),
    only_mismatches: bool = False,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    rows = shadow.list_diffs(db, limit=limit, only_mismatches=only_mismatches)
    return {"ok": True, "diffs": [shadow.diff_to_dict(r) for r in rows]}


@router.post("/agent/shadow/diffs/{diff_id}/review")
def review_diff(diff_id: int, payload: ReviewIn, db: Session = Depends(get_db), admin=Depends(require_admin)):
    row = shadow.review_diff(db, diff_id, payload.notes)
    return {"ok": True, "diff": shadow.diff_to_dict(row)}
