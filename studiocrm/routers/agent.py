from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from studiocrm.core.config import settings
from studiocrm.core.logging_setup import get_logger
from studiocrm.db.database import get_db
from studiocrm.db.models import utcnow
from studiocrm.routers.deps import get_current_user, require_admin
from studiocrm.schemas.agent import ChatIn, ConfirmIn
from studiocrm.services import agent, shadow
from studiocrm.services.tools import tool_bus
from studiocrm.services.tools.audit import get_audit_stats
from studiocrm.services.tools.guardrails import explain_guardrail, scopes_for_role

LOG = get_logger(__name__)
router = APIRouter(tags=["agent"])


def _error(e: Exception) -> JSONResponse:
    if isinstance(e, PermissionError):
        return JSONResponse(status_code=403, content={"detail": str(e)})
    if isinstance(e, LookupError):
        return JSONResponse(status_code=404, content={"detail": str(e)})
    return JSONResponse(status_code=400, content={"detail": str(e)})


@router.post("/agent/chat")
async def chat_v1(payload: ChatIn, db: Session = Depends(get_db), user=Depends(get_current_user)):
    if settings.AGENT_V2_SHADOW:
        result = await shadow.run_shadow(db, user, payload.message, session_id=payload.session_id)
        return {"ok": True, **result}
    try:
        reply = await agent.run_agent_v1(db, user, payload.message, session_id=payload.session_id)
    except PermissionError as e:
        return _error(e)
    return {"ok": True, "message": reply.text, "session_id": reply.session_id, "tool_calls": reply.tool_calls}


@router.post("/agent/v2/chat")
async def chat_v2(payload: ChatIn, db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        reply = await agent.run_agent_v2(db, user, payload.message, session_id=payload.session_id, mode=payload.mode)
    except PermissionError as e:
        return _error(e)
    return {"ok": True, **reply.to_dict()}


@router.post("/agent/v2/confirm")
async def confirm(payload: ConfirmIn, db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        reply = await agent.confirm_pending(db, user, payload.session_id)
    except (LookupError, PermissionError, ValueError) as e:
        return _error(e)
    return {"ok": True, **reply.to_dict()}


@router.get("/agent/v2/session/{session_id}")
def get_session(session_id: str, db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        detail = agent.session_detail(db, session_id, user)
    except (LookupError, PermissionError) as e:
        return _error(e)
    return {"ok": True, "session": detail}


@router.get("/agent/v2/tools")
def list_tools(db: Session = Depends(get_db), user=Depends(get_current_user)):
    scopes = scopes_for_role(user.role)
    mode = agent.resolve_mode(user.role, None)
    return {
        "ok": True,
        "mode": mode,
        "scopes": scopes,
        "tools": [
            {
                "name": t.name,
                "description": t.description,
                "category": t.category,
                "risk": t.risk,
                "authz": t.authz,
                "side_effects": t.side_effects,
                "note": explain_guardrail(mode, t.risk, t.name),
            }
            for t in tool_bus.list_tools(scopes)
        ],
    }


@router.get("/agent/v2/stats")
def bus_stats(user=Depends(get_current_user)):
    return {"ok": True, "stats": tool_bus.get_stats()}


@router.get("/agent/v2/audit/stats")
def audit_stats(
    hours: int | None = Query(default=None, ge=1, le=24 * 90),
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    since = utcnow() - timedelta(hours=hours) if hours else None
    return {"ok": True, "stats": get_audit_stats(db, since)}
