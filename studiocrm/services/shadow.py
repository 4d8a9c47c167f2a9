"""Shadow mode: run the legacy agent for real and the ToolBus agent as a dry run.

The caller only ever sees the V1 reply. Each comparison is stored in
``agent_audit_diff`` for review before V2 is switched on.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable

from sqlalchemy import func
from sqlalchemy.orm import Session

from studiocrm.core.logging_setup import get_logger
from studiocrm.db.database import SessionLocal
from studiocrm.db.errors import CrmNotFound
from studiocrm.db.models import AdminUser, AgentAuditDiff
from studiocrm.db.utils import clamp_limit, iso
from studiocrm.services import agent
from studiocrm.services.tools.audit import log_shadow_diff

LOG = get_logger(__name__)


@dataclass
class RunOutcome:
    reply: agent.AgentReply | None
    error: str | None
    duration_ms: int

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def tools(self) -> set[str]:
        return set(self.reply.tool_names) if self.reply else set()

    @property
    def succeeded(self) -> bool:
        if self.failed or self.reply is None:
            return False
        return all(c.get("ok") for c in self.reply.tool_calls)


async def _timed(coro: Awaitable[agent.AgentReply]) -> RunOutcome:
    start = time.perf_counter()
    try:
        reply = await coro
        error = reply.error
    except Exception as e:
        LOG.exception("Shadow run failed")
        reply, error = None, f"{e.__class__.__name__}: {e}"
    return RunOutcome(reply=reply, error=error, duration_ms=int((time.perf_counter() - start) * 1000))


def compare_runs(v1: RunOutcome, v2: RunOutcome) -> tuple[bool, list[str]]:
    """Returns (match, reasons). Reasons: error, outcome, tools."""
    reasons: list[str] = []
    if v1.failed != v2.failed:
        reasons.append("error")
    if not v1.failed and not v2.failed:
        if v1.succeeded != v2.succeeded:
            reasons.append("outcome")
        if v1.tools != v2.tools:
            reasons.append("tools")
    return not reasons, reasons


async def _run_v2_isolated(user_id: int | None, message: str, session_id: str) -> agent.AgentReply:
    db = SessionLocal()
    try:
        user = db.get(AdminUser, user_id) if user_id is not None else None
        return await agent.run_agent_v2(db, user, message, session_id=session_id, dry_run=True)
    finally:
        db.close()


async def run_shadow(
    db: Session, user: AdminUser | None, message: str, *, session_id: str | None = None
) -> dict[str, Any]:
    sid = session_id or agent._new_session_id()
    user_id = user.id if user else None

    v1, v2 = await asyncio.gather(
        _timed(agent.run_agent_v1(db, user, message, session_id=sid)),
        _timed(_run_v2_isolated(user_id, message, f"{sid}_v2")),
    )
    match, reasons = compare_runs(v1, v2)
    if not match:
        LOG.info("Shadow mismatch session=%s reasons=%s", sid, ",".join(reasons))

    log_shadow_diff(
        session_id=sid,
        user_message=message,
        v1_text=v1.reply.text if v1.reply else None,
        v1_tools=sorted(v1.tools),
        v2_plan=v2.reply.plan if v2.reply else None,
        v2_results=v2.reply.tool_calls if v2.reply else [],
        match=match,
        mismatch_reasons=reasons,
        v1_error=v1.error,
        v2_error=v2.error,
        v1_duration_ms=v1.duration_ms,
        v2_duration_ms=v2.duration_ms,
    )

    return {
        "message": v1.reply.text if v1.reply else agent.UNAVAILABLE_TEXT,
        "session_id": sid,
        "shadow_mode": True,
        "tool_calls": v1.reply.tool_calls if v1.reply else [],
        "v1_duration_ms": v1.duration_ms,
        "v2_duration_ms": v2.duration_ms,
    }


def shadow_stats(db: Session) -> dict[str, Any]:
    total = db.query(func.count(AgentAuditDiff.id)).scalar() or 0
    matches = db.query(func.count(AgentAuditDiff.id)).filter(AgentAuditDiff.match.is_(True)).scalar() or 0
    v1_errors = db.query(func.count(AgentAuditDiff.id)).filter(AgentAuditDiff.v1_error.isnot(None)).scalar() or 0
    v2_errors = db.query(func.count(AgentAuditDiff.id)).filter(AgentAuditDiff.v2_error.isnot(None)).scalar() or 0
    reviewed = db.query(func.count(AgentAuditDiff.id)).filter(AgentAuditDiff.reviewed.is_(True)).scalar() or 0
    avg_v1, avg_v2 = db.query(func.avg(AgentAuditDiff.v1_duration_ms), func.avg(AgentAuditDiff.v2_duration_ms)).one()
    return {
        "total_comparisons": total,
        "matches": matches,
        "mismatches": total - matches,
        "match_rate": round(matches / total * 100, 1) if total else 0.0,
        "v1_errors": v1_errors,
        "v2_errors": v2_errors,
        "reviewed": reviewed,
        "avg_v1_duration_ms": int(avg_v1 or 0),
        "avg_v2_duration_ms": int(avg_v2 or 0),
    }


def diff_to_dict(row: AgentAuditDiff) -> dict[str, Any]:
    return {
        "id": row.id,
        "session_id": row.session_id,
        "user_message": row.user_message,
        "v1_text": row.v1_text,
        "v1_tools": row.v1_tools or [],
        "v2_plan": json.loads(row.v2_plan_json) if row.v2_plan_json else None,
        "v2_results": json.loads(row.v2_results_json) if row.v2_results_json else [],
        "match": row.match,
        "mismatch_reasons": row.mismatch_reasons or [],
        "v1_error": row.v1_error,
        "v2_error": row.v2_error,
        "v1_duration_ms": row.v1_duration_ms,
        "v2_duration_ms": row.v2_duration_ms,
        "reviewed": row.reviewed,
        "notes": row.notes,
        "created_at": iso(row.created_at),
    }


def list_diffs(db: Session, *, limit: int | None = None, only_mismatches: bool = False) -> list[AgentAuditDiff]:
    q = db.query(AgentAuditDiff)
    if only_mismatches:
        q = q.filter(AgentAuditDiff.match.is_(False))
    return q.order_by(AgentAuditDiff.created_at.desc(), AgentAuditDiff.id.desc()).limit(clamp_limit(limit)).all()


def review_diff(db: Session, diff_id: int, notes: str | None = None) -> AgentAuditDiff:
    row = db.get(AgentAuditDiff, diff_id)
    if row is None:
        raise CrmNotFound("shadow diff", diff_id)
    row.reviewed = True
    if notes:
        row.notes = notes
    db.commit()
    db.refresh(row)
    return row
