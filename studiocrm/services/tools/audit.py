"""Audit trail for ToolBus calls and shadow-mode comparisons.

Writes go through their own short-lived session so a failing tool
transaction never takes its audit row down with it. Audit failures are
logged and swallowed; they must not break the agent.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from studiocrm.core.logging_setup import get_logger
from studiocrm.db.database import SessionLocal
from studiocrm.db.models import AgentAudit, AgentAuditDiff
from studiocrm.db.utils import iso

LOG = get_logger(__name__)

# Stored results are truncated; the audit table is not a data warehouse
MAX_RESULT_CHARS = 8000


def _json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def log_tool_call(
    *,
    tool: str,
    args: dict[str, Any],
    ok: bool,
    session_id: str | None = None,
    result: Any = None,
    error: str | None = None,
    duration_ms: int | None = None,
    simulated: bool = False,
) -> None:
    db: Session = SessionLocal()
    try:
        result_json = _json(result) if result is not None else None
        if result_json and len(result_json) > MAX_RESULT_CHARS:
            result_json = result_json[:MAX_RESULT_CHARS]
        db.add(
            AgentAudit(
                session_id=session_id,
                tool=tool,
                args_json=_json(args),
                result_json=result_json,
                ok=ok,
                error=error,
                duration_ms=duration_ms,
                simulated=simulated,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        LOG.exception("Failed to write audit row for tool=%s", tool)
    finally:
        db.close()


def get_session_audit(db: Session, session_id: str) -> list[dict[str, Any]]:
    rows = (
        db.query(AgentAudit)
        .filter(AgentAudit.session_id == session_id)
        .order_by(AgentAudit.id.asc())
        .all()
    )
    return [
        {
            "id": r.id,
            "tool": r.tool,
            "args": json.loads(r.args_json),
            "ok": r.ok,
            "error": r.error,
            "duration_ms": r.duration_ms,
            "simulated": r.simulated,
            "created_at": iso(r.created_at),
        }
        for r in rows
    ]


def get_audit_stats(db: Session, since: datetime | None = None) -> dict[str, Any]:
    q = db.query(AgentAudit)
    if since is not None:
        q = q.filter(AgentAudit.created_at >= since)
    total = q.count()
    successful = q.filter(AgentAudit.ok.is_(True)).count()
    avg = q.with_entities(func.avg(AgentAudit.duration_ms)).scalar()

    usage_q = db.query(AgentAudit.tool, func.count(AgentAudit.id))
    if since is not None:
        usage_q = usage_q.filter(AgentAudit.created_at >= since)
    usage = usage_q.group_by(AgentAudit.tool).order_by(func.count(AgentAudit.id).desc()).all()

    return {
        "total": total,
        "successful": successful,
        "failed": total - successful,
        "success_rate": round(successful / total * 100, 1) if total else 0.0,
        "avg_duration_ms": int(avg) if avg is not None else 0,
        "tool_usage": {tool: count for tool, count in usage},
    }


def log_shadow_diff(
    *,
    session_id: str,
    user_message: str,
    v1_text: str | None,
    v1_tools: list[str],
    v2_plan: Any,
    v2_results: Any,
    match: bool,
    mismatch_reasons: list[str],
    v1_error: str | None = None,
    v2_error: str | None = None,
    v1_duration_ms: int | None = None,
    v2_duration_ms: int | None = None,
) -> int | None:
    db: Session = SessionLocal()
    try:
        row = AgentAuditDiff(
            session_id=session_id,
            user_message=user_message,
            v1_text=v1_text,
            v1_tools=v1_tools,
            v2_plan_json=_json(v2_plan),
            v2_results_json=_json(v2_results),
            match=match,
            mismatch_reasons=mismatch_reasons,
            v1_error=v1_error,
            v2_error=v2_error,
            v1_duration_ms=v1_duration_ms,
            v2_duration_ms=v2_duration_ms,
        )
        db.add(row)
        db.commit()
        return row.id
    except Exception:
        db.rollback()
        LOG.exception("Failed to write shadow diff for session=%s", session_id)
        return None
    finally:
        db.close()
