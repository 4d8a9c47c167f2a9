"""Agent runners.

V1 is the legacy loop: the model gets every registered tool and calls go
through the registry without guardrails. V2 plans once against the tools the
user's scopes allow, executes through the ToolBus, stops for confirmation
when a guardrail asks for it, then summarises.
"""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from studiocrm.core.config import settings
from studiocrm.core.logging_setup import get_logger
from studiocrm.db.models import AdminUser, AgentMessage, AgentSession, utcnow
from studiocrm.db.settings_crud import get_studio_settings
from studiocrm.db.utils import iso
from studiocrm.services import llm
from studiocrm.services.tools import execute_tool_call, surface_tool_errors, tool_bus, tool_registry
from studiocrm.services.tools.audit import get_session_audit
from studiocrm.services.tools.bus import CONFIRM_KEY
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.guardrails import MODES, recommended_mode, scopes_for_role

LOG = get_logger(__name__)

UNAVAILABLE_TEXT = "The assistant is unavailable right now. Please try again in a moment."

_SYSTEM_PROMPT = (
    "You are the studio assistant for {studio}, a photography studio. "
    "You help the team with leads, clients, invoices, photo sessions, galleries, vouchers and e-mail campaigns. "
    "Always use the tools to read or change CRM data; never invent records, numbers or codes. "
    "If a tool reports an error, say so plainly and suggest the next step. "
    "Amounts are in {currency}. Today is {today}. Answer in the language of the user."
)


@dataclass
class AgentReply:
    text: str
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    session_id: str | None = None
    confirm_required: dict[str, Any] | None = None
    plan: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @property
    def tool_names(self) -> list[str]:
        return [c["tool"] for c in self.tool_calls]


# --- helpers ----------------------------------------------------------------


def system_prompt(db: Session) -> str:
    studio = get_studio_settings(db)
    return _SYSTEM_PROMPT.format(
        studio=studio.studio_name, currency=studio.currency, today=utcnow().date().isoformat()
    )


def resolve_mode(role: str | None, requested: str | None) -> str:
    """Requested mode, but never more permissive than the role allows."""
    ceiling = recommended_mode(role)
    if requested not in MODES:
        requested = settings.AGENT_DEFAULT_MODE if settings.AGENT_DEFAULT_MODE in MODES else ceiling
    if MODES.index(requested) > MODES.index(ceiling):
        return ceiling
    return requested


_WORD = re.compile(r"[a-zäöüß]{3,}")


def rank_tools(message: str, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Order tool schemas by word overlap with the message, so the cap keeps the relevant ones."""
    words = set(_WORD.findall(message.lower()))
    # crude stemming so "invoices" meets "invoice"
    words |= {w[:-1] for w in words if w.endswith("s")}

    def score(tool: dict[str, Any]) -> int:
        fn = tool["function"]
        haystack = set(_WORD.findall(f"{fn['name'].replace('_', ' ')} {fn['description']}".lower()))
        return len(words & haystack)

    return sorted(tools, key=score, reverse=True)


def _new_session_id() -> str:
    return f"sess_{uuid.uuid4().hex}"


def _get_or_create_session(
    db: Session, session_id: str | None, user: AdminUser | None, *, mode: str, scopes: list[str], kind: str
) -> AgentSession:
    if session_id:
        row = db.get(AgentSession, session_id)
        if row is not None:
            if user is not None and row.user_id not in (None, user.id):
                raise PermissionError("Session belongs to another user")
            return row
    row = AgentSession(
        id=session_id or _new_session_id(),
        user_id=user.id if user else None,
        mode=mode,
        scopes=scopes,
        kind=kind,
    )
    db.add(row)
    db.commit()
    return row


def _history(row: AgentSession) -> list[dict[str, Any]]:
    return [{"role": m.role, "content": m.content} for m in row.messages if m.role in ("user", "assistant")]


def _append(db: Session, row: AgentSession, role: str, content: str, meta: dict[str, Any] | None = None) -> None:
    # JSON column: dates in tool args become ISO strings
    if meta is not None:
        meta = json.loads(json.dumps(meta, default=str))
    row.messages.append(AgentMessage(role=role, content=content, meta=meta))
    row.updated_at = utcnow()
    db.commit()


def _parse_args(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "{}")
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _tool_message(call_id: str | None, payload: dict[str, Any]) -> dict[str, Any]:
    return {"role": "tool", "tool_call_id": call_id, "content": json.dumps(payload, ensure_ascii=False, default=str)}


# --- V1 ---------------------------------------------------------------------


async def run_agent_v1(
    db: Session,
    user: AdminUser | None,
    message: str,
    *,
    session_id: str | None = None,
    persist: bool = True,
) -> AgentReply:
    role = user.role if user else None
    mode = resolve_mode(role, None)
    scopes = scopes_for_role(role)
    session = _get_or_create_session(db, session_id, user, mode=mode, scopes=scopes, kind="v1") if persist else None
    ctx = ToolContext(db=db, user=user, session_id=session.id if session else None, scopes=scopes, mode=mode)

    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt(db)}]
    if session is not None:
        messages += _history(session)
        _append(db, session, "user", message)
    messages.append({"role": "user", "content": message})
    tools = rank_tools(message, tool_registry.openai_tools())

    tool_calls: list[dict[str, Any]] = []
    outputs: list[dict[str, str]] = []
    text: str | None = None
    try:
        for _ in range(settings.AGENT_MAX_TOOL_ROUNDS):
            reply = await llm.chat_completion(messages, tools)
            calls = reply.get("tool_calls") or []
            if not calls:
                text = reply.get("content") or ""
                break
            messages.append({"role": "assistant", "content": reply.get("content") or "", "tool_calls": calls})
            for call in calls:
                out = await execute_tool_call(tool_registry, call, ctx)
                outputs.append(out)
                messages.append({"role": "tool", "tool_call_id": out["tool_call_id"], "content": out["output"]})
                parsed = json.loads(out["output"])
                tool_calls.append(
                    {
                        "tool": (call.get("function") or {}).get("name"),
                        "args": _parse_args((call.get("function") or {}).get("arguments")),
                        "ok": parsed.get("ok") is True,
                        "error": parsed.get("error") if parsed.get("ok") is not True else None,
                    }
                )
    except llm.LLMError as e:
        LOG.warning("V1 agent LLM failure: %s", e)
        return AgentReply(text=UNAVAILABLE_TEXT, tool_calls=tool_calls, error=str(e), session_id=ctx.session_id)

    if not text:
        text = surface_tool_errors(outputs) or "I could not complete that request. Please rephrase it."

    if session is not None:
        _append(db, session, "assistant", text, {"tools": [c["tool"] for c in tool_calls]})
    return AgentReply(text=text, tool_calls=tool_calls, session_id=ctx.session_id)


# --- V2 ---------------------------------------------------------------------


async def run_agent_v2(
    db: Session,
    user: AdminUser | None,
    message: str,
    *,
    session_id: str | None = None,
    mode: str | None = None,
    dry_run: bool = False,
) -> AgentReply:
    role = user.role if user else None
    mode = resolve_mode(role, mode)
    scopes = scopes_for_role(role)
    session = _get_or_create_session(
        db, session_id, user, mode=mode, scopes=scopes, kind="shadow" if dry_run else "v2"
    )
    ctx = ToolContext(db=db, user=user, session_id=session.id, scopes=scopes, mode=mode, dry_run=dry_run)

    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt(db)}]
    messages += _history(session)
    messages.append({"role": "user", "content": message})
    _append(db, session, "user", message)

    tools = rank_tools(message, tool_bus.list_openai_tools(scopes))
    try:
        planned = await llm.chat_completion(messages, tools)
    except llm.LLMError as e:
        LOG.warning("V2 agent planning failed: %s", e)
        _append(db, session, "assistant", UNAVAILABLE_TEXT, {"error": str(e)})
        return AgentReply(text=UNAVAILABLE_TEXT, error=str(e), session_id=session.id)

    calls = planned.get("tool_calls") or []
    if not calls:
        text = planned.get("content") or ""
        _append(db, session, "assistant", text)
        return AgentReply(text=text, session_id=session.id)

    plan = [
        {"tool": (c.get("function") or {}).get("name"), "args": _parse_args((c.get("function") or {}).get("arguments"))}
        for c in calls
    ]
    results: list[dict[str, Any]] = []
    tool_messages: list[dict[str, Any]] = []
    for call, step in zip(calls, plan):
        if step["args"] is None:
            res = {"tool": step["tool"], "args": None, "ok": False, "error": "bad_json_args", "code": "bad_json_args"}
        else:
            r = await tool_bus.execute_tool(ctx, step["tool"], step["args"])
            res = {"tool": step["tool"], "args": step["args"], **r.to_dict()}
        results.append(res)
        tool_messages.append(_tool_message(call.get("id"), res))

        if res.get("code") == "confirm_required":
            pending = res["data"]
            text = f"Please confirm before I continue: {pending['reason']}"
            _append(db, session, "assistant", text, {"pending": pending, "results": results})
            return AgentReply(
                text=text, tool_calls=results, session_id=session.id, confirm_required=pending, plan=plan
            )

    summary_messages = messages + [
        {"role": "assistant", "content": planned.get("content") or "", "tool_calls": calls},
        *tool_messages,
    ]
    try:
        final = await llm.chat_completion(summary_messages)
        text = final.get("content") or ""
        error = None
    except llm.LLMError as e:
        LOG.warning("V2 agent summary failed: %s", e)
        text = _fallback_summary(results)
        error = str(e)
    if not text:
        text = _fallback_summary(results)

    _append(db, session, "assistant", text, {"results": results})
    return AgentReply(text=text, tool_calls=results, error=error, session_id=session.id, plan=plan)


def _fallback_summary(results: list[dict[str, Any]]) -> str:
    lines = []
    for r in results:
        if r.get("ok"):
            lines.append(f"✅ {r['tool']}" + (" (simulated)" if r.get("simulated") else ""))
        else:
            lines.append(f"❌ {r['tool']}: {r.get('error')}")
    return "\n".join(lines) or "Nothing to report."


async def confirm_pending(db: Session, user: AdminUser | None, session_id: str) -> AgentReply:
    """Run the action a V2 session is waiting on, with __confirm set."""
    session = db.get(AgentSession, session_id)
    if session is None:
        raise LookupError(f"Agent session not found: {session_id}")
    if user is not None and session.user_id not in (None, user.id):
        raise PermissionError("Session belongs to another user")

    pending = None
    for m in reversed(session.messages):
        if m.role != "assistant":
            continue
        pending = (m.meta or {}).get("pending")
        break
    if not pending:
        raise ValueError("Nothing is waiting for confirmation in this session")

    ctx = ToolContext(
        db=db, user=user, session_id=session.id, scopes=list(session.scopes or []), mode=session.mode
    )
    r = await tool_bus.execute_tool(ctx, pending["tool"], {**pending["args"], CONFIRM_KEY: True})
    result = {"tool": pending["tool"], "args": pending["args"], **r.to_dict()}
    if r.ok:
        text = f"Done: {pending['tool']} completed."
    else:
        text = f"❌ {pending['tool']}: {r.error}"
    _append(db, session, "assistant", text, {"confirmed": pending["tool"], "results": [result]})
    return AgentReply(text=text, tool_calls=[result], error=None if r.ok else r.error, session_id=session.id)


def session_detail(db: Session, session_id: str, user: AdminUser | None = None) -> dict[str, Any]:
    session = db.get(AgentSession, session_id)
    if session is None:
        raise LookupError(f"Agent session not found: {session_id}")
    if user is not None and user.role not in ("admin", "owner") and session.user_id not in (None, user.id):
        raise PermissionError("Session belongs to another user")
    return {
        "id": session.id,
        "mode": session.mode,
        "kind": session.kind,
        "scopes": session.scopes,
        "created_at": iso(session.created_at),
        "messages": [
            {"role": m.role, "content": m.content, "meta": m.meta, "created_at": iso(m.created_at)}
            for m in session.messages
        ],
        "audit": get_session_audit(db, session.id),
    }
