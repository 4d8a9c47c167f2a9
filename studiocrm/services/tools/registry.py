"""Legacy (V1) tool registry.

The model may call any registered tool; there are no scopes or guardrails
here. Every call is reported back as a JSON string so the model can read the
failure and try again.
"""

from __future__ import annotations

import json
import time
from typing import Any

from pydantic import ValidationError

from studiocrm.core.logging_setup import get_logger
from studiocrm.services.tools.base import ToolDef
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.errors import NotFoundError, ToolError

LOG = get_logger(__name__)


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def register(self, tool: ToolDef) -> None:
        if tool.name in self._tools:
            LOG.info("Tool re-registered: %s", tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    def list(self) -> list[ToolDef]:
        return list(self._tools.values())

    def keys(self) -> list[str]:
        return list(self._tools.keys())

    def openai_tools(self) -> list[dict[str, Any]]:
        return [t.openai_schema() for t in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools


def _dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


def _describe_failure(e: Exception) -> str:
    msg = str(e) or e.__class__.__name__
    low = msg.lower()
    if "invoice:no_products" in low:
        return msg
    if "permission" in low or getattr(e, "code", None) == "forbidden":
        return f"crm:permission_denied - {msg}"
    if isinstance(e, NotFoundError) or "not found" in low or "no data" in low:
        return f"crm:data_not_found - {msg}. Double-check spelling or email"
    return msg


async def execute_tool_call(registry: ToolRegistry, call: dict[str, Any], ctx: ToolContext) -> dict[str, str]:
    """Run one OpenAI tool call. Returns {"tool_call_id", "output"}."""
    call_id = call.get("id")
    fn = call.get("function") or {}
    name = fn.get("name") or ""
    raw = fn.get("arguments") or "{}"

    try:
        args = json.loads(raw) if isinstance(raw, str) else dict(raw)
    except (ValueError, TypeError) as e:
        return {"tool_call_id": call_id, "output": _dump({"error": "bad_json_args", "detail": str(e), "name": name, "raw": raw})}

    tool = registry.get(name)
    if tool is None:
        return {"tool_call_id": call_id, "output": _dump({"error": "unknown_tool", "name": name})}

    start = time.perf_counter()
    ok_flag = False
    try:
        try:
            args = tool.args_model(**(args or {})).model_dump(exclude_none=True)
        except (ValidationError, TypeError) as e:
            return {
                "tool_call_id": call_id,
                "output": _dump({"ok": False, "error": f"invalid_input - {e}", "tool": name, "args": args}),
            }

        out = await tool.handler(args, ctx)
        if out is None:
            payload = {
                "ok": False,
                "error": f"{name} returned no data - check records and query parameters",
                "tool": name,
                "args": args,
            }
        elif isinstance(out, list) and not out:
            payload = {
                "ok": False,
                "error": f"{name} found no matching records - the database may be empty or the filters too restrictive",
                "tool": name,
                "args": args,
            }
        else:
            ok_flag = True
            payload = {"ok": True, "data": out}
        return {"tool_call_id": call_id, "output": _dump(payload)}
    except Exception as e:
        ctx.db.rollback()
        if not isinstance(e, ToolError):
            LOG.exception("Tool crashed: %s", name)
        msg = _describe_failure(e)
        return {
            "tool_call_id": call_id,
            "output": _dump({"ok": False, "status": "error", "error": msg, "message": msg, "tool": name, "args": args}),
        }
    finally:
        dur_ms = int((time.perf_counter() - start) * 1000)
        LOG.info("tool=%s ok=%s duration_ms=%s", name, ok_flag, dur_ms)


def surface_tool_errors(outputs: list[dict[str, str]]) -> str | None:
    errors = []
    for o in outputs:
        try:
            parsed = json.loads(o.get("output") or "")
        except ValueError:
            continue
        if isinstance(parsed, dict) and parsed.get("ok") is False:
            errors.append(f"❌ {parsed.get('tool')}: {parsed.get('error')}")
    return "\n".join(errors) if errors else None
