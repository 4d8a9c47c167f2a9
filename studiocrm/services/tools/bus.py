"""ToolBus (V2): validated, guarded and audited tool execution."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any

from pydantic import ValidationError

from studiocrm.core.logging_setup import get_logger
from studiocrm.services.tools import audit, guardrails
from studiocrm.services.tools.base import ToolDef
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.errors import ConfirmRequiredError, ToolError, ToolValidationError, UnknownToolError

LOG = get_logger(__name__)

CONFIRM_KEY = "__confirm"


@dataclass
class ToolResult:
    ok: bool
    data: Any = None
    error: str | None = None
    code: str | None = None
    simulated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ToolBus:
    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def register_tool(self, tool: ToolDef) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    def list_tool_names(self) -> list[str]:
        return sorted(self._tools.keys())

    def list_tools(self, scopes: list[str] | None = None) -> list[ToolDef]:
        tools = list(self._tools.values())
        if scopes is None:
            return tools
        return [t for t in tools if all(s in scopes for s in t.authz)]

    def list_openai_tools(self, scopes: list[str] | None = None) -> list[dict[str, Any]]:
        return [t.openai_schema() for t in self.list_tools(scopes)]

    def get_stats(self) -> dict[str, Any]:
        by_risk = {r: 0 for r in ("low", "medium", "high")}
        by_scope: dict[str, int] = {}
        by_category: dict[str, int] = {}
        for t in self._tools.values():
            by_risk[t.risk] += 1
            by_category[t.category] = by_category.get(t.category, 0) + 1
            for s in t.authz:
                by_scope[s] = by_scope.get(s, 0) + 1
        return {
            "total": len(self._tools),
            "by_risk": by_risk,
            "by_scope": by_scope,
            "by_category": by_category,
            "with_side_effects": sum(1 for t in self._tools.values() if t.side_effects),
        }

    def _validate(self, tool: ToolDef, args: dict[str, Any]) -> dict[str, Any]:
        try:
            return tool.args_model(**args).model_dump(exclude_none=True)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}" for err in e.errors()
            )
            raise ToolValidationError(f"Invalid args for {tool.name}: {problems}") from e

    async def execute_tool(self, ctx: ToolContext, name: str, args: dict[str, Any] | None = None) -> ToolResult:
        args = dict(args or {})
        confirmed = bool(args.pop(CONFIRM_KEY, False))

        start = time.perf_counter()
        result: ToolResult
        try:
            tool = self.get_tool(name)
            if tool is None:
                raise UnknownToolError(name)
            args = self._validate(tool, args)
            guardrails.enforce(tool, ctx, args, confirmed=confirmed)

            if ctx.dry_run and tool.side_effects:
                result = ToolResult(ok=True, data={"would_execute": name, "args": args}, simulated=True)
            else:
                data = await tool.handler(args, ctx)
                result = ToolResult(ok=True, data=data)
        except ConfirmRequiredError as ce:
            result = ToolResult(
                ok=False,
                data={"tool": ce.tool, "args": ce.args, "reason": ce.reason},
                error=str(ce),
                code=ce.code,
            )
        except ToolError as te:
            ctx.db.rollback()
            result = ToolResult(ok=False, error=str(te), code=te.code)
        except Exception:
            ctx.db.rollback()
            LOG.exception("Tool crashed: %s", name)
            result = ToolResult(ok=False, error="Tool execution failed", code="tool_crash")

        dur_ms = int((time.perf_counter() - start) * 1000)
        LOG.info("tool=%s ok=%s duration_ms=%s simulated=%s", name, result.ok, dur_ms, result.simulated)
        audit.log_tool_call(
            tool=name,
            args=args,
            ok=result.ok,
            session_id=ctx.session_id,
            result=result.data if result.ok else None,
            error=result.error,
            duration_ms=dur_ms,
            simulated=result.simulated,
        )
        return result
