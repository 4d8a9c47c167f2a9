"""Scope and mode checks applied by the ToolBus before a handler runs.

Order: scopes first, then the agent mode. Dry runs skip the mode check
because nothing is written.
"""

from __future__ import annotations

from typing import Any

from studiocrm.services.tools.base import ToolDef
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.errors import AuthzError, ConfirmRequiredError, ReadOnlyModeError

MODES = ("read_only", "auto_safe", "auto_full")

CRM_READ = "CRM_READ"
CRM_WRITE = "CRM_WRITE"
INV_READ = "INV_READ"
INV_WRITE = "INV_WRITE"
EMAIL_SEND = "EMAIL_SEND"
CALENDAR_WRITE = "CALENDAR_WRITE"
PRICE_RESEARCH = "PRICE_RESEARCH"
PRICE_WRITE = "PRICE_WRITE"
ADMIN = "ADMIN"

_MANAGER_SCOPES = [
    CRM_READ,
    CRM_WRITE,
    INV_READ,
    INV_WRITE,
    EMAIL_SEND,
    CALENDAR_WRITE,
    PRICE_RESEARCH,
    PRICE_WRITE,
]

ROLE_SCOPES: dict[str, list[str]] = {
    "admin": _MANAGER_SCOPES + [ADMIN],
    "owner": _MANAGER_SCOPES + [ADMIN],
    "photographer": list(_MANAGER_SCOPES),
    "manager": list(_MANAGER_SCOPES),
    "staff": [CRM_READ, INV_READ, CALENDAR_WRITE],
    "viewer": [CRM_READ, INV_READ],
}


def scopes_for_role(role: str | None) -> list[str]:
    return list(ROLE_SCOPES.get((role or "").lower(), ROLE_SCOPES["viewer"]))


def recommended_mode(role: str | None) -> str:
    role = (role or "").lower()
    if role in ("admin", "owner"):
        return "auto_full"
    if role in ("photographer", "manager"):
        return "auto_safe"
    return "read_only"


def would_require_confirm(mode: str, risk: str) -> bool:
    return mode == "auto_safe" and risk in ("medium", "high")


def explain_guardrail(mode: str, risk: str, tool: str) -> str:
    if risk == "low":
        return f"{tool} is low risk and always allowed."
    if mode == "read_only":
        return f"{tool} is {risk} risk and blocked in read_only mode."
    if mode == "auto_safe":
        return f"{tool} is {risk} risk and needs explicit confirmation in auto_safe mode."
    return f"{tool} is {risk} risk and runs without confirmation in auto_full mode."


def check_scopes(tool: ToolDef, ctx: ToolContext) -> None:
    missing = [s for s in tool.authz if s not in ctx.scopes]
    if missing:
        raise AuthzError(tool.name, tool.authz, ctx.scopes)


def check_mode(tool: ToolDef, ctx: ToolContext, args: dict[str, Any], confirmed: bool) -> None:
    if ctx.dry_run or tool.risk == "low":
        return
    if ctx.mode == "auto_full":
        return
    if ctx.mode == "auto_safe":
        if not confirmed:
            raise ConfirmRequiredError(tool.name, args, explain_guardrail(ctx.mode, tool.risk, tool.name))
        return
    # read_only, and anything unrecognised
    raise ReadOnlyModeError(tool.name, tool.risk)


def enforce(tool: ToolDef, ctx: ToolContext, args: dict[str, Any], *, confirmed: bool = False) -> None:
    check_scopes(tool, ctx)
    check_mode(tool, ctx, args, confirmed)
