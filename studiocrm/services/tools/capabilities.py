from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from studiocrm.db import clients_crud, invoices_crud, leads_crud, sessions_crud
from studiocrm.db.settings_crud import get_studio_settings
from studiocrm.services.tools.base import NoArgs, ToolDef
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.guardrails import CRM_READ, explain_guardrail

_WEEKDAYS_DE = {
    "Monday": "Montag",
    "Tuesday": "Dienstag",
    "Wednesday": "Mittwoch",
    "Thursday": "Donnerstag",
    "Friday": "Freitag",
    "Saturday": "Samstag",
    "Sunday": "Sonntag",
}


async def describe_capabilities(args: dict, ctx: ToolContext) -> dict:
    """What this agent can do for the current user, grouped by category."""
    from studiocrm.services.tools import tool_bus

    allowed = {t.name for t in tool_bus.list_tools(ctx.scopes)}
    categories: dict[str, list[dict]] = {}
    for t in tool_bus.list_tools():
        categories.setdefault(t.category, []).append(
            {
                "name": t.name,
                "description": t.description,
                "risk": t.risk,
                "available": t.name in allowed,
                "note": explain_guardrail(ctx.mode, t.risk, t.name),
            }
        )
    return {
        "mode": ctx.mode,
        "scopes": list(ctx.scopes),
        "available_tools": len(allowed),
        "categories": categories,
    }


async def get_studio_overview(args: dict, ctx: ToolContext) -> dict:
    """Studio name, local date/time and headline numbers."""
    row = get_studio_settings(ctx.db)

    tz_name = row.timezone or "Europe/Vienna"
    try:
        tz = ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        tz = ZoneInfo("UTC")
        tz_name = "UTC"
    now = datetime.now(tz)
    weekday = now.strftime("%A")
    if (row.locale or "").lower().startswith("de"):
        weekday = _WEEKDAYS_DE.get(weekday, weekday)

    return {
        "studio_name": row.studio_name,
        "currency": row.currency,
        "timezone": tz_name,
        "local_datetime": now.isoformat(timespec="minutes"),
        "weekday": weekday,
        "open_leads": leads_crud.count_leads(ctx.db, status="new"),
        "active_clients": clients_crud.count_clients(ctx.db, status="active"),
        "upcoming_sessions": sessions_crud.count_sessions(ctx.db, upcoming_only=True),
        "overdue_invoices": invoices_crud.count_invoices(ctx.db, status="overdue")["count"],
    }


TOOLS = [
    ToolDef(
        name="describe_capabilities",
        description="Explain which tools are available in the current mode and what each one needs.",
        args_model=NoArgs,
        handler=describe_capabilities,
        category="meta",
    ),
    ToolDef(
        name="get_studio_overview",
        description="Studio name, current local date and time, and key numbers (new leads, sessions, overdue invoices).",
        args_model=NoArgs,
        handler=get_studio_overview,
        authz=[CRM_READ],
        category="meta",
    ),
]
