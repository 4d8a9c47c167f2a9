from __future__ import annotations

from datetime import date, datetime, timedelta

from pydantic import Field

from studiocrm.db import sessions_crud
from studiocrm.services.tools.base import BaseArgs, ToolDef, crm_call
from studiocrm.services.tools.clients import resolve_client
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.guardrails import CALENDAR_WRITE, CRM_READ


class ListSessionsArgs(BaseArgs):
    from_date: date | None = Field(default=None, description="First day to include (default: today)")
    days: int = Field(default=14, ge=1, le=365)
    status: str | None = None
    client_id: int | None = None


class CreateSessionArgs(BaseArgs):
    title: str = Field(min_length=1)
    session_type: str = Field(description="family, newborn, maternity, baby, portrait, business, wedding, event, other")
    start_time: datetime
    end_time: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=15, le=720)
    client_id: int | None = None
    client_email: str | None = None
    location: str | None = None
    notes: str | None = None
    price: float | None = Field(default=None, ge=0)


class RescheduleSessionArgs(BaseArgs):
    session_id: int
    start_time: datetime
    end_time: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=15, le=720)


class CancelSessionArgs(BaseArgs):
    session_id: int
    reason: str | None = None


class AvailableSlotsArgs(BaseArgs):
    day: date
    duration_minutes: int = Field(default=60, ge=15, le=600)


class CountSessionsArgs(BaseArgs):
    status: str | None = None
    upcoming_only: bool = False


async def list_sessions(args: dict, ctx: ToolContext) -> list[dict]:
    start = datetime.combine(args.get("from_date") or date.today(), datetime.min.time())
    rows = sessions_crud.list_sessions(
        ctx.db,
        start=start,
        end=start + timedelta(days=args.get("days", 14)),
        status=args.get("status"),
        client_id=args.get("client_id"),
    )
    return [sessions_crud.to_public_dict(s) for s in rows]


async def create_session(args: dict, ctx: ToolContext) -> dict:
    data = dict(args)
    email = data.pop("client_email", None)
    if data.get("client_id") is None and email:
        data["client_id"] = resolve_client(ctx.db, email=email).id
    row = crm_call(sessions_crud.create_session, ctx.db, data)
    return sessions_crud.to_public_dict(row)


async def reschedule_session(args: dict, ctx: ToolContext) -> dict:
    data = {k: v for k, v in args.items() if k != "session_id"}
    row = crm_call(sessions_crud.update_session, ctx.db, args["session_id"], data)
    return sessions_crud.to_public_dict(row)


async def cancel_session(args: dict, ctx: ToolContext) -> dict:
    row = crm_call(sessions_crud.cancel_session, ctx.db, args["session_id"], args.get("reason"))
    return sessions_crud.to_public_dict(row)


async def find_available_slots(args: dict, ctx: ToolContext) -> list[dict]:
    return crm_call(
        sessions_crud.available_slots, ctx.db, args["day"], duration_minutes=args.get("duration_minutes", 60)
    )


async def count_sessions(args: dict, ctx: ToolContext) -> dict:
    n = sessions_crud.count_sessions(ctx.db, status=args.get("status"), upcoming_only=args.get("upcoming_only", False))
    return {"count": n, "status": args.get("status"), "upcoming_only": args.get("upcoming_only", False)}


TOOLS = [
    ToolDef(
        name="list_sessions",
        description="List photo sessions in a date window (default: the next 14 days).",
        args_model=ListSessionsArgs,
        handler=list_sessions,
        authz=[CRM_READ],
        category="scheduling",
    ),
    ToolDef(
        name="create_session",
        description="Book a photo session. Rejected if it overlaps an existing booking.",
        args_model=CreateSessionArgs,
        handler=create_session,
        authz=[CALENDAR_WRITE],
        risk="medium",
        side_effects=True,
        category="scheduling",
    ),
    ToolDef(
        name="reschedule_session",
        description="Move a photo session to a new time.",
        args_model=RescheduleSessionArgs,
        handler=reschedule_session,
        authz=[CALENDAR_WRITE],
        risk="medium",
        side_effects=True,
        category="scheduling",
    ),
    ToolDef(
        name="cancel_session",
        description="Cancel a photo session.",
        args_model=CancelSessionArgs,
        handler=cancel_session,
        authz=[CALENDAR_WRITE],
        risk="high",
        side_effects=True,
        category="scheduling",
    ),
    ToolDef(
        name="find_available_slots",
        description="Free time slots on a day within studio working hours.",
        args_model=AvailableSlotsArgs,
        handler=find_available_slots,
        authz=[CRM_READ],
        category="scheduling",
    ),
    ToolDef(
        name="count_sessions",
        description="Number of photo sessions, optionally by status or only upcoming ones.",
        args_model=CountSessionsArgs,
        handler=count_sessions,
        authz=[CRM_READ],
        category="scheduling",
    ),
]
