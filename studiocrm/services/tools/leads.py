from __future__ import annotations

from datetime import date

from pydantic import Field

from studiocrm.db import leads_crud
from studiocrm.services.tools.base import BaseArgs, NoArgs, ToolDef, crm_call
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.errors import NotFoundError, ToolValidationError
from studiocrm.services.tools.guardrails import CRM_READ, CRM_WRITE


class ListLeadsArgs(BaseArgs):
    search: str | None = Field(default=None, description="Name, e-mail, company or phone fragment")
    status: str | None = Field(default=None, description="new, contacted, qualified, proposal, won, lost, converted")
    source: str | None = None
    limit: int = Field(default=20, ge=1, le=100)


class FindLeadArgs(BaseArgs):
    lead_id: int | None = None
    email: str | None = None


class CreateLeadArgs(BaseArgs):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str | None = None
    company: str | None = None
    message: str | None = None
    source: str | None = Field(default=None, description="website, instagram, referral, phone, ...")
    priority: str | None = Field(default=None, description="low, medium or high")
    value: float | None = Field(default=None, ge=0)
    follow_up_date: date | None = None


class UpdateLeadArgs(BaseArgs):
    lead_id: int
    status: str | None = None
    priority: str | None = None
    phone: str | None = None
    message: str | None = None
    value: float | None = Field(default=None, ge=0)
    follow_up_date: date | None = None
    tags: list[str] | None = None


class ConvertLeadArgs(BaseArgs):
    lead_id: int


async def list_leads(args: dict, ctx: ToolContext) -> list[dict]:
    rows = leads_crud.list_leads(
        ctx.db,
        search=args.get("search"),
        status=args.get("status"),
        source=args.get("source"),
        limit=args.get("limit"),
    )
    return [leads_crud.to_public_dict(r) for r in rows]


async def find_lead(args: dict, ctx: ToolContext) -> dict:
    if args.get("lead_id") is None and not args.get("email"):
        raise ToolValidationError("Provide lead_id or email")
    lead = leads_crud.find_lead(ctx.db, lead_id=args.get("lead_id"), email=args.get("email"))
    if lead is None:
        raise NotFoundError(f"No lead found for {args.get('lead_id') or args.get('email')}")
    return leads_crud.to_public_dict(lead)


async def create_lead(args: dict, ctx: ToolContext) -> dict:
    lead = crm_call(leads_crud.create_lead, ctx.db, args)
    return leads_crud.to_public_dict(lead)


async def update_lead(args: dict, ctx: ToolContext) -> dict:
    data = {k: v for k, v in args.items() if k != "lead_id"}
    lead = crm_call(leads_crud.update_lead, ctx.db, args["lead_id"], data)
    return leads_crud.to_public_dict(lead)


async def convert_lead(args: dict, ctx: ToolContext) -> dict:
    lead, client, created = crm_call(leads_crud.convert_lead, ctx.db, args["lead_id"])
    return {
        "lead_id": lead.id,
        "client_id": client.id,
        "client_number": client.client_number,
        "client_created": created,
    }


async def leads_report(args: dict, ctx: ToolContext) -> dict:
    return leads_crud.leads_report(ctx.db)


TOOLS = [
    ToolDef(
        name="list_leads",
        description="List or search leads (enquiries) by name, e-mail, status or source.",
        args_model=ListLeadsArgs,
        handler=list_leads,
        authz=[CRM_READ],
        category="leads",
    ),
    ToolDef(
        name="find_lead",
        description="Look up a single lead by id or e-mail address.",
        args_model=FindLeadArgs,
        handler=find_lead,
        authz=[CRM_READ],
        category="leads",
    ),
    ToolDef(
        name="create_lead",
        description="Create a new lead from an enquiry.",
        args_model=CreateLeadArgs,
        handler=create_lead,
        authz=[CRM_WRITE],
        risk="medium",
        side_effects=True,
        category="leads",
    ),
    ToolDef(
        name="update_lead",
        description="Update a lead's status, priority, follow-up date or value.",
        args_model=UpdateLeadArgs,
        handler=update_lead,
        authz=[CRM_WRITE],
        risk="medium",
        side_effects=True,
        category="leads",
    ),
    ToolDef(
        name="convert_lead",
        description="Convert a lead into a client. Reuses an existing client with the same e-mail.",
        args_model=ConvertLeadArgs,
        handler=convert_lead,
        authz=[CRM_WRITE],
        risk="medium",
        side_effects=True,
        category="leads",
    ),
    ToolDef(
        name="leads_report",
        description="Lead counts by status and source, conversion rate and open pipeline value.",
        args_model=NoArgs,
        handler=leads_report,
        authz=[CRM_READ],
        category="leads",
    ),
]
