from __future__ import annotations

from datetime import datetime

from pydantic import Field

from studiocrm.db import campaigns_crud
from studiocrm.db.utils import naive
from studiocrm.services.tools.base import BaseArgs, ToolDef, crm_call
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.guardrails import CRM_READ, CRM_WRITE, EMAIL_SEND


class ListCampaignsArgs(BaseArgs):
    search: str | None = None
    status: str | None = Field(default=None, description="draft, scheduled, sending, sent, paused, archived")
    limit: int = Field(default=20, ge=1, le=100)


class CreateCampaignArgs(BaseArgs):
    name: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    content: str = Field(min_length=1)
    preview_text: str | None = None
    type: str = Field(default="broadcast", description="broadcast, drip or transactional")
    segments: list[str] | None = Field(
        default=None, description="all_clients, vip, regular, new, inactive, leads (default: all_clients)"
    )


class ScheduleCampaignArgs(BaseArgs):
    campaign_id: int
    scheduled_at: datetime


class CampaignRefArgs(BaseArgs):
    campaign_id: int


async def list_campaigns(args: dict, ctx: ToolContext) -> list[dict]:
    rows = campaigns_crud.list_campaigns(
        ctx.db, search=args.get("search"), status=args.get("status"), limit=args.get("limit")
    )
    return [campaigns_crud.to_public_dict(c) for c in rows]


async def create_campaign(args: dict, ctx: ToolContext) -> dict:
    return campaigns_crud.to_public_dict(crm_call(campaigns_crud.create_campaign, ctx.db, args), detail=True)


async def schedule_campaign(args: dict, ctx: ToolContext) -> dict:
    row = crm_call(campaigns_crud.schedule_campaign, ctx.db, args["campaign_id"], naive(args["scheduled_at"]))
    return campaigns_crud.to_public_dict(row)


async def pause_campaign(args: dict, ctx: ToolContext) -> dict:
    return campaigns_crud.to_public_dict(crm_call(campaigns_crud.pause_campaign, ctx.db, args["campaign_id"]))


TOOLS = [
    ToolDef(
        name="list_campaigns",
        description="List e-mail campaigns with their status and open rates.",
        args_model=ListCampaignsArgs,
        handler=list_campaigns,
        authz=[CRM_READ],
        category="campaigns",
    ),
    ToolDef(
        name="create_campaign",
        description="Draft an e-mail campaign for one or more audience segments.",
        args_model=CreateCampaignArgs,
        handler=create_campaign,
        authz=[CRM_WRITE],
        risk="medium",
        side_effects=True,
        category="campaigns",
    ),
    ToolDef(
        name="schedule_campaign",
        description="Schedule a drafted campaign for sending at a future time.",
        args_model=ScheduleCampaignArgs,
        handler=schedule_campaign,
        authz=[EMAIL_SEND],
        risk="high",
        side_effects=True,
        category="campaigns",
    ),
    ToolDef(
        name="pause_campaign",
        description="Pause a scheduled campaign.",
        args_model=CampaignRefArgs,
        handler=pause_campaign,
        authz=[EMAIL_SEND],
        risk="medium",
        side_effects=True,
        category="campaigns",
    ),
]
