from __future__ import annotations

from pydantic import Field

from studiocrm.db import galleries_crud
from studiocrm.services.tools.base import BaseArgs, ToolDef, crm_call
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.errors import ToolValidationError
from studiocrm.services.tools.guardrails import CRM_READ, CRM_WRITE


class ListGalleriesArgs(BaseArgs):
    search: str | None = None
    client_id: int | None = None
    limit: int = Field(default=20, ge=1, le=100)


class GalleryRefArgs(BaseArgs):
    gallery_id: int | None = None
    slug: str | None = None


class CreateGalleryArgs(BaseArgs):
    title: str = Field(min_length=1)
    description: str | None = None
    client_id: int | None = None
    is_public: bool = True
    password: str | None = Field(default=None, description="Optional access password for the client")


class UpdateGalleryArgs(BaseArgs):
    gallery_id: int
    title: str | None = None
    description: str | None = None
    is_public: bool | None = None
    password: str | None = Field(default=None, description="New password; empty string removes it")


def _resolve(ctx: ToolContext, args: dict):
    if args.get("gallery_id") is not None:
        return crm_call(galleries_crud.get_gallery, ctx.db, args["gallery_id"])
    if args.get("slug"):
        return crm_call(galleries_crud.get_gallery_by_slug, ctx.db, args["slug"])
    raise ToolValidationError("Provide gallery_id or slug")


async def list_galleries(args: dict, ctx: ToolContext) -> list[dict]:
    rows = galleries_crud.list_galleries(
        ctx.db, search=args.get("search"), client_id=args.get("client_id"), limit=args.get("limit")
    )
    return [galleries_crud.to_public_dict(g) for g in rows]


async def get_gallery(args: dict, ctx: ToolContext) -> dict:
    return galleries_crud.to_public_dict(_resolve(ctx, args), detail=True)


async def create_gallery(args: dict, ctx: ToolContext) -> dict:
    return galleries_crud.to_public_dict(crm_call(galleries_crud.create_gallery, ctx.db, args))


async def update_gallery(args: dict, ctx: ToolContext) -> dict:
    data = {k: v for k, v in args.items() if k != "gallery_id"}
    return galleries_crud.to_public_dict(crm_call(galleries_crud.update_gallery, ctx.db, args["gallery_id"], data))


TOOLS = [
    ToolDef(
        name="list_galleries",
        description="List client photo galleries.",
        args_model=ListGalleriesArgs,
        handler=list_galleries,
        authz=[CRM_READ],
        category="galleries",
    ),
    ToolDef(
        name="get_gallery",
        description="Get a gallery with its images by id or slug.",
        args_model=GalleryRefArgs,
        handler=get_gallery,
        authz=[CRM_READ],
        category="galleries",
    ),
    ToolDef(
        name="create_gallery",
        description="Create a gallery, optionally password protected and linked to a client.",
        args_model=CreateGalleryArgs,
        handler=create_gallery,
        authz=[CRM_WRITE],
        risk="medium",
        side_effects=True,
        category="galleries",
    ),
    ToolDef(
        name="update_gallery",
        description="Rename a gallery, change its visibility or password.",
        args_model=UpdateGalleryArgs,
        handler=update_gallery,
        authz=[CRM_WRITE],
        risk="medium",
        side_effects=True,
        category="galleries",
    ),
]
