from __future__ import annotations

from pydantic import Field
from sqlalchemy.orm import Session

from studiocrm.db import clients_crud, invoices_crud, sessions_crud
from studiocrm.db.models import Client
from studiocrm.services.tools.base import BaseArgs, NoArgs, ToolDef, crm_call
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.errors import NotFoundError, ToolError, ToolValidationError
from studiocrm.services.tools.guardrails import CRM_READ, CRM_WRITE


def resolve_client(
    db: Session, *, client_id: int | None = None, email: str | None = None, name: str | None = None
) -> Client:
    """Find exactly one client by id, e-mail or name."""
    if client_id is not None:
        return crm_call(clients_crud.get_client, db, client_id)
    if email:
        client = clients_crud.find_client_by_email(db, email)
        if client is None:
            raise NotFoundError(f"No client with e-mail {email}")
        return client
    if name:
        matches = clients_crud.list_clients(db, search=name, limit=5)
        if not matches:
            raise NotFoundError(f"No client matching '{name}'")
        if len(matches) > 1:
            names = ", ".join(f"{c.full_name} (id {c.id})" for c in matches)
            raise ToolError(f"Several clients match '{name}': {names}. Ask which one.", code="ambiguous")
        return matches[0]
    raise ToolValidationError("Provide client_id, client_email or client_name")


class ClientRefArgs(BaseArgs):
    client_id: int | None = None
    client_email: str | None = None
    client_name: str | None = None


class SearchClientsArgs(BaseArgs):
    search: str | None = Field(default=None, description="Name, e-mail, company or client number fragment")
    status: str | None = Field(default=None, description="active, inactive or archived")
    limit: int = Field(default=20, ge=1, le=100)


class CreateClientArgs(BaseArgs):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str | None = None
    company: str | None = None
    address: str | None = None
    city: str | None = None
    zip: str | None = None
    country: str | None = None
    notes: str | None = None


class UpdateClientArgs(BaseArgs):
    client_id: int
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    address: str | None = None
    city: str | None = None
    zip: str | None = None
    country: str | None = None
    notes: str | None = None
    status: str | None = None


class TopClientsArgs(BaseArgs):
    limit: int = Field(default=10, ge=1, le=50)


async def search_clients(args: dict, ctx: ToolContext) -> list[dict]:
    rows = clients_crud.list_clients(ctx.db, search=args.get("search"), status=args.get("status"), limit=args.get("limit"))
    return [clients_crud.to_public_dict(c) for c in rows]


async def get_client(args: dict, ctx: ToolContext) -> dict:
    client = resolve_client(
        ctx.db, client_id=args.get("client_id"), email=args.get("client_email"), name=args.get("client_name")
    )
    return clients_crud.to_public_dict(client)


async def client_history(args: dict, ctx: ToolContext) -> dict:
    client = resolve_client(
        ctx.db, client_id=args.get("client_id"), email=args.get("client_email"), name=args.get("client_name")
    )
    invoices = invoices_crud.list_invoices(ctx.db, client_id=client.id, limit=20)
    sessions = sessions_crud.list_sessions(ctx.db, client_id=client.id, limit=20)
    return {
        "client": clients_crud.to_public_dict(client),
        "invoices": [invoices_crud.to_public_dict(i) for i in invoices],
        "sessions": [sessions_crud.to_public_dict(s) for s in sessions],
    }


async def create_client(args: dict, ctx: ToolContext) -> dict:
    client = crm_call(clients_crud.create_client, ctx.db, args)
    return clients_crud.to_public_dict(client)


async def update_client(args: dict, ctx: ToolContext) -> dict:
    data = {k: v for k, v in args.items() if k != "client_id"}
    client = crm_call(clients_crud.update_client, ctx.db, args["client_id"], data)
    return clients_crud.to_public_dict(client)


async def top_clients(args: dict, ctx: ToolContext) -> list[dict]:
    return [clients_crud.to_public_dict(c) for c in clients_crud.top_clients(ctx.db, args.get("limit", 10))]


async def client_segments(args: dict, ctx: ToolContext) -> dict:
    return clients_crud.client_segments(ctx.db)


TOOLS = [
    ToolDef(
        name="search_clients",
        description="Search clients by name, e-mail, company or client number.",
        args_model=SearchClientsArgs,
        handler=search_clients,
        authz=[CRM_READ],
        category="clients",
    ),
    ToolDef(
        name="get_client",
        description="Get one client by id, e-mail or (unique) name.",
        args_model=ClientRefArgs,
        handler=get_client,
        authz=[CRM_READ],
        category="clients",
    ),
    ToolDef(
        name="client_history",
        description="A client's record with recent invoices and photo sessions.",
        args_model=ClientRefArgs,
        handler=client_history,
        authz=[CRM_READ],
        category="clients",
    ),
    ToolDef(
        name="create_client",
        description="Create a client record. The client number is assigned automatically.",
        args_model=CreateClientArgs,
        handler=create_client,
        authz=[CRM_WRITE],
        risk="medium",
        side_effects=True,
        category="clients",
    ),
    ToolDef(
        name="update_client",
        description="Update contact details, notes or status of a client.",
        args_model=UpdateClientArgs,
        handler=update_client,
        authz=[CRM_WRITE],
        risk="medium",
        side_effects=True,
        category="clients",
    ),
    ToolDef(
        name="top_clients",
        description="Clients ranked by lifetime value (paid invoices).",
        args_model=TopClientsArgs,
        handler=top_clients,
        authz=[CRM_READ],
        category="clients",
    ),
    ToolDef(
        name="client_segments",
        description="Client counts and value per segment: vip, regular, new, inactive.",
        args_model=NoArgs,
        handler=client_segments,
        authz=[CRM_READ],
        category="clients",
    ),
]
