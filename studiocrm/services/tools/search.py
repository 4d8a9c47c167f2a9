from __future__ import annotations

import re

from pydantic import Field

from studiocrm.db import clients_crud, galleries_crud, invoices_crud, leads_crud, vouchers_crud
from studiocrm.db.errors import CrmNotFound
from studiocrm.services.tools.base import BaseArgs, ToolDef
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.errors import NotFoundError, ToolValidationError
from studiocrm.services.tools.guardrails import CRM_READ

_HELPER_WORDS = re.compile(
    r"\b(can you|please|find|look up|search|in|the|database|clients?|leads?|show me)\b", re.IGNORECASE
)
_PUNCT = re.compile(r"[^\w@.\s+-]")
_INVOICE_NUMBER = re.compile(r"^inv-\d{4}-\d{3,}$", re.IGNORECASE)
_VOUCHER_CODE = re.compile(r"^naf-\d{6}-\d{4}$", re.IGNORECASE)

ENTITY_TYPES = ("client", "lead", "invoice", "voucher", "gallery")


def clean_query(q: str | None) -> str:
    """Strip filler words and punctuation the model tends to leave in search terms."""
    if not q:
        return ""
    s = _HELPER_WORDS.sub("", q.lower())
    s = _PUNCT.sub("", s)
    return re.sub(r"\s+", " ", s).strip()


class GlobalSearchArgs(BaseArgs):
    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=25, description="Max hits per entity type")


class FindEntityArgs(BaseArgs):
    query: str = Field(min_length=1, description="Name, e-mail, invoice number or voucher code")
    entity_type: str | None = Field(default=None, description="client, lead, invoice, voucher or gallery")


async def global_search(args: dict, ctx: ToolContext) -> dict:
    q = clean_query(args["query"])
    if not q:
        raise ToolValidationError("Search query is empty after cleaning")
    limit = args.get("limit", 5)
    db = ctx.db
    hits = {
        "clients": [clients_crud.to_public_dict(c) for c in clients_crud.list_clients(db, search=q, limit=limit)],
        "leads": [leads_crud.to_public_dict(lead) for lead in leads_crud.list_leads(db, search=q, limit=limit)],
        "invoices": [],
        "vouchers": [vouchers_crud.sale_to_dict(s) for s in vouchers_crud.list_sales(db, search=q, limit=limit)],
        "galleries": [galleries_crud.to_public_dict(g) for g in galleries_crud.list_galleries(db, search=q, limit=limit)],
    }
    if _INVOICE_NUMBER.match(q):
        try:
            hits["invoices"].append(invoices_crud.to_public_dict(invoices_crud.get_invoice_by_number(db, q)))
        except CrmNotFound:
            pass
    hits["total"] = sum(len(v) for v in hits.values())
    hits["query"] = q
    return hits


async def find_entity(args: dict, ctx: ToolContext) -> dict:
    raw = args["query"].strip()
    kind = args.get("entity_type")
    if kind and kind not in ENTITY_TYPES:
        raise ToolValidationError(f"entity_type must be one of {', '.join(ENTITY_TYPES)}")
    db = ctx.db

    if (kind in (None, "invoice")) and _INVOICE_NUMBER.match(raw):
        try:
            return {"type": "invoice", "record": invoices_crud.to_public_dict(invoices_crud.get_invoice_by_number(db, raw))}
        except CrmNotFound:
            pass
    if (kind in (None, "voucher")) and _VOUCHER_CODE.match(raw):
        try:
            return {"type": "voucher", "record": vouchers_crud.sale_to_dict(vouchers_crud.get_sale_by_code(db, raw))}
        except CrmNotFound:
            pass

    q = clean_query(raw)
    if q:
        if kind in (None, "client"):
            found = clients_crud.list_clients(db, search=q, limit=1)
            if found:
                return {"type": "client", "record": clients_crud.to_public_dict(found[0])}
        if kind in (None, "lead"):
            found = leads_crud.list_leads(db, search=q, limit=1)
            if found:
                return {"type": "lead", "record": leads_crud.to_public_dict(found[0])}
        if kind in (None, "gallery"):
            found = galleries_crud.list_galleries(db, search=q, limit=1)
            if found:
                return {"type": "gallery", "record": galleries_crud.to_public_dict(found[0])}
    raise NotFoundError(f"Nothing found for '{raw}'")


TOOLS = [
    ToolDef(
        name="global_search",
        description="Search clients, leads, invoices, vouchers and galleries at once.",
        args_model=GlobalSearchArgs,
        handler=global_search,
        authz=[CRM_READ],
        category="search",
    ),
    ToolDef(
        name="find_entity",
        description="Find the single best matching record for a name, e-mail, invoice number or voucher code.",
        args_model=FindEntityArgs,
        handler=find_entity,
        authz=[CRM_READ],
        category="search",
    ),
]
