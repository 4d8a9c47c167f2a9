from __future__ import annotations

from datetime import date

from pydantic import Field

from studiocrm.db import invoices_crud
from studiocrm.services.tools.base import BaseArgs, NoArgs, ToolDef, crm_call
from studiocrm.services.tools.clients import resolve_client
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.errors import ToolValidationError
from studiocrm.services.tools.guardrails import INV_READ, INV_WRITE


class ListInvoicesArgs(BaseArgs):
    status: str | None = Field(default=None, description="draft, sent, paid, overdue or cancelled")
    client_id: int | None = None
    limit: int = Field(default=20, ge=1, le=100)


class InvoiceRefArgs(BaseArgs):
    invoice_id: int | None = None
    invoice_number: str | None = Field(default=None, description="e.g. INV-2025-0001")


class InvoiceItemArgs(BaseArgs):
    description: str = Field(min_length=1)
    quantity: float = Field(default=1, gt=0)
    unit_price: float = Field(ge=0)
    tax_rate: float | None = Field(default=None, ge=0, le=100, description="Percent; studio default if omitted")


class CreateInvoiceArgs(BaseArgs):
    client_id: int | None = None
    client_email: str | None = None
    client_name: str | None = None
    items: list[InvoiceItemArgs] = Field(default_factory=list)
    due_date: date | None = None
    notes: str | None = None
    status: str = Field(default="draft", description="draft or sent")


class UpdateInvoiceStatusArgs(InvoiceRefArgs):
    status: str = Field(description="sent, overdue or cancelled")


class RecordPaymentArgs(InvoiceRefArgs):
    amount: float = Field(gt=0)
    payment_method: str = Field(default="bank_transfer", description="bank_transfer, cash, card, paypal, stripe, voucher")
    payment_reference: str | None = None


class CountInvoicesArgs(BaseArgs):
    status: str | None = None


def _resolve_invoice(ctx: ToolContext, args: dict):
    if args.get("invoice_id") is not None:
        return crm_call(invoices_crud.get_invoice, ctx.db, args["invoice_id"])
    if args.get("invoice_number"):
        return crm_call(invoices_crud.get_invoice_by_number, ctx.db, args["invoice_number"])
    raise ToolValidationError("Provide invoice_id or invoice_number")


async def list_invoices(args: dict, ctx: ToolContext) -> list[dict]:
    rows = invoices_crud.list_invoices(
        ctx.db, status=args.get("status"), client_id=args.get("client_id"), limit=args.get("limit")
    )
    return [invoices_crud.to_public_dict(i) for i in rows]


async def get_invoice(args: dict, ctx: ToolContext) -> dict:
    return invoices_crud.to_public_dict(_resolve_invoice(ctx, args), detail=True)


async def create_invoice(args: dict, ctx: ToolContext) -> dict:
    client = resolve_client(
        ctx.db, client_id=args.get("client_id"), email=args.get("client_email"), name=args.get("client_name")
    )
    invoice = crm_call(
        invoices_crud.create_invoice,
        ctx.db,
        client_id=client.id,
        items=args.get("items") or [],
        due_date=args.get("due_date"),
        notes=args.get("notes"),
        status=args.get("status", "draft"),
        created_by=ctx.user_id,
    )
    return invoices_crud.to_public_dict(invoice, detail=True)


async def update_invoice_status(args: dict, ctx: ToolContext) -> dict:
    invoice = _resolve_invoice(ctx, args)
    invoice = crm_call(invoices_crud.update_invoice, ctx.db, invoice.id, {"status": args["status"]})
    return invoices_crud.to_public_dict(invoice)


async def record_payment(args: dict, ctx: ToolContext) -> dict:
    invoice = _resolve_invoice(ctx, args)
    invoice = crm_call(
        invoices_crud.record_payment,
        ctx.db,
        invoice.id,
        amount=args["amount"],
        payment_method=args.get("payment_method", "bank_transfer"),
        payment_reference=args.get("payment_reference"),
    )
    return invoices_crud.to_public_dict(invoice, detail=True)


async def count_invoices(args: dict, ctx: ToolContext) -> dict:
    return invoices_crud.count_invoices(ctx.db, status=args.get("status"))


async def mark_overdue_invoices(args: dict, ctx: ToolContext) -> dict:
    return {"marked_overdue": invoices_crud.mark_overdue(ctx.db)}


TOOLS = [
    ToolDef(
        name="list_invoices",
        description="List invoices, optionally by status or client.",
        args_model=ListInvoicesArgs,
        handler=list_invoices,
        authz=[INV_READ],
        category="invoices",
    ),
    ToolDef(
        name="get_invoice",
        description="Get an invoice with its line items and payments, by id or invoice number.",
        args_model=InvoiceRefArgs,
        handler=get_invoice,
        authz=[INV_READ],
        category="invoices",
    ),
    ToolDef(
        name="create_invoice",
        description="Create an invoice for a client with one or more line items.",
        args_model=CreateInvoiceArgs,
        handler=create_invoice,
        authz=[INV_WRITE],
        risk="medium",
        side_effects=True,
        category="invoices",
    ),
    ToolDef(
        name="update_invoice_status",
        description="Change an invoice's status (sent, overdue, cancelled). Paid is set by recording payments.",
        args_model=UpdateInvoiceStatusArgs,
        handler=update_invoice_status,
        authz=[INV_WRITE],
        risk="medium",
        side_effects=True,
        category="invoices",
    ),
    ToolDef(
        name="record_payment",
        description="Record a payment against an invoice. Marks the invoice paid once fully settled.",
        args_model=RecordPaymentArgs,
        handler=record_payment,
        authz=[INV_WRITE],
        risk="high",
        side_effects=True,
        category="invoices",
    ),
    ToolDef(
        name="count_invoices",
        description="Number and total amount of invoices, optionally for one status.",
        args_model=CountInvoicesArgs,
        handler=count_invoices,
        authz=[INV_READ],
        category="invoices",
    ),
    ToolDef(
        name="mark_overdue_invoices",
        description="Mark all sent invoices past their due date as overdue.",
        args_model=NoArgs,
        handler=mark_overdue_invoices,
        authz=[INV_WRITE],
        risk="medium",
        side_effects=True,
        category="invoices",
    ),
]
