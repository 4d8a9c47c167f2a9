from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from studiocrm.db import clients_crud
from studiocrm.db.errors import CrmError, CrmNotFound
from studiocrm.db.models import Invoice, InvoiceItem, InvoicePayment, utcnow
from studiocrm.db.settings_crud import get_studio_settings
from studiocrm.db.utils import clamp_limit, iso, money

INVOICE_STATUSES = ("draft", "sent", "paid", "overdue", "cancelled")
PAYMENT_METHODS = ("bank_transfer", "cash", "card", "paypal", "stripe", "voucher")


def next_invoice_number(db: Session, year: int) -> str:
    prefix = f"INV-{year}-"
    numbers = db.query(Invoice.invoice_number).filter(Invoice.invoice_number.like(f"{prefix}%")).all()
    seq = 0
    for (number,) in numbers:
        tail = number[len(prefix):]
        if tail.isdigit():
            seq = max(seq, int(tail))
    return f"{prefix}{seq + 1:04d}"


def compute_totals(items: list[dict[str, Any]]) -> tuple[float, float, float]:
    subtotal = 0.0
    tax = 0.0
    for it in items:
        line = float(it["quantity"]) * float(it["unit_price"])
        subtotal += line
        tax += line * float(it.get("tax_rate") or 0.0) / 100.0
    subtotal = money(subtotal)
    tax = money(tax)
    return subtotal, tax, money(subtotal + tax)


def _normalize_items(items: list[dict[str, Any]], default_tax_rate: float) -> list[dict[str, Any]]:
    out = []
    for i, it in enumerate(items):
        description = (it.get("description") or "").strip()
        quantity = float(it.get("quantity") if it.get("quantity") is not None else 1)
        unit_price = it.get("unit_price")
        if not description:
            raise CrmError(f"Item {i + 1}: description is required")
        if unit_price is None or float(unit_price) < 0:
            raise CrmError(f"Item {i + 1}: unit_price must be >= 0")
        if quantity <= 0:
            raise CrmError(f"Item {i + 1}: quantity must be > 0")
        tax_rate = it.get("tax_rate")
        out.append(
            {
                "description": description,
                "quantity": quantity,
                "unit_price": float(unit_price),
                "tax_rate": float(default_tax_rate if tax_rate is None else tax_rate),
                "sort_order": i,
            }
        )
    return out


def create_invoice(
    db: Session,
    *,
    client_id: int,
    items: list[dict[str, Any]],
    issue_date: date | None = None,
    due_date: date | None = None,
    notes: str | None = None,
    status: str = "draft",
    created_by: int | None = None,
) -> Invoice:
    clients_crud.get_client(db, client_id)
    if not items:
        raise CrmError("invoice:no_products - an invoice needs at least one item")
    if status not in ("draft", "sent"):
        raise CrmError("New invoices must be draft or sent")

    studio = get_studio_settings(db)
    lines = _normalize_items(items, studio.default_tax_rate)
    subtotal, tax, total = compute_totals(lines)

    issue_date = issue_date or date.today()
    due_date = due_date or issue_date + timedelta(days=studio.invoice_due_days)
    if due_date < issue_date:
        raise CrmError("due_date must not be before issue_date")

    invoice = Invoice(
        invoice_number=next_invoice_number(db, issue_date.year),
        client_id=client_id,
        issue_date=issue_date,
        due_date=due_date,
        subtotal=subtotal,
        tax_amount=tax,
        total=total,
        status=status,
        notes=notes,
        created_by=created_by,
    )
    invoice.items = [InvoiceItem(**line) for line in lines]
    db.add(invoice)
    db.commit()
    db.refresh(invoice)
    return invoice


def list_invoices(
    db: Session,
    *,
    status: str | None = None,
    client_id: int | None = None,
    limit: int | None = None,
) -> list[Invoice]:
    q = db.query(Invoice)
    if status:
        q = q.filter(Invoice.status == status)
    if client_id is not None:
        q = q.filter(Invoice.client_id == client_id)
    return q.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).limit(clamp_limit(limit)).all()


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if invoice is None:
        raise CrmNotFound("invoice", invoice_id)
    return invoice


def get_invoice_by_number(db: Session, number: str) -> Invoice:
    invoice = db.query(Invoice).filter(Invoice.invoice_number == number.strip().upper()).first()
    if invoice is None:
        raise CrmNotFound("invoice", number)
    return invoice


def update_invoice(db: Session, invoice_id: int, data: dict[str, Any]) -> Invoice:
    invoice = get_invoice(db, invoice_id)
    status = data.get("status")
    if status:
        if status not in INVOICE_STATUSES:
            raise CrmError(f"Unknown invoice status: {status}")
        if status == "paid" and invoice.paid_amount < invoice.total:
            raise CrmError("Record a payment to mark an invoice as paid")
        if status == "cancelled" and invoice.payments:
            raise CrmError("Invoices with payments cannot be cancelled")
        if invoice.status == "paid" and status != "paid":
            raise CrmError("Paid invoices cannot change status")
        invoice.status = status
    if data.get("notes") is not None:
        invoice.notes = data["notes"]
    if data.get("due_date") is not None:
        if data["due_date"] < invoice.issue_date:
            raise CrmError("due_date must not be before issue_date")
        invoice.due_date = data["due_date"]
    invoice.updated_at = utcnow()
    db.commit()
    db.refresh(invoice)
    return invoice


def record_payment(
    db: Session,
    invoice_id: int,
    *,
    amount: float,
    payment_method: str = "bank_transfer",
    payment_reference: str | None = None,
    payment_date: date | None = None,
    notes: str | None = None,
) -> Invoice:
    invoice = get_invoice(db, invoice_id)
    if invoice.status == "cancelled":
        raise CrmError("Cannot record a payment on a cancelled invoice")
    if invoice.status == "paid":
        raise CrmError(f"Invoice {invoice.invoice_number} is already paid")
    amount = money(amount)
    if amount <= 0:
        raise CrmError("Payment amount must be positive")
    if payment_method not in PAYMENT_METHODS:
        raise CrmError(f"Unknown payment method: {payment_method}")
    outstanding = money(invoice.total - invoice.paid_amount)
    if amount > outstanding:
        raise CrmError(f"Payment of {amount:.2f} exceeds outstanding balance {outstanding:.2f}")

    invoice.payments.append(
        InvoicePayment(
            amount=amount,
            payment_method=payment_method,
            payment_reference=payment_reference,
            payment_date=payment_date or date.today(),
            notes=notes,
        )
    )
    invoice.paid_amount = money(invoice.paid_amount + amount)
    if invoice.paid_amount >= invoice.total:
        invoice.status = "paid"
        clients_crud.add_lifetime_value(db, invoice.client_id, invoice.total)
    elif invoice.status == "draft":
        invoice.status = "sent"
    invoice.updated_at = utcnow()
    db.commit()
    db.refresh(invoice)
    return invoice


def delete_invoice(db: Session, invoice_id: int) -> None:
    invoice = get_invoice(db, invoice_id)
    if invoice.status != "draft":
        raise CrmError("Only draft invoices can be deleted")
    db.delete(invoice)
    db.commit()


def mark_overdue(db: Session, today: date | None = None) -> int:
    today = today or date.today()
    rows = db.query(Invoice).filter(Invoice.status == "sent", Invoice.due_date < today).all()
    for inv in rows:
        inv.status = "overdue"
        inv.updated_at = utcnow()
    if rows:
        db.commit()
    return len(rows)


def count_invoices(db: Session, *, status: str | None = None) -> dict[str, Any]:
    q = db.query(func.count(Invoice.id), func.coalesce(func.sum(Invoice.total), 0.0))
    if status:
        q = q.filter(Invoice.status == status)
    count, total = q.one()
    return {"count": int(count or 0), "total_amount": money(total), "status": status}


def to_public_dict(invoice: Invoice, *, detail: bool = False) -> dict[str, Any]:
    out = {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "client_id": invoice.client_id,
        "client_name": invoice.client.full_name if invoice.client else None,
        "issue_date": iso(invoice.issue_date),
        "due_date": iso(invoice.due_date),
        "subtotal": money(invoice.subtotal),
        "tax_amount": money(invoice.tax_amount),
        "total": money(invoice.total),
        "paid_amount": money(invoice.paid_amount),
        "balance": money(invoice.total - invoice.paid_amount),
        "status": invoice.status,
        "notes": invoice.notes,
    }
    if detail:
        out["items"] = [
            {
                "id": it.id,
                "description": it.description,
                "quantity": it.quantity,
                "unit_price": money(it.unit_price),
                "tax_rate": it.tax_rate,
                "line_total": money(it.quantity * it.unit_price),
            }
            for it in invoice.items
        ]
        out["payments"] = [
            {
                "id": p.id,
                "amount": money(p.amount),
                "payment_method": p.payment_method,
                "payment_reference": p.payment_reference,
                "payment_date": iso(p.payment_date),
            }
            for p in invoice.payments
        ]
    return out
