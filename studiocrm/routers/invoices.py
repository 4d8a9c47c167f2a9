from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studiocrm.db import invoices_crud
from studiocrm.db.database import get_db
from studiocrm.routers.deps import get_current_user, require_writer
from studiocrm.schemas.invoices import InvoiceCreateIn, InvoiceUpdateIn, PaymentIn

router = APIRouter(tags=["invoices"])


@router.get("/invoices")
def list_invoices(
    status: str | None = None,
    client_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    rows = invoices_crud.list_invoices(db, status=status, client_id=client_id, limit=limit)
    return {"ok": True, "invoices": [invoices_crud.to_public_dict(i) for i in rows]}


@router.get("/invoices/stats")
def invoice_stats(status: str | None = None, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"ok": True, "stats": invoices_crud.count_invoices(db, status=status)}


@router.post("/invoices/mark-overdue")
def mark_overdue(db: Session = Depends(get_db), user=Depends(require_writer)):
    return {"ok": True, "updated": invoices_crud.mark_overdue(db)}


@router.get("/invoices/{invoice_id}")
def get_invoice(invoice_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"ok": True, "invoice": invoices_crud.to_public_dict(invoices_crud.get_invoice(db, invoice_id), detail=True)}


@router.post("/invoices")
def create_invoice(payload: InvoiceCreateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    invoice = invoices_crud.create_invoice(
        db,
        client_id=payload.client_id,
        items=[i.model_dump() for i in payload.items],
        issue_date=payload.issue_date,
        due_date=payload.due_date,
        notes=payload.notes,
        status=payload.status,
        created_by=user.id,
    )
    return {"ok": True, "invoice": invoices_crud.to_public_dict(invoice, detail=True)}


@router.patch("/invoices/{invoice_id}")
def update_invoice(invoice_id: int, payload: InvoiceUpdateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    invoice = invoices_crud.update_invoice(db, invoice_id, payload.model_dump(exclude_none=True))
    return {"ok": True, "invoice": invoices_crud.to_public_dict(invoice)}


@router.post("/invoices/{invoice_id}/payments")
def record_payment(invoice_id: int, payload: PaymentIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    invoice = invoices_crud.record_payment(db, invoice_id, **payload.model_dump())
    return {"ok": True, "invoice": invoices_crud.to_public_dict(invoice, detail=True)}


@router.delete("/invoices/{invoice_id}")
def delete_invoice(invoice_id: int, db: Session = Depends(get_db), user=Depends(require_writer)):
    invoices_crud.delete_invoice(db, invoice_id)
    return {"ok": True}
