from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studiocrm.db import clients_crud, leads_crud
from studiocrm.db.database import get_db
from studiocrm.routers.deps import get_current_user, require_writer
from studiocrm.schemas.leads import LeadCreateIn, LeadUpdateIn

router = APIRouter(tags=["leads"])


@router.get("/leads")
def list_leads(
    search: str | None = None,
    status: str | None = None,
    source: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    rows = leads_crud.list_leads(db, search=search, status=status, source=source, limit=limit)
    return {"ok": True, "leads": [leads_crud.to_public_dict(r) for r in rows]}


@router.get("/leads/report")
def leads_report(db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"ok": True, "report": leads_crud.leads_report(db)}


@router.get("/leads/{lead_id}")
def get_lead(lead_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"ok": True, "lead": leads_crud.to_public_dict(leads_crud.get_lead(db, lead_id))}


@router.post("/leads")
def create_lead(payload: LeadCreateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    lead = leads_crud.create_lead(db, payload.model_dump(exclude_none=True))
    return {"ok": True, "lead": leads_crud.to_public_dict(lead)}


@router.patch("/leads/{lead_id}")
def update_lead(lead_id: int, payload: LeadUpdateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    lead = leads_crud.update_lead(db, lead_id, payload.model_dump(exclude_none=True))
    return {"ok": True, "lead": leads_crud.to_public_dict(lead)}


@router.post("/leads/{lead_id}/convert")
def convert_lead(lead_id: int, db: Session = Depends(get_db), user=Depends(require_writer)):
    lead, client, created = leads_crud.convert_lead(db, lead_id)
    return {
        "ok": True,
        "lead": leads_crud.to_public_dict(lead),
        "client": clients_crud.to_public_dict(client),
        "client_created": created,
    }


@router.delete("/leads/{lead_id}")
def delete_lead(lead_id: int, db: Session = Depends(get_db), user=Depends(require_writer)):
    leads_crud.delete_lead(db, lead_id)
    return {"ok": True}
