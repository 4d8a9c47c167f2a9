from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studiocrm.db import clients_crud, invoices_crud, sessions_crud
from studiocrm.db.database import get_db
from studiocrm.routers.deps import get_current_user, require_writer
from studiocrm.schemas.clients import ClientCreateIn, ClientUpdateIn

router = APIRouter(tags=["clients"])


@router.get("/clients")
def list_clients(
    search: str | None = None,
    status: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    rows = clients_crud.list_clients(db, search=search, status=status, limit=limit)
    return {"ok": True, "clients": [clients_crud.to_public_dict(c) for c in rows]}


@router.get("/clients/top")
def top_clients(limit: int = Query(default=10, ge=1, le=50), db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"ok": True, "clients": [clients_crud.to_public_dict(c) for c in clients_crud.top_clients(db, limit)]}


@router.get("/clients/segments")
def client_segments(db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"ok": True, "segments": clients_crud.client_segments(db)}


@router.get("/clients/{client_id}")
def get_client(client_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    client = clients_crud.get_client(db, client_id)
    return {
        "ok": True,
        "client": clients_crud.to_public_dict(client),
        "invoices": [invoices_crud.to_public_dict(i) for i in invoices_crud.list_invoices(db, client_id=client.id)],
        "sessions": [sessions_crud.to_public_dict(s) for s in sessions_crud.list_sessions(db, client_id=client.id)],
    }


@router.post("/clients")
def create_client(payload: ClientCreateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    client = clients_crud.create_client(db, payload.model_dump(exclude_none=True))
    return {"ok": True, "client": clients_crud.to_public_dict(client)}


@router.patch("/clients/{client_id}")
def update_client(client_id: int, payload: ClientUpdateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    client = clients_crud.update_client(db, client_id, payload.model_dump(exclude_none=True))
    return {"ok": True, "client": clients_crud.to_public_dict(client)}


@router.delete("/clients/{client_id}")
def delete_client(client_id: int, db: Session = Depends(get_db), user=Depends(require_writer)):
    clients_crud.delete_client(db, client_id)
    return {"ok": True}
