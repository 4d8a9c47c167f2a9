from __future__ import annotations

from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from studiocrm.db.errors import CrmError, CrmNotFound
from studiocrm.db.models import Client, utcnow
from studiocrm.db.utils import apply_updates, clamp_limit, iso, like, money

CLIENT_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "company",
    "address",
    "city",
    "zip",
    "country",
    "notes",
    "status",
)
CLIENT_STATUSES = ("active", "inactive", "archived")

# Lifetime value thresholds for segmentation
VIP_THRESHOLD = 2000.0
REGULAR_THRESHOLD = 500.0


def next_client_number(db: Session) -> str:
    n = (db.query(func.max(Client.id)).scalar() or 0) + 1
    while True:
        number = f"CL-{n:05d}"
        if db.query(Client.id).filter(Client.client_number == number).first() is None:
            return number
        n += 1


def list_clients(db: Session, *, search: str | None = None, status: str | None = None, limit: int | None = None) -> list[Client]:
    q = db.query(Client)
    if search and search.strip():
        pattern = like(search)
        full_name = func.lower(Client.first_name + " " + Client.last_name)
        q = q.filter(
            or_(
                full_name.like(pattern),
                func.lower(Client.email).like(pattern),
                func.lower(func.coalesce(Client.company, "")).like(pattern),
                func.lower(Client.client_number).like(pattern),
            )
        )
    if status:
        q = q.filter(Client.status == status)
    return q.order_by(Client.last_name.asc(), Client.first_name.asc()).limit(clamp_limit(limit)).all()


def get_client(db: Session, client_id: int) -> Client:
    client = db.get(Client, client_id)
    if client is None:
        raise CrmNotFound("client", client_id)
    return client


def find_client_by_email(db: Session, email: str) -> Client | None:
    return db.query(Client).filter(func.lower(Client.email) == email.strip().lower()).first()


def create_client(db: Session, data: dict[str, Any]) -> Client:
    email = (data.get("email") or "").strip().lower()
    if not email:
        raise CrmError("email is required")
    if not (data.get("first_name") or "").strip() or not (data.get("last_name") or "").strip():
        raise CrmError("first_name and last_name are required")
    if find_client_by_email(db, email) is not None:
        raise CrmError(f"A client with email {email} already exists")
    status = data.get("status") or "active"
    if status not in CLIENT_STATUSES:
        raise CrmError(f"Unknown client status: {status}")

    client = Client(client_number=data.get("client_number") or next_client_number(db))
    apply_updates(client, {**data, "email": email, "status": status}, CLIENT_FIELDS)
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def update_client(db: Session, client_id: int, data: dict[str, Any]) -> Client:
    client = get_client(db, client_id)
    if data.get("status") and data["status"] not in CLIENT_STATUSES:
        raise CrmError(f"Unknown client status: {data['status']}")
    if data.get("email"):
        data = {**data, "email": data["email"].strip().lower()}
        other = find_client_by_email(db, data["email"])
        if other is not None and other.id != client.id:
            raise CrmError(f"A client with email {data['email']} already exists")
    if apply_updates(client, data, CLIENT_FIELDS):
        client.updated_at = utcnow()
        db.commit()
        db.refresh(client)
    return client


def delete_client(db: Session, client_id: int) -> None:
    client = get_client(db, client_id)
    if client.invoices:
        raise CrmError("Client has invoices; archive the client instead")
    db.delete(client)
    db.commit()


def count_clients(db: Session, *, status: str | None = None) -> int:
    q = db.query(func.count(Client.id))
    if status:
        q = q.filter(Client.status == status)
    return int(q.scalar() or 0)


def add_lifetime_value(db: Session, client_id: int, amount: float) -> None:
    client = get_client(db, client_id)
    client.lifetime_value = money(client.lifetime_value + amount)
    client.updated_at = utcnow()


def top_clients(db: Session, limit: int = 10) -> list[Client]:
    return (
        db.query(Client)
        .filter(Client.status != "archived")
        .order_by(Client.lifetime_value.desc(), Client.id.asc())
        .limit(clamp_limit(limit, default=10))
        .all()
    )


def segment_for(client: Client) -> str:
    if client.status == "inactive":
        return "inactive"
    if client.lifetime_value >= VIP_THRESHOLD:
        return "vip"
    if client.lifetime_value >= REGULAR_THRESHOLD:
        return "regular"
    return "new"


def client_segments(db: Session) -> dict[str, dict[str, Any]]:
    segments: dict[str, dict[str, Any]] = {
        name: {"count": 0, "total_value": 0.0, "clients": []}
        for name in ("vip", "regular", "new", "inactive")
    }
    for client in db.query(Client).filter(Client.status != "archived").all():
        seg = segments[segment_for(client)]
        seg["count"] += 1
        seg["total_value"] = money(seg["total_value"] + client.lifetime_value)
        if len(seg["clients"]) < 5:
            seg["clients"].append({"id": client.id, "name": client.full_name})
    return segments


def to_public_dict(client: Client) -> dict[str, Any]:
    return {
        "id": client.id,
        "client_number": client.client_number,
        "name": client.full_name,
        "first_name": client.first_name,
        "last_name": client.last_name,
        "email": client.email,
        "phone": client.phone,
        "company": client.company,
        "address": client.address,
        "city": client.city,
        "zip": client.zip,
        "country": client.country,
        "notes": client.notes,
        "status": client.status,
        "segment": segment_for(client),
        "client_since": iso(client.client_since),
        "last_session_date": iso(client.last_session_date),
        "lifetime_value": money(client.lifetime_value),
        "created_at": iso(client.created_at),
    }
