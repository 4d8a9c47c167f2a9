from __future__ import annotations

from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from studiocrm.db import clients_crud
from studiocrm.db.errors import CrmError, CrmNotFound
from studiocrm.db.models import Lead, utcnow
from studiocrm.db.utils import apply_updates, clamp_limit, iso, like, money

LEAD_FIELDS = (
    "name",
    "email",
    "phone",
    "company",
    "message",
    "source",
    "status",
    "priority",
    "tags",
    "follow_up_date",
    "value",
)
LEAD_STATUSES = ("new", "contacted", "qualified", "proposal", "won", "lost", "converted")
LEAD_PRIORITIES = ("low", "medium", "high")


def _check_enums(data: dict[str, Any]) -> None:
    if data.get("status") and data["status"] not in LEAD_STATUSES:
        raise CrmError(f"Unknown lead status: {data['status']}")
    if data.get("priority") and data["priority"] not in LEAD_PRIORITIES:
        raise CrmError(f"Unknown lead priority: {data['priority']}")


def list_leads(
    db: Session,
    *,
    search: str | None = None,
    status: str | None = None,
    source: str | None = None,
    limit: int | None = None,
) -> list[Lead]:
    q = db.query(Lead)
    if search and search.strip():
        pattern = like(search)
        q = q.filter(
            or_(
                func.lower(Lead.name).like(pattern),
                func.lower(Lead.email).like(pattern),
                func.lower(func.coalesce(Lead.company, "")).like(pattern),
                func.lower(func.coalesce(Lead.phone, "")).like(pattern),
            )
        )
    if status:
        q = q.filter(Lead.status == status)
    if source:
        q = q.filter(Lead.source == source)
    return q.order_by(Lead.created_at.desc(), Lead.id.desc()).limit(clamp_limit(limit)).all()


def get_lead(db: Session, lead_id: int) -> Lead:
    lead = db.get(Lead, lead_id)
    if lead is None:
        raise CrmNotFound("lead", lead_id)
    return lead


def find_lead(db: Session, *, lead_id: int | None = None, email: str | None = None) -> Lead | None:
    if lead_id is not None:
        return db.get(Lead, lead_id)
    if email:
        return (
            db.query(Lead)
            .filter(func.lower(Lead.email) == email.strip().lower())
            .order_by(Lead.id.desc())
            .first()
        )
    return None


def create_lead(db: Session, data: dict[str, Any]) -> Lead:
    if not (data.get("name") or "").strip():
        raise CrmError("name is required")
    if not (data.get("email") or "").strip():
        raise CrmError("email is required")
    _check_enums(data)

    lead = Lead(status="new", priority="medium")
    apply_updates(lead, {**data, "email": data["email"].strip().lower()}, LEAD_FIELDS)
    db.add(lead)
    db.commit()
    db.refresh(lead)
    return lead


def update_lead(db: Session, lead_id: int, data: dict[str, Any]) -> Lead:
    lead = get_lead(db, lead_id)
    _check_enums(data)
    if data.get("status") == "converted" and lead.client_id is None:
        raise CrmError("Use lead conversion to mark a lead as converted")
    if apply_updates(lead, data, LEAD_FIELDS):
        lead.updated_at = utcnow()
        db.commit()
        db.refresh(lead)
    return lead


def delete_lead(db: Session, lead_id: int) -> None:
    db.delete(get_lead(db, lead_id))
    db.commit()


def _split_name(name: str) -> tuple[str, str]:
    parts = name.strip().split()
    if len(parts) == 1:
        return parts[0], "-"
    return " ".join(parts[:-1]), parts[-1]


def convert_lead(db: Session, lead_id: int) -> tuple[Lead, Any, bool]:
    """Turn a lead into a client.

    Reuses an existing client with the same e-mail. Returns
    (lead, client, created).
    """
    lead = get_lead(db, lead_id)
    if lead.status == "converted" or lead.client_id is not None:
        raise CrmError(f"Lead {lead.id} is already converted")

    client = clients_crud.find_client_by_email(db, lead.email)
    created = client is None
    if created:
        first, last = _split_name(lead.name)
        client = clients_crud.create_client(
            db,
            {
                "first_name": first,
                "last_name": last,
                "email": lead.email,
                "phone": lead.phone,
                "company": lead.company,
                "notes": lead.message,
            },
        )

    lead.client_id = client.id
    lead.status = "converted"
    lead.updated_at = utcnow()
    db.commit()
    db.refresh(lead)
    return lead, client, created


def count_leads(db: Session, *, status: str | None = None) -> int:
    q = db.query(func.count(Lead.id))
    if status:
        q = q.filter(Lead.status == status)
    return int(q.scalar() or 0)


def leads_report(db: Session) -> dict[str, Any]:
    by_status = dict(db.query(Lead.status, func.count(Lead.id)).group_by(Lead.status).all())
    by_source = dict(
        db.query(func.coalesce(Lead.source, "unknown"), func.count(Lead.id))
        .group_by(func.coalesce(Lead.source, "unknown"))
        .all()
    )
    total = sum(by_status.values())
    converted = by_status.get("converted", 0) + by_status.get("won", 0)
    pipeline_value = (
        db.query(func.coalesce(func.sum(Lead.value), 0.0))
        .filter(Lead.status.notin_(("lost", "converted")))
        .scalar()
    )
    return {
        "total": total,
        "by_status": by_status,
        "by_source": by_source,
        "conversion_rate": round(converted / total * 100, 1) if total else 0.0,
        "open_pipeline_value": money(pipeline_value),
    }


def to_public_dict(lead: Lead) -> dict[str, Any]:
    return {
        "id": lead.id,
        "name": lead.name,
        "email": lead.email,
        "phone": lead.phone,
        "company": lead.company,
        "message": lead.message,
        "source": lead.source,
        "status": lead.status,
        "priority": lead.priority,
        "tags": lead.tags or [],
        "follow_up_date": iso(lead.follow_up_date),
        "value": money(lead.value) if lead.value is not None else None,
        "client_id": lead.client_id,
        "created_at": iso(lead.created_at),
    }
