from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from studiocrm.db import clients_crud
from studiocrm.db.errors import CrmError, CrmNotFound
from studiocrm.db.models import Client, EmailCampaign, Lead, utcnow
from studiocrm.db.utils import apply_updates, clamp_limit, iso, like, naive

CAMPAIGN_FIELDS = (
    "name",
    "type",
    "subject",
    "preview_text",
    "content",
    "sender_name",
    "sender_email",
    "segments",
)
CAMPAIGN_TYPES = ("broadcast", "drip", "transactional")
CAMPAIGN_STATUSES = ("draft", "scheduled", "sending", "sent", "paused", "archived")
# Audience segments a campaign can target
SEGMENTS = ("all_clients", "vip", "regular", "new", "inactive", "leads")


def _check(data: dict[str, Any]) -> None:
    if data.get("type") and data["type"] not in CAMPAIGN_TYPES:
        raise CrmError(f"Unknown campaign type: {data['type']}")
    unknown = [s for s in (data.get("segments") or []) if s not in SEGMENTS]
    if unknown:
        raise CrmError(f"Unknown segments: {', '.join(unknown)}")


def recipient_emails(db: Session, segments: list[str] | None) -> set[str]:
    segments = segments or ["all_clients"]
    emails: set[str] = set()
    clients = db.query(Client).filter(Client.status != "archived").all()
    for client in clients:
        if "all_clients" in segments and client.status == "active":
            emails.add(client.email.lower())
        elif clients_crud.segment_for(client) in segments:
            emails.add(client.email.lower())
    if "leads" in segments:
        for (email,) in db.query(Lead.email).filter(Lead.status.notin_(("lost", "converted"))).all():
            emails.add(email.lower())
    return emails


def list_campaigns(
    db: Session, *, search: str | None = None, status: str | None = None, limit: int | None = None
) -> list[EmailCampaign]:
    q = db.query(EmailCampaign)
    if search and search.strip():
        q = q.filter(func.lower(EmailCampaign.name).like(like(search)))
    if status:
        q = q.filter(EmailCampaign.status == status)
    return q.order_by(EmailCampaign.created_at.desc(), EmailCampaign.id.desc()).limit(clamp_limit(limit)).all()


def get_campaign(db: Session, campaign_id: int) -> EmailCampaign:
    row = db.get(EmailCampaign, campaign_id)
    if row is None:
        raise CrmNotFound("campaign", campaign_id)
    return row


def create_campaign(db: Session, data: dict[str, Any]) -> EmailCampaign:
    for field in ("name", "subject", "content"):
        if not (data.get(field) or "").strip():
            raise CrmError(f"{field} is required")
    _check(data)
    row = EmailCampaign(status="draft", type="broadcast")
    apply_updates(row, data, CAMPAIGN_FIELDS)
    row.recipient_count = len(recipient_emails(db, row.segments))
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def update_campaign(db: Session, campaign_id: int, data: dict[str, Any]) -> EmailCampaign:
    row = get_campaign(db, campaign_id)
    if row.status in ("sending", "sent"):
        raise CrmError(f"Campaign {row.id} was already {row.status}")
    _check(data)
    changed = apply_updates(row, data, CAMPAIGN_FIELDS)
    if "segments" in changed:
        row.recipient_count = len(recipient_emails(db, row.segments))
    if changed:
        row.updated_at = utcnow()
        db.commit()
        db.refresh(row)
    return row


def delete_campaign(db: Session, campaign_id: int) -> None:
    row = get_campaign(db, campaign_id)
    if row.status != "draft":
        raise CrmError("Only draft campaigns can be deleted")
    db.delete(row)
    db.commit()


def schedule_campaign(db: Session, campaign_id: int, when: datetime, *, now: datetime | None = None) -> EmailCampaign:
    row = get_campaign(db, campaign_id)
    if row.status not in ("draft", "paused", "scheduled"):
        raise CrmError(f"Cannot schedule a campaign in status {row.status}")
    when = naive(when)
    if when <= (now or utcnow()):
        raise CrmError("scheduled_at must be in the future")
    row.recipient_count = len(recipient_emails(db, row.segments))
    if row.recipient_count == 0:
        raise CrmError("Campaign has no recipients")
    row.scheduled_at = when
    row.status = "scheduled"
    row.updated_at = utcnow()
    db.commit()
    db.refresh(row)
    return row


def mark_sent(db: Session, campaign_id: int) -> EmailCampaign:
    row = get_campaign(db, campaign_id)
    if row.status not in ("scheduled", "sending"):
        raise CrmError("Only scheduled campaigns can be marked as sent")
    row.status = "sent"
    row.sent_at = utcnow()
    row.sent_count = row.recipient_count
    row.updated_at = utcnow()
    db.commit()
    db.refresh(row)
    return row


def pause_campaign(db: Session, campaign_id: int) -> EmailCampaign:
    row = get_campaign(db, campaign_id)
    if row.status not in ("scheduled", "sending"):
        raise CrmError("Only scheduled campaigns can be paused")
    row.status = "paused"
    row.updated_at = utcnow()
    db.commit()
    db.refresh(row)
    return row


def to_public_dict(row: EmailCampaign, *, detail: bool = False) -> dict[str, Any]:
    out = {
        "id": row.id,
        "name": row.name,
        "type": row.type,
        "status": row.status,
        "subject": row.subject,
        "segments": row.segments or [],
        "recipient_count": row.recipient_count,
        "sent_count": row.sent_count,
        "opened_count": row.opened_count,
        "clicked_count": row.clicked_count,
        "open_rate": round(row.opened_count / row.sent_count * 100, 1) if row.sent_count else 0.0,
        "scheduled_at": iso(row.scheduled_at),
        "sent_at": iso(row.sent_at),
    }
    if detail:
        out.update(
            {
                "preview_text": row.preview_text,
                "content": row.content,
                "sender_name": row.sender_name,
                "sender_email": row.sender_email,
            }
        )
    return out
