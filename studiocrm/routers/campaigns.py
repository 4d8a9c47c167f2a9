from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studiocrm.db import campaigns_crud
from studiocrm.db.database import get_db
from studiocrm.routers.deps import get_current_user, require_roles
from studiocrm.schemas.campaigns import CampaignCreateIn, CampaignScheduleIn, CampaignUpdateIn

router = APIRouter(tags=["campaigns"])

# roles that hold the EMAIL_SEND agent scope
require_marketing = require_roles("admin", "owner", "photographer", "manager")


@router.get("/campaigns")
def list_campaigns(
    search: str | None = None,
    status: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    rows = campaigns_crud.list_campaigns(db, search=search, status=status, limit=limit)
    return {"ok": True, "campaigns": [campaigns_crud.to_public_dict(c) for c in rows]}


@router.get("/campaigns/{campaign_id}")
def get_campaign(campaign_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    row = campaigns_crud.get_campaign(db, campaign_id)
    return {"ok": True, "campaign": campaigns_crud.to_public_dict(row, detail=True)}


@router.post("/campaigns")
def create_campaign(payload: CampaignCreateIn, db: Session = Depends(get_db), user=Depends(require_marketing)):
    row = campaigns_crud.create_campaign(db, payload.model_dump(exclude_none=True))
    return {"ok": True, "campaign": campaigns_crud.to_public_dict(row, detail=True)}


@router.patch("/campaigns/{campaign_id}")
def update_campaign(campaign_id: int, payload: CampaignUpdateIn, db: Session = Depends(get_db), user=Depends(require_marketing)):
    row = campaigns_crud.update_campaign(db, campaign_id, payload.model_dump(exclude_none=True))
    return {"ok": True, "campaign": campaigns_crud.to_public_dict(row, detail=True)}


@router.delete("/campaigns/{campaign_id}")
def delete_campaign(campaign_id: int, db: Session = Depends(get_db), user=Depends(require_marketing)):
    campaigns_crud.delete_campaign(db, campaign_id)
    return {"ok": True}


@router.post("/campaigns/{campaign_id}/schedule")
def schedule_campaign(campaign_id: int, payload: CampaignScheduleIn, db: Session = Depends(get_db), user=Depends(require_marketing)):
    row = campaigns_crud.schedule_campaign(db, campaign_id, payload.scheduled_at)
    return {"ok": True, "campaign": campaigns_crud.to_public_dict(row)}


@router.post("/campaigns/{campaign_id}/mark-sent")
def mark_sent(campaign_id: int, db: Session = Depends(get_db), user=Depends(require_marketing)):
    row = campaigns_crud.mark_sent(db, campaign_id)
    return {"ok": True, "campaign": campaigns_crud.to_public_dict(row)}


@router.post("/campaigns/{campaign_id}/pause")
def pause_campaign(campaign_id: int, db: Session = Depends(get_db), user=Depends(require_marketing)):
    row = campaigns_crud.pause_campaign(db, campaign_id)
    return {"ok": True, "campaign": campaigns_crud.to_public_dict(row)}
