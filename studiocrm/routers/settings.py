from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from studiocrm.db.database import get_db
from studiocrm.db.settings_crud import get_studio_settings, to_public_dict, update_studio_settings
from studiocrm.routers.deps import get_current_user, require_admin
from studiocrm.schemas.settings import StudioSettingsOut, StudioSettingsUpdateIn

router = APIRouter(tags=["settings"])


@router.get("/settings", response_model=StudioSettingsOut)
def get_settings(db: Session = Depends(get_db), user=Depends(get_current_user)):
    return StudioSettingsOut(**to_public_dict(get_studio_settings(db)))


@router.patch("/settings", response_model=StudioSettingsOut)
def patch_settings(payload: StudioSettingsUpdateIn, db: Session = Depends(get_db), admin=Depends(require_admin)):
    row = update_studio_settings(db, payload.model_dump(exclude_none=True))
    return StudioSettingsOut(**to_public_dict(row))
