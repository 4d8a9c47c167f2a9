from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from studiocrm.core.config import settings
from studiocrm.core.security import decode_access_token
from studiocrm.db.database import get_db
from studiocrm.db.models import AdminUser


def get_current_user(request: Request, db: Session = Depends(get_db)) -> AdminUser:
    token = request.cookies.get(settings.COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub", "0"))
    except Exception:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = db.get(AdminUser, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    return user


def require_roles(*roles: str):
    """Dependency factory: the current user must hold one of ``roles``."""

    def _dep(user: AdminUser = Depends(get_current_user)) -> AdminUser:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return user

    return _dep


require_admin = require_roles("admin", "owner")
# viewers are read-only everywhere
require_writer = require_roles("admin", "owner", "photographer", "manager", "staff")
