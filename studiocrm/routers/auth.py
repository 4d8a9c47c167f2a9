from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from studiocrm.core.config import settings
from studiocrm.core.logging_setup import get_logger
from studiocrm.core.security import create_access_token, new_csrf_token, verify_password
from studiocrm.db.database import get_db
from studiocrm.db.models import AdminUser
from studiocrm.schemas.auth import LoginIn

LOG = get_logger(__name__)
router = APIRouter(tags=["auth"])


def _set_auth_cookies(resp: Response, token: str, csrf: str) -> None:
    common = {
        "secure": settings.COOKIE_SECURE,
        "samesite": settings.COOKIE_SAMESITE,
        "domain": settings.COOKIE_DOMAIN,
        "path": "/",
        "max_age": settings.JWT_EXPIRES_MINUTES * 60,
    }
    resp.set_cookie(key=settings.COOKIE_NAME, value=token, httponly=True, **common)
    # readable by the admin UI so it can echo it in the CSRF header
    resp.set_cookie(key=settings.CSRF_COOKIE_NAME, value=csrf, httponly=False, **common)


def _clear_auth_cookies(resp: Response) -> None:
    resp.delete_cookie(key=settings.COOKIE_NAME, path="/", domain=settings.COOKIE_DOMAIN)
    resp.delete_cookie(key=settings.CSRF_COOKIE_NAME, path="/", domain=settings.COOKIE_DOMAIN)


@router.post("/auth/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user = db.query(AdminUser).filter(AdminUser.email == payload.email).first()
    if not user or not verify_password(payload.password, user.password_hash):
        LOG.info("Failed login for %s", payload.email)
        return JSONResponse(status_code=401, content={"detail": "Invalid credentials"})

    if not user.is_active:
        return JSONResponse(status_code=403, content={"detail": "Account is disabled"})

    token = create_access_token(subject=str(user.id), role=user.role)
    csrf = new_csrf_token()

    resp = JSONResponse(
        status_code=200,
        content={"ok": True, "message": "Logged in", "csrf_token": csrf},
    )
    _set_auth_cookies(resp, token, csrf)
    return resp


@router.post("/auth/logout")
def logout():
    resp = JSONResponse(status_code=200, content={"ok": True, "message": "Logged out"})
    _clear_auth_cookies(resp)
    return resp
