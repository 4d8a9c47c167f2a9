import secrets

from fastapi import Request
from starlette.responses import JSONResponse, Response

from studiocrm.core.config import settings
from studiocrm.core.logging_setup import get_logger

LOG = get_logger(__name__)

SAFE_METHODS = ("GET", "HEAD", "OPTIONS")

# Login has no cookie yet; public gallery visitors authenticate with X-Gallery-Token
EXEMPT_PATHS_PREFIX = (
    "/api/auth/login",
    "/api/galleries/public/",
)


def _needs_check(request: Request) -> bool:
    path = request.url.path
    if not path.startswith("/api") or request.method.upper() in SAFE_METHODS:
        return False
    if path.startswith(EXEMPT_PATHS_PREFIX):
        return False
    # anonymous requests are rejected by the auth dependency instead
    return bool(request.cookies.get(settings.COOKIE_NAME))


async def csrf_middleware(request: Request, call_next):
    """Double-submit check: the X-CSRF-Token header must echo the csrf_token cookie."""
    if not _needs_check(request):
        return await call_next(request)

    csrf_cookie = request.cookies.get(settings.CSRF_COOKIE_NAME) or ""
    csrf_header = request.headers.get(settings.CSRF_HEADER_NAME) or ""
    if not csrf_cookie or not secrets.compare_digest(csrf_cookie, csrf_header):
        LOG.info("CSRF rejected: %s %s", request.method, request.url.path)
        return JSONResponse(status_code=403, content={"detail": "CSRF validation failed"})

    resp: Response = await call_next(request)
    return resp
