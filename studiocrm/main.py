import time
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from studiocrm.core.config import settings
from studiocrm.core.logging_setup import setup_logging, get_logger
from studiocrm.core.csrf import csrf_middleware
from studiocrm.db.errors import CrmError, CrmNotFound
from studiocrm.db.init_db import init_db, ensure_admin_user, ensure_studio_settings
from studiocrm.routers.agent import router as agent_router
from studiocrm.routers.agent_shadow import router as agent_shadow_router
from studiocrm.routers.auth import router as auth_router
from studiocrm.routers.campaigns import router as campaigns_router
from studiocrm.routers.clients import router as clients_router
from studiocrm.routers.galleries import router as galleries_router
from studiocrm.routers.invoices import router as invoices_router
from studiocrm.routers.leads import router as leads_router
from studiocrm.routers.me import router as me_router
from studiocrm.routers.sessions import router as sessions_router
from studiocrm.routers.settings import router as settings_router
from studiocrm.routers.vouchers import router as vouchers_router

LOG = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            LOG.exception("Unhandled error while processing request: %s %s", request.method, request.url.path)
            raise
        dur_ms = int((time.perf_counter() - start) * 1000)
        LOG.info("%s %s -> %s (%sms)", request.method, request.url.path, response.status_code, dur_ms)
        return response


async def _crm_error(request: Request, exc: CrmError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def _crm_not_found(request: Request, exc: CrmNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title="Studio CRM",
        version="1.0.0",
    )

    Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    # Middleware: request logging + CSRF (for cookie-based JWT)
    app.add_middleware(RequestLoggingMiddleware)
    app.middleware("http")(csrf_middleware)

    app.add_exception_handler(CrmError, _crm_error)
    app.add_exception_handler(CrmNotFound, _crm_not_found)

    for router in (
        auth_router,
        me_router,
        settings_router,
        clients_router,
        leads_router,
        invoices_router,
        sessions_router,
        galleries_router,
        vouchers_router,
        campaigns_router,
        agent_router,
        agent_shadow_router,
    ):
        app.include_router(router, prefix="/api")

    @app.get("/api/health")
    def health():
        return {"ok": True}

    @app.on_event("startup")
    def _startup():
        init_db()
        ensure_studio_settings()
        ensure_admin_user()
        LOG.info("Startup complete. DB=%s", settings.SQLALCHEMY_DATABASE_URL)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "studiocrm.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=False,
        log_level="info",
    )
