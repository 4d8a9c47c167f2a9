"""Shared fixtures.

Settings are read at import time, so the environment is pointed at a
throwaway directory before anything from studiocrm is imported.
"""
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="studiocrm-tests-")
os.environ.update(
    {
        "DB_DIR": _TMP,
        "LOG_DIR": os.path.join(_TMP, "logs"),
        "DB_FILENAME": "test.db",
        "JWT_SECRET": "test-secret",
        "COOKIE_SECURE": "false",
        "ADMIN_EMAIL": "owner@studio.test",
        "ADMIN_PASSWORD": "owner-pass",
        "LLM_API_KEY": "test-key",
        "LLM_BASE_URL": "https://llm.test/v1",
        "AGENT_DEFAULT_MODE": "auto_safe",
        "AGENT_V2_SHADOW": "false",
    }
)

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from helpers import login, make_user  # noqa: E402
from studiocrm.db import clients_crud  # noqa: E402
from studiocrm.db.database import Base, SessionLocal, engine  # noqa: E402
from studiocrm.db.settings_crud import ensure_studio_settings_row  # noqa: E402
from studiocrm.services.tools.context import ToolContext  # noqa: E402
from studiocrm.services.tools.guardrails import scopes_for_role  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    ensure_studio_settings_row(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def admin_user(db):
    return make_user(db, "admin", email="agent-admin@studio.test")


@pytest.fixture
def make_ctx(db):
    def _make(role: str = "admin", mode: str = "auto_full", dry_run: bool = False, user=None, session_id=None):
        return ToolContext(
            db=db,
            user=user,
            session_id=session_id,
            scopes=scopes_for_role(role),
            mode=mode,
            dry_run=dry_run,
        )

    return _make


@pytest.fixture
def client_row(db):
    return clients_crud.create_client(
        db, {"first_name": "Anna", "last_name": "Berger", "email": "anna@example.com", "company": "Berger GmbH"}
    )


@pytest.fixture
def tomorrow_at():
    def _at(hour: int, minute: int = 0) -> datetime:
        base = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
        return base.replace(hour=hour, minute=minute)

    return _at


@pytest.fixture
def api():
    from studiocrm.main import app

    with TestClient(app, base_url="https://testserver") as c:
        yield c


@pytest.fixture
def admin_api(api):
    resp = login(api)
    assert resp.status_code == 200, resp.text
    return api
