"""Plain helpers shared by the test modules (fixtures live in conftest.py)."""
import json

from fastapi.testclient import TestClient

from studiocrm.core.security import hash_password
from studiocrm.db.models import AdminUser

ADMIN_EMAIL = "owner@studio.test"
ADMIN_PASSWORD = "owner-pass"


def make_user(db, role: str, email: str | None = None, password: str = "secret-pass", active: bool = True) -> AdminUser:
    user = AdminUser(
        email=email or f"{role}@studio.test",
        password_hash=hash_password(password),
        name=role.title(),
        role=role,
        is_active=active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def login(c: TestClient, email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD):
    resp = c.post("/api/auth/login", json={"email": email, "password": password})
    if resp.status_code == 200:
        c.headers["X-CSRF-Token"] = resp.json()["csrf_token"]
    return resp


def llm_message(content: str | None = None, tool_calls: list | None = None) -> dict:
    msg = {"role": "assistant", "content": content}
    if tool_calls:
        msg["tool_calls"] = tool_calls
    return msg


def tool_call(name: str, args: dict | str, call_id: str = "call_1") -> dict:
    raw = args if isinstance(args, str) else json.dumps(args)
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": raw}}
