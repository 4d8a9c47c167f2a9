from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


def _basic_email_ok(v: str) -> bool:
    # admin accounts may live on local domains (admin@studio.local)
    if "@" not in v:
        return False
    left, right = v.split("@", 1)
    return bool(left.strip()) and bool(right.strip())


class LoginIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not _basic_email_ok(v):
            raise ValueError("Invalid email format (must contain '@').")
        return v
