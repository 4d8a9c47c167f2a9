from datetime import date

from pydantic import BaseModel, EmailStr, Field


class LeadCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: str | None = None
    company: str | None = None
    message: str | None = None
    source: str | None = None
    priority: str | None = None
    tags: list[str] | None = None
    follow_up_date: date | None = None
    value: float | None = Field(default=None, ge=0)


class LeadUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    email: EmailStr | None = None
    phone: str | None = None
    company: str | None = None
    message: str | None = None
    source: str | None = None
    status: str | None = None
    priority: str | None = None
    tags: list[str] | None = None
    follow_up_date: date | None = None
    value: float | None = Field(default=None, ge=0)
