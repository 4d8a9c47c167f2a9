from datetime import datetime

from pydantic import BaseModel, Field


class SessionCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    session_type: str
    start_time: datetime
    end_time: datetime | None = None
    duration_minutes: int | None = Field(default=None, gt=0, le=24 * 60)
    client_id: int | None = None
    location: str | None = None
    notes: str | None = None
    price: float | None = Field(default=None, ge=0)
    voucher_code: str | None = None


class SessionUpdateIn(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    session_type: str | None = None
    status: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_minutes: int | None = Field(default=None, gt=0, le=24 * 60)
    client_id: int | None = None
    location: str | None = None
    notes: str | None = None
    price: float | None = Field(default=None, ge=0)


class SessionCancelIn(BaseModel):
    reason: str | None = Field(default=None, max_length=500)
