from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class CampaignCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    subject: str = Field(min_length=1, max_length=300)
    content: str = Field(min_length=1)
    type: str | None = None
    preview_text: str | None = None
    sender_name: str | None = None
    sender_email: EmailStr | None = None
    segments: list[str] | None = None


class CampaignUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    subject: str | None = Field(default=None, min_length=1, max_length=300)
    content: str | None = None
    type: str | None = None
    preview_text: str | None = None
    sender_name: str | None = None
    sender_email: EmailStr | None = None
    segments: list[str] | None = None


class CampaignScheduleIn(BaseModel):
    scheduled_at: datetime
