from pydantic import BaseModel, Field


class ChatIn(BaseModel):
    message: str = Field(min_length=1, max_length=8000)
    session_id: str | None = Field(default=None, max_length=64)
    mode: str | None = None


class ConfirmIn(BaseModel):
    session_id: str = Field(min_length=1, max_length=64)


class ReviewIn(BaseModel):
    notes: str | None = Field(default=None, max_length=4000)
