from datetime import datetime
from pydantic import BaseModel


class UserOut(BaseModel):
    id: int
    email: str
    name: str | None
    role: str
    is_active: bool
    created_at: datetime
    scopes: list[str]
    recommended_mode: str
