from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from studiocrm.db.models import AdminUser


@dataclass(frozen=True)
class ToolContext:
    db: Session
    user: AdminUser | None = None
    session_id: str | None = None
    scopes: list[str] = field(default_factory=list)
    mode: str = "auto_safe"  # read_only / auto_safe / auto_full
    dry_run: bool = False

    @property
    def user_id(self) -> int | None:
        return self.user.id if self.user is not None else None
