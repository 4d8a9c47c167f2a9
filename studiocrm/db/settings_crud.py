from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from studiocrm.core.config import settings
from studiocrm.db.models import StudioSettings

# Singleton defaults (exactly one row with id=1), seeded from the environment
DEFAULTS: dict[str, Any] = {
    "studio_name": settings.STUDIO_NAME,
    "currency": settings.STUDIO_CURRENCY,
    "default_tax_rate": settings.DEFAULT_TAX_RATE,
    "invoice_due_days": settings.INVOICE_DUE_DAYS,
    "voucher_validity_days": settings.VOUCHER_VALIDITY_DAYS,
    "timezone": "Europe/Vienna",
    "locale": "de-AT",
}


def ensure_studio_settings_row(db: Session) -> StudioSettings:
    """Ensure the singleton StudioSettings row exists (id=1).

    Safe to call on every startup.
    """
    row = db.get(StudioSettings, 1)
    if row is None:
        row = StudioSettings(id=1, **DEFAULTS)
        db.add(row)
        db.commit()
        db.refresh(row)
    return row


def get_studio_settings(db: Session) -> StudioSettings:
    row = db.get(StudioSettings, 1)
    if row is None:
        row = ensure_studio_settings_row(db)
    return row


def update_studio_settings(db: Session, data: dict[str, Any]) -> StudioSettings:
    row = get_studio_settings(db)

    # Only update known keys.
    for k in DEFAULTS.keys():
        if k in data and data[k] is not None:
            setattr(row, k, data[k])

    db.commit()
    db.refresh(row)
    return row


def to_public_dict(row: StudioSettings) -> dict[str, Any]:
    return {k: getattr(row, k) for k in DEFAULTS.keys()}
