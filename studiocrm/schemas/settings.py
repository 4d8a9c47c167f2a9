from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


class StudioSettingsOut(BaseModel):
    studio_name: str
    currency: str
    default_tax_rate: float
    invoice_due_days: int
    voucher_validity_days: int
    timezone: str
    locale: str


class StudioSettingsUpdateIn(BaseModel):
    studio_name: str | None = Field(default=None, min_length=1, max_length=200)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    default_tax_rate: float | None = Field(default=None, ge=0, le=100)
    invoice_due_days: int | None = Field(default=None, ge=0, le=365)
    voucher_validity_days: int | None = Field(default=None, ge=1)
    timezone: str | None = Field(default=None)
    locale: str | None = Field(default=None, max_length=32)

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str | None):
        return v.upper() if v else v

    @field_validator("timezone")
    @classmethod
    def _timezone(cls, v: str | None):
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v
