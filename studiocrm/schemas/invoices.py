from datetime import date

from pydantic import BaseModel, Field


class InvoiceItemIn(BaseModel):
    description: str = Field(min_length=1, max_length=500)
    quantity: float = Field(default=1.0, gt=0)
    unit_price: float = Field(ge=0)
    tax_rate: float | None = Field(default=None, ge=0, le=100)


class InvoiceCreateIn(BaseModel):
    client_id: int
    items: list[InvoiceItemIn]
    issue_date: date | None = None
    due_date: date | None = None
    notes: str | None = None
    status: str = "draft"


class InvoiceUpdateIn(BaseModel):
    status: str | None = None
    notes: str | None = None
    due_date: date | None = None


class PaymentIn(BaseModel):
    amount: float
    payment_method: str = "bank_transfer"
    payment_reference: str | None = Field(default=None, max_length=200)
    payment_date: date | None = None
    notes: str | None = None
