from pydantic import BaseModel, EmailStr, Field


class ClientCreateIn(BaseModel):
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    client_number: str | None = Field(default=None, max_length=32)
    phone: str | None = None
    company: str | None = None
    address: str | None = None
    city: str | None = None
    zip: str | None = None
    country: str | None = None
    notes: str | None = None
    status: str | None = None


class ClientUpdateIn(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=120)
    last_name: str | None = Field(default=None, min_length=1, max_length=120)
    email: EmailStr | None = None
    phone: str | None = None
    company: str | None = None
    address: str | None = None
    city: str | None = None
    zip: str | None = None
    country: str | None = None
    notes: str | None = None
    status: str | None = None
