from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class ProductCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    price: float = Field(gt=0)
    description: str | None = None
    original_price: float | None = Field(default=None, gt=0)
    category: str | None = None
    session_duration: int | None = Field(default=None, gt=0)
    validity_period: int | None = Field(default=None, gt=0)
    stock_limit: int | None = Field(default=None, ge=0)


class ProductUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    price: float | None = Field(default=None, gt=0)
    description: str | None = None
    original_price: float | None = Field(default=None, gt=0)
    category: str | None = None
    session_duration: int | None = Field(default=None, gt=0)
    validity_period: int | None = Field(default=None, gt=0)
    is_active: bool | None = None
    stock_limit: int | None = Field(default=None, ge=0)


class CouponCreateIn(BaseModel):
    code: str = Field(min_length=2, max_length=64)
    name: str | None = None
    description: str | None = None
    discount_type: str
    discount_value: float
    min_order_amount: float | None = Field(default=None, ge=0)
    max_discount_amount: float | None = Field(default=None, gt=0)
    usage_limit: int | None = Field(default=None, gt=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    applicable_products: list[int] | None = None


class CouponUpdateIn(BaseModel):
    name: str | None = None
    description: str | None = None
    discount_type: str | None = None
    discount_value: float | None = None
    min_order_amount: float | None = Field(default=None, ge=0)
    max_discount_amount: float | None = Field(default=None, gt=0)
    usage_limit: int | None = Field(default=None, gt=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_active: bool | None = None
    applicable_products: list[int] | None = None


class CouponValidateIn(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    order_amount: float = Field(ge=0)
    product_id: int | None = None


class SaleCreateIn(BaseModel):
    product_id: int
    purchaser_name: str = Field(min_length=1, max_length=200)
    purchaser_email: EmailStr
    recipient_name: str | None = None
    recipient_email: EmailStr | None = None
    gift_message: str | None = None
    coupon_code: str | None = None
    payment_method: str | None = None
    payment_status: str | None = None


class PaymentStatusIn(BaseModel):
    payment_status: str


class RedeemIn(BaseModel):
    client_id: int | None = None
    session_id: int | None = None
