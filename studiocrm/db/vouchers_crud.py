from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from studiocrm.core.security import new_voucher_suffix
from studiocrm.db import clients_crud
from studiocrm.db.errors import CrmError, CrmNotFound
from studiocrm.db.models import CouponUsage, DiscountCoupon, VoucherProduct, VoucherSale, utcnow
from studiocrm.db.settings_crud import get_studio_settings
from studiocrm.db.utils import apply_updates, clamp_limit, iso, like, money, naive

PRODUCT_FIELDS = (
    "name",
    "description",
    "price",
    "original_price",
    "category",
    "session_duration",
    "validity_period",
    "is_active",
    "stock_limit",
)
COUPON_FIELDS = (
    "name",
    "description",
    "discount_type",
    "discount_value",
    "min_order_amount",
    "max_discount_amount",
    "usage_limit",
    "start_date",
    "end_date",
    "is_active",
    "applicable_products",
)
DISCOUNT_TYPES = ("percentage", "fixed_amount")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")


# --- products ---------------------------------------------------------------


def list_products(db: Session, *, active_only: bool = False, category: str | None = None) -> list[VoucherProduct]:
    q = db.query(VoucherProduct)
    if active_only:
        q = q.filter(VoucherProduct.is_active.is_(True))
    if category:
        q = q.filter(VoucherProduct.category == category)
    return q.order_by(VoucherProduct.price.asc(), VoucherProduct.id.asc()).all()


def get_product(db: Session, product_id: int) -> VoucherProduct:
    row = db.get(VoucherProduct, product_id)
    if row is None:
        raise CrmNotFound("voucher product", product_id)
    return row


def _check_product(data: dict[str, Any]) -> None:
    if data.get("price") is not None and float(data["price"]) <= 0:
        raise CrmError("price must be greater than 0")
    if data.get("validity_period") is not None and int(data["validity_period"]) <= 0:
        raise CrmError("validity_period must be a positive number of days")
    if data.get("session_duration") is not None and int(data["session_duration"]) <= 0:
        raise CrmError("session_duration must be positive")


def create_product(db: Session, data: dict[str, Any]) -> VoucherProduct:
    if not (data.get("name") or "").strip():
        raise CrmError("name is required")
    if data.get("price") is None:
        raise CrmError("price is required")
    _check_product(data)
    studio = get_studio_settings(db)
    row = VoucherProduct(validity_period=studio.voucher_validity_days, is_active=True)
    apply_updates(row, data, PRODUCT_FIELDS)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def update_product(db: Session, product_id: int, data: dict[str, Any]) -> VoucherProduct:
    row = get_product(db, product_id)
    _check_product(data)
    if apply_updates(row, data, PRODUCT_FIELDS):
        row.updated_at = utcnow()
        db.commit()
        db.refresh(row)
    return row


def product_to_dict(row: VoucherProduct) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "price": money(row.price),
        "original_price": money(row.original_price) if row.original_price is not None else None,
        "category": row.category,
        "session_duration": row.session_duration,
        "validity_period": row.validity_period,
        "is_active": row.is_active,
        "stock_limit": row.stock_limit,
    }


# --- coupons ----------------------------------------------------------------


def list_coupons(db: Session, *, active_only: bool = False) -> list[DiscountCoupon]:
    q = db.query(DiscountCoupon)
    if active_only:
        q = q.filter(DiscountCoupon.is_active.is_(True))
    return q.order_by(DiscountCoupon.created_at.desc(), DiscountCoupon.id.desc()).all()


def get_coupon(db: Session, coupon_id: int) -> DiscountCoupon:
    row = db.get(DiscountCoupon, coupon_id)
    if row is None:
        raise CrmNotFound("coupon", coupon_id)
    return row


def find_coupon(db: Session, code: str) -> DiscountCoupon | None:
    return db.query(DiscountCoupon).filter(DiscountCoupon.code == code.strip().upper()).first()


def _naive_window(data: dict[str, Any]) -> dict[str, Any]:
    return {**data, "start_date": naive(data.get("start_date")), "end_date": naive(data.get("end_date"))}


def _check_coupon(data: dict[str, Any]) -> None:
    kind = data.get("discount_type")
    if kind and kind not in DISCOUNT_TYPES:
        raise CrmError(f"Unknown discount type: {kind}")
    value = data.get("discount_value")
    if value is not None:
        if float(value) <= 0:
            raise CrmError("discount_value must be greater than 0")
        if kind == "percentage" and float(value) > 100:
            raise CrmError("A percentage discount cannot exceed 100")
    if data.get("start_date") and data.get("end_date") and data["end_date"] <= data["start_date"]:
        raise CrmError("end_date must be after start_date")


def create_coupon(db: Session, data: dict[str, Any]) -> DiscountCoupon:
    code = (data.get("code") or "").strip().upper()
    if not code:
        raise CrmError("code is required")
    if not data.get("discount_type") or data.get("discount_value") is None:
        raise CrmError("discount_type and discount_value are required")
    data = _naive_window(data)
    _check_coupon(data)
    if find_coupon(db, code) is not None:
        raise CrmError(f"Coupon {code} already exists")
    row = DiscountCoupon(code=code, name=data.get("name") or code, usage_count=0, is_active=True)
    apply_updates(row, data, COUPON_FIELDS)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def update_coupon(db: Session, coupon_id: int, data: dict[str, Any]) -> DiscountCoupon:
    row = get_coupon(db, coupon_id)
    data = _naive_window(data)
    merged = {k: getattr(row, k) for k in ("discount_type", "discount_value", "start_date", "end_date")}
    merged.update({k: v for k, v in data.items() if v is not None})
    _check_coupon(merged)
    if apply_updates(row, data, COUPON_FIELDS):
        row.updated_at = utcnow()
        db.commit()
        db.refresh(row)
    return row


def compute_discount(coupon: DiscountCoupon, order_amount: float) -> float:
    if coupon.discount_type == "percentage":
        discount = order_amount * coupon.discount_value / 100.0
    else:
        discount = coupon.discount_value
    if coupon.max_discount_amount is not None:
        discount = min(discount, coupon.max_discount_amount)
    return money(min(discount, order_amount))


def validate_coupon(
    db: Session,
    code: str,
    order_amount: float,
    *,
    product_id: int | None = None,
    now: datetime | None = None,
) -> tuple[DiscountCoupon, float]:
    """Check a coupon against an order. Returns (coupon, discount) or raises CrmError."""
    coupon = find_coupon(db, code)
    if coupon is None:
        raise CrmError(f"Coupon {code.strip().upper()} does not exist")
    now = now or utcnow()
    if not coupon.is_active:
        raise CrmError("Coupon is not active")
    if coupon.start_date and now < coupon.start_date:
        raise CrmError("Coupon is not valid yet")
    if coupon.end_date and now > coupon.end_date:
        raise CrmError("Coupon has expired")
    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        raise CrmError("Coupon usage limit reached")
    if coupon.min_order_amount and order_amount < coupon.min_order_amount:
        raise CrmError(f"Minimum order amount is {coupon.min_order_amount:.2f}")
    if coupon.applicable_products and product_id not in coupon.applicable_products:
        raise CrmError("Coupon does not apply to this product")
    return coupon, compute_discount(coupon, order_amount)


def coupon_to_dict(row: DiscountCoupon) -> dict[str, Any]:
    return {
        "id": row.id,
        "code": row.code,
        "name": row.name,
        "description": row.description,
        "discount_type": row.discount_type,
        "discount_value": row.discount_value,
        "min_order_amount": row.min_order_amount,
        "max_discount_amount": row.max_discount_amount,
        "usage_limit": row.usage_limit,
        "usage_count": row.usage_count,
        "start_date": iso(row.start_date),
        "end_date": iso(row.end_date),
        "is_active": row.is_active,
        "applicable_products": row.applicable_products,
    }


# --- sales ------------------------------------------------------------------


def next_voucher_code(db: Session, today: datetime | None = None) -> str:
    today = today or utcnow()
    prefix = f"NAF-{today:%d%m%y}-"
    used = db.query(func.count(VoucherSale.id)).filter(VoucherSale.voucher_code.like(f"{prefix}%")).scalar() or 0
    code = f"{prefix}{used + 1:04d}"
    while db.query(VoucherSale.id).filter(VoucherSale.voucher_code == code).first() is not None:
        code = f"{prefix}{new_voucher_suffix()}"
    return code


def list_sales(
    db: Session,
    *,
    search: str | None = None,
    payment_status: str | None = None,
    redeemed: bool | None = None,
    limit: int | None = None,
) -> list[VoucherSale]:
    q = db.query(VoucherSale)
    if search and search.strip():
        pattern = like(search)
        q = q.filter(
            or_(
                func.lower(VoucherSale.voucher_code).like(pattern),
                func.lower(VoucherSale.purchaser_name).like(pattern),
                func.lower(VoucherSale.purchaser_email).like(pattern),
                func.lower(func.coalesce(VoucherSale.recipient_name, "")).like(pattern),
            )
        )
    if payment_status:
        q = q.filter(VoucherSale.payment_status == payment_status)
    if redeemed is not None:
        q = q.filter(VoucherSale.is_redeemed.is_(redeemed))
    return q.order_by(VoucherSale.created_at.desc(), VoucherSale.id.desc()).limit(clamp_limit(limit)).all()


def get_sale_by_code(db: Session, code: str) -> VoucherSale:
    row = db.query(VoucherSale).filter(VoucherSale.voucher_code == code.strip().upper()).first()
    if row is None:
        raise CrmNotFound("voucher", code)
    return row


def create_sale(db: Session, data: dict[str, Any]) -> VoucherSale:
    product = get_product(db, data["product_id"])
    if not product.is_active:
        raise CrmError(f"Voucher product {product.name} is not available")
    if product.stock_limit is not None:
        sold = db.query(func.count(VoucherSale.id)).filter(VoucherSale.product_id == product.id).scalar() or 0
        if sold >= product.stock_limit:
            raise CrmError(f"Voucher product {product.name} is sold out")
    if not (data.get("purchaser_name") or "").strip() or not (data.get("purchaser_email") or "").strip():
        raise CrmError("purchaser_name and purchaser_email are required")
    payment_status = data.get("payment_status") or "pending"
    if payment_status not in PAYMENT_STATUSES:
        raise CrmError(f"Unknown payment status: {payment_status}")

    original = money(product.price)
    coupon = None
    discount = 0.0
    if data.get("coupon_code"):
        coupon, discount = validate_coupon(db, data["coupon_code"], original, product_id=product.id)

    valid_from = utcnow()
    sale = VoucherSale(
        product_id=product.id,
        purchaser_name=data["purchaser_name"].strip(),
        purchaser_email=data["purchaser_email"].strip().lower(),
        recipient_name=data.get("recipient_name"),
        recipient_email=data.get("recipient_email"),
        gift_message=data.get("gift_message"),
        voucher_code=next_voucher_code(db, valid_from),
        original_amount=original,
        discount_amount=discount,
        final_amount=money(original - discount),
        currency=get_studio_settings(db).currency,
        coupon_id=coupon.id if coupon else None,
        coupon_code=coupon.code if coupon else None,
        payment_status=payment_status,
        payment_method=data.get("payment_method"),
        valid_from=valid_from,
        valid_until=valid_from + timedelta(days=product.validity_period),
    )
    db.add(sale)
    db.flush()
    if coupon is not None:
        coupon.usage_count += 1
        db.add(
            CouponUsage(
                coupon_id=coupon.id,
                customer_email=sale.purchaser_email,
                order_amount=original,
                discount_amount=discount,
                voucher_sale_id=sale.id,
            )
        )
    db.commit()
    db.refresh(sale)
    return sale


def set_payment_status(db: Session, code: str, status: str) -> VoucherSale:
    sale = get_sale_by_code(db, code)
    if status not in PAYMENT_STATUSES:
        raise CrmError(f"Unknown payment status: {status}")
    if sale.is_redeemed and status == "refunded":
        raise CrmError("A redeemed voucher cannot be refunded")
    sale.payment_status = status
    sale.updated_at = utcnow()
    db.commit()
    db.refresh(sale)
    return sale


def redeem_voucher(
    db: Session,
    code: str,
    *,
    client_id: int | None = None,
    session_id: int | None = None,
    now: datetime | None = None,
) -> VoucherSale:
    sale = get_sale_by_code(db, code)
    now = now or utcnow()
    if sale.payment_status != "paid":
        raise CrmError(f"Voucher {sale.voucher_code} is not paid ({sale.payment_status})")
    if sale.is_redeemed:
        raise CrmError(f"Voucher {sale.voucher_code} was already redeemed on {sale.redeemed_at:%Y-%m-%d}")
    if now > sale.valid_until:
        raise CrmError(f"Voucher {sale.voucher_code} expired on {sale.valid_until:%Y-%m-%d}")
    if client_id is not None:
        clients_crud.get_client(db, client_id)

    sale.is_redeemed = True
    sale.redeemed_at = now
    sale.redeemed_by = client_id
    sale.session_id = session_id
    sale.updated_at = utcnow()
    db.commit()
    db.refresh(sale)
    return sale


def sales_summary(db: Session) -> dict[str, Any]:
    rows = db.query(VoucherSale).all()
    paid = [s for s in rows if s.payment_status == "paid"]
    return {
        "total_sales": len(rows),
        "paid_sales": len(paid),
        "revenue": money(sum(s.final_amount for s in paid)),
        "discounts_given": money(sum(s.discount_amount for s in paid)),
        "redeemed": sum(1 for s in rows if s.is_redeemed),
        "outstanding": sum(1 for s in paid if not s.is_redeemed),
    }


def sale_to_dict(row: VoucherSale) -> dict[str, Any]:
    return {
        "id": row.id,
        "voucher_code": row.voucher_code,
        "product_id": row.product_id,
        "product_name": row.product.name if row.product else None,
        "purchaser_name": row.purchaser_name,
        "purchaser_email": row.purchaser_email,
        "recipient_name": row.recipient_name,
        "recipient_email": row.recipient_email,
        "original_amount": money(row.original_amount),
        "discount_amount": money(row.discount_amount),
        "final_amount": money(row.final_amount),
        "currency": row.currency,
        "coupon_code": row.coupon_code,
        "payment_status": row.payment_status,
        "is_redeemed": row.is_redeemed,
        "redeemed_at": iso(row.redeemed_at),
        "valid_from": iso(row.valid_from),
        "valid_until": iso(row.valid_until),
    }
