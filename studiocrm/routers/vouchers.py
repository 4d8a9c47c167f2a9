from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studiocrm.db import vouchers_crud
from studiocrm.db.database import get_db
from studiocrm.routers.deps import get_current_user, require_admin, require_writer
from studiocrm.schemas.vouchers import (
    CouponCreateIn,
    CouponUpdateIn,
    CouponValidateIn,
    PaymentStatusIn,
    ProductCreateIn,
    ProductUpdateIn,
    RedeemIn,
    SaleCreateIn,
)

router = APIRouter(tags=["vouchers"])


# --- products ---------------------------------------------------------------


@router.get("/vouchers/products")
def list_products(
    active_only: bool = False,
    category: str | None = None,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    rows = vouchers_crud.list_products(db, active_only=active_only, category=category)
    return {"ok": True, "products": [vouchers_crud.product_to_dict(p) for p in rows]}


@router.post("/vouchers/products")
def create_product(payload: ProductCreateIn, db: Session = Depends(get_db), admin=Depends(require_admin)):
    row = vouchers_crud.create_product(db, payload.model_dump(exclude_none=True))
    return {"ok": True, "product": vouchers_crud.product_to_dict(row)}


@router.patch("/vouchers/products/{product_id}")
def update_product(product_id: int, payload: ProductUpdateIn, db: Session = Depends(get_db), admin=Depends(require_admin)):
    row = vouchers_crud.update_product(db, product_id, payload.model_dump(exclude_none=True))
    return {"ok": True, "product": vouchers_crud.product_to_dict(row)}


# --- coupons ----------------------------------------------------------------


@router.get("/vouchers/coupons")
def list_coupons(active_only: bool = False, db: Session = Depends(get_db), user=Depends(get_current_user)):
    rows = vouchers_crud.list_coupons(db, active_only=active_only)
    return {"ok": True, "coupons": [vouchers_crud.coupon_to_dict(c) for c in rows]}


@router.post("/vouchers/coupons")
def create_coupon(payload: CouponCreateIn, db: Session = Depends(get_db), admin=Depends(require_admin)):
    row = vouchers_crud.create_coupon(db, payload.model_dump(exclude_none=True))
    return {"ok": True, "coupon": vouchers_crud.coupon_to_dict(row)}


@router.patch("/vouchers/coupons/{coupon_id}")
def update_coupon(coupon_id: int, payload: CouponUpdateIn, db: Session = Depends(get_db), admin=Depends(require_admin)):
    row = vouchers_crud.update_coupon(db, coupon_id, payload.model_dump(exclude_none=True))
    return {"ok": True, "coupon": vouchers_crud.coupon_to_dict(row)}


@router.post("/vouchers/coupons/validate")
def validate_coupon(payload: CouponValidateIn, db: Session = Depends(get_db), user=Depends(get_current_user)):
    coupon, discount = vouchers_crud.validate_coupon(
        db, payload.code, payload.order_amount, product_id=payload.product_id
    )
    return {
        "ok": True,
        "valid": True,
        "coupon": vouchers_crud.coupon_to_dict(coupon),
        "discount_amount": discount,
        "final_amount": round(payload.order_amount - discount, 2),
    }


# --- sales ------------------------------------------------------------------


@router.get("/vouchers/sales")
def list_sales(
    search: str | None = None,
    payment_status: str | None = None,
    redeemed: bool | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    rows = vouchers_crud.list_sales(db, search=search, payment_status=payment_status, redeemed=redeemed, limit=limit)
    return {"ok": True, "sales": [vouchers_crud.sale_to_dict(s) for s in rows]}


@router.get("/vouchers/sales/summary")
def sales_summary(db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"ok": True, "summary": vouchers_crud.sales_summary(db)}


@router.get("/vouchers/sales/{code}")
def get_sale(code: str, db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"ok": True, "sale": vouchers_crud.sale_to_dict(vouchers_crud.get_sale_by_code(db, code))}


@router.post("/vouchers/sales")
def create_sale(payload: SaleCreateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    sale = vouchers_crud.create_sale(db, payload.model_dump(exclude_none=True))
    return {"ok": True, "sale": vouchers_crud.sale_to_dict(sale)}


@router.post("/vouchers/sales/{code}/payment-status")
def set_payment_status(code: str, payload: PaymentStatusIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    sale = vouchers_crud.set_payment_status(db, code, payload.payment_status)
    return {"ok": True, "sale": vouchers_crud.sale_to_dict(sale)}


@router.post("/vouchers/sales/{code}/redeem")
def redeem_voucher(code: str, payload: RedeemIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    sale = vouchers_crud.redeem_voucher(db, code, client_id=payload.client_id, session_id=payload.session_id)
    return {"ok": True, "sale": vouchers_crud.sale_to_dict(sale)}
