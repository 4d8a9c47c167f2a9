from __future__ import annotations

from datetime import datetime

from pydantic import Field

from studiocrm.db import vouchers_crud
from studiocrm.services.tools.base import BaseArgs, NoArgs, ToolDef, crm_call
from studiocrm.services.tools.context import ToolContext
from studiocrm.services.tools.guardrails import CRM_READ, CRM_WRITE, INV_READ, PRICE_WRITE


class ListProductsArgs(BaseArgs):
    active_only: bool = True
    category: str | None = None


class ListSalesArgs(BaseArgs):
    search: str | None = Field(default=None, description="Voucher code, purchaser or recipient")
    payment_status: str | None = Field(default=None, description="pending, paid, failed or refunded")
    redeemed: bool | None = None
    limit: int = Field(default=20, ge=1, le=100)


class CreateSaleArgs(BaseArgs):
    product_id: int
    purchaser_name: str = Field(min_length=1)
    purchaser_email: str = Field(min_length=3)
    recipient_name: str | None = None
    recipient_email: str | None = None
    gift_message: str | None = None
    coupon_code: str | None = None
    payment_status: str = "pending"
    payment_method: str | None = None


class VoucherCodeArgs(BaseArgs):
    voucher_code: str = Field(min_length=3)


class RedeemVoucherArgs(BaseArgs):
    voucher_code: str = Field(min_length=3, description="e.g. NAF-030925-0001")
    client_id: int | None = None
    session_id: int | None = None


class ValidateCouponArgs(BaseArgs):
    code: str = Field(min_length=1)
    order_amount: float = Field(ge=0)
    product_id: int | None = None


class CreateCouponArgs(BaseArgs):
    code: str = Field(min_length=2)
    name: str | None = None
    discount_type: str = Field(description="percentage or fixed_amount")
    discount_value: float = Field(gt=0)
    min_order_amount: float | None = Field(default=None, ge=0)
    max_discount_amount: float | None = Field(default=None, gt=0)
    usage_limit: int | None = Field(default=None, ge=1)
    start_date: datetime | None = None
    end_date: datetime | None = None
    applicable_products: list[int] | None = None


class UpdateProductArgs(BaseArgs):
    product_id: int
    name: str | None = None
    description: str | None = None
    price: float | None = Field(default=None, gt=0)
    original_price: float | None = Field(default=None, gt=0)
    validity_period: int | None = Field(default=None, ge=1, description="Days")
    is_active: bool | None = None


async def list_voucher_products(args: dict, ctx: ToolContext) -> list[dict]:
    rows = vouchers_crud.list_products(ctx.db, active_only=args.get("active_only", True), category=args.get("category"))
    return [vouchers_crud.product_to_dict(p) for p in rows]


async def list_voucher_sales(args: dict, ctx: ToolContext) -> list[dict]:
    rows = vouchers_crud.list_sales(
        ctx.db,
        search=args.get("search"),
        payment_status=args.get("payment_status"),
        redeemed=args.get("redeemed"),
        limit=args.get("limit"),
    )
    return [vouchers_crud.sale_to_dict(s) for s in rows]


async def get_voucher(args: dict, ctx: ToolContext) -> dict:
    return vouchers_crud.sale_to_dict(crm_call(vouchers_crud.get_sale_by_code, ctx.db, args["voucher_code"]))


async def create_voucher_sale(args: dict, ctx: ToolContext) -> dict:
    return vouchers_crud.sale_to_dict(crm_call(vouchers_crud.create_sale, ctx.db, args))


async def redeem_voucher(args: dict, ctx: ToolContext) -> dict:
    sale = crm_call(
        vouchers_crud.redeem_voucher,
        ctx.db,
        args["voucher_code"],
        client_id=args.get("client_id"),
        session_id=args.get("session_id"),
    )
    return vouchers_crud.sale_to_dict(sale)


async def validate_coupon(args: dict, ctx: ToolContext) -> dict:
    coupon, discount = crm_call(
        vouchers_crud.validate_coupon, ctx.db, args["code"], args["order_amount"], product_id=args.get("product_id")
    )
    return {
        "valid": True,
        "code": coupon.code,
        "discount_amount": discount,
        "final_amount": round(args["order_amount"] - discount, 2),
    }


async def create_coupon(args: dict, ctx: ToolContext) -> dict:
    return vouchers_crud.coupon_to_dict(crm_call(vouchers_crud.create_coupon, ctx.db, args))


async def update_voucher_product(args: dict, ctx: ToolContext) -> dict:
    data = {k: v for k, v in args.items() if k != "product_id"}
    return vouchers_crud.product_to_dict(crm_call(vouchers_crud.update_product, ctx.db, args["product_id"], data))


async def voucher_sales_summary(args: dict, ctx: ToolContext) -> dict:
    return vouchers_crud.sales_summary(ctx.db)


TOOLS = [
    ToolDef(
        name="list_voucher_products",
        description="List gift voucher products and their prices.",
        args_model=ListProductsArgs,
        handler=list_voucher_products,
        authz=[CRM_READ],
        category="vouchers",
    ),
    ToolDef(
        name="list_voucher_sales",
        description="List sold vouchers, by code, buyer, payment status or redemption.",
        args_model=ListSalesArgs,
        handler=list_voucher_sales,
        authz=[CRM_READ],
        category="vouchers",
    ),
    ToolDef(
        name="get_voucher",
        description="Look up a sold voucher by its code.",
        args_model=VoucherCodeArgs,
        handler=get_voucher,
        authz=[CRM_READ],
        category="vouchers",
    ),
    ToolDef(
        name="create_voucher_sale",
        description="Record a voucher sale. Generates the voucher code and applies an optional coupon.",
        args_model=CreateSaleArgs,
        handler=create_voucher_sale,
        authz=[CRM_WRITE],
        risk="medium",
        side_effects=True,
        category="vouchers",
    ),
    ToolDef(
        name="redeem_voucher",
        description="Redeem a paid, unexpired voucher, optionally linking a client and session.",
        args_model=RedeemVoucherArgs,
        handler=redeem_voucher,
        authz=[CRM_WRITE],
        risk="high",
        side_effects=True,
        category="vouchers",
    ),
    ToolDef(
        name="validate_coupon",
        description="Check whether a coupon code applies to an order amount and what it saves.",
        args_model=ValidateCouponArgs,
        handler=validate_coupon,
        authz=[CRM_READ],
        category="vouchers",
    ),
    ToolDef(
        name="create_coupon",
        description="Create a discount coupon (percentage or fixed amount).",
        args_model=CreateCouponArgs,
        handler=create_coupon,
        authz=[PRICE_WRITE],
        risk="medium",
        side_effects=True,
        category="vouchers",
    ),
    ToolDef(
        name="update_voucher_product",
        description="Change a voucher product's price, validity or availability.",
        args_model=UpdateProductArgs,
        handler=update_voucher_product,
        authz=[PRICE_WRITE],
        risk="high",
        side_effects=True,
        category="vouchers",
    ),
    ToolDef(
        name="voucher_sales_summary",
        description="Voucher revenue, discounts given and redemption counts.",
        args_model=NoArgs,
        handler=voucher_sales_summary,
        authz=[INV_READ],
        category="vouchers",
    ),
]
