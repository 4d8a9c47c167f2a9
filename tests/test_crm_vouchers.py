"""Voucher products, coupons, sales and redemption."""
from datetime import datetime, timedelta, timezone

import pytest

from studiocrm.db import vouchers_crud
from studiocrm.db.errors import CrmError, CrmNotFound
from studiocrm.db.models import CouponUsage, utcnow


@pytest.fixture
def product(db):
    return vouchers_crud.create_product(db, {"name": "Family Shoot", "price": 199.0, "category": "family"})


def _sale(db, product, **kw):
    data = {"product_id": product.id, "purchaser_name": "Eva Gruber", "purchaser_email": "eva@example.com", **kw}
    return vouchers_crud.create_sale(db, data)


class TestProducts:
    def test_validity_defaults_to_studio_setting(self, product):
        assert product.validity_period == 1460
        assert product.is_active is True

    def test_price_must_be_positive(self, db):
        with pytest.raises(CrmError):
            vouchers_crud.create_product(db, {"name": "Free", "price": 0})


class TestCoupons:
    def test_code_uppercased_and_unique(self, db):
        c = vouchers_crud.create_coupon(db, {"code": "spring10", "discount_type": "percentage", "discount_value": 10})
        assert c.code == "SPRING10"
        with pytest.raises(CrmError):
            vouchers_crud.create_coupon(db, {"code": "Spring10", "discount_type": "fixed_amount", "discount_value": 5})

    def test_percentage_over_100(self, db):
        with pytest.raises(CrmError):
            vouchers_crud.create_coupon(db, {"code": "X", "discount_type": "percentage", "discount_value": 120})

    def test_discount_capped(self, db):
        c = vouchers_crud.create_coupon(
            db,
            {"code": "BIG", "discount_type": "percentage", "discount_value": 50, "max_discount_amount": 30},
        )
        _, discount = vouchers_crud.validate_coupon(db, "big", 100)
        assert discount == 30.0
        assert vouchers_crud.compute_discount(c, 40) == 20.0

    def test_fixed_never_exceeds_order(self, db):
        vouchers_crud.create_coupon(db, {"code": "FIFTY", "discount_type": "fixed_amount", "discount_value": 50})
        _, discount = vouchers_crud.validate_coupon(db, "FIFTY", 20)
        assert discount == 20.0

    @pytest.mark.parametrize(
        "extra, order_amount, message",
        [
            ({"is_active": False}, 100, "not active"),
            ({"start_date": utcnow() + timedelta(days=2)}, 100, "not valid yet"),
            ({"start_date": utcnow() - timedelta(days=9), "end_date": utcnow() - timedelta(days=1)}, 100, "expired"),
            ({"min_order_amount": 150}, 100, "Minimum order"),
            ({"applicable_products": [999]}, 100, "does not apply"),
        ],
    )
    def test_rejections(self, db, extra, order_amount, message):
        c = vouchers_crud.create_coupon(db, {"code": "CHECK", "discount_type": "fixed_amount", "discount_value": 10})
        vouchers_crud.update_coupon(db, c.id, extra)
        with pytest.raises(CrmError, match=message):
            vouchers_crud.validate_coupon(db, "CHECK", order_amount, product_id=1)

    def test_update_end_before_stored_start(self, db):
        c = vouchers_crud.create_coupon(
            db,
            {
                "code": "WINTER",
                "discount_type": "fixed_amount",
                "discount_value": 10,
                "start_date": datetime(2030, 1, 10),
                "end_date": datetime(2030, 2, 10),
            },
        )
        with pytest.raises(CrmError, match="after start_date"):
            vouchers_crud.update_coupon(db, c.id, {"end_date": datetime(2030, 1, 1)})
        db.refresh(c)
        assert c.end_date == datetime(2030, 2, 10)

    def test_switch_to_percentage_checks_stored_value(self, db):
        c = vouchers_crud.create_coupon(db, {"code": "FLAT150", "discount_type": "fixed_amount", "discount_value": 150})
        with pytest.raises(CrmError, match="exceed 100"):
            vouchers_crud.update_coupon(db, c.id, {"discount_type": "percentage"})
        db.refresh(c)
        assert c.discount_type == "fixed_amount"

    def test_aware_window_stored_as_utc(self, db):
        plus_two = timezone(timedelta(hours=2))
        c = vouchers_crud.create_coupon(
            db,
            {
                "code": "AWARE",
                "discount_type": "percentage",
                "discount_value": 5,
                "start_date": datetime(2030, 3, 1, 8, 0, tzinfo=plus_two),
            },
        )
        assert c.start_date == datetime(2030, 3, 1, 6, 0)

    def test_unknown_code(self, db):
        with pytest.raises(CrmError, match="does not exist"):
            vouchers_crud.validate_coupon(db, "NOPE", 10)

    def test_usage_limit(self, db, product):
        vouchers_crud.create_coupon(
            db, {"code": "ONCE", "discount_type": "fixed_amount", "discount_value": 10, "usage_limit": 1}
        )
        _sale(db, product, coupon_code="ONCE")
        with pytest.raises(CrmError, match="usage limit"):
            _sale(db, product, coupon_code="ONCE")


class TestSales:
    def test_code_format_and_validity(self, db, product):
        sale = _sale(db, product)
        assert sale.voucher_code == f"NAF-{sale.valid_from:%d%m%y}-0001"
        assert sale.valid_until - sale.valid_from == timedelta(days=1460)
        assert sale.payment_status == "pending"
        assert _sale(db, product).voucher_code.endswith("-0002")

    def test_coupon_applied_and_recorded(self, db, product):
        vouchers_crud.create_coupon(db, {"code": "TEN", "discount_type": "percentage", "discount_value": 10})
        sale = _sale(db, product, coupon_code="ten")
        assert sale.discount_amount == 19.9
        assert sale.final_amount == 179.1
        assert sale.coupon_code == "TEN"
        assert vouchers_crud.find_coupon(db, "TEN").usage_count == 1
        assert db.query(CouponUsage).filter(CouponUsage.voucher_sale_id == sale.id).count() == 1

    def test_stock_limit(self, db):
        limited = vouchers_crud.create_product(db, {"name": "Limited", "price": 50, "stock_limit": 1})
        _sale(db, limited)
        with pytest.raises(CrmError, match="sold out"):
            _sale(db, limited)

    def test_inactive_product(self, db, product):
        vouchers_crud.update_product(db, product.id, {"is_active": False})
        with pytest.raises(CrmError):
            _sale(db, product)


class TestRedeem:
    def test_happy_path(self, db, product, client_row):
        sale = _sale(db, product, payment_status="paid")
        redeemed = vouchers_crud.redeem_voucher(db, sale.voucher_code.lower(), client_id=client_row.id)
        assert redeemed.is_redeemed is True
        assert redeemed.redeemed_by == client_row.id
        assert redeemed.redeemed_at is not None

    def test_unpaid(self, db, product):
        sale = _sale(db, product)
        with pytest.raises(CrmError, match="not paid"):
            vouchers_crud.redeem_voucher(db, sale.voucher_code)

    def test_twice(self, db, product):
        sale = _sale(db, product, payment_status="paid")
        vouchers_crud.redeem_voucher(db, sale.voucher_code)
        with pytest.raises(CrmError, match="already redeemed"):
            vouchers_crud.redeem_voucher(db, sale.voucher_code)

    def test_expired(self, db, product):
        sale = _sale(db, product, payment_status="paid")
        with pytest.raises(CrmError, match="expired"):
            vouchers_crud.redeem_voucher(db, sale.voucher_code, now=sale.valid_until + timedelta(seconds=1))

    def test_unknown_code(self, db):
        with pytest.raises(CrmNotFound):
            vouchers_crud.redeem_voucher(db, "NAF-000000-0000")

    def test_redeemed_cannot_be_refunded(self, db, product):
        sale = _sale(db, product, payment_status="paid")
        vouchers_crud.redeem_voucher(db, sale.voucher_code)
        with pytest.raises(CrmError):
            vouchers_crud.set_payment_status(db, sale.voucher_code, "refunded")

    def test_summary(self, db, product):
        paid = _sale(db, product, payment_status="paid")
        _sale(db, product)
        vouchers_crud.redeem_voucher(db, paid.voucher_code)
        summary = vouchers_crud.sales_summary(db)
        assert summary == {
            "total_sales": 2,
            "paid_sales": 1,
            "revenue": 199.0,
            "discounts_given": 0.0,
            "redeemed": 1,
            "outstanding": 0,
        }
