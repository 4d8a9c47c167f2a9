"""Invoice numbering, totals and payments."""
from datetime import date, timedelta

import pytest

from studiocrm.db import clients_crud, invoices_crud
from studiocrm.db.errors import CrmError

ITEMS = [
    {"description": "Family shoot", "quantity": 1, "unit_price": 250.0},
    {"description": "Prints", "quantity": 3, "unit_price": 10.0, "tax_rate": 10},
]


@pytest.fixture
def invoice(db, client_row):
    return invoices_crud.create_invoice(db, client_id=client_row.id, items=ITEMS, issue_date=date(2025, 3, 1))


class TestTotals:
    def test_compute_totals(self):
        subtotal, tax, total = invoices_crud.compute_totals(
            [{"quantity": 2, "unit_price": 19.99, "tax_rate": 20}, {"quantity": 1, "unit_price": 5, "tax_rate": 0}]
        )
        assert subtotal == 44.98
        assert tax == 8.0
        assert total == 52.98

    def test_default_tax_rate_applied(self, invoice):
        # 250 at the studio default of 20%, 30 at 10%
        assert invoice.subtotal == 280.0
        assert invoice.tax_amount == 53.0
        assert invoice.total == 333.0

    def test_due_date_from_settings(self, invoice):
        assert invoice.due_date == date(2025, 3, 1) + timedelta(days=14)


class TestNumbering:
    def test_sequential_per_year(self, db, client_row, invoice):
        second = invoices_crud.create_invoice(db, client_id=client_row.id, items=ITEMS, issue_date=date(2025, 6, 1))
        other_year = invoices_crud.create_invoice(db, client_id=client_row.id, items=ITEMS, issue_date=date(2026, 1, 2))
        assert invoice.invoice_number == "INV-2025-0001"
        assert second.invoice_number == "INV-2025-0002"
        assert other_year.invoice_number == "INV-2026-0001"


class TestRules:
    def test_no_items(self, db, client_row):
        with pytest.raises(CrmError, match="no_products"):
            invoices_crud.create_invoice(db, client_id=client_row.id, items=[])

    def test_partial_then_full_payment(self, db, client_row, invoice):
        invoices_crud.record_payment(db, invoice.id, amount=100)
        assert invoice.status == "sent"
        invoices_crud.record_payment(db, invoice.id, amount=233, payment_method="card")
        assert invoice.status == "paid"
        assert clients_crud.get_client(db, client_row.id).lifetime_value == 333.0

    def test_overpayment_rejected(self, db, invoice):
        with pytest.raises(CrmError, match="exceeds"):
            invoices_crud.record_payment(db, invoice.id, amount=400)

    def test_negative_payment_rejected(self, db, invoice):
        with pytest.raises(CrmError):
            invoices_crud.record_payment(db, invoice.id, amount=-5)

    def test_no_payment_on_cancelled(self, db, invoice):
        invoices_crud.update_invoice(db, invoice.id, {"status": "cancelled"})
        with pytest.raises(CrmError, match="cancelled"):
            invoices_crud.record_payment(db, invoice.id, amount=10)

    def test_cannot_mark_paid_without_payment(self, db, invoice):
        with pytest.raises(CrmError):
            invoices_crud.update_invoice(db, invoice.id, {"status": "paid"})

    def test_only_drafts_deleted(self, db, invoice):
        invoices_crud.update_invoice(db, invoice.id, {"status": "sent"})
        with pytest.raises(CrmError):
            invoices_crud.delete_invoice(db, invoice.id)

    def test_mark_overdue(self, db, invoice):
        invoices_crud.update_invoice(db, invoice.id, {"status": "sent"})
        assert invoices_crud.mark_overdue(db, today=date(2025, 4, 1)) == 1
        assert invoices_crud.count_invoices(db, status="overdue") == {
            "count": 1,
            "total_amount": 333.0,
            "status": "overdue",
        }
