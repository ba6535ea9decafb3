"""
Invoice math and numbering.

Verifies:
- Totals use half-up rounding on the discounted subtotal
- Payment state is derived from completed payments only
- Numbering scans the current maximum and never refills gaps
"""

import pytest

from bizmanager.errors import ValidationError
from bizmanager.models import InvoiceItem, Payment, Product
from bizmanager.services import invoice_service


def _item(quantity, price):
    return InvoiceItem(
        product_id="p",
        product_name="Tile",
        quantity=quantity,
        unit_price_cents=price,
        line_total_cents=quantity * price,
    )


def _payment(amount, status="completed", invoice_id="inv-1"):
    return Payment(id=f"pay-{amount}-{status}", invoice_id=invoice_id, amount_cents=amount, status=status)


class TestTotals:
    def test_two_line_invoice_with_ten_percent_tax(self):
        totals = invoice_service.compute_totals([_item(2, 1000), _item(1, 500)], tax_rate_bps=1000)
        assert totals.subtotal_cents == 2500
        assert totals.tax_cents == 250
        assert totals.total_cents == 2750

    def test_tax_rounds_half_up(self):
        # 22497 * 10% = 2249.7 -> 2250
        totals = invoice_service.compute_totals([_item(2, 9999), _item(1, 2499)], tax_rate_bps=1000)
        assert totals.tax_cents == 2250
        assert totals.total_cents == 24747

        # 5 * 10% = 0.5 -> 1
        assert invoice_service.compute_totals([_item(1, 5)], tax_rate_bps=1000).tax_cents == 1

    def test_discount_applies_before_tax(self):
        totals = invoice_service.compute_totals([_item(1, 1000)], tax_rate_bps=1000, discount_cents=200)
        assert totals.tax_cents == 80
        assert totals.total_cents == 880

    def test_discount_cannot_exceed_subtotal(self):
        with pytest.raises(ValidationError):
            invoice_service.compute_totals([_item(1, 100)], tax_rate_bps=0, discount_cents=101)

    def test_build_item_defaults_to_product_price(self):
        product = Product(id="p1", name="Tile", sku="T1", price_cents=750)
        item = invoice_service.build_item(product, 3)
        assert item.unit_price_cents == 750
        assert item.line_total_cents == 2250
        assert item.product_name == "Tile"

        overridden = invoice_service.build_item(product, 2, 700)
        assert overridden.line_total_cents == 1400


class TestPaymentState:
    @pytest.mark.parametrize(
        "paid,expected",
        [(0, "pending"), (1, "partial"), (2749, "partial"), (2750, "paid"), (3000, "paid")],
    )
    def test_resolve_payment_status(self, paid, expected):
        assert invoice_service.resolve_payment_status(2750, paid) == expected

    def test_only_completed_payments_for_the_invoice_count(self):
        payments = [
            _payment(1000),
            _payment(500, status="pending"),
            _payment(300, status="failed"),
            _payment(900, invoice_id="other"),
        ]
        state = invoice_service.apply_payments(2750, "inv-1", payments)
        assert state.paid_cents == 1000
        assert state.balance_cents == 1750
        assert state.payment_status == "partial"

    def test_overpayment_clamps_balance_at_zero(self):
        state = invoice_service.apply_payments(1000, "inv-1", [_payment(1200)])
        assert state.balance_cents == 0
        assert state.payment_status == "paid"


class TestNumbering:
    def test_first_number(self):
        assert invoice_service.next_invoice_number([]) == "INV-001"

    def test_max_plus_one_ignoring_gaps_and_foreign_numbers(self):
        numbers = ["INV-001", "INV-003", "QT-009", "INV-abc", ""]
        assert invoice_service.next_invoice_number(numbers) == "INV-004"

    def test_width_grows_past_padding(self):
        assert invoice_service.next_invoice_number(["INV-999"]) == "INV-1000"

    def test_floor_only_raises(self):
        assert invoice_service.next_invoice_number(["INV-002"], floor=40) == "INV-041"
        assert invoice_service.next_invoice_number(["INV-050"], floor=40) == "INV-051"

    def test_yearly_numbering_scopes_to_year(self):
        numbers = ["INV-2023-017", "INV-2024-002"]
        assert invoice_service.next_invoice_number(numbers, numbering="yearly", year=2024) == "INV-2024-003"
        assert invoice_service.next_invoice_number(numbers, numbering="yearly", year=2025) == "INV-2025-001"

    def test_yearly_numbering_requires_year(self):
        with pytest.raises(ValueError):
            invoice_service.next_invoice_number([], numbering="yearly")

    def test_sequential_generation_is_strictly_increasing(self):
        numbers = []
        for _ in range(12):
            numbers.append(invoice_service.next_invoice_number(numbers))
        assert len(set(numbers)) == 12
        assert [int(n.split("-")[1]) for n in numbers] == list(range(1, 13))
