# Overview: Pure invoice calculations (line items, totals, payment status, numbering).

"""
Invoice Math

WHY: Every figure on an invoice except its items and rates is derived.
Totals are recomputed from items, and paid/balance/status are recomputed
from the full set of payments, never adjusted incrementally. Recomputing
keeps an invoice correct under retried or out-of-order payment inserts.

RULES:
- line_total = quantity * unit_price
- subtotal = sum(line totals)
- tax = round_half_up((subtotal - discount) * tax_rate_bps / 10000)
- total = subtotal - discount + tax
- paid = sum(completed payment amounts)
- balance = max(0, total - paid)
- payment_status: pending (paid == 0) -> partial (0 < paid < total) -> paid
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from ..errors import ValidationError
from ..models import InvoiceItem, Payment, Product
from ..models.billing import (
    PAYMENT_COMPLETED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PENDING,
)
from ..models.profile import NUMBERING_YEARLY


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int


@dataclass(frozen=True)
class PaymentState:
    paid_cents: int
    balance_cents: int
    payment_status: str


def round_half_up_div(numerator: int, denominator: int) -> int:
    """Nearest-integer division for non-negative values (half-up)."""
    return (numerator + (denominator // 2)) // denominator


def build_item(product: Product, quantity: int, unit_price_cents: int | None = None) -> InvoiceItem:
    """Snapshot a product into an invoice line."""
    price = product.price_cents if unit_price_cents is None else unit_price_cents
    return InvoiceItem(
        product_id=product.id,
        product_name=product.name,
        sku=product.sku,
        quantity=quantity,
        unit_price_cents=price,
        line_total_cents=quantity * price,
    )


def compute_totals(items: Iterable[InvoiceItem], *, tax_rate_bps: int, discount_cents: int = 0) -> InvoiceTotals:
    subtotal = sum(item.line_total_cents for item in items)
    if discount_cents > subtotal:
        raise ValidationError("discount_cents cannot exceed the invoice subtotal")
    taxable = subtotal - discount_cents
    tax = round_half_up_div(taxable * tax_rate_bps, 10_000)
    return InvoiceTotals(
        subtotal_cents=subtotal,
        discount_cents=discount_cents,
        tax_cents=tax,
        total_cents=taxable + tax,
    )


def resolve_payment_status(total_cents: int, paid_cents: int) -> str:
    if paid_cents <= 0:
        return PAYMENT_STATUS_PENDING
    if paid_cents >= total_cents:
        return PAYMENT_STATUS_PAID
    return PAYMENT_STATUS_PARTIAL


def apply_payments(total_cents: int, invoice_id: str, payments: Iterable[Payment]) -> PaymentState:
    """Recompute payment-derived invoice fields from every completed payment."""
    paid = sum(
        p.amount_cents
        for p in payments
        if p.invoice_id == invoice_id and p.status == PAYMENT_COMPLETED
    )
    return PaymentState(
        paid_cents=paid,
        balance_cents=max(0, total_cents - paid),
        payment_status=resolve_payment_status(total_cents, paid),
    )


def effective_prefix(prefix: str, numbering: str, year: int) -> str:
    if numbering == NUMBERING_YEARLY:
        return f"{prefix}{year}-"
    return prefix


def next_invoice_number(
    existing_numbers: Iterable[str],
    *,
    prefix: str = "INV-",
    width: int = 3,
    floor: int = 0,
    numbering: str = "sequential",
    year: int | None = None,
) -> str:
    """
    Next invoice number from the current maximum.

    Scans numbers carrying the prefix, parses the trailing digits, ignores
    anything unparsable, and returns max + 1 zero-padded to width. floor is
    a stored "last invoice number" and only ever raises the result. Gaps left
    by deleted invoices are never refilled.
    """
    if numbering == NUMBERING_YEARLY and year is None:
        raise ValueError("year is required for yearly numbering")
    full_prefix = effective_prefix(prefix, numbering, year)
    pattern = re.compile(rf"^{re.escape(full_prefix)}(\d+)$")

    highest = max(0, floor)
    for number in existing_numbers:
        match = pattern.match(number or "")
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{full_prefix}{highest + 1:0{width}d}"
