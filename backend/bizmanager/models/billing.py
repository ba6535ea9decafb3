from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime

from .base import EntityMixin


# =============================================================================
# INVOICE TYPES / STATUSES (CONSTANTS)
# =============================================================================

INVOICE_TYPE_SALE = "sale"
INVOICE_TYPE_RETURN = "return"
INVOICE_TYPE_QUOTATION = "quotation"

VALID_INVOICE_TYPES = [INVOICE_TYPE_SALE, INVOICE_TYPE_RETURN, INVOICE_TYPE_QUOTATION]

INVOICE_STATUS_DRAFT = "draft"
INVOICE_STATUS_SENT = "sent"
INVOICE_STATUS_FINALIZED = "finalized"
INVOICE_STATUS_PAID = "paid"
INVOICE_STATUS_CANCELLED = "cancelled"

VALID_INVOICE_STATUSES = [
    INVOICE_STATUS_DRAFT,
    INVOICE_STATUS_SENT,
    INVOICE_STATUS_FINALIZED,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_CANCELLED,
]

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"

OPEN_PAYMENT_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PARTIAL)


# =============================================================================
# PAYMENT METHODS / STATES (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CARD = "card"
METHOD_TRANSFER = "transfer"
METHOD_UPI = "upi"
METHOD_CHEQUE = "cheque"
METHOD_OTHER = "other"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CARD,
    METHOD_TRANSFER,
    METHOD_UPI,
    METHOD_CHEQUE,
    METHOD_OTHER,
]

PAYMENT_COMPLETED = "completed"
PAYMENT_PENDING = "pending"
PAYMENT_FAILED = "failed"

VALID_PAYMENT_STATES = [PAYMENT_COMPLETED, PAYMENT_PENDING, PAYMENT_FAILED]


@dataclass(frozen=True)
class InvoiceItem:
    """
    Invoice line. product_name and sku are snapshots taken when the invoice
    was created; renaming or deleting the product later does not touch them.
    """
    product_id: str
    product_name: str
    quantity: int
    unit_price_cents: int
    sku: str = ""
    line_total_cents: int = 0

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InvoiceItem":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class Invoice(EntityMixin):
    """
    Customer invoice.

    subtotal/tax/total are derived from items; paid/balance/payment_status
    are derived from completed payments. Callers cannot write any of them.
    """
    entity_type = "invoices"
    DATETIME_FIELDS = ("created_at", "updated_at", "due_date")

    id: str
    invoice_number: str
    customer_id: str
    customer_name: str = ""
    invoice_type: str = INVOICE_TYPE_SALE
    items: tuple[InvoiceItem, ...] = ()
    subtotal_cents: int = 0
    discount_cents: int = 0
    tax_rate_bps: int = 0
    tax_cents: int = 0
    total_cents: int = 0
    paid_cents: int = 0
    balance_cents: int = 0
    payment_status: str = PAYMENT_STATUS_PENDING
    status: str = INVOICE_STATUS_DRAFT
    due_date: datetime | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == INVOICE_STATUS_CANCELLED

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PAYMENT_STATUS_PAID or self.status == INVOICE_STATUS_PAID

    @property
    def is_open(self) -> bool:
        return (
            self.payment_status in OPEN_PAYMENT_STATUSES
            and not self.is_cancelled
            and self.invoice_type != INVOICE_TYPE_QUOTATION
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["items"] = [item.to_dict() for item in self.items]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Invoice":
        data = dict(data)
        data["items"] = tuple(
            item if isinstance(item, InvoiceItem) else InvoiceItem.from_dict(item)
            for item in data.get("items") or ()
        )
        return super().from_dict(data)


@dataclass(frozen=True)
class Payment(EntityMixin):
    """Money received against one invoice. Only completed payments count."""
    entity_type = "payments"

    id: str
    invoice_id: str
    amount_cents: int
    method: str = METHOD_CASH
    status: str = PAYMENT_COMPLETED
    reference: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
