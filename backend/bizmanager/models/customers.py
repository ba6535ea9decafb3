from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .base import EntityMixin


TXN_SALE = "sale"
TXN_PAYMENT = "payment"
TXN_RETURN = "return"
TXN_ADJUSTMENT = "adjustment"

VALID_TRANSACTION_KINDS = [TXN_SALE, TXN_PAYMENT, TXN_RETURN, TXN_ADJUSTMENT]


@dataclass(frozen=True)
class Customer(EntityMixin):
    """
    Customer master data.

    outstanding_balance_cents and loyalty_points are derived from the
    customer ledger and payments; callers never set them directly.
    """
    entity_type = "customers"

    id: str
    name: str
    phone: str = ""
    email: str | None = None
    address: str = ""
    gst_number: str | None = None
    credit_limit_cents: int | None = None
    outstanding_balance_cents: int = 0
    customer_group: str = "retail"
    loyalty_points: int = 0
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_over_credit_limit(self) -> bool:
        if self.credit_limit_cents is None:
            return False
        return self.outstanding_balance_cents > self.credit_limit_cents


@dataclass(frozen=True)
class CustomerTransaction(EntityMixin):
    """Append-only customer ledger entry; amount_cents is the signed balance effect."""
    entity_type = "customer_transactions"

    id: str
    customer_id: str
    kind: str
    amount_cents: int
    invoice_id: str | None = None
    payment_id: str | None = None
    note: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
