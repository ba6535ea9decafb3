from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .base import EntityMixin


@dataclass(frozen=True)
class Vendor(EntityMixin):
    """Supplier the business pays. Expenses may reference a vendor."""
    entity_type = "vendors"

    id: str
    name: str
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    gst_number: str | None = None
    payment_terms_days: int = 0
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class Expense(EntityMixin):
    entity_type = "expenses"
    DATETIME_FIELDS = ("created_at", "updated_at", "incurred_at")

    id: str
    category: str
    amount_cents: int
    description: str = ""
    vendor_id: str | None = None
    payment_method: str = "cash"
    incurred_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
