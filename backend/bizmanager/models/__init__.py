# Overview: Entity dataclasses and SQLAlchemy tables.

from .base import EntityMixin, new_id
from .catalog import Product, StockMovement
from .customers import Customer, CustomerTransaction
from .billing import Invoice, InvoiceItem, Payment
from .expenses import Vendor, Expense
from .profile import BusinessProfile, Actor, ANONYMOUS
from .records import EntityRecord, ChangeEvent

ENTITY_CLASSES = {
    cls.entity_type: cls
    for cls in (
        Product,
        Customer,
        Vendor,
        Invoice,
        Payment,
        Expense,
        StockMovement,
        CustomerTransaction,
    )
}

ENTITY_TYPES = tuple(ENTITY_CLASSES)

__all__ = [
    "EntityMixin",
    "new_id",
    "Product",
    "StockMovement",
    "Customer",
    "CustomerTransaction",
    "Invoice",
    "InvoiceItem",
    "Payment",
    "Vendor",
    "Expense",
    "BusinessProfile",
    "Actor",
    "ANONYMOUS",
    "EntityRecord",
    "ChangeEvent",
    "ENTITY_CLASSES",
    "ENTITY_TYPES",
]
