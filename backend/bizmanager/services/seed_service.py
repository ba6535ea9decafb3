# Overview: First-run sample catalogue, customers and invoices.

"""
Sample data is created through the store's public mutation API so every
derived field (stock movements, invoice totals, customer ledger) is
maintained exactly as it would be for real input.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


SAMPLE_PRODUCTS = [
    {
        "name": "Wireless Headphones",
        "sku": "WH001",
        "price_cents": 9999,
        "quantity": 25,
        "category": "Electronics",
        "barcode": "1234567890123",
        "low_stock_threshold": 10,
    },
    {
        "name": "Coffee Mug",
        "sku": "CM001",
        "price_cents": 1299,
        "quantity": 5,
        "category": "Home & Kitchen",
        "low_stock_threshold": 10,
    },
    {
        "name": "Office Chair",
        "sku": "OC001",
        "price_cents": 14999,
        "quantity": 8,
        "category": "Furniture",
        "low_stock_threshold": 5,
    },
    {
        "name": "Smartphone Case",
        "sku": "SC001",
        "price_cents": 2499,
        "quantity": 50,
        "category": "Electronics",
        "low_stock_threshold": 15,
    },
    {
        "name": "Water Bottle",
        "sku": "WB001",
        "price_cents": 1999,
        "quantity": 3,
        "category": "Sports",
        "low_stock_threshold": 10,
    },
]

SAMPLE_CUSTOMERS = [
    {
        "name": "John Smith",
        "phone": "+1234567890",
        "email": "john.smith@email.com",
        "address": "123 Main St, City, State 12345",
        "gst_number": "GST123456789",
    },
    {
        "name": "Sarah Johnson",
        "phone": "+1987654321",
        "email": "sarah.j@email.com",
        "address": "456 Oak Ave, City, State 12345",
    },
    {
        "name": "Mike Chen",
        "phone": "+1122334455",
        "email": "mike.chen@email.com",
        "address": "789 Pine Rd, City, State 12345",
        "gst_number": "GST987654321",
    },
]


def seed_sample_data(store) -> dict:
    """
    Populate an empty store. Returns counts of what was created.

    Invoice lines are (sku, quantity) pairs resolved against the seeded
    products; the second invoice is settled with a full cash payment.
    """
    products = {p["sku"]: store.add_product(p) for p in SAMPLE_PRODUCTS}
    customers = [store.add_customer(c) for c in SAMPLE_CUSTOMERS]

    first = store.add_invoice({
        "invoice_number": "INV-001",
        "customer_id": customers[0].id,
        "items": [
            {"product_id": products["WH001"].id, "quantity": 2},
            {"product_id": products["SC001"].id, "quantity": 1},
        ],
        "status": "finalized",
    })
    second = store.add_invoice({
        "invoice_number": "INV-002",
        "customer_id": customers[1].id,
        "items": [{"product_id": products["OC001"].id, "quantity": 1}],
        "status": "sent",
    })
    store.add_payment({"invoice_id": second.id, "amount_cents": second.total_cents, "method": "cash"})

    logger.info("Seeded %d products, %d customers, 2 invoices (%s, %s)",
                len(products), len(customers), first.invoice_number, second.invoice_number)
    return {"products": len(products), "customers": len(customers), "invoices": 2}
