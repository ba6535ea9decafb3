# Overview: Flask API routes for invoices and their payments.

"""
Invoice Routes

Totals, paid amounts, balance and payment status are derived by the store.
Requests that try to set them are rejected with 400.
"""

from flask import Blueprint, request, jsonify

from ..decorators import require_actor, map_store_errors
from ..extensions import get_business_store


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _list_response(invoices):
    return jsonify({
        "items": [inv.to_dict() for inv in invoices],
        "count": len(invoices),
        "balance_cents": sum(inv.balance_cents for inv in invoices),
    })


@invoices_bp.get("")
@require_actor
@map_store_errors
def list_invoices_route():
    """
    List invoices.

    Query parameters:
    - search: match on invoice number or customer name
    - status: lifecycle status or payment status
    - customer_id: only this customer's invoices
    """
    store = get_business_store()
    invoices = store.search_invoices(request.args.get("search", ""), status=request.args.get("status"))
    customer_id = request.args.get("customer_id")
    if customer_id:
        invoices = [inv for inv in invoices if inv.customer_id == customer_id]
    return _list_response(invoices)


@invoices_bp.post("")
@require_actor
@map_store_errors
def create_invoice_route():
    """
    Create an invoice.

    Request body:
    {
        "customer_id": "...",                                   // required
        "items": [{"product_id": "...", "quantity": 2}],        // required, non-empty
        "invoice_number": "INV-010",                            // optional, generated when omitted
        "invoice_type": "sale" | "return" | "quotation",        // optional, default sale
        "discount_cents": 0,                                    // optional
        "tax_rate_bps": 1000,                                   // optional, business default
        "status": "draft",                                      // optional
        "due_date": "2024-06-15T10:00:00Z",                     // optional
        "notes": "..."                                          // optional
    }
    """
    data = request.get_json(silent=True) or {}
    invoice = get_business_store().add_invoice(data)
    return jsonify(invoice.to_dict()), 201


@invoices_bp.get("/next-number")
@require_actor
@map_store_errors
def next_number_route():
    return jsonify({"invoice_number": get_business_store().generate_invoice_number()})


@invoices_bp.get("/pending")
@require_actor
@map_store_errors
def pending_invoices_route():
    return _list_response(get_business_store().get_pending_invoices())


@invoices_bp.get("/overdue")
@require_actor
@map_store_errors
def overdue_invoices_route():
    return _list_response(get_business_store().get_overdue_invoices())


@invoices_bp.get("/<invoice_id>")
@require_actor
@map_store_errors
def get_invoice_route(invoice_id):
    store = get_business_store()
    invoice = store.get_invoice(invoice_id)
    payments = store.list_payments(invoice_id)
    return jsonify({**invoice.to_dict(), "payments": [p.to_dict() for p in payments]})


@invoices_bp.patch("/<invoice_id>")
@require_actor
@map_store_errors
def update_invoice_route(invoice_id):
    data = request.get_json(silent=True) or {}
    return jsonify(get_business_store().update_invoice(invoice_id, data).to_dict())


@invoices_bp.delete("/<invoice_id>")
@require_actor
@map_store_errors
def delete_invoice_route(invoice_id):
    invoice = get_business_store().delete_invoice(invoice_id)
    return jsonify({"deleted": invoice.id})


@invoices_bp.get("/<invoice_id>/payments")
@require_actor
@map_store_errors
def list_invoice_payments_route(invoice_id):
    store = get_business_store()
    store.get_invoice(invoice_id)
    payments = store.list_payments(invoice_id)
    return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)})


@invoices_bp.post("/<invoice_id>/payments")
@require_actor
@map_store_errors
def create_payment_route(invoice_id):
    """
    Record a payment against an invoice.

    Request body:
    {
        "amount_cents": 2750,                // required, > 0
        "method": "cash",                    // optional
        "status": "completed" | "pending",   // optional, default completed
        "reference": "..."                   // optional
    }

    Returns:
        {payment, invoice} with the invoice recomputed from all payments
    """
    data = request.get_json(silent=True) or {}
    data = {**data, "invoice_id": invoice_id}
    store = get_business_store()
    payment = store.add_payment(data)
    return jsonify({"payment": payment.to_dict(), "invoice": store.get_invoice(invoice_id).to_dict()}), 201
