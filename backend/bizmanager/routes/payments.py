# Overview: Flask API routes for settling pending payments.

from flask import Blueprint, request, jsonify

from ..decorators import require_actor, map_store_errors
from ..extensions import get_business_store


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.get("/<payment_id>")
@require_actor
@map_store_errors
def get_payment_route(payment_id):
    return jsonify(get_business_store().get_payment(payment_id).to_dict())


@payments_bp.patch("/<payment_id>/status")
@require_actor
@map_store_errors
def update_payment_status_route(payment_id):
    """
    Settle a pending payment.

    Request body:
    {
        "status": "completed" | "failed"
    }
    """
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        return jsonify({"error": "status is required"}), 400

    store = get_business_store()
    payment = store.update_payment_status(payment_id, status)
    invoice = store.get_invoice(payment.invoice_id)
    return jsonify({"payment": payment.to_dict(), "invoice": invoice.to_dict()})
