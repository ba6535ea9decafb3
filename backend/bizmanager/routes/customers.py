# Overview: Flask API routes for customers, their ledger and statements.

from flask import Blueprint, request, jsonify

from ..decorators import require_actor, map_store_errors
from ..extensions import get_business_store
from ..validation import parse_window


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _customer_json(customer) -> dict:
    return {**customer.to_dict(), "is_over_credit_limit": customer.is_over_credit_limit}


@customers_bp.get("")
@require_actor
@map_store_errors
def list_customers_route():
    store = get_business_store()
    search = request.args.get("search")
    customers = store.search_customers(search) if search else store.list_customers()
    return jsonify({"items": [_customer_json(c) for c in customers], "count": len(customers)})


@customers_bp.post("")
@require_actor
@map_store_errors
def create_customer_route():
    data = request.get_json(silent=True) or {}
    return jsonify(_customer_json(get_business_store().add_customer(data))), 201


@customers_bp.get("/over-credit-limit")
@require_actor
@map_store_errors
def over_credit_limit_route():
    customers = get_business_store().get_customers_over_credit_limit()
    return jsonify({"items": [_customer_json(c) for c in customers], "count": len(customers)})


@customers_bp.get("/<customer_id>")
@require_actor
@map_store_errors
def get_customer_route(customer_id):
    return jsonify(_customer_json(get_business_store().get_customer(customer_id)))


@customers_bp.patch("/<customer_id>")
@require_actor
@map_store_errors
def update_customer_route(customer_id):
    data = request.get_json(silent=True) or {}
    return jsonify(_customer_json(get_business_store().update_customer(customer_id, data)))


@customers_bp.delete("/<customer_id>")
@require_actor
@map_store_errors
def delete_customer_route(customer_id):
    customer = get_business_store().delete_customer(customer_id)
    return jsonify({"deleted": customer.id})


@customers_bp.get("/<customer_id>/statement")
@require_actor
@map_store_errors
def customer_statement_route(customer_id):
    """
    Ledger entries with a running balance.

    Query parameters:
    - start, end: optional ISO-8601 bounds, end exclusive
    """
    start, end = parse_window(request.args)
    return jsonify(get_business_store().get_customer_statement(customer_id, start, end))


@customers_bp.post("/<customer_id>/adjustments")
@require_actor
@map_store_errors
def customer_adjustment_route(customer_id):
    """
    Manual ledger entry.

    Request body:
    {
        "amount_cents": -500,      // signed effect on the balance
        "kind": "adjustment",      // optional
        "note": "goodwill credit"  // optional
    }
    """
    data = request.get_json(silent=True) or {}
    store = get_business_store()
    entry = store.record_customer_adjustment(customer_id, data)
    return jsonify({
        "transaction": entry.to_dict(),
        "customer": _customer_json(store.get_customer(customer_id)),
    }), 201
