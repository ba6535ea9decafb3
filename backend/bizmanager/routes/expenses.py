# Overview: Flask API routes for business expenses.

from flask import Blueprint, request, jsonify

from ..decorators import require_actor, map_store_errors
from ..extensions import get_business_store
from ..services import reporting_service
from ..validation import parse_window


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_actor
@map_store_errors
def list_expenses_route():
    """
    List expenses, newest first.

    Query parameters:
    - start, end: optional ISO-8601 window on incurred_at
    - category: exact category match
    - vendor_id: only expenses for this vendor
    """
    start, end = parse_window(request.args)
    category = request.args.get("category")
    vendor_id = request.args.get("vendor_id")

    expenses = [
        e for e in get_business_store().list_expenses()
        if reporting_service.in_window(e.incurred_at, start, end)
        and (not category or e.category == category)
        and (not vendor_id or e.vendor_id == vendor_id)
    ]
    expenses.sort(key=lambda e: e.incurred_at, reverse=True)
    return jsonify({
        "items": [e.to_dict() for e in expenses],
        "count": len(expenses),
        "total_cents": sum(e.amount_cents for e in expenses),
    })


@expenses_bp.post("")
@require_actor
@map_store_errors
def create_expense_route():
    data = request.get_json(silent=True) or {}
    return jsonify(get_business_store().add_expense(data).to_dict()), 201


@expenses_bp.get("/<expense_id>")
@require_actor
@map_store_errors
def get_expense_route(expense_id):
    return jsonify(get_business_store().get_expense(expense_id).to_dict())


@expenses_bp.patch("/<expense_id>")
@require_actor
@map_store_errors
def update_expense_route(expense_id):
    data = request.get_json(silent=True) or {}
    return jsonify(get_business_store().update_expense(expense_id, data).to_dict())


@expenses_bp.delete("/<expense_id>")
@require_actor
@map_store_errors
def delete_expense_route(expense_id):
    expense = get_business_store().delete_expense(expense_id)
    return jsonify({"deleted": expense.id})
