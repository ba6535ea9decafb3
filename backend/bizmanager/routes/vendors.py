# Overview: Flask API routes for vendor operations; parses input and returns JSON responses.

"""
Vendor Routes

Vendors are referenced by expenses. A vendor with recorded expenses cannot be
deleted (409).
"""

from flask import Blueprint, request, jsonify

from ..decorators import require_actor, map_store_errors
from ..extensions import get_business_store


vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/vendors")


@vendors_bp.get("")
@require_actor
@map_store_errors
def list_vendors_route():
    """
    List vendors.

    Query parameters:
    - search: Search term for name, phone or email
    """
    vendors = get_business_store().list_vendors()
    search = (request.args.get("search") or "").strip().lower()
    if search:
        vendors = [
            v for v in vendors
            if any(search in (value or "").lower() for value in (v.name, v.phone, v.email))
        ]
    return jsonify({"items": [v.to_dict() for v in vendors], "count": len(vendors)})


@vendors_bp.post("")
@require_actor
@map_store_errors
def create_vendor_route():
    data = request.get_json(silent=True) or {}
    return jsonify(get_business_store().add_vendor(data).to_dict()), 201


@vendors_bp.get("/<vendor_id>")
@require_actor
@map_store_errors
def get_vendor_route(vendor_id):
    store = get_business_store()
    vendor = store.get_vendor(vendor_id)
    expenses = [e for e in store.list_expenses() if e.vendor_id == vendor_id]
    return jsonify({
        **vendor.to_dict(),
        "expense_count": len(expenses),
        "expense_total_cents": sum(e.amount_cents for e in expenses),
    })


@vendors_bp.patch("/<vendor_id>")
@require_actor
@map_store_errors
def update_vendor_route(vendor_id):
    data = request.get_json(silent=True) or {}
    return jsonify(get_business_store().update_vendor(vendor_id, data).to_dict())


@vendors_bp.delete("/<vendor_id>")
@require_actor
@map_store_errors
def delete_vendor_route(vendor_id):
    vendor = get_business_store().delete_vendor(vendor_id)
    return jsonify({"deleted": vendor.id})
