# Overview: Flask API routes for products and stock movements; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..decorators import require_actor, map_store_errors
from ..extensions import get_business_store


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _product_json(product) -> dict:
    return {
        **product.to_dict(),
        "is_low_stock": product.is_low_stock,
        "stock_value_cents": product.stock_value_cents,
    }


@products_bp.get("")
@require_actor
@map_store_errors
def list_products_route():
    """
    List products.

    Query parameters:
    - search: case-insensitive match on name, SKU, barcode or category
    """
    store = get_business_store()
    search = request.args.get("search")
    products = store.search_products(search) if search else store.list_products()
    return jsonify({"items": [_product_json(p) for p in products], "count": len(products)})


@products_bp.post("")
@require_actor
@map_store_errors
def create_product_route():
    data = request.get_json(silent=True) or {}
    product = get_business_store().add_product(data)
    return jsonify(_product_json(product)), 201


@products_bp.get("/low-stock")
@require_actor
@map_store_errors
def low_stock_route():
    products = get_business_store().get_low_stock_products()
    return jsonify({"items": [_product_json(p) for p in products], "count": len(products)})


@products_bp.get("/<product_id>")
@require_actor
@map_store_errors
def get_product_route(product_id):
    return jsonify(_product_json(get_business_store().get_product(product_id)))


@products_bp.patch("/<product_id>")
@require_actor
@map_store_errors
def update_product_route(product_id):
    """
    Update product fields.

    A "quantity" in the body is recorded as an adjustment movement for the
    difference rather than written directly.
    """
    data = request.get_json(silent=True) or {}
    product = get_business_store().update_product(product_id, data)
    return jsonify(_product_json(product))


@products_bp.delete("/<product_id>")
@require_actor
@map_store_errors
def delete_product_route(product_id):
    product = get_business_store().delete_product(product_id)
    return jsonify({"deleted": product.id})


@products_bp.get("/<product_id>/movements")
@require_actor
@map_store_errors
def list_movements_route(product_id):
    store = get_business_store()
    store.get_product(product_id)
    movements = store.list_stock_movements(product_id)
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)})


@products_bp.post("/<product_id>/movements")
@require_actor
@map_store_errors
def create_movement_route(product_id):
    """
    Record a stock movement.

    Request body:
    {
        "movement_type": "in" | "out" | "adjustment",
        "quantity": 10,            // > 0 for in/out, signed non-zero for adjustment
        "reason": "...",           // optional
        "reference": "..."         // optional
    }
    """
    data = request.get_json(silent=True) or {}
    data = {**data, "product_id": product_id}
    store = get_business_store()
    movement = store.add_stock_movement(data)
    return jsonify({
        "movement": movement.to_dict(),
        "product": _product_json(store.get_product(product_id)),
    }), 201
