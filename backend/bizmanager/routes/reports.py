from flask import Blueprint, jsonify, request

from ..decorators import require_actor, map_store_errors
from ..extensions import get_business_store
from ..validation import parse_window


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _limit(default: int = 5) -> int:
    n = request.args.get("n", default, type=int)
    return max(1, min(n, 100))


@reports_bp.get("/dashboard")
@require_actor
@map_store_errors
def dashboard_report():
    """
    Dashboard figures.

    Query parameters:
    - range: today | week | month | year (takes precedence over start/end)
    - start, end: optional ISO-8601 window
    """
    time_range = request.args.get("range")
    start, end = (None, None) if time_range else parse_window(request.args)
    summary = get_business_store().get_dashboard_summary(time_range, start=start, end=end, top_n=_limit())
    return jsonify(summary), 200


@reports_bp.get("/summary")
@require_actor
@map_store_errors
def totals_report():
    start, end = parse_window(request.args)
    store = get_business_store()
    return jsonify({
        "total_sales_cents": store.get_total_sales(start, end),
        "total_expenses_cents": store.get_total_expenses(start, end),
        "profit_cents": store.get_profit(start, end),
        "outstanding_cents": store.get_outstanding_total(),
        "average_invoice_cents": store.get_average_invoice_value(),
        "repeat_customers": store.get_repeat_customer_count(),
        "invoice_status_counts": store.get_invoice_status_counts(),
    }), 200


@reports_bp.get("/sales")
@require_actor
@map_store_errors
def sales_report():
    start, end = parse_window(request.args)
    group_by = request.args.get("group_by", "month")
    return jsonify(get_business_store().get_sales_by_period(group_by, start, end)), 200


@reports_bp.get("/top-products")
@require_actor
@map_store_errors
def top_products_report():
    return jsonify({"items": get_business_store().get_top_products(_limit())}), 200


@reports_bp.get("/top-customers")
@require_actor
@map_store_errors
def top_customers_report():
    return jsonify({"items": get_business_store().get_top_customers(_limit())}), 200


@reports_bp.get("/inventory")
@require_actor
@map_store_errors
def inventory_report():
    store = get_business_store()
    return jsonify({
        "inventory_value_cents": store.get_inventory_value(),
        "stock": store.get_stock_summary(),
        "categories": store.get_inventory_by_category(),
    }), 200


@reports_bp.get("/expenses")
@require_actor
@map_store_errors
def expenses_report():
    start, end = parse_window(request.args)
    store = get_business_store()
    return jsonify({
        "total_cents": store.get_total_expenses(start, end),
        "categories": store.get_expenses_by_category(start, end),
    }), 200
