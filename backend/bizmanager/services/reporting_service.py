# Overview: Stateless analytics folds over the business collections (dashboard and reports).

"""
Reporting Semantics (authoritative)

- Every function is pure: no persistence, no mutation, full re-enumeration
  of the collections passed in on each call.
- Windows are half-open: start <= timestamp < end. Either bound may be None.
- Invoices are windowed on created_at, expenses on incurred_at.
- A sale counts toward revenue when invoice_type == "sale", it is not
  cancelled, and either its payment_status or its lifecycle status is
  "paid". Cancelled invoices never count, paid or not.
- Rankings sort descending by their measure; ties keep the collection's
  insertion order (stable sort).
- Empty collections produce zeros and empty lists.
"""

from __future__ import annotations

import calendar
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Iterable

from ..errors import ValidationError
from ..models import Customer, Expense, Invoice, Product
from ..models.billing import INVOICE_TYPE_SALE
from ..time_utils import to_utc_z


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""
    pass


RANGE_TODAY = "today"
RANGE_WEEK = "week"
RANGE_MONTH = "month"
RANGE_YEAR = "year"

VALID_RANGES = [RANGE_TODAY, RANGE_WEEK, RANGE_MONTH, RANGE_YEAR]


def in_window(moment: datetime | None, start: datetime | None = None, end: datetime | None = None) -> bool:
    if start is None and end is None:
        return True
    if moment is None:
        return False
    if start is not None and moment < start:
        return False
    if end is not None and moment >= end:
        return False
    return True


def _is_sale(invoice: Invoice) -> bool:
    return invoice.invoice_type == INVOICE_TYPE_SALE and not invoice.is_cancelled


def _paid_sales(invoices: Iterable[Invoice], start=None, end=None) -> list[Invoice]:
    return [
        inv for inv in invoices
        if _is_sale(inv)
        and inv.is_paid
        and in_window(inv.created_at, start, end)
    ]


def _shift_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def resolve_time_range(name: str, now: datetime) -> tuple[datetime, None]:
    """
    Dashboard presets. The window starts at:
    - today: midnight of the current day
    - week: seven days ago
    - month: the same day one calendar month ago
    - year: the same day one year ago
    and is open-ended.
    """
    if name == RANGE_TODAY:
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elif name == RANGE_WEEK:
        start = now - timedelta(days=7)
    elif name == RANGE_MONTH:
        start = _shift_months(now, -1)
    elif name == RANGE_YEAR:
        start = _shift_months(now, -12)
    else:
        raise ReportError(f"range must be one of {VALID_RANGES}")
    return start, None


# =============================================================================
# TOTALS
# =============================================================================

def total_sales(invoices: Iterable[Invoice], start: datetime | None = None, end: datetime | None = None) -> int:
    return sum(inv.total_cents for inv in _paid_sales(invoices, start, end))


def total_expenses(expenses: Iterable[Expense], start: datetime | None = None, end: datetime | None = None) -> int:
    return sum(exp.amount_cents for exp in expenses if in_window(exp.incurred_at, start, end))


def profit(
    invoices: Iterable[Invoice],
    expenses: Iterable[Expense],
    start: datetime | None = None,
    end: datetime | None = None,
) -> int:
    return total_sales(invoices, start, end) - total_expenses(expenses, start, end)


def outstanding_total(invoices: Iterable[Invoice]) -> int:
    return sum(inv.balance_cents for inv in invoices if inv.is_open)


def average_invoice_value(invoices: Iterable[Invoice]) -> int:
    sales = [inv for inv in invoices if _is_sale(inv)]
    if not sales:
        return 0
    return sum(inv.total_cents for inv in sales) // len(sales)


def inventory_value(products: Iterable[Product]) -> int:
    return sum(p.stock_value_cents for p in products)


# =============================================================================
# RANKINGS
# =============================================================================

def top_products(products: Iterable[Product], invoices: Iterable[Invoice], n: int = 5) -> list[dict]:
    """Products ranked by quantity across all non-cancelled sale invoice lines."""
    quantities: Counter = Counter()
    revenue: Counter = Counter()
    for inv in invoices:
        if not _is_sale(inv):
            continue
        for item in inv.items:
            quantities[item.product_id] += item.quantity
            revenue[item.product_id] += item.line_total_cents

    rows = [
        {
            "product_id": p.id,
            "name": p.name,
            "sku": p.sku,
            "quantity_sold": quantities[p.id],
            "revenue_cents": revenue[p.id],
        }
        for p in products
        if quantities[p.id] > 0
    ]
    rows.sort(key=lambda row: row["quantity_sold"], reverse=True)
    return rows[: max(0, n)]


def top_customers(customers: Iterable[Customer], invoices: Iterable[Invoice], n: int = 5) -> list[dict]:
    """Customers ranked by revenue from their paid sale invoices."""
    revenue: Counter = Counter()
    counts: Counter = Counter()
    for inv in _paid_sales(invoices):
        revenue[inv.customer_id] += inv.total_cents
        counts[inv.customer_id] += 1

    rows = [
        {
            "customer_id": c.id,
            "name": c.name,
            "revenue_cents": revenue[c.id],
            "invoice_count": counts[c.id],
        }
        for c in customers
        if revenue[c.id] > 0
    ]
    rows.sort(key=lambda row: row["revenue_cents"], reverse=True)
    return rows[: max(0, n)]


def repeat_customer_count(invoices: Iterable[Invoice]) -> int:
    counts = Counter(inv.customer_id for inv in invoices if _is_sale(inv))
    return sum(1 for count in counts.values() if count > 1)


# =============================================================================
# BREAKDOWNS
# =============================================================================

def _period_key(moment: datetime, group_by: str) -> str:
    if group_by == "day":
        return moment.strftime("%Y-%m-%d")
    if group_by == "week":
        return moment.strftime("%Y-W%W")
    return moment.strftime("%Y-%m")


def sales_by_period(
    invoices: Iterable[Invoice],
    *,
    group_by: str = "month",
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    if group_by not in ("day", "week", "month"):
        raise ReportError("group_by must be day, week, or month")

    buckets: dict = defaultdict(lambda: {"sales_count": 0, "items_sold": 0, "gross_sales_cents": 0})
    for inv in _paid_sales(invoices, start, end):
        if inv.created_at is None:
            continue
        bucket = buckets[_period_key(inv.created_at, group_by)]
        bucket["sales_count"] += 1
        bucket["items_sold"] += sum(item.quantity for item in inv.items)
        bucket["gross_sales_cents"] += inv.total_cents

    return {
        "group_by": group_by,
        "start": to_utc_z(start) if start else None,
        "end": to_utc_z(end) if end else None,
        "rows": [{"period": period, **buckets[period]} for period in sorted(buckets)],
    }


def inventory_by_category(products: Iterable[Product]) -> list[dict]:
    totals: dict = {}
    for p in products:
        row = totals.setdefault(p.category or "Uncategorized", {"quantity": 0, "value_cents": 0, "products": 0})
        row["quantity"] += p.quantity
        row["value_cents"] += p.stock_value_cents
        row["products"] += 1
    return [{"category": category, **row} for category, row in totals.items()]


def stock_summary(products: Iterable[Product]) -> dict:
    summary = {"total": 0, "in_stock": 0, "low_stock": 0, "out_of_stock": 0}
    for p in products:
        summary["total"] += 1
        if p.is_out_of_stock:
            summary["out_of_stock"] += 1
        elif p.is_low_stock:
            summary["low_stock"] += 1
        else:
            summary["in_stock"] += 1
    return summary


def invoice_status_counts(invoices: Iterable[Invoice]) -> dict:
    counts = Counter()
    for inv in invoices:
        counts[inv.status] += 1
    return dict(counts)


def expenses_by_category(
    expenses: Iterable[Expense],
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[dict]:
    totals: dict = {}
    for exp in expenses:
        if in_window(exp.incurred_at, start, end):
            totals[exp.category] = totals.get(exp.category, 0) + exp.amount_cents
    rows = [{"category": category, "amount_cents": amount} for category, amount in totals.items()]
    rows.sort(key=lambda row: row["amount_cents"], reverse=True)
    return rows


def dashboard_summary(
    *,
    products: list[Product],
    customers: list[Customer],
    invoices: list[Invoice],
    expenses: list[Expense],
    now: datetime,
    start: datetime | None = None,
    end: datetime | None = None,
    top_n: int = 5,
) -> dict:
    sales = total_sales(invoices, start, end)
    spent = total_expenses(expenses, start, end)
    margin_bps = ((sales - spent) * 10_000 // sales) if sales > 0 else 0
    open_invoices = [inv for inv in invoices if inv.is_open]
    overdue = [inv for inv in open_invoices if inv.due_date is not None and inv.due_date < now]
    return {
        "start": to_utc_z(start) if start else None,
        "end": to_utc_z(end) if end else None,
        "total_sales_cents": sales,
        "total_expenses_cents": spent,
        "profit_cents": sales - spent,
        "profit_margin_bps": margin_bps,
        "inventory_value_cents": inventory_value(products),
        "outstanding_cents": sum(inv.balance_cents for inv in open_invoices),
        "pending_invoice_count": len(open_invoices),
        "overdue_invoice_count": len(overdue),
        "low_stock_count": sum(1 for p in products if p.is_low_stock),
        "product_count": len(products),
        "customer_count": len(customers),
        "top_products": top_products(products, invoices, top_n),
        "top_customers": top_customers(customers, invoices, top_n),
        "stock": stock_summary(products),
    }
