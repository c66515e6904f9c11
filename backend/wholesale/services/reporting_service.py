# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Invoice, InvoiceItem, Product, Customer
from ..time_utils import parse_iso_date
from .reconciliation import STATUS_PAID, STATUS_UNPAID
from .tenant_service import scoped_query


TOP_LIMIT = 10
MONTHS_SHOWN = 12
RECENT_INVOICES = 10


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _parse_range(start: str | None, end: str | None) -> tuple[date | None, date | None]:
    try:
        start_d = parse_iso_date(start) if start else None
        end_d = parse_iso_date(end) if end else None
    except ValueError:
        raise ReportError("start and end must be dates (YYYY-MM-DD)")
    if start_d and end_d and start_d > end_d:
        raise ReportError("start must be on or before end")
    return start_d, end_d


def _invoice_query(org_id: int, start: date | None = None, end: date | None = None):
    query = scoped_query(Invoice, org_id)
    if start:
        query = query.filter(Invoice.invoice_date >= start)
    if end:
        query = query.filter(Invoice.invoice_date <= end)
    return query


def _month_key(d: date) -> str:
    return d.strftime("%Y-%m")


def dashboard(org_id: int) -> dict:
    """Headline cards plus the most recent invoices."""
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 50)

    totals = _invoice_query(org_id).with_entities(
        func.coalesce(func.sum(Invoice.total_amount), 0),
        func.coalesce(func.sum(Invoice.total_amount - Invoice.paid_amount), 0),
    ).one()

    unpaid_invoices = _invoice_query(org_id).filter(Invoice.payment_status != STATUS_PAID).count()
    recent = (
        _invoice_query(org_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(RECENT_INVOICES)
        .all()
    )

    return {
        "total_revenue": int(totals[0] or 0),
        "outstanding_balance": int(totals[1] or 0),
        "unpaid_invoices": unpaid_invoices,
        "total_products": scoped_query(Product, org_id).count(),
        "low_stock_products": scoped_query(Product, org_id).filter(Product.stock_quantity < threshold).count(),
        "total_customers": scoped_query(Customer, org_id).count(),
        "recent_invoices": [
            {
                **inv.to_dict(),
                "customer_name": inv.customer.shop_name if inv.customer else None,
            }
            for inv in recent
        ],
    }


def analytics_summary(org_id: int, start: str | None = None, end: str | None = None) -> dict:
    """
    Collection overview.

    collection_rate is the share of invoices fully paid, as a percentage with
    one decimal.
    """
    start_d, end_d = _parse_range(start, end)
    query = _invoice_query(org_id, start_d, end_d)

    row = query.with_entities(
        func.count(Invoice.id),
        func.coalesce(func.sum(Invoice.total_amount), 0),
        func.coalesce(func.sum(Invoice.paid_amount), 0),
    ).one()
    invoice_count = int(row[0] or 0)
    total_invoiced = int(row[1] or 0)

    paid = query.filter(Invoice.payment_status == STATUS_PAID).count()
    unpaid = query.filter(Invoice.payment_status == STATUS_UNPAID).count()

    return {
        "start": start_d.isoformat() if start_d else None,
        "end": end_d.isoformat() if end_d else None,
        "invoice_count": invoice_count,
        "total_invoiced": total_invoiced,
        "total_collected": int(row[2] or 0),
        "paid_invoices": paid,
        "unpaid_invoices": unpaid,
        "collection_rate": round(paid * 100.0 / invoice_count, 1) if invoice_count else 0.0,
        "average_invoice_value": total_invoiced // invoice_count if invoice_count else 0,
    }


def monthly_sales(org_id: int, start: str | None = None, end: str | None = None) -> dict:
    """Invoiced vs collected per month (latest 12 months with invoices)."""
    start_d, end_d = _parse_range(start, end)
    invoices = (
        _invoice_query(org_id, start_d, end_d)
        .with_entities(Invoice.invoice_date, Invoice.total_amount, Invoice.paid_amount)
        .order_by(Invoice.invoice_date.asc())
        .all()
    )

    months: dict[str, dict] = {}
    for invoice_date, total, paid in invoices:
        key = _month_key(invoice_date)
        bucket = months.setdefault(key, {"month": key, "invoiced": 0, "collected": 0, "invoice_count": 0})
        bucket["invoiced"] += total
        bucket["collected"] += paid
        bucket["invoice_count"] += 1

    return {"rows": list(months.values())[-MONTHS_SHOWN:]}


def profit_loss(org_id: int, start: str | None = None, end: str | None = None) -> dict:
    """
    Revenue and gross profit per month.

    revenue = sum of line totals; cost = quantity x the product's current
    cost_price. Discounts and tax are not part of either side.
    """
    start_d, end_d = _parse_range(start, end)
    rows = (
        db.session.query(
            Invoice.invoice_date,
            InvoiceItem.quantity,
            InvoiceItem.line_total,
            Product.cost_price,
        )
        .join(InvoiceItem, InvoiceItem.invoice_id == Invoice.id)
        .join(Product, Product.id == InvoiceItem.product_id)
        .filter(Invoice.org_id == org_id)
    )
    if start_d:
        rows = rows.filter(Invoice.invoice_date >= start_d)
    if end_d:
        rows = rows.filter(Invoice.invoice_date <= end_d)

    months: dict[str, dict] = {}
    for invoice_date, quantity, line_total, cost_price in rows.order_by(Invoice.invoice_date.asc()).all():
        key = _month_key(invoice_date)
        bucket = months.setdefault(key, {"month": key, "revenue": 0, "cost": 0, "profit": 0})
        bucket["revenue"] += line_total
        bucket["cost"] += quantity * (cost_price or 0)
        bucket["profit"] = bucket["revenue"] - bucket["cost"]

    data = list(months.values())[-MONTHS_SHOWN:]
    return {
        "rows": data,
        "total_revenue": sum(r["revenue"] for r in data),
        "total_cost": sum(r["cost"] for r in data),
        "total_profit": sum(r["profit"] for r in data),
    }


def top_customers(org_id: int, limit: int = TOP_LIMIT) -> dict:
    """Customers ranked by invoiced total."""
    total = func.sum(Invoice.total_amount).label("total")
    rows = (
        db.session.query(
            Customer.id,
            Customer.shop_name,
            total,
            func.count(Invoice.id).label("orders"),
            func.sum(Invoice.total_amount - Invoice.paid_amount).label("outstanding"),
        )
        .join(Invoice, Invoice.customer_id == Customer.id)
        .filter(Customer.org_id == org_id)
        .group_by(Customer.id, Customer.shop_name)
        .order_by(total.desc(), Customer.id.asc())
        .limit(limit)
        .all()
    )
    return {
        "rows": [
            {
                "customer_id": r.id,
                "shop_name": r.shop_name,
                "total": int(r.total or 0),
                "orders": int(r.orders or 0),
                "outstanding": int(r.outstanding or 0),
            }
            for r in rows
        ]
    }


def top_products(org_id: int, limit: int = TOP_LIMIT) -> dict:
    """Products ranked by quantity sold across all invoices."""
    quantity = func.sum(InvoiceItem.quantity).label("quantity")
    rows = (
        db.session.query(
            Product.id,
            Product.name,
            quantity,
            func.sum(InvoiceItem.line_total).label("revenue"),
        )
        .join(InvoiceItem, InvoiceItem.product_id == Product.id)
        .filter(Product.org_id == org_id)
        .group_by(Product.id, Product.name)
        .order_by(quantity.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return {
        "rows": [
            {
                "product_id": r.id,
                "name": r.name,
                "quantity": int(r.quantity or 0),
                "revenue": int(r.revenue or 0),
            }
            for r in rows
        ]
    }
