# Overview: Service-layer operations for invoices; encapsulates business logic and database work.

"""
Invoice Service

WHY: Invoices are written once (header plus line items in a single
transaction) and afterwards only their balance moves, through payments or a
manual status override.

DESIGN PRINCIPLES:
- Totals come from reconciliation.compute_totals; clients never send them
- Line item prices are fixed at creation (default: product selling_price)
- Invoice numbers are "<invoice_prefix><epoch millis>": unique in practice,
  not sequential, not collision-checked
- Stock is not decremented by invoicing
- The customer's outstanding_balance is refreshed in the same transaction
"""

from __future__ import annotations

import time
from datetime import date, timedelta
from urllib.parse import quote

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Invoice, InvoiceItem, Payment, Product, Customer
from ..money import format_amount
from ..pagination import paginate
from ..time_utils import today
from ..validation import ValidationError, MAX_AMOUNT, MAX_QUANTITY, check_amount_bound, coerce_int, coerce_date
from . import reconciliation
from .concurrency import lock_invoice, run_with_retry
from .customer_service import refresh_outstanding_balance
from .settings_service import get_business_settings
from .tenant_service import require_owned, scoped_query
from .change_feed import record_row, EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE


class InvoiceError(Exception):
    """Raised for invoice operation errors."""
    pass


DUE_SOON_DAYS = 7


def generate_invoice_number(prefix: str) -> str:
    return f"{prefix}{int(time.time() * 1000)}"


def _default_due_days() -> int:
    return current_app.config.get("DEFAULT_DUE_DAYS", 30)


def parse_line_items(raw_items, products_by_id: dict[int, Product] | None = None) -> list[dict]:
    """
    Normalize client line items to {product_id, quantity, unit_price}.

    unit_price may be omitted when products_by_id is given; the product's
    selling_price is used instead.
    """
    if not raw_items or not isinstance(raw_items, list):
        raise InvoiceError("Please add at least one item")

    items = []
    for idx, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {idx} must be an object")
        if raw.get("product_id") in (None, ""):
            raise ValidationError(f"Item {idx}: product_id is required")

        product_id = coerce_int("product_id", raw["product_id"])
        quantity = coerce_int("quantity", raw.get("quantity", 1))
        if quantity <= 0:
            raise ValidationError(f"Item {idx}: quantity must be greater than 0")
        if quantity > MAX_QUANTITY:
            raise ValidationError(f"Item {idx}: quantity cannot exceed {MAX_QUANTITY}")

        unit_price = raw.get("unit_price")
        if unit_price in (None, ""):
            product = (products_by_id or {}).get(product_id)
            if product is None:
                raise ValidationError(f"Item {idx}: unit_price is required")
            unit_price = product.selling_price
        unit_price = coerce_int("unit_price", unit_price)
        if unit_price < 0:
            raise ValidationError(f"Item {idx}: unit_price must be >= 0")
        if unit_price > MAX_AMOUNT:
            raise ValidationError(f"Item {idx}: unit_price cannot exceed {MAX_AMOUNT}")
        if quantity * unit_price > MAX_AMOUNT:
            raise ValidationError(f"Item {idx}: line total cannot exceed {MAX_AMOUNT}")

        items.append({"product_id": product_id, "quantity": quantity, "unit_price": unit_price})
    return items


def checked_totals(items: list[dict], discount_amount: int = 0, tax_rate_bps: int = 0) -> reconciliation.InvoiceTotals:
    """
    compute_totals with every stored figure bounded by MAX_AMOUNT.

    Negative discounts and any tax rate are accepted as long as the results
    fit; ValidationError otherwise.
    """
    check_amount_bound("discount_amount", discount_amount, allow_negative=True)
    check_amount_bound("tax_rate_bps", tax_rate_bps, allow_negative=True)
    totals = reconciliation.compute_totals(
        [reconciliation.LineItem(i["quantity"], i["unit_price"]) for i in items],
        discount_amount=discount_amount,
        tax_rate_bps=tax_rate_bps,
    )
    check_amount_bound("subtotal", totals.subtotal)
    check_amount_bound("tax_amount", totals.tax_amount, allow_negative=True)
    check_amount_bound("total_amount", totals.total, allow_negative=True)
    return totals


def preview_totals(items: list[dict], discount_amount: int = 0, tax_rate_bps: int = 0) -> dict:
    """Totals for the invoice form before anything is saved."""
    totals = checked_totals(items, discount_amount, tax_rate_bps)
    return {
        "subtotal": totals.subtotal,
        "discount_amount": totals.discount_amount,
        "tax_rate_bps": tax_rate_bps,
        "tax_amount": totals.tax_amount,
        "total_amount": totals.total,
    }


def create_invoice(
    *,
    org_id: int,
    customer_id: int,
    items: list,
    invoice_date: date | str | None = None,
    due_date: date | str | None = None,
    discount_amount: int = 0,
    tax_rate_bps: int | None = None,
    notes: str | None = None,
) -> dict:
    """
    Create an invoice with its line items in one transaction.

    Args:
        org_id: Organization ID (tenant scope)
        customer_id: Customer (must belong to org)
        items: [{product_id, quantity, unit_price?}, ...] (at least one)
        invoice_date: Defaults to today
        due_date: Defaults to invoice_date + DEFAULT_DUE_DAYS
        discount_amount: Minor units, subtracted before tax
        tax_rate_bps: Defaults to the business settings tax rate

    Returns:
        Invoice detail dict

    Raises:
        InvoiceError: no items
        ValidationError: malformed item, date or amount
        TenantAccessError: customer or product missing or in another org
    """
    if not items:
        raise InvoiceError("Please add at least one item")

    settings = get_business_settings(org_id)
    customer = require_owned(Customer, customer_id, org_id)

    product_ids = []
    for raw in items:
        if isinstance(raw, dict) and raw.get("product_id") not in (None, ""):
            product_ids.append(coerce_int("product_id", raw["product_id"]))
    products_by_id = {pid: require_owned(Product, pid, org_id) for pid in product_ids}

    lines = parse_line_items(items, products_by_id)

    invoice_date = coerce_date("invoice_date", invoice_date) if invoice_date else today()
    if due_date:
        due_date = coerce_date("due_date", due_date)
    else:
        due_date = invoice_date + timedelta(days=_default_due_days())

    discount_amount = coerce_int("discount_amount", discount_amount or 0)
    if tax_rate_bps in (None, ""):
        tax_rate_bps = settings["tax_rate_bps"]
    tax_rate_bps = coerce_int("tax_rate_bps", tax_rate_bps)

    totals = checked_totals(lines, discount_amount, tax_rate_bps)
    balance = reconciliation.new_invoice_balance(totals.total)

    try:
        invoice = Invoice(
            org_id=org_id,
            customer_id=customer.id,
            invoice_number=generate_invoice_number(settings["invoice_prefix"]),
            invoice_date=invoice_date,
            due_date=due_date,
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            tax_rate_bps=tax_rate_bps,
            tax_amount=totals.tax_amount,
            total_amount=balance.total_amount,
            paid_amount=balance.paid_amount,
            payment_status=balance.payment_status,
            notes=(notes or "").strip() or None,
        )
        db.session.add(invoice)
        db.session.flush()

        created_items = []
        for line in lines:
            item = InvoiceItem(
                invoice_id=invoice.id,
                product_id=line["product_id"],
                quantity=line["quantity"],
                unit_price=line["unit_price"],
                line_total=line["quantity"] * line["unit_price"],
            )
            db.session.add(item)
            created_items.append(item)
        db.session.flush()

        record_row(org_id, "invoices", EVENT_INSERT, invoice)
        for item in created_items:
            record_row(org_id, "invoice_items", EVENT_INSERT, item)

        refresh_outstanding_balance(customer)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Invoice %s created for org %s: total=%s items=%s",
        invoice.invoice_number, org_id, invoice.total_amount, len(lines),
    )
    return get_invoice_detail(org_id, invoice.id)


def _invoice_list_dict(invoice: Invoice) -> dict:
    data = invoice.to_dict()
    data["customer"] = {
        "id": invoice.customer.id,
        "shop_name": invoice.customer.shop_name,
        "owner_name": invoice.customer.owner_name,
    } if invoice.customer else None
    return data


def status_counts(org_id: int) -> dict:
    counts = {status: 0 for status in reconciliation.VALID_STATUSES}
    rows = (
        db.session.query(Invoice.payment_status, func.count(Invoice.id))
        .filter(Invoice.org_id == org_id)
        .group_by(Invoice.payment_status)
        .all()
    )
    for status, count in rows:
        counts[status] = count
    return counts


def list_invoices(
    org_id: int,
    search: str | None = None,
    status: str | None = None,
    customer_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped invoice listing, newest first.

    search: invoice_number substring
    status: unpaid | partial | paid | all
    """
    if status and status != "all" and status not in reconciliation.VALID_STATUSES:
        raise InvoiceError(f"Invalid status filter: {status}")

    base_query = scoped_query(Invoice, org_id)
    if search:
        base_query = base_query.filter(Invoice.invoice_number.contains(search.strip()))
    if status and status != "all":
        base_query = base_query.filter(Invoice.payment_status == status)
    if customer_id is not None:
        base_query = base_query.filter(Invoice.customer_id == customer_id)

    base_query = base_query.order_by(Invoice.created_at.desc(), Invoice.id.desc())

    result = paginate(base_query, page, per_page, _invoice_list_dict)
    result["status_counts"] = status_counts(org_id)
    return result


def get_invoice_detail(org_id: int, invoice_id: int) -> dict:
    """Invoice with line items (product names), customer and payments."""
    invoice = require_owned(Invoice, invoice_id, org_id)

    data = invoice.to_dict()
    data["items"] = [item.to_dict() for item in invoice.items]
    data["customer"] = invoice.customer.to_dict() if invoice.customer else None
    data["payments"] = [p.to_dict() for p in invoice.payments]
    data["is_consistent"] = not reconciliation.check_consistency(
        reconciliation.InvoiceBalance.of(invoice),
        [p.amount for p in invoice.payments],
    )
    return data


def set_invoice_status(org_id: int, invoice_id: int, new_status: str) -> dict:
    """
    Manual payment_status override.

    paid_amount and the customer's outstanding_balance are untouched, so the
    result may contradict the payments; that is logged, not refused.
    """
    def _op():
        invoice = require_owned(Invoice, invoice_id, org_id)
        invoice = lock_invoice(invoice.id)

        updated = reconciliation.set_status_manually(reconciliation.InvoiceBalance.of(invoice), new_status)
        invoice.payment_status = updated.payment_status

        if not reconciliation.is_status_consistent(updated):
            current_app.logger.warning(
                "Invoice %s status set to %s with paid_amount=%s of total=%s",
                invoice.invoice_number, updated.payment_status, updated.paid_amount, updated.total_amount,
            )

        db.session.flush()
        record_row(org_id, "invoices", EVENT_UPDATE, invoice)
        db.session.commit()
        return invoice.to_dict()

    return run_with_retry(_op)


def delete_invoice(org_id: int, invoice_id: int) -> bool:
    """Delete an invoice with its items and payments in one transaction."""
    def _op():
        invoice = require_owned(Invoice, invoice_id, org_id)
        invoice = lock_invoice(invoice.id)
        customer = invoice.customer

        for payment in list(invoice.payments):
            record_row(org_id, "payments", EVENT_DELETE, payment)
            db.session.delete(payment)
        for item in list(invoice.items):
            record_row(org_id, "invoice_items", EVENT_DELETE, item)
            db.session.delete(item)

        record_row(org_id, "invoices", EVENT_DELETE, invoice)
        number = invoice.invoice_number
        db.session.delete(invoice)
        db.session.flush()

        if customer is not None:
            refresh_outstanding_balance(customer)

        db.session.commit()
        current_app.logger.info("Invoice %s deleted for org %s", number, org_id)
        return True

    return run_with_retry(_op)


def build_share_message(org_id: int, invoice_id: int) -> dict:
    """WhatsApp-ready invoice summary and wa.me link for the customer's phone."""
    invoice = require_owned(Invoice, invoice_id, org_id)
    customer = invoice.customer
    settings = get_business_settings(org_id)
    currency = settings["currency"]
    decimals = current_app.config.get("CURRENCY_DECIMALS", 3)

    def fmt(amount: int) -> str:
        return f"{format_amount(amount, decimals)} {currency}"

    item_lines = [
        f"{item.product.name if item.product else 'Product'} x{item.quantity} @ {fmt(item.unit_price)}"
        for item in invoice.items
    ]

    lines = [
        f"*Invoice {invoice.invoice_number}*",
        "",
        f"Customer: {customer.shop_name if customer else ''}",
        f"Date: {invoice.invoice_date.isoformat()}",
        "",
        "*Items:*",
        *item_lines,
        "",
        f"Subtotal: {fmt(invoice.subtotal)}",
        f"Discount: {fmt(invoice.discount_amount)}",
        f"Tax: {fmt(invoice.tax_amount)}",
        f"*Total: {fmt(invoice.total_amount)}*",
        f"Paid: {fmt(invoice.paid_amount)}",
        f"*Outstanding: {fmt(invoice.outstanding_amount)}*",
        "",
        f"Status: {invoice.payment_status.upper()}",
    ]
    message = "\n".join(lines)

    phone = "".join(ch for ch in (customer.phone if customer else "") if ch.isdigit())
    return {
        "invoice_id": invoice.id,
        "phone": phone,
        "message": message,
        "url": f"https://wa.me/{phone}?text={quote(message)}",
    }


def invoice_summary(org_id: int, as_of: date | None = None) -> dict:
    """
    Collection overview for the payments screen.

    overdue: due_date < as_of and not paid
    due_soon: as_of <= due_date <= as_of + 7 days and not paid
    """
    as_of = as_of or today()
    soon = as_of + timedelta(days=DUE_SOON_DAYS)

    unpaid_query = scoped_query(Invoice, org_id).filter(Invoice.payment_status != reconciliation.STATUS_PAID)

    overdue = (
        unpaid_query.filter(Invoice.due_date < as_of)
        .order_by(Invoice.due_date.asc(), Invoice.id.asc())
        .all()
    )
    due_soon = (
        unpaid_query.filter(Invoice.due_date >= as_of, Invoice.due_date <= soon)
        .order_by(Invoice.due_date.asc(), Invoice.id.asc())
        .all()
    )
    paid_count = scoped_query(Invoice, org_id).filter(
        Invoice.payment_status == reconciliation.STATUS_PAID
    ).count()

    def _with_days(invoice: Invoice) -> dict:
        data = _invoice_list_dict(invoice)
        data["days_overdue"] = max((as_of - invoice.due_date).days, 0)
        return data

    return {
        "as_of": as_of.isoformat(),
        "overdue": {
            "count": len(overdue),
            "amount": sum(i.outstanding_amount for i in overdue),
            "items": [_with_days(i) for i in overdue],
        },
        "due_soon": {
            "count": len(due_soon),
            "amount": sum(i.outstanding_amount for i in due_soon),
            "items": [_invoice_list_dict(i) for i in due_soon],
        },
        "paid_count": paid_count,
    }


def invoices_for_audit(org_id: int | None = None):
    query = db.session.query(Invoice)
    if org_id is not None:
        query = query.filter(Invoice.org_id == org_id)
    return query.order_by(Invoice.id.asc())


def payment_amounts(invoice_id: int) -> list[int]:
    return [
        row[0]
        for row in db.session.query(Payment.amount).filter(Payment.invoice_id == invoice_id).order_by(Payment.id).all()
    ]
