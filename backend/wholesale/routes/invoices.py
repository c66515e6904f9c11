# Overview: Flask API routes for invoices operations; parses input and returns JSON responses.

"""
Invoice routes.

MULTI-TENANT: Invoices, customers and products referenced by a request must
belong to the caller's organization; anything else answers 404.

Amounts are integer minor units (1 TND = 1000); tax rates are basis points.
"""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..models import Product
from ..services import invoice_service
from ..services.invoice_service import InvoiceError
from ..services.reconciliation import ReconciliationError
from ..services.settings_service import get_business_settings
from ..services.tenant_service import TenantAccessError, require_owned
from ..validation import ValidationError, coerce_int, coerce_date
from ..decorators import require_auth

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
def list_invoices():
    """
    List invoices, newest first.

    Query params:
    - search: invoice number substring
    - status: unpaid | partial | paid | all
    - customer_id: optional
    - page, per_page: optional pagination
    """
    try:
        return invoice_service.list_invoices(
            org_id=g.org_id,
            search=request.args.get("search"),
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except InvoiceError as e:
        return {"error": str(e)}, 400


@invoices_bp.post("")
@require_auth
def create_invoice_route():
    """
    Create an invoice with its line items.

    Body:
    - customer_id (required)
    - items: [{product_id, quantity, unit_price?}] (at least one)
    - invoice_date?, due_date? (YYYY-MM-DD)
    - discount_amount?, tax_rate_bps?, notes?
    """
    payload = request.get_json(silent=True) or {}

    if payload.get("customer_id") in (None, ""):
        return {"error": "Please select a customer"}, 400

    try:
        customer_id = coerce_int("customer_id", payload["customer_id"])
        created = invoice_service.create_invoice(
            org_id=g.org_id,
            customer_id=customer_id,
            items=payload.get("items") or [],
            invoice_date=payload.get("invoice_date"),
            due_date=payload.get("due_date"),
            discount_amount=payload.get("discount_amount") or 0,
            tax_rate_bps=payload.get("tax_rate_bps"),
            notes=payload.get("notes"),
        )
    except (InvoiceError, ValidationError) as e:
        return {"error": str(e)}, 400
    except TenantAccessError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return created, 201


@invoices_bp.post("/preview-totals")
@require_auth
def preview_totals_route():
    """Compute subtotal/tax/total for a draft invoice without saving it."""
    payload = request.get_json(silent=True) or {}

    try:
        raw_items = payload.get("items") or []
        products = {}
        for raw in raw_items:
            if isinstance(raw, dict) and raw.get("unit_price") in (None, "") and raw.get("product_id") not in (None, ""):
                pid = coerce_int("product_id", raw["product_id"])
                products[pid] = require_owned(Product, pid, g.org_id)
        items = invoice_service.parse_line_items(raw_items, products)

        tax_rate_bps = payload.get("tax_rate_bps")
        if tax_rate_bps in (None, ""):
            tax_rate_bps = get_business_settings(g.org_id)["tax_rate_bps"]

        return invoice_service.preview_totals(
            items,
            discount_amount=coerce_int("discount_amount", payload.get("discount_amount") or 0),
            tax_rate_bps=coerce_int("tax_rate_bps", tax_rate_bps),
        )
    except (InvoiceError, ValidationError) as e:
        return {"error": str(e)}, 400
    except TenantAccessError as e:
        return {"error": str(e)}, 404


@invoices_bp.get("/summary")
@require_auth
def summary_route():
    """Overdue and due-soon invoices. Optional ?as_of=YYYY-MM-DD."""
    as_of = request.args.get("as_of")
    try:
        as_of_date = coerce_date("as_of", as_of) if as_of else None
    except ValidationError as e:
        return {"error": str(e)}, 400
    return invoice_service.invoice_summary(g.org_id, as_of_date)


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice(invoice_id: int):
    """Invoice with items, customer and payments."""
    try:
        return invoice_service.get_invoice_detail(g.org_id, invoice_id)
    except TenantAccessError:
        return {"error": "Invoice not found"}, 404


@invoices_bp.patch("/<int:invoice_id>/status")
@require_auth
def set_status_route(invoice_id: int):
    """
    Manually override payment_status.

    paid_amount is not changed; the override may contradict recorded payments.
    """
    payload = request.get_json(silent=True) or {}
    new_status = payload.get("payment_status") or payload.get("status")
    if not new_status:
        return {"error": "payment_status is required"}, 400

    try:
        return invoice_service.set_invoice_status(g.org_id, invoice_id, new_status)
    except TenantAccessError:
        return {"error": "Invoice not found"}, 404
    except ReconciliationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update invoice status")
        db.session.rollback()
        return {"error": "Internal server error"}, 500


@invoices_bp.get("/<int:invoice_id>/share")
@require_auth
def share_route(invoice_id: int):
    """WhatsApp message and link for the invoice's customer."""
    try:
        return invoice_service.build_share_message(g.org_id, invoice_id)
    except TenantAccessError:
        return {"error": "Invoice not found"}, 404


@invoices_bp.delete("/<int:invoice_id>")
@require_auth
def delete_invoice_route(invoice_id: int):
    """Delete an invoice together with its items and payments."""
    try:
        invoice_service.delete_invoice(g.org_id, invoice_id)
    except TenantAccessError:
        return {"error": "Invoice not found"}, 404
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200
