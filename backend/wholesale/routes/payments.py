# Overview: Flask API routes for payment operations; parses input and returns JSON responses.

"""
Payment routes.

Recording or deleting a payment reconciles the parent invoice in the same
transaction. Amounts are integer minor units.
"""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..services import payment_service
from ..services.payment_service import PaymentError
from ..services.reconciliation import ReconciliationError
from ..services.tenant_service import TenantAccessError
from ..validation import ValidationError, coerce_int
from ..decorators import require_auth

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.get("")
@require_auth
def list_payments():
    """
    List payments, newest first.

    Query params:
    - search: invoice number substring
    - payment_method: cash | bank_transfer | check | card | other | all
    - page, per_page: optional pagination
    """
    return payment_service.list_payments(
        org_id=g.org_id,
        search=request.args.get("search"),
        payment_method=request.args.get("payment_method"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@payments_bp.post("")
@require_auth
def record_payment_route():
    """
    Record a payment.

    Body: invoice_id, amount, payment_date?, payment_method?, notes?

    Returns 400 if amount <= 0 or exceeds the outstanding balance; nothing
    is written in that case.
    """
    payload = request.get_json(silent=True) or {}

    if payload.get("invoice_id") in (None, ""):
        return {"error": "invoice_id is required"}, 400
    if payload.get("amount") in (None, ""):
        return {"error": "amount is required"}, 400

    try:
        result = payment_service.record_payment(
            org_id=g.org_id,
            invoice_id=coerce_int("invoice_id", payload["invoice_id"]),
            amount=payload["amount"],
            payment_date=payload.get("payment_date"),
            payment_method=payload.get("payment_method") or payment_service.METHOD_CASH,
            notes=payload.get("notes"),
        )
    except (PaymentError, ReconciliationError, ValidationError) as e:
        return {"error": str(e)}, 400
    except TenantAccessError:
        return {"error": "Invoice not found"}, 404
    except Exception:
        current_app.logger.exception("Failed to record payment")
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return result, 201


@payments_bp.delete("/<int:payment_id>")
@require_auth
def delete_payment_route(payment_id: int):
    """Delete a payment; the invoice is recomputed from what remains."""
    try:
        return payment_service.delete_payment(org_id=g.org_id, payment_id=payment_id)
    except TenantAccessError:
        return {"error": "Payment not found"}, 404
    except Exception:
        current_app.logger.exception("Failed to delete payment")
        db.session.rollback()
        return {"error": "Internal server error"}, 500


@payments_bp.get("/invoices/<int:invoice_id>")
@require_auth
def invoice_payments(invoice_id: int):
    try:
        return payment_service.get_invoice_payments(g.org_id, invoice_id)
    except TenantAccessError:
        return {"error": "Invoice not found"}, 404
