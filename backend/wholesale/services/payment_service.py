# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Recording Service

WHY: Payments are the only way an invoice's balance moves. Each operation
runs the payment write and the invoice reconciliation in ONE transaction,
so paid_amount can never disagree with the payment rows because of a
half-finished write.

DESIGN PRINCIPLES:
- Validate before any write (amount in (0, outstanding])
- Invoice row locked for update; version_id catches concurrent writers
- Deleting a payment recomputes paid_amount from the remaining payments
- The customer's outstanding_balance follows in the same transaction
"""

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Invoice, Payment
from ..pagination import paginate
from ..time_utils import today
from ..validation import check_amount_bound, coerce_int, coerce_date
from . import reconciliation
from .concurrency import lock_invoice, run_with_retry
from .customer_service import refresh_outstanding_balance
from .settings_service import get_business_settings
from .tenant_service import require_owned, scoped_query
from .change_feed import record_row, EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE


class PaymentError(Exception):
    """Raised for payment operation errors."""
    pass


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_BANK_TRANSFER = "bank_transfer"
METHOD_CHECK = "check"
METHOD_CARD = "card"
METHOD_OTHER = "other"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_BANK_TRANSFER,
    METHOD_CHECK,
    METHOD_CARD,
    METHOD_OTHER,
]


# =============================================================================
# PAYMENT RECORDING
# =============================================================================

def record_payment(
    *,
    org_id: int,
    invoice_id: int,
    amount,
    payment_date: date | str | None = None,
    payment_method: str = METHOD_CASH,
    notes: str | None = None,
) -> dict:
    """
    Record a payment against an invoice and reconcile the invoice.

    Args:
        org_id: Organization ID (tenant scope)
        invoice_id: Invoice being paid (must belong to org)
        amount: Minor units, 0 < amount <= outstanding
        payment_date: Defaults to today
        payment_method: cash, bank_transfer, check, card, other

    Returns:
        {"payment": ..., "invoice": ...}

    Raises:
        PaymentError: invalid method
        ReconciliationError: amount out of range (nothing is written)
        ValidationError: malformed amount or date
        TenantAccessError: invoice missing or in another org
    """
    payment_method = str(payment_method or METHOD_CASH).strip().lower()
    if payment_method not in VALID_PAYMENT_METHODS:
        raise PaymentError(f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}")

    # Sign and outstanding range are the reconciler's call
    amount = check_amount_bound("amount", coerce_int("amount", amount), allow_negative=True)
    payment_date = coerce_date("payment_date", payment_date) if payment_date else today()
    currency = get_business_settings(org_id)["currency"]

    def _op():
        require_owned(Invoice, invoice_id, org_id)
        invoice = lock_invoice(invoice_id)

        # Raises before anything is staged
        updated = reconciliation.apply_payment(reconciliation.InvoiceBalance.of(invoice), amount, currency)

        payment = Payment(
            org_id=org_id,
            invoice_id=invoice.id,
            payment_date=payment_date,
            amount=amount,
            payment_method=payment_method,
            notes=(notes or "").strip() or None,
        )
        db.session.add(payment)

        invoice.paid_amount = updated.paid_amount
        invoice.payment_status = updated.payment_status
        db.session.flush()

        record_row(org_id, "payments", EVENT_INSERT, payment)
        record_row(org_id, "invoices", EVENT_UPDATE, invoice)
        refresh_outstanding_balance(invoice.customer)

        db.session.commit()

        current_app.logger.info(
            "Payment %s on invoice %s: amount=%s paid=%s/%s status=%s",
            payment.id, invoice.invoice_number, amount,
            invoice.paid_amount, invoice.total_amount, invoice.payment_status,
        )
        return {"payment": payment.to_dict(), "invoice": invoice.to_dict()}

    try:
        return run_with_retry(_op)
    except reconciliation.ReconciliationError:
        db.session.rollback()
        raise


def delete_payment(*, org_id: int, payment_id: int) -> dict:
    """
    Delete a payment and recompute its invoice from the remaining payments.

    Returns:
        {"deleted_payment_id": ..., "invoice": ...}
    """
    def _op():
        payment = require_owned(Payment, payment_id, org_id)
        invoice = lock_invoice(payment.invoice_id)

        record_row(org_id, "payments", EVENT_DELETE, payment)
        db.session.delete(payment)
        db.session.flush()

        remaining = [
            row[0]
            for row in db.session.query(Payment.amount).filter(Payment.invoice_id == invoice.id).all()
        ]
        updated = reconciliation.reverse_deleted_payment(reconciliation.InvoiceBalance.of(invoice), remaining)
        invoice.paid_amount = updated.paid_amount
        invoice.payment_status = updated.payment_status
        db.session.flush()

        record_row(org_id, "invoices", EVENT_UPDATE, invoice)
        refresh_outstanding_balance(invoice.customer)

        db.session.commit()

        current_app.logger.info(
            "Payment %s deleted from invoice %s: paid=%s/%s status=%s",
            payment_id, invoice.invoice_number,
            invoice.paid_amount, invoice.total_amount, invoice.payment_status,
        )
        return {"deleted_payment_id": payment_id, "invoice": invoice.to_dict()}

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_payments(
    org_id: int,
    search: str | None = None,
    payment_method: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped payment listing, newest first.

    search: invoice_number substring
    """
    base_query = scoped_query(Payment, org_id).join(Invoice, Payment.invoice_id == Invoice.id)
    if search:
        base_query = base_query.filter(Invoice.invoice_number.contains(search.strip()))
    if payment_method and payment_method != "all":
        base_query = base_query.filter(Payment.payment_method == payment_method)

    total_collected = int(
        base_query.with_entities(db.func.coalesce(db.func.sum(Payment.amount), 0)).scalar() or 0
    )

    base_query = base_query.order_by(Payment.payment_date.desc(), Payment.id.desc())
    result = paginate(base_query, page, per_page, lambda p: p.to_dict())
    result["total_collected"] = total_collected
    return result


def get_invoice_payments(org_id: int, invoice_id: int) -> dict:
    """Payments on one invoice in recording order, with the invoice balance."""
    invoice = require_owned(Invoice, invoice_id, org_id)
    payments = (
        db.session.query(Payment)
        .filter(Payment.invoice_id == invoice.id)
        .order_by(Payment.id.asc())
        .all()
    )
    return {
        "invoice": invoice.to_dict(),
        "items": [p.to_dict() for p in payments],
        "count": len(payments),
    }
