"""
Invoice Balance Reconciler

WHY: Keep an invoice's paid_amount and payment_status consistent with the
payments recorded against it, and compute invoice totals from line items.

INVARIANT (after any uninterrupted reconciliation):
- paid_amount == sum of the invoice's payment amounts
- payment_status == "unpaid" if paid_amount == 0,
  "paid" if paid_amount >= total_amount, else "partial"

DESIGN:
- Pure functions over immutable values; no database access here.
  payment_service and invoice_service apply the results to ORM rows inside
  a single transaction.
- set_status_manually is an escape hatch: it may leave status and
  paid_amount contradicting each other.
- compute_totals has no guard on negative discounts or tax rates above
  100%: callers get exactly what the arithmetic gives.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

from ..money import apply_rate_bps, format_money


STATUS_UNPAID = "unpaid"
STATUS_PARTIAL = "partial"
STATUS_PAID = "paid"

VALID_STATUSES = (STATUS_UNPAID, STATUS_PARTIAL, STATUS_PAID)


class ReconciliationError(Exception):
    """Raised when a reconciliation input is rejected."""
    pass


class PaymentOutOfRangeError(ReconciliationError):
    """Payment amount is not in (0, outstanding]."""
    pass


class InvalidStatusError(ReconciliationError):
    pass


@dataclass(frozen=True)
class LineItem:
    quantity: int
    unit_price: int

    @property
    def line_total(self) -> int:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: int
    discount_amount: int
    tax_amount: int
    total: int


@dataclass(frozen=True)
class InvoiceBalance:
    total_amount: int
    paid_amount: int = 0
    payment_status: str = STATUS_UNPAID

    @property
    def outstanding(self) -> int:
        return self.total_amount - self.paid_amount

    @classmethod
    def of(cls, invoice) -> "InvoiceBalance":
        """Snapshot any object exposing total_amount/paid_amount/payment_status."""
        return cls(
            total_amount=invoice.total_amount,
            paid_amount=invoice.paid_amount,
            payment_status=invoice.payment_status,
        )


def compute_totals(items: Iterable[LineItem], discount_amount: int = 0, tax_rate_bps: int = 0) -> InvoiceTotals:
    """
    subtotal = sum(quantity * unit_price)
    tax      = (subtotal - discount) * rate, half-up to a minor unit
    total    = subtotal - discount + tax
    """
    subtotal = sum(item.line_total for item in items)
    taxable = subtotal - discount_amount
    tax_amount = apply_rate_bps(taxable, tax_rate_bps)
    return InvoiceTotals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total=taxable + tax_amount,
    )


def derive_status(paid_amount: int, total_amount: int) -> str:
    if paid_amount == 0:
        return STATUS_UNPAID
    if paid_amount >= total_amount:
        return STATUS_PAID
    return STATUS_PARTIAL


def new_invoice_balance(total_amount: int) -> InvoiceBalance:
    return InvoiceBalance(total_amount=total_amount, paid_amount=0, payment_status=STATUS_UNPAID)


def validate_payment_amount(invoice: InvoiceBalance, amount: int, currency: str = "TND") -> None:
    if amount <= 0:
        raise PaymentOutOfRangeError("Payment amount must be greater than 0")
    if amount > invoice.outstanding:
        raise PaymentOutOfRangeError(
            f"Payment amount cannot exceed outstanding balance ({format_money(invoice.outstanding, currency)})"
        )


def apply_payment(invoice: InvoiceBalance, amount: int, currency: str = "TND") -> InvoiceBalance:
    """
    Record a payment against the balance.

    Status only moves forward here: the result is "partial" or "paid".
    """
    validate_payment_amount(invoice, amount, currency)
    new_paid = invoice.paid_amount + amount
    new_status = STATUS_PAID if new_paid >= invoice.total_amount else STATUS_PARTIAL
    return replace(invoice, paid_amount=new_paid, payment_status=new_status)


def reverse_deleted_payment(invoice: InvoiceBalance, remaining_amounts: Iterable[int]) -> InvoiceBalance:
    """
    Recompute after a payment was deleted.

    paid_amount is the sum of what remains, not the old value minus the
    deleted amount, so earlier drift is corrected as a side effect.
    """
    paid = sum(remaining_amounts)
    return replace(invoice, paid_amount=paid, payment_status=derive_status(paid, invoice.total_amount))


def set_status_manually(invoice: InvoiceBalance, new_status: str) -> InvoiceBalance:
    if new_status not in VALID_STATUSES:
        raise InvalidStatusError(f"Invalid payment status: {new_status}. Must be one of {list(VALID_STATUSES)}")
    return replace(invoice, payment_status=new_status)


def is_status_consistent(invoice: InvoiceBalance) -> bool:
    return invoice.payment_status == derive_status(invoice.paid_amount, invoice.total_amount)


def check_consistency(invoice: InvoiceBalance, payment_amounts: Iterable[int]) -> list[str]:
    """Describe every way the balance disagrees with its payments (empty when consistent)."""
    problems = []
    actual_paid = sum(payment_amounts)
    if invoice.paid_amount != actual_paid:
        problems.append(f"paid_amount {invoice.paid_amount} != sum of payments {actual_paid}")
    expected_status = derive_status(actual_paid, invoice.total_amount)
    if invoice.payment_status != expected_status:
        problems.append(f"payment_status {invoice.payment_status!r} != expected {expected_status!r}")
    return problems


def reconcile(invoice: InvoiceBalance, payment_amounts: Iterable[int]) -> InvoiceBalance:
    """Full recomputation from the payment records (used to repair drift)."""
    return reverse_deleted_payment(invoice, payment_amounts)
