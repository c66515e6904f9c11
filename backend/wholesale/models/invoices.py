from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date

class Invoice(db.Model):
    """
    Invoice issued to a customer.

    RECONCILIATION INVARIANT (maintained by payment_service):
    - paid_amount == sum(payment.amount for payment in payments)
    - payment_status == "unpaid" if paid_amount == 0,
      "paid" if paid_amount >= total_amount, else "partial"

    A manual status override may break the second rule on purpose.

    All amounts in minor units. version_id guards concurrent reconciliation.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_org_number", "org_id", "invoice_number"),
        db.Index("ix_invoices_org_status", "org_id", "payment_status"),
        db.Index("ix_invoices_org_date", "org_id", "invoice_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # "<prefix><epoch millis>", e.g. "INV-1717171717171"
    invoice_number = db.Column(db.String(64), nullable=False)

    invoice_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)

    subtotal = db.Column(db.Integer, nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_amount = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False, default=0)
    paid_amount = db.Column(db.Integer, nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, default="unpaid", index=True)  # unpaid, partial, paid
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.payment_status}>"

    @property
    def outstanding_amount(self) -> int:
        return self.total_amount - self.paid_amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "customer_id": self.customer_id,
            "invoice_number": self.invoice_number,
            "invoice_date": to_iso_date(self.invoice_date),
            "due_date": to_iso_date(self.due_date),
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_amount": self.tax_amount,
            "total_amount": self.total_amount,
            "paid_amount": self.paid_amount,
            "outstanding_amount": self.outstanding_amount,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InvoiceItem(db.Model):
    """Line items on an invoice. Inserted with the invoice, never updated."""
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("items", lazy=True, order_by="InvoiceItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
        }


class Payment(db.Model):
    """
    Payment recorded against an invoice.

    Deleting a payment triggers recomputation of the parent invoice from the
    remaining payments.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_org_date", "org_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    payment_date = db.Column(db.Date, nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")  # cash, bank_transfer, check, card, other
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True, order_by="Payment.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice.invoice_number if self.invoice else None,
            "payment_date": to_iso_date(self.payment_date),
            "amount": self.amount,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
