from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class BusinessSettings(db.Model):
    """
    Per-organization business settings (one row per org).

    tax_rate_bps is the default tax rate offered when creating invoices.
    """
    __tablename__ = "business_settings"
    __table_args__ = (
        db.UniqueConstraint("org_id", name="uq_business_settings_org"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    business_name = db.Column(db.String(255), nullable=False, default="My Business")
    currency = db.Column(db.String(8), nullable=False, default="TND")
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    invoice_prefix = db.Column(db.String(16), nullable=False, default="INV-")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("business_settings", lazy=True, uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "business_name": self.business_name,
            "currency": self.currency,
            "tax_rate_bps": self.tax_rate_bps,
            "invoice_prefix": self.invoice_prefix,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
