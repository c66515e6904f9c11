from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Retail shop buying from the wholesaler.

    MULTI-TENANT: Customers are scoped to organizations via org_id.

    outstanding_balance is a denormalized aggregate (sum of total - paid over
    the customer's invoices), refreshed by the invoice and payment services.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_org_shop", "org_id", "shop_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    shop_name = db.Column(db.String(255), nullable=False)
    owner_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    address = db.Column(db.String(512), nullable=False)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    # Minor units
    outstanding_balance = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "shop_name": self.shop_name,
            "owner_name": self.owner_name,
            "phone": self.phone,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "outstanding_balance": self.outstanding_balance,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
