from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date

# Categories offered by default in product forms (free text is accepted)
DEFAULT_CATEGORIES = ["Chocolates", "Candies", "Biscuits", "Snacks", "Grocery Items"]


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to organizations via org_id.

    BARCODE: Optional, unique within an organization when present. Used by
    the scanner lookup endpoint.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "barcode", name="uq_products_org_barcode"),
        db.Index("ix_products_org_name", "org_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, default=DEFAULT_CATEGORIES[0])
    brand = db.Column(db.String(128), nullable=True)

    # Authoritative storage in minor units (millimes for TND)
    cost_price = db.Column(db.Integer, nullable=False, default=0)
    selling_price = db.Column(db.Integer, nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    barcode = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "category": self.category,
            "brand": self.brand,
            "cost_price": self.cost_price,
            "selling_price": self.selling_price,
            "stock_quantity": self.stock_quantity,
            "barcode": self.barcode,
            "expiry_date": to_iso_date(self.expiry_date),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
