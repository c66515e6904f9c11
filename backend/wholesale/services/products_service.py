# Overview: Service-layer operations for products; encapsulates business logic and database work.

"""
Products Service

MULTI-TENANT: Every query is scoped to the caller's organization (org_id).
Barcodes are unique within an organization when present.

Stock is edited directly; invoices do not decrement it.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product, InvoiceItem, DEFAULT_CATEGORIES
from ..pagination import paginate
from ..validation import ConflictError
from .tenant_service import require_owned, scoped_query
from .change_feed import record_row, EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "brand",
    "cost_price",
    "selling_price",
    "stock_quantity",
    "barcode",
    "expiry_date",
}


def low_stock_threshold() -> int:
    return current_app.config.get("LOW_STOCK_THRESHOLD", 50)


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_barcode_free(org_id: int, barcode: str | None, exclude_id: int | None = None) -> None:
    if not barcode:
        return
    query = scoped_query(Product, org_id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("Barcode already exists for another product.")


def list_categories(org_id: int) -> list[str]:
    """Default categories followed by any custom ones already in use."""
    used = [
        row[0]
        for row in db.session.query(Product.category)
        .filter(Product.org_id == org_id)
        .distinct()
        .order_by(Product.category.asc())
        .all()
    ]
    return DEFAULT_CATEGORIES + [c for c in used if c and c not in DEFAULT_CATEGORIES]


def list_products(
    org_id: int,
    search: str | None = None,
    category: str | None = None,
    low_stock_only: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped product listing, newest first.

    search matches the name case-insensitively or any barcode substring.
    low_stock_count counts products below LOW_STOCK_THRESHOLD across the
    whole organization, independent of the filters.
    """
    threshold = low_stock_threshold()
    base_query = scoped_query(Product, org_id)

    if search:
        term = search.strip()
        base_query = base_query.filter(
            db.or_(
                Product.name.ilike(f"%{term}%"),
                Product.barcode.contains(term),
            )
        )
    if category and category != "all":
        base_query = base_query.filter(Product.category == category)
    if low_stock_only:
        base_query = base_query.filter(Product.stock_quantity < threshold)

    base_query = base_query.order_by(Product.created_at.desc(), Product.id.desc())

    result = paginate(base_query, page, per_page, lambda p: p.to_dict())
    result["low_stock_count"] = (
        scoped_query(Product, org_id).filter(Product.stock_quantity < threshold).count()
    )
    result["low_stock_threshold"] = threshold
    return result


def get_product(product_id: int, org_id: int) -> dict:
    return require_owned(Product, product_id, org_id).to_dict()


def find_by_barcode(barcode: str, org_id: int) -> dict | None:
    """Scanner lookup: exact barcode match within the organization."""
    p = scoped_query(Product, org_id).filter(Product.barcode == barcode.strip()).first()
    return p.to_dict() if p else None


def create_product(*, patch: dict, org_id: int) -> dict:
    """
    Create product using a validated patch dict.

    Raises:
        ConflictError: barcode already used in this organization
    """
    _ensure_barcode_free(org_id, patch.get("barcode"))

    p = Product(org_id=org_id)
    if not patch.get("category"):
        patch = {**patch, "category": DEFAULT_CATEGORIES[0]}
    apply_product_patch(p, patch)

    db.session.add(p)
    db.session.flush()
    record_row(org_id, "products", EVENT_INSERT, p)

    db.session.commit()
    return p.to_dict()


def update_product(*, product_id: int, patch: dict, org_id: int) -> dict:
    """
    Update a product.

    Raises:
        TenantAccessError: product missing or owned by another org
        ConflictError: new barcode already used in this organization
    """
    p = require_owned(Product, product_id, org_id)

    if "barcode" in patch and patch["barcode"] != p.barcode:
        _ensure_barcode_free(org_id, patch["barcode"], exclude_id=p.id)

    apply_product_patch(p, patch)
    db.session.flush()
    record_row(org_id, "products", EVENT_UPDATE, p)

    db.session.commit()
    return p.to_dict()


def delete_product(*, product_id: int, org_id: int) -> bool:
    """
    Hard-delete a product.

    Raises:
        TenantAccessError: product missing or owned by another org
        ConflictError: product appears on an invoice
    """
    p = require_owned(Product, product_id, org_id)

    in_use = db.session.query(InvoiceItem.id).filter(InvoiceItem.product_id == p.id).first()
    if in_use:
        raise ConflictError("Product is used on existing invoices and cannot be deleted.")

    record_row(org_id, "products", EVENT_DELETE, p)
    db.session.delete(p)
    db.session.commit()
    return True
