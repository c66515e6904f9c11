# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

MULTI-TENANT: All product operations are scoped to the caller's organization.
The org_id is derived from g.org_id (set by @require_auth).
"""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..services import products_service
from ..services.tenant_service import TenantAccessError
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"name", "selling_price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products, newest first.

    Query params:
    - search: name (case-insensitive) or barcode substring
    - category: exact category, "all" for no filter
    - low_stock: "1"/"true" to keep only products below the threshold
    - page, per_page: optional pagination (default 20, max 100)
    """
    low_stock = request.args.get("low_stock", "").lower() in ("1", "true", "yes")
    return products_service.list_products(
        org_id=g.org_id,
        search=request.args.get("search"),
        category=request.args.get("category"),
        low_stock_only=low_stock,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/categories")
@require_auth
def list_categories():
    return {"categories": products_service.list_categories(g.org_id)}


@products_bp.get("/barcode/<string:code>")
@require_auth
def get_by_barcode(code: str):
    """Scanner lookup by exact barcode."""
    product = products_service.find_by_barcode(code, g.org_id)
    if product is None:
        return {"error": "Product not found", "barcode": code}, 404
    return product


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    try:
        return products_service.get_product(product_id, g.org_id)
    except TenantAccessError:
        return {"error": "Product not found"}, 404


@products_bp.post("")
@require_auth
def create_product_route():
    """Create a new product in the caller's organization."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch, org_id=g.org_id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return created, 201


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    """Update a product (partial payloads accepted)."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        return products_service.update_product(product_id=product_id, patch=patch, org_id=g.org_id)
    except TenantAccessError:
        return {"error": "Product not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update product")
        db.session.rollback()
        return {"error": "Internal server error"}, 500


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """Delete a product that no invoice references."""
    try:
        products_service.delete_product(product_id=product_id, org_id=g.org_id)
    except TenantAccessError:
        return {"error": "Product not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"ok": True}, 200
