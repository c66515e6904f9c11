# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

"""
Customer management routes.

MULTI-TENANT: All customer operations are scoped to the caller's organization.
outstanding_balance is read-only here; invoices and payments maintain it.
"""
from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..services import customer_service
from ..services.tenant_service import TenantAccessError
from ..models import Customer
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_customer,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=set(customer_service.CUSTOMER_MUTABLE_FIELDS),
    required_on_create={"shop_name", "owner_name", "phone", "address"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers():
    """
    List customers, newest first.

    Query params:
    - search: shop/owner name (case-insensitive) or phone substring
    - page, per_page: optional pagination
    """
    return customer_service.list_customers(
        org_id=g.org_id,
        search=request.args.get("search"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer(customer_id: int):
    try:
        return customer_service.get_customer(customer_id, g.org_id)
    except TenantAccessError:
        return {"error": "Customer not found"}, 404


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = customer_service.create_customer(patch=patch, org_id=g.org_id)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        db.session.rollback()
        return {"error": "Internal server error"}, 500

    return created, 201


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        return customer_service.update_customer(customer_id=customer_id, patch=patch, org_id=g.org_id)
    except TenantAccessError:
        return {"error": "Customer not found"}, 404
    except Exception:
        current_app.logger.exception("Failed to update customer")
        db.session.rollback()
        return {"error": "Internal server error"}, 500


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    """Delete a customer without invoices."""
    try:
        customer_service.delete_customer(customer_id=customer_id, org_id=g.org_id)
    except TenantAccessError:
        return {"error": "Customer not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"ok": True}, 200
