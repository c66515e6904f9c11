"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant validation logic for reuse across services and routes.
Every request is scoped to one organization (org_id), and cross-tenant
access must be explicitly denied.

SECURITY INVARIANTS:
1. Every authenticated request has g.org_id set
2. Entity IDs from client input are resolved through require_owned()
3. List queries go through scoped_query()
4. Cross-tenant access attempts are logged as security events and answered
   exactly like "not found"

USAGE:
    from wholesale.services.tenant_service import require_owned, scoped_query

    invoice = require_owned(Invoice, invoice_id, g.org_id)
    products = scoped_query(Product, g.org_id).all()
"""

from flask import g
from ..extensions import db
from ..models import Organization
from .security_service import log_security_event


class TenantAccessError(Exception):
    """Raised when a row is missing or belongs to another organization."""
    pass


def get_current_org_id() -> int:
    """
    Get current tenant's org_id from Flask g context.

    SECURITY: Raises TenantAccessError if org_id not set.
    This should never happen after @require_auth, but is a safety check.
    """
    if not hasattr(g, 'org_id') or g.org_id is None:
        raise TenantAccessError("Tenant context not established")
    return g.org_id


def require_owned(model, entity_id: int, org_id: int):
    """
    Load a tenant-owned row by primary key.

    Raises TenantAccessError if the row doesn't exist or belongs to another
    organization; the message never reveals which.
    """
    label = model.__name__
    row = db.session.query(model).filter_by(id=entity_id).first()

    if row is None:
        raise TenantAccessError(f"{label} not found")

    if row.org_id != org_id:
        # CRITICAL: Cross-tenant access attempt
        _log_cross_tenant_attempt(
            f"{label} {entity_id} belongs to org {row.org_id}, not {org_id}",
            org_id=org_id,
        )
        raise TenantAccessError(f"{label} not found")  # Don't reveal it exists in another org

    return row


def validate_org_active(org_id: int) -> Organization:
    """
    Validate that an organization exists and is active.

    Raises:
        TenantAccessError if org doesn't exist or is inactive
    """
    org = db.session.query(Organization).filter_by(id=org_id).first()

    if not org:
        raise TenantAccessError("Organization not found")

    if not org.is_active:
        raise TenantAccessError("Organization is not active")

    return org


def scoped_query(model, org_id: int = None):
    """
    Create a base query scoped to the tenant via the model's org_id column.

    Usage:
        products = scoped_query(Product).filter(Product.stock_quantity < 50).all()
    """
    if org_id is None:
        org_id = get_current_org_id()

    return db.session.query(model).filter(model.org_id == org_id)


def _log_cross_tenant_attempt(reason: str, org_id: int | None = None) -> None:
    """
    Log a cross-tenant access attempt as a security event.

    SECURITY: Critical audit trail for detecting unauthorized access attempts.
    """
    current = getattr(g, 'current_user', None)
    profile_id = current.id if current is not None and hasattr(current, 'id') else None

    log_security_event(
        profile_id=profile_id,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        reason=reason,
        org_id=org_id,
    )
