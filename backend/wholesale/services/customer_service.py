# Overview: Service-layer operations for customers; encapsulates business logic and database work.

"""
Customer Service

MULTI-TENANT: Every query is scoped to the caller's organization (org_id).

outstanding_balance is derived data: refresh_outstanding_balance() recomputes
it from the customer's invoices. Invoice and payment services call it inside
their own transactions; clients cannot write it.
"""
from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Invoice
from ..pagination import paginate
from ..validation import ConflictError
from .tenant_service import require_owned, scoped_query
from .change_feed import record_row, EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE

CUSTOMER_MUTABLE_FIELDS = {
    "shop_name",
    "owner_name",
    "phone",
    "address",
    "latitude",
    "longitude",
}


def apply_customer_patch(c: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CUSTOMER_MUTABLE_FIELDS:
            continue
        setattr(c, k, v)


def compute_outstanding_balance(customer_id: int) -> int:
    outstanding = (
        db.session.query(func.coalesce(func.sum(Invoice.total_amount - Invoice.paid_amount), 0))
        .filter(Invoice.customer_id == customer_id)
        .scalar()
    )
    return int(outstanding or 0)


def refresh_outstanding_balance(customer: Customer) -> Customer:
    """Recompute the denormalized balance (caller commits)."""
    db.session.flush()
    balance = compute_outstanding_balance(customer.id)
    if customer.outstanding_balance != balance:
        customer.outstanding_balance = balance
        db.session.flush()
        record_row(customer.org_id, "customers", EVENT_UPDATE, customer)
    return customer


def list_customers(
    org_id: int,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped customer listing, newest first.

    search matches shop or owner name case-insensitively, or a phone substring.
    """
    base_query = scoped_query(Customer, org_id)

    if search:
        term = search.strip()
        base_query = base_query.filter(
            db.or_(
                Customer.shop_name.ilike(f"%{term}%"),
                Customer.owner_name.ilike(f"%{term}%"),
                Customer.phone.contains(term),
            )
        )

    base_query = base_query.order_by(Customer.created_at.desc(), Customer.id.desc())
    result = paginate(base_query, page, per_page, lambda c: c.to_dict())
    result["total_outstanding"] = int(
        scoped_query(Customer, org_id)
        .with_entities(func.coalesce(func.sum(Customer.outstanding_balance), 0))
        .scalar() or 0
    )
    return result


def get_customer(customer_id: int, org_id: int) -> dict:
    c = require_owned(Customer, customer_id, org_id)
    data = c.to_dict()
    data["invoice_count"] = db.session.query(Invoice.id).filter(Invoice.customer_id == c.id).count()
    return data


def create_customer(*, patch: dict, org_id: int) -> dict:
    c = Customer(org_id=org_id, outstanding_balance=0)
    apply_customer_patch(c, patch)

    db.session.add(c)
    db.session.flush()
    record_row(org_id, "customers", EVENT_INSERT, c)

    db.session.commit()
    return c.to_dict()


def update_customer(*, customer_id: int, patch: dict, org_id: int) -> dict:
    c = require_owned(Customer, customer_id, org_id)

    apply_customer_patch(c, patch)
    db.session.flush()
    record_row(org_id, "customers", EVENT_UPDATE, c)

    db.session.commit()
    return c.to_dict()


def delete_customer(*, customer_id: int, org_id: int) -> bool:
    """
    Hard-delete a customer.

    Raises:
        TenantAccessError: customer missing or owned by another org
        ConflictError: customer still has invoices
    """
    c = require_owned(Customer, customer_id, org_id)

    if db.session.query(Invoice.id).filter(Invoice.customer_id == c.id).first():
        raise ConflictError("Customer has invoices and cannot be deleted.")

    record_row(org_id, "customers", EVENT_DELETE, c)
    db.session.delete(c)
    db.session.commit()
    return True
