# Overview: Service-layer operations for business settings and the caller's profile.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import BusinessSettings, Profile
from .change_feed import record_row, EVENT_INSERT, EVENT_UPDATE

SETTINGS_MUTABLE_FIELDS = {"business_name", "currency", "tax_rate_bps", "invoice_prefix"}
PROFILE_MUTABLE_FIELDS = {"full_name"}


def default_settings(org_id: int) -> dict:
    """Values shown before the organization saved any settings."""
    return {
        "id": None,
        "org_id": org_id,
        "business_name": "My Business",
        "currency": current_app.config.get("DEFAULT_CURRENCY", "TND"),
        "tax_rate_bps": 0,
        "invoice_prefix": "INV-",
        "created_at": None,
        "updated_at": None,
    }


def get_settings_row(org_id: int) -> BusinessSettings | None:
    return db.session.query(BusinessSettings).filter_by(org_id=org_id).first()


def get_business_settings(org_id: int) -> dict:
    row = get_settings_row(org_id)
    return row.to_dict() if row else default_settings(org_id)


def upsert_business_settings(org_id: int, patch: dict) -> dict:
    """Update the organization's settings row, creating it on first save."""
    row = get_settings_row(org_id)
    event_type = EVENT_UPDATE
    if row is None:
        defaults = default_settings(org_id)
        row = BusinessSettings(
            org_id=org_id,
            business_name=defaults["business_name"],
            currency=defaults["currency"],
            tax_rate_bps=defaults["tax_rate_bps"],
            invoice_prefix=defaults["invoice_prefix"],
        )
        db.session.add(row)
        event_type = EVENT_INSERT

    for k, v in patch.items():
        if k in SETTINGS_MUTABLE_FIELDS:
            setattr(row, k, v)

    db.session.flush()
    record_row(org_id, "business_settings", event_type, row)
    db.session.commit()
    return row.to_dict()


def get_profile(profile: Profile) -> dict:
    return profile.to_dict()


def update_profile(profile: Profile, patch: dict) -> dict:
    for k, v in patch.items():
        if k in PROFILE_MUTABLE_FIELDS:
            setattr(profile, k, v)
    db.session.commit()
    return profile.to_dict()
