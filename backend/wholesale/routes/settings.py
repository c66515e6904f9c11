# Overview: Flask API routes for business settings and the caller's profile.

from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..models import BusinessSettings, Profile
from ..services import settings_service, auth_service, session_service
from ..services.auth_service import PasswordValidationError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_settings,
    ValidationError,
)
from ..decorators import require_auth, bearer_token

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields=set(settings_service.SETTINGS_MUTABLE_FIELDS),
)
PROFILE_POLICY = ModelValidationPolicy(
    writable_fields=set(settings_service.PROFILE_MUTABLE_FIELDS),
)

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/business")
@require_auth
def get_business():
    return settings_service.get_business_settings(g.org_id)


@settings_bp.put("/business")
@require_auth
def update_business():
    """Save business name, currency, default tax rate (bps) and invoice prefix."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=BusinessSettings, payload=payload, policy=SETTINGS_POLICY, partial=True)
        enforce_rules_settings(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        return settings_service.upsert_business_settings(g.org_id, patch)
    except Exception:
        current_app.logger.exception("Failed to save business settings")
        db.session.rollback()
        return {"error": "Internal server error"}, 500


@settings_bp.get("/profile")
@require_auth
def get_profile():
    return settings_service.get_profile(g.current_user)


@settings_bp.put("/profile")
@require_auth
def update_profile():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Profile, payload=payload, policy=PROFILE_POLICY, partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return settings_service.update_profile(g.current_user, patch)


@settings_bp.post("/password")
@require_auth
def change_password():
    """
    Change the caller's password.

    Body: password, repeat_password. Other sessions of this profile are revoked.
    """
    payload = request.get_json(silent=True) or {}

    try:
        auth_service.change_password(
            g.current_user,
            payload.get("password"),
            payload.get("repeat_password"),
        )
    except PasswordValidationError as e:
        return {"error": str(e)}, 400

    revoked = session_service.revoke_all_profile_sessions(
        g.current_user.id,
        reason="Password changed",
        except_token=bearer_token(),
    )
    return {"message": "Password updated", "revoked_sessions": revoked}
