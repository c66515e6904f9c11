# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Sign-up creates the organization (tenant), its owner profile and default
business settings. Login returns a bearer token that carries the tenant
context for every other endpoint.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..services import auth_service
from ..services import session_service
from ..services.auth_service import PasswordValidationError, SignUpError, DuplicateAccountError
from ..services.security_service import log_security_event
from ..services.settings_service import get_business_settings
from ..decorators import require_auth, bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(profile, session, token) -> dict:
    return {
        "user": profile.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "org_id": session.org_id,
        "business": get_business_settings(session.org_id),
    }


@auth_bp.post("/sign-up")
def sign_up_route():
    """
    Register a new business account and log it in.

    Body: email, password, repeat_password, business_name?, full_name?
    """
    data = request.get_json(silent=True) or {}

    try:
        profile = auth_service.sign_up(
            email=data.get("email"),
            password=data.get("password"),
            repeat_password=data.get("repeat_password", data.get("repeatPassword")),
            business_name=data.get("business_name"),
            full_name=data.get("full_name"),
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DuplicateAccountError as e:
        return jsonify({"error": str(e)}), 409
    except SignUpError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to sign up")
        return jsonify({"error": "Internal server error"}), 500

    session, token = session_service.create_session(
        profile_id=profile.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    payload = _session_payload(profile, session, token)
    payload["message"] = "Account created"
    return jsonify(payload), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by e-mail and password and create a session token.

    The token must be sent as "Authorization: Bearer <token>".
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        profile = auth_service.authenticate(email, password)

        if not profile:
            log_security_event(
                profile_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                reason=f"Invalid credentials for {auth_service.normalize_email(email)}",
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            profile_id=profile.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        payload = _session_payload(profile, session, token)
        payload["message"] = "Login successful"
        return jsonify(payload), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session token used for this request."""
    revoked = session_service.revoke_session(bearer_token(), reason="User logout")
    return jsonify({"message": "Logged out" if revoked else "Session not found"}), 200


@auth_bp.post("/validate")
@require_auth
def validate_route():
    """Check that the current token is still valid."""
    return jsonify({
        "valid": True,
        "user": g.current_user.to_dict(),
        "org_id": g.org_id,
    }), 200
