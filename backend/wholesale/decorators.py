# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service
from .services.security_service import log_security_event


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require authentication and establish tenant context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated Profile
    - g.org_id: The organization ID (tenant context)
    - g.session_context: The full SessionContext object

    Returns 401 if the Authorization header is missing, the token is invalid,
    expired or revoked, or the profile/organization is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        if not context.org_id:
            log_security_event(
                profile_id=context.profile.id if context.profile else None,
                event_type="TENANT_CONTEXT_MISSING",
                success=False,
                reason="Session missing org_id",
                org_id=None,
            )
            return jsonify({"error": "Invalid session: missing tenant context"}), 401

        g.current_user = context.profile
        g.org_id = context.org_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function
