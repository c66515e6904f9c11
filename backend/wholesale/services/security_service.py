# Overview: Append-only security event logging.

from datetime import timedelta

from flask import has_request_context, request

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow


def log_security_event(
    profile_id: int | None,
    event_type: str,
    success: bool,
    reason: str | None = None,
    org_id: int | None = None,
    resource: str | None = None,
    action: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    Request details (path, method, client address) are filled in from the
    active request when not given explicitly.

    event_type examples:
    - LOGIN_FAILED
    - LOGIN_SUCCEEDED
    - SIGN_UP
    - TENANT_CONTEXT_MISSING
    - CROSS_TENANT_ACCESS_DENIED
    """
    if has_request_context():
        resource = resource or request.path
        action = action or request.method
        ip_address = ip_address or request.remote_addr
        user_agent = user_agent or request.headers.get("User-Agent")

    event = SecurityEvent(
        profile_id=profile_id,
        org_id=org_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def cleanup_security_events(retention_days: int) -> int:
    """Delete security events older than the retention window."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(SecurityEvent.occurred_at < cutoff).delete()
    db.session.commit()
    return deleted
