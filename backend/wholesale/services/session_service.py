# Overview: Service-layer operations for session tokens; issues, validates and revokes bearer tokens.

"""
Session Token Management Service

WHY: Every API call must run inside one organization. The session captures
org_id at login so each authenticated request gets its tenant context
without trusting anything the client sends.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout (SESSION_ABSOLUTE_HOURS, default 24)
- Idle timeout (SESSION_IDLE_HOURS, default 2)
- Revocable on logout and password change
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, Profile, Organization
from ..time_utils import utcnow


@dataclass
class SessionContext:
    """Session context returned by validate_session."""
    profile: Profile
    session: SessionToken
    org_id: int


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_HOURS", 2))


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy); never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy, so a fast hash is sufficient.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    profile_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new session token for a profile.

    Returns (session_record, plaintext_token). The client receives the
    plaintext token, the database stores only the hash.

    Raises ValueError if the profile is missing or its organization is inactive.
    """
    profile = db.session.query(Profile).filter_by(id=profile_id).first()
    if not profile:
        raise ValueError("Profile not found")

    org = db.session.query(Organization).filter_by(id=profile.org_id).first()
    if not org or not org.is_active:
        raise ValueError("Organization is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        profile_id=profile_id,
        org_id=profile.org_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if:
    - Token is unknown, expired, or revoked
    - Profile is deactivated
    - Organization is deactivated

    Updates last_used_at on successful validation.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    profile = session.profile
    if not profile or not profile.is_active:
        _revoke(session, "Profile deactivated")
        return None

    org = session.organization
    if not org or not org.is_active:
        _revoke(session, "Organization deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(profile=profile, session=session, org_id=session.org_id)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke session token. Returns False if no active session matches."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True


def revoke_all_profile_sessions(profile_id: int, reason: str = "Revoke all sessions", *, except_token: str | None = None) -> int:
    """
    Revoke all active sessions for a profile (used after a password change).

    Returns count of sessions revoked.
    """
    now = utcnow()
    keep_hash = hash_token(except_token) if except_token else None

    sessions = db.session.query(SessionToken).filter_by(
        profile_id=profile_id,
        is_revoked=False
    ).all()

    count = 0
    for session in sessions:
        if session.token_hash == keep_hash:
            continue
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
        count += 1

    db.session.commit()
    return count


def cleanup_expired_sessions(older_than_days: int = 30) -> int:
    """
    Delete expired or revoked sessions created more than older_than_days ago.

    Returns count of sessions deleted.
    """
    now = utcnow()
    cutoff = now - timedelta(days=older_than_days)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(True)
        ),
        SessionToken.created_at < cutoff
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
