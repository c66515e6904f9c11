# Overview: Service-layer operations for auth; sign-up, password hashing and login.

"""
Authentication Service

WHY: Every request must run inside one organization. Sign-up creates that
organization together with its owner profile and default business
settings; login proves the caller owns a profile in it.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters; upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
- Authentication fails for inactive profiles and organizations
"""

import bcrypt
import re

from flask import current_app

from ..extensions import db
from ..models import Profile, Organization, BusinessSettings
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class SignUpError(Exception):
    """Raised when an account cannot be created (duplicate e-mail, bad input)."""
    pass


class DuplicateAccountError(SignUpError):
    pass


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def validate_new_password(password: str | None, repeat_password: str | None) -> None:
    if not password:
        raise PasswordValidationError("Password is required")
    if password != repeat_password:
        raise PasswordValidationError("Passwords do not match")
    validate_password_strength(password)


def hash_password(password: str) -> str:
    """Hash password using bcrypt. Password is validated for strength before hashing."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_profile(
    org_id: int,
    email: str,
    password: str,
    full_name: str | None = None,
    role: str = "staff",
    *,
    commit: bool = True,
) -> Profile:
    """
    Create a login profile inside an existing organization.

    Raises:
        SignUpError: organization missing/inactive or e-mail already registered
        PasswordValidationError: weak password
    """
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        raise SignUpError("Organization not found")
    if not org.is_active:
        raise SignUpError("Organization is not active")

    email = normalize_email(email)
    if not email or "@" not in email:
        raise SignUpError("A valid email is required")

    if db.session.query(Profile).filter_by(email=email).first():
        raise DuplicateAccountError("An account with this email already exists")

    profile = Profile(
        org_id=org_id,
        email=email,
        full_name=(full_name or "").strip() or None,
        role=role,
        password_hash=hash_password(password),
    )
    db.session.add(profile)

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return profile


def sign_up(
    email: str,
    password: str,
    repeat_password: str,
    business_name: str | None = None,
    full_name: str | None = None,
) -> Profile:
    """
    Register a new business: organization, owner profile and default settings.

    All three rows are committed together.
    """
    validate_new_password(password, repeat_password)

    business_name = (business_name or "").strip() or "My Business"

    try:
        org = Organization(name=business_name, is_active=True)
        db.session.add(org)
        db.session.flush()

        profile = create_profile(org.id, email, password, full_name, role="owner", commit=False)

        db.session.add(BusinessSettings(
            org_id=org.id,
            business_name=business_name,
            currency=current_app.config.get("DEFAULT_CURRENCY", "TND"),
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return profile


def authenticate(email: str, password: str) -> Profile | None:
    """
    Authenticate by e-mail and password.

    Returns Profile if credentials valid and org is active, None otherwise.
    Updates last_login_at on success.
    """
    profile = db.session.query(Profile).filter(
        Profile.email == normalize_email(email),
        Profile.is_active.is_(True),
    ).first()

    if not profile:
        return None

    org = db.session.query(Organization).filter_by(id=profile.org_id).first()
    if not org or not org.is_active:
        return None

    if verify_password(password or "", profile.password_hash):
        profile.last_login_at = utcnow()
        db.session.commit()
        return profile

    return None


def change_password(profile: Profile, new_password: str, repeat_password: str) -> None:
    validate_new_password(new_password, repeat_password)
    profile.password_hash = hash_password(new_password)
    db.session.commit()
