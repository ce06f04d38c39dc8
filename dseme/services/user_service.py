"""
User Service: registration, password login, bootstrap helpers.

Registration always produces UNASSIGNED users; a role is only ever granted
through an approved role request or, for ADMIN, the ``create-admin`` CLI.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from dseme.models import db
from dseme.models.auth import Center, Partner, Role, User
from dseme.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class UserServiceError(Exception):
    """Custom exception for user service errors."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _normalize_email(email: str) -> str:
    try:
        valid = validate_email(email or "", check_deliverability=False)
    except EmailNotValidError as e:
        raise UserServiceError(f"Invalid email: {e}")
    return valid.normalized.lower()


def _hash(password: str) -> str:
    return hash_password(password, rounds=current_app.config.get("BCRYPT_ROUNDS", 12))


# ═══════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════
def _new_user(email: str, password: str, first_name: str = None, last_name: str = None,
              role: Role = Role.UNASSIGNED) -> User:
    """Validate and stage a user (added to the session, not committed)."""
    email = _normalize_email(email)
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise UserServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if User.query.filter_by(email=email).first():
        raise UserServiceError("A user with this email already exists", 409)

    user = User(
        email=email,
        password_hash=_hash(password),
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
        role=role,
        is_verified=role == Role.ADMIN,
    )
    db.session.add(user)
    return user


def register_user(email: str, password: str, first_name: str = None, last_name: str = None) -> User:
    """Create a new UNASSIGNED user."""
    user = _new_user(email, password, first_name, last_name)
    db.session.commit()
    logger.info("User registered: %s", user.id)
    return user


def authenticate_user(email: str, password: str) -> User:
    """Check credentials and stamp ``last_login_at``."""
    email = (email or "").strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user or not user.password_hash or not verify_password(password or "", user.password_hash):
        raise UserServiceError("Invalid email or password", 401)
    if not user.is_active:
        raise UserServiceError("Account is not active", 403)

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user


def create_admin(email: str, password: str, first_name: str = None, last_name: str = None) -> User:
    """Bootstrap an ADMIN account (CLI only)."""
    user = _new_user(email, password, first_name, last_name, role=Role.ADMIN)
    db.session.commit()
    logger.warning("ADMIN account bootstrapped: %s", user.id)
    return user


def deactivate_user(email: str) -> User:
    """Disable an account.  Its tokens stop resolving on the next request."""
    user = User.query.filter_by(email=(email or "").strip().lower()).first()
    if not user:
        raise UserServiceError("User not found", 404)
    user.is_active = False
    db.session.commit()
    logger.warning("User deactivated: %s", user.id)
    return user


# ═══════════════════════════════════════════════════════════════
# Partners & centers
# ═══════════════════════════════════════════════════════════════
def create_partner(partner_id: str, partner_name: str, country: str = None) -> Partner:
    partner_id = (partner_id or "").strip().upper()
    if not partner_id or not partner_name:
        raise UserServiceError("Partner id and name are required")
    if db.session.get(Partner, partner_id):
        raise UserServiceError(f"Partner {partner_id} already exists", 409)
    partner = Partner(partner_id=partner_id, partner_name=partner_name, country=country)
    db.session.add(partner)
    db.session.commit()
    return partner


def create_center(partner_id: str, center_name: str, location: str = None,
                  country: str = None, region: str = None) -> Center:
    partner = db.session.get(Partner, partner_id)
    if not partner:
        raise UserServiceError("Partner not found", 404)
    if not center_name:
        raise UserServiceError("Center name is required")
    center = Center(
        partner_id=partner.partner_id,
        center_name=center_name,
        location=location,
        country=country,
        region=region,
    )
    db.session.add(center)
    db.session.commit()
    return center
