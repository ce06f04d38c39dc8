"""
Actor Resolver: bearer token → ``Actor`` value object.

Leaf dependency of every other service: the resolved actor is passed
explicitly into the guard and workflow calls, never read from request
globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import jwt as pyjwt

from dseme.core.exceptions import ErrorKind, ServiceError
from dseme.models import db
from dseme.models.auth import Role, User
from dseme.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """The authenticated identity performing an operation."""

    user_id: int
    email: str
    role: Role
    partner_id: str | None
    center_id: int | None
    is_active: bool

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(
            user_id=user.id,
            email=user.email,
            role=user.role,
            partner_id=user.partner_id,
            center_id=user.center_id,
            is_active=bool(user.is_active),
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "role": self.role.value,
            "partner_id": self.partner_id,
            "center_id": self.center_id,
            "is_active": self.is_active,
        }


def bearer_token_from_header(auth_header: str | None) -> str | None:
    """Extract the raw token from an ``Authorization: Bearer <token>`` header."""
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def resolve_actor(token: str | None) -> tuple[Actor, None] | tuple[None, ServiceError]:
    """Resolve the acting identity from an access token.

    The user row is reloaded on every call so that role and affiliation
    changes made by an approval apply immediately.

    Returns:
        (Actor, None) on success.
        (None, ServiceError) with UNAUTHENTICATED for a missing, expired or
        invalid token or an unknown user; ACCOUNT_INACTIVE for a
        deactivated account.
    """
    if not token:
        return None, ServiceError(ErrorKind.UNAUTHENTICATED, "Authentication required")

    try:
        payload = decode_access_token(token)
    except pyjwt.ExpiredSignatureError:
        return None, ServiceError(ErrorKind.UNAUTHENTICATED, "Token has expired")
    except pyjwt.InvalidTokenError:
        return None, ServiceError(ErrorKind.UNAUTHENTICATED, "Invalid token")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None, ServiceError(ErrorKind.UNAUTHENTICATED, "Invalid token")

    user = db.session.get(User, user_id)
    if user is None:
        logger.warning("Token subject %s does not match any user", user_id)
        return None, ServiceError(ErrorKind.UNAUTHENTICATED, "Invalid token")

    if not user.is_active:
        return None, ServiceError(ErrorKind.ACCOUNT_INACTIVE, "Your account is not active")

    return Actor.from_user(user), None
