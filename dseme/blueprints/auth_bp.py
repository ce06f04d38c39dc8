"""
Auth Blueprint: registration, login, current actor.

Endpoints:
    POST /api/v1/auth/register                  create an UNASSIGNED account (public)
    POST /api/v1/auth/login                     email + password → access token (public)
    GET  /api/v1/auth/me                        current actor profile
"""

import logging

from flask import Blueprint, jsonify, request

from dseme.middleware.actor_context import require_actor
from dseme.models import db
from dseme.models.auth import User
from dseme.services.jwt_service import issue_login_tokens
from dseme.services.user_service import UserServiceError, authenticate_user, register_user
from dseme.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")

_STATUS_TO_CODE = {
    400: E.VALIDATION_INVALID,
    401: E.UNAUTHENTICATED,
    403: E.ACCOUNT_INACTIVE,
    404: E.NOT_FOUND,
    409: E.CONFLICT_DUPLICATE,
}


def _user_error(exc: UserServiceError):
    return api_error(_STATUS_TO_CODE.get(exc.status_code, E.VALIDATION_INVALID),
                     exc.message, status=exc.status_code)


@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "email": "...", "password": "...", "first_name": "...", "last_name": "..." }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("password"):
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    try:
        user = register_user(
            data["email"], data["password"],
            first_name=data.get("first_name"), last_name=data.get("last_name"),
        )
    except UserServiceError as e:
        return _user_error(e)
    return jsonify(user.to_dict()), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return an access token.

    Body: { "email": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    try:
        user = authenticate_user(email, password)
    except UserServiceError as e:
        logger.info("Login failed for %s: %s", email, e.message)
        return _user_error(e)

    body = issue_login_tokens(user)
    body["user"] = user.to_dict()
    return jsonify(body), 200


@auth_bp.route("/me", methods=["GET"])
@require_actor()
def me(actor):
    user = db.session.get(User, actor.user_id)
    return jsonify(user.to_dict()), 200
