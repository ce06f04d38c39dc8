"""JSON error bodies for the API.

Every error leaves the service as ``{"error": <message>, "code": <ERR_*>}``
plus an optional ``details`` object.  Views either build one directly::

    return api_error(E.VALIDATION_REQUIRED, "comment is required")

or forward a service result::

    role_request, err = role_request_service.approve_request(actor, rid)
    if err:
        return service_error_response(err)
"""

from __future__ import annotations

from flask import jsonify

from dseme.core.exceptions import ErrorKind, ServiceError


class E:
    """``ERR_*`` codes, grouped by the HTTP status they default to."""

    # 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    # 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    # 403
    FORBIDDEN = "ERR_FORBIDDEN"
    ACCOUNT_INACTIVE = "ERR_ACCOUNT_INACTIVE"
    # 404 / 405
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    # 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    # 422: deployment is missing an eligible approver
    CONFIGURATION = "ERR_CONFIGURATION"
    # 429
    RATE_LIMITED = "ERR_RATE_LIMITED"
    # 500
    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.ACCOUNT_INACTIVE: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CONFIGURATION: 422,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
}

_KIND_TO_CODE: dict[ErrorKind, str] = {
    ErrorKind.INVALID_INPUT: E.VALIDATION_INVALID,
    ErrorKind.UNAUTHENTICATED: E.UNAUTHENTICATED,
    ErrorKind.PERMISSION_DENIED: E.FORBIDDEN,
    ErrorKind.ACCOUNT_INACTIVE: E.ACCOUNT_INACTIVE,
    ErrorKind.NOT_FOUND: E.NOT_FOUND,
    ErrorKind.ALREADY_EXISTS: E.CONFLICT_DUPLICATE,
    ErrorKind.INVALID_STATE: E.CONFLICT_STATE,
    ErrorKind.CONFIGURATION: E.CONFIGURATION,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(json_response, status)``.

    ``status`` defaults to the code's usual status, or 400 for unknown codes.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)


def status_for_kind(kind: ErrorKind) -> int:
    return _DEFAULT_STATUS[_KIND_TO_CODE[kind]]


def service_error_response(error: ServiceError):
    return api_error(
        _KIND_TO_CODE.get(error.kind, E.INTERNAL),
        error.message,
        details=error.details or None,
    )
