"""
Platform-wide error vocabulary.

Expected, caller-recoverable conditions are NOT raised.  Services return
``(value, None)`` on success and ``(None, ServiceError)`` on failure; the
blueprint layer maps ``ServiceError.kind`` to an HTTP status once, via
``dseme.utils.errors.service_error_response``.

Exceptions are reserved for failures the caller cannot act on (storage
unavailable, audit write failed).  Those propagate, roll back the
transaction, and surface as a generic 500.

Usage:
    from dseme.core.exceptions import ErrorKind, ServiceError

    return None, ServiceError(ErrorKind.NOT_FOUND, "Request not found")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    INVALID_STATE = "invalid_state"
    PERMISSION_DENIED = "permission_denied"
    INVALID_INPUT = "invalid_input"
    ACCOUNT_INACTIVE = "account_inactive"
    UNAUTHENTICATED = "unauthenticated"
    CONFIGURATION = "configuration"


@dataclass(frozen=True)
class ServiceError:
    """Typed failure returned by services.

    Args:
        kind: Machine-readable error category.
        message: Client-safe explanation.  Never include another tenant's
                 identifiers here; log them instead.
        details: Optional field-level breakdown for 400 responses.
    """

    kind: ErrorKind
    message: str
    details: dict = field(default_factory=dict)


class AuditWriteError(Exception):
    """The audit row for an action could not be persisted.

    Hard failure: the enclosing transaction must not commit.
    """

    def __init__(self, action: str, entity_type: str, entity_id: str | None = None) -> None:
        self.action = action
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"Could not write audit entry {action} for {entity_type}/{entity_id}")
