"""
Actor decorator: resolves the calling identity once per request.

Usage:
    @bp.route("/requests/<int:request_id>/approve", methods=["POST"])
    @require_actor(Role.ME_OFFICER, Role.DONOR, Role.ADMIN)
    def approve(request_id, actor):
        ...

The resolved ``Actor`` is passed to the view as the ``actor`` keyword
argument.  Services receive it explicitly; nothing downstream reads the
identity from ``flask.g``.  ``g.actor_id`` is set only so the timing
middleware can tag log lines.
"""

import functools
import logging

from flask import g, request

from dseme.core.exceptions import ErrorKind, ServiceError
from dseme.models.auth import Role
from dseme.services.actor_resolver import bearer_token_from_header, resolve_actor
from dseme.utils.errors import service_error_response

logger = logging.getLogger(__name__)


def require_actor(*roles):
    """
    Decorator: require an authenticated, active actor.

    Args:
        roles: Optional Role values allowed to call the endpoint.  ADMIN is
               always allowed.  Empty means any role.
    """
    allowed = frozenset(roles)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            token = bearer_token_from_header(request.headers.get("Authorization"))
            actor, err = resolve_actor(token)
            if err:
                return service_error_response(err)

            g.actor_id = actor.user_id

            if allowed and actor.role != Role.ADMIN and actor.role not in allowed:
                logger.warning(
                    "User %d denied: role %s not in %s on %s",
                    actor.user_id, actor.role.value,
                    sorted(r.value for r in allowed), f.__name__,
                )
                return service_error_response(
                    ServiceError(ErrorKind.PERMISSION_DENIED, "Permission denied")
                )

            kwargs["actor"] = actor
            return f(*args, **kwargs)
        return decorated
    return decorator
