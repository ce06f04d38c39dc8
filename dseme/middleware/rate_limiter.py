"""
Per-blueprint rate limits.

The Limiter in ``dseme/__init__.py`` has no default limits; categories are
attached here once the blueprints exist.  Limits are keyed by remote IP and
read from config so deployments can tune them without code changes.
"""

import logging

logger = logging.getLogger(__name__)

_READ_BLUEPRINTS = ("notification_bp", "audit_bp")


def init_rate_limits(app, limiter):
    """
    Attach limits:
        - login:                   LOGIN_RATE_LIMIT
        - role_request_bp:         ROLE_REQUEST_RATE_LIMIT
        - notification_bp/audit_bp: READ_RATE_LIMIT
        - health_bp:               exempt

    Nothing is attached under TESTING.
    """
    if app.config.get("TESTING"):
        return

    login_limit = app.config["LOGIN_RATE_LIMIT"]
    request_limit = app.config["ROLE_REQUEST_RATE_LIMIT"]
    read_limit = app.config["READ_RATE_LIMIT"]

    login_view = app.view_functions.get("auth_bp.login")
    if login_view is not None:
        limiter.limit(login_limit)(login_view)

    if "role_request_bp" in app.blueprints:
        limiter.limit(request_limit)(app.blueprints["role_request_bp"])

    for name in _READ_BLUEPRINTS:
        if name in app.blueprints:
            limiter.limit(read_limit)(app.blueprints[name])

    if "health_bp" in app.blueprints:
        limiter.exempt(app.blueprints["health_bp"])

    logger.info(
        "Rate limits: login=%s requests=%s reads=%s",
        login_limit, request_limit, read_limit,
    )
