"""
DSEME Role-Request Platform
Shared blueprint helpers.
"""

from flask import request


def pagination_args(default_limit=50, max_limit=500):
    """Read ``limit`` / ``offset`` query params with safe fallbacks.

    Returns:
        (limit, offset)
    """
    try:
        limit = max(min(int(request.args.get("limit", default_limit)), max_limit), 1)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset
