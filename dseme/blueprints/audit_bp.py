"""
Audit Blueprint: read-only view of the audit trail.

    GET  /api/v1/audit-logs?action=&entity_type=&limit=&offset= 

ADMIN and DONOR see every partner; ME_OFFICER sees its own partner only.
"""

from flask import Blueprint, jsonify, request

from dseme.blueprints import pagination_args
from dseme.middleware.actor_context import require_actor
from dseme.models.audit import AUDIT_ACTIONS, AUDIT_ENTITY_TYPES
from dseme.models.auth import Role
from dseme.services import audit_trail
from dseme.utils.errors import E, api_error

audit_bp = Blueprint("audit_bp", __name__, url_prefix="/api/v1")


@audit_bp.route("/audit-logs", methods=["GET"])
@require_actor(Role.ME_OFFICER, Role.DONOR, Role.ADMIN)
def list_audit_logs(actor):
    action = request.args.get("action") or None
    entity_type = request.args.get("entity_type") or None
    if action and action not in AUDIT_ACTIONS:
        return api_error(E.VALIDATION_INVALID, f"Unknown action: {action}")
    if entity_type and entity_type not in AUDIT_ENTITY_TYPES:
        return api_error(E.VALIDATION_INVALID, f"Unknown entity_type: {entity_type}")

    limit, offset = pagination_args()
    items, total = audit_trail.list_entries(
        actor, action=action, entity_type=entity_type, limit=limit, offset=offset,
    )
    return jsonify({"items": [a.to_dict() for a in items], "total": total}), 200
