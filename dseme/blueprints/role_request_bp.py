"""
Role Request Blueprint.

Endpoints:
    POST /api/v1/requests                       submit a request (UNASSIGNED only)
    GET  /api/v1/requests                       requests visible to the actor
    GET  /api/v1/requests/stats                 per-status counts
    GET  /api/v1/requests/<id>                  one request
    POST /api/v1/requests/<id>/approve          addressed approver only
    POST /api/v1/requests/<id>/reject           addressed approver only, {comment}

All business rules live in role_request_service; this layer only parses
input and maps ServiceError kinds to HTTP responses.
"""

import logging

from flask import Blueprint, jsonify, request

from dseme.blueprints import pagination_args
from dseme.middleware.actor_context import require_actor
from dseme.models.role_request import RequestStatus
from dseme.services import role_request_service
from dseme.services.tenant_scope import RESOLVER_ROLES
from dseme.utils.errors import E, api_error, service_error_response

logger = logging.getLogger(__name__)

role_request_bp = Blueprint("role_request_bp", __name__, url_prefix="/api/v1")


@role_request_bp.route("/requests", methods=["POST"])
@require_actor()
def create_request(actor):
    """Body: { "partnerId": "DSE201", "centerId": 1, "requestedRole": "FACILITATOR" }"""
    data = request.get_json(silent=True) or {}
    role_request, err = role_request_service.create_request(
        actor,
        data.get("partnerId"),
        data.get("centerId"),
        data.get("requestedRole"),
    )
    if err:
        return service_error_response(err)
    return jsonify(role_request.to_dict()), 201


@role_request_bp.route("/requests", methods=["GET"])
@require_actor()
def list_requests(actor):
    status = None
    raw_status = request.args.get("status")
    if raw_status:
        try:
            status = RequestStatus(raw_status.upper())
        except ValueError:
            return api_error(
                E.VALIDATION_INVALID,
                "status must be one of: " + ", ".join(s.value for s in RequestStatus),
            )
    limit, offset = pagination_args()
    items, total = role_request_service.list_requests_for_actor(
        actor, status=status, limit=limit, offset=offset,
    )
    return jsonify({"items": [r.to_dict() for r in items], "total": total}), 200


@role_request_bp.route("/requests/stats", methods=["GET"])
@require_actor()
def request_stats(actor):
    return jsonify(role_request_service.count_by_status(actor)), 200


@role_request_bp.route("/requests/<int:request_id>", methods=["GET"])
@require_actor()
def get_request(request_id, actor):
    role_request, err = role_request_service.get_request(actor, request_id)
    if err:
        return service_error_response(err)
    return jsonify(role_request.to_dict()), 200


@role_request_bp.route("/requests/<int:request_id>/approve", methods=["POST"])
@require_actor(*RESOLVER_ROLES)
def approve_request(request_id, actor):
    role_request, err = role_request_service.approve_request(actor, request_id)
    if err:
        return service_error_response(err)
    return jsonify(role_request.to_dict()), 200


@role_request_bp.route("/requests/<int:request_id>/reject", methods=["POST"])
@require_actor(*RESOLVER_ROLES)
def reject_request(request_id, actor):
    """Body: { "comment": "reason" }"""
    data = request.get_json(silent=True) or {}
    role_request, err = role_request_service.reject_request(
        actor, request_id, data.get("comment"),
    )
    if err:
        return service_error_response(err)
    return jsonify(role_request.to_dict()), 200
