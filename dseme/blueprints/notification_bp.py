"""
Notification Blueprint.

Endpoints:
    GET  /api/v1/notifications                  unread notifications for the actor
    GET  /api/v1/notifications/unread-count     badge count
    POST /api/v1/notifications/<id>/read        mark one read (idempotent)
    POST /api/v1/notifications/read-all         mark all read (idempotent)

``?all=1`` on the list endpoint includes read notifications, paginated.
"""

from flask import Blueprint, jsonify, request

from dseme.blueprints import pagination_args
from dseme.middleware.actor_context import require_actor
from dseme.models import db
from dseme.services.notification import NotificationService
from dseme.utils.errors import service_error_response

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
@require_actor()
def list_notifications(actor):
    if request.args.get("all", "").lower() in ("1", "true", "yes"):
        limit, offset = pagination_args()
        items, total = NotificationService.list_for_recipient(
            actor.user_id, limit=limit, offset=offset,
        )
        return jsonify({"items": [n.to_dict() for n in items], "total": total}), 200

    items = NotificationService.list_unread(actor.user_id)
    return jsonify({"items": [n.to_dict() for n in items], "total": len(items)}), 200


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_actor()
def unread_count(actor):
    return jsonify({"unread_count": NotificationService.unread_count(actor.user_id)}), 200


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
@require_actor()
def mark_read(notification_id, actor):
    notif, err = NotificationService.mark_read(actor, notification_id)
    if err:
        return service_error_response(err)
    db.session.commit()
    return jsonify(notif.to_dict()), 200


@notification_bp.route("/notifications/read-all", methods=["POST"])
@require_actor()
def mark_all_read(actor):
    count = NotificationService.mark_all_read_for_recipient(actor.user_id)
    db.session.commit()
    return jsonify({"marked_read": count}), 200
