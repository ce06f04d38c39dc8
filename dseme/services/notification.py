"""
DSEME Role-Request Platform
Notification Service.

Creates in-app notifications for role-request lifecycle events and tracks
read state.  Write operations only ``flush``; the caller owns the
transaction so that a notification commits together with the request event
it documents.
"""

import logging
from datetime import datetime, timezone

from dseme.core.exceptions import ErrorKind, ServiceError
from dseme.models import db
from dseme.models.auth import User
from dseme.models.notification import Notification, NotificationType, Priority

logger = logging.getLogger(__name__)


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        return None


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify(recipient_id, notification_type, title, message="",
               priority=Priority.MEDIUM, role_request_id=None):
        """
        Create a single notification record.

        Returns:
            (Notification, None) on success (flushed, not committed).
            (None, ServiceError) if the recipient is absent or inactive, or
            the type/priority is unknown.
        """
        ntype = _coerce(NotificationType, notification_type)
        if ntype is None:
            return None, ServiceError(
                ErrorKind.INVALID_INPUT, f"Unknown notification type: {notification_type}",
            )
        prio = _coerce(Priority, priority)
        if prio is None:
            return None, ServiceError(ErrorKind.INVALID_INPUT, f"Unknown priority: {priority}")
        if not title or not str(title).strip():
            return None, ServiceError(ErrorKind.INVALID_INPUT, "Notification title is required")

        recipient = db.session.get(User, recipient_id)
        if recipient is None:
            return None, ServiceError(ErrorKind.NOT_FOUND, "Recipient not found")
        if not recipient.is_active:
            return None, ServiceError(ErrorKind.ACCOUNT_INACTIVE, "Recipient account is not active")

        notif = Notification(
            recipient_id=recipient.id,
            notification_type=ntype,
            title=str(title).strip(),
            message=message or "",
            priority=prio,
            role_request_id=role_request_id,
        )
        db.session.add(notif)
        db.session.flush()
        logger.debug(
            "Notification %s queued for user %s", ntype.value, recipient.id,
            extra={"role_request_id": role_request_id},
        )
        return notif, None

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.

        Returns:
            (items, total)
        """
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def list_unread(recipient_id):
        """All unread notifications addressed to ``recipient_id``, newest first."""
        return (
            Notification.query
            .filter_by(recipient_id=recipient_id, is_read=False)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .all()
        )

    @staticmethod
    def unread_count(recipient_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient_id=recipient_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(actor, notification_id):
        """Mark a single notification as read.  No-op if already read.

        A notification addressed to someone else is reported as not found.
        """
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_id != actor.user_id:
            return None, ServiceError(ErrorKind.NOT_FOUND, "Notification not found")
        notif.mark_read()
        db.session.flush()
        return notif, None

    @staticmethod
    def mark_all_read_for_recipient(recipient_id):
        """Mark all notifications for a recipient as read.  Returns the count changed."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query
            .filter_by(recipient_id=recipient_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="evaluate")
        )
        return count

    @staticmethod
    def mark_read_for_request(role_request_id):
        """Mark every notification linked to a role request as read."""
        now = datetime.now(timezone.utc)
        return (
            Notification.query
            .filter_by(role_request_id=role_request_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="evaluate")
        )

    @staticmethod
    def addressed_approver_ids(role_request_id):
        """Recipients of the APPROVAL_REQUEST notification(s) linked to a request."""
        rows = (
            db.session.query(Notification.recipient_id)
            .filter(
                Notification.role_request_id == role_request_id,
                Notification.notification_type == NotificationType.APPROVAL_REQUEST,
            )
            .all()
        )
        return {r[0] for r in rows}
