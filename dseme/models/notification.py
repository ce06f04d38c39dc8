"""
DSEME Role-Request Platform
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone
from enum import Enum

from dseme.models import db


class NotificationType(str, Enum):
    ALERT = "ALERT"
    REMINDER = "REMINDER"
    APPROVAL_REQUEST = "APPROVAL_REQUEST"
    INFO = "INFO"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.  Only the read flag is mutated
    after creation.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notification_recipient_read", "recipient_id", "is_read"),
        db.Index("idx_notification_role_request", "role_request_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    notification_type = db.Column(
        db.Enum(NotificationType, name="notification_type", native_enum=False,
                create_constraint=True, length=30),
        nullable=False,
        default=NotificationType.INFO,
    )
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    priority = db.Column(
        db.Enum(Priority, name="notification_priority", native_enum=False,
                create_constraint=True, length=10),
        nullable=False,
        default=Priority.MEDIUM,
    )

    role_request_id = db.Column(
        db.Integer, db.ForeignKey("role_requests.id", ondelete="CASCADE"), nullable=True,
    )

    # Read tracking
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    recipient = db.relationship("User")
    role_request = db.relationship("RoleRequest")

    def mark_read(self):
        if self.is_read:
            return
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "type": self.notification_type.value if self.notification_type else None,
            "title": self.title,
            "message": self.message,
            "priority": self.priority.value if self.priority else None,
            "role_request_id": self.role_request_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
