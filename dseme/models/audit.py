"""
DSEME Role-Request Platform
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for mutating actions.
"""

from datetime import datetime, timezone

from sqlalchemy import event

from dseme.models import db

# ── Constants ────────────────────────────────────────────────────────────────

ACTION_REQUEST_ROLE = "REQUEST_ROLE"
ACTION_APPROVE_ROLE_REQUEST = "APPROVE_ROLE_REQUEST"
ACTION_REJECT_ROLE_REQUEST = "REJECT_ROLE_REQUEST"

AUDIT_ACTIONS = {
    ACTION_REQUEST_ROLE,
    ACTION_APPROVE_ROLE_REQUEST,
    ACTION_REJECT_ROLE_REQUEST,
}

AUDIT_ENTITY_TYPES = {"ROLE_REQUEST", "USER", "NOTIFICATION"}


class AuditLog(db.Model):
    """
    Immutable audit trail for every mutating action.

    One row per action.  ``actor_role`` snapshots the actor's role at the
    time of the action; ``partner_id`` is the tenant of the affected entity
    and drives scoped reads.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_partner", "partner_id"),
        db.Index("idx_audit_ts", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    actor_role = db.Column(db.String(30), nullable=False)
    action = db.Column(db.String(100), nullable=False)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.String(36), nullable=True)
    partner_id = db.Column(db.String(20), nullable=True)
    description = db.Column(db.Text, default="")

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    actor = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "actor_email": self.actor.email if self.actor else None,
            "actor_role": self.actor_role,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "partner_id": self.partner_id,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


class AuditLogImmutableError(RuntimeError):
    """Raised on any attempt to update or delete an audit row."""


@event.listens_for(AuditLog, "before_update")
def _block_audit_update(mapper, connection, target):
    raise AuditLogImmutableError(f"AuditLog {target.id} is append-only")


@event.listens_for(AuditLog, "before_delete")
def _block_audit_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"AuditLog {target.id} is append-only")
