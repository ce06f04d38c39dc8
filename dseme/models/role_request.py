"""
DSEME Role-Request Platform
Role request domain model.

Models:
    - RoleRequest: an UNASSIGNED user's request for a role scoped to a
      partner (and optionally a center).

State machine:
    PENDING → APPROVED
    PENDING → REJECTED
Both resolved states are terminal.
"""

from datetime import datetime, timezone
from enum import Enum

from dseme.models import db
from dseme.models.auth import Role


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


def build_pending_key(requester_id, requested_role, partner_id, center_id) -> str:
    """Uniqueness key for the (requester, role, partner, center) tuple.

    Stored only while the request is PENDING; a plain unique constraint on
    it then admits one pending row per tuple and any number of resolved ones.
    """
    role = requested_role.value if isinstance(requested_role, Role) else str(requested_role)
    return f"{requester_id}:{role}:{partner_id}:{center_id if center_id is not None else '-'}"


class RoleRequest(db.Model):
    __tablename__ = "role_requests"
    __table_args__ = (
        db.UniqueConstraint("pending_key", name="uq_role_request_pending"),
        db.Index("idx_role_request_requester", "requester_id"),
        db.Index("idx_role_request_status", "status"),
        db.Index("idx_role_request_partner", "partner_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    requester_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    partner_id = db.Column(
        db.String(20), db.ForeignKey("partners.partner_id", ondelete="RESTRICT"), nullable=False,
    )
    center_id = db.Column(
        db.Integer, db.ForeignKey("centers.id", ondelete="RESTRICT"), nullable=True,
    )
    requested_role = db.Column(
        db.Enum(Role, name="requested_role", native_enum=False, create_constraint=True, length=20),
        nullable=False,
    )
    status = db.Column(
        db.Enum(RequestStatus, name="request_status", native_enum=False, create_constraint=True, length=20),
        nullable=False,
        default=RequestStatus.PENDING,
    )
    pending_key = db.Column(db.String(120), nullable=True, comment="Set while PENDING, NULL once resolved")

    requested_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )
    approver_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    comment = db.Column(db.Text, nullable=True, comment="Rejection reason; REJECTED only")

    requester = db.relationship("User", foreign_keys=[requester_id])
    approver = db.relationship("User", foreign_keys=[approver_id])
    partner = db.relationship("Partner")
    center = db.relationship("Center")

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def to_dict(self):
        return {
            "id": self.id,
            "requester_id": self.requester_id,
            "requester_email": self.requester.email if self.requester else None,
            "partner_id": self.partner_id,
            "center_id": self.center_id,
            "requested_role": self.requested_role.value if self.requested_role else None,
            "status": self.status.value if self.status else None,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "approver_id": self.approver_id,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "comment": self.comment,
        }

    def __repr__(self):
        return f"<RoleRequest {self.id}: {self.requested_role} @ {self.partner_id} [{self.status}]>"
