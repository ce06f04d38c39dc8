"""initial_role_request_schema

Partners, centers, users, role requests, notifications and the audit log.

role_requests.pending_key carries "requester:role:partner:center" while a
request is PENDING and NULL afterwards; the unique constraint on it allows
one pending request per tuple.

Revision ID: a1f0c3d2b4e5
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "a1f0c3d2b4e5"
down_revision = None
branch_labels = None
depends_on = None

_ROLES = ("UNASSIGNED", "FACILITATOR", "ME_OFFICER", "DONOR", "ADMIN")


def _enum(name, values, length):
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=True, length=length)


def upgrade():
    op.create_table(
        "partners",
        sa.Column("partner_id", sa.String(20), primary_key=True),
        sa.Column("partner_name", sa.String(200), nullable=False),
        sa.Column("country", sa.String(100)),
        sa.Column("is_active", sa.Boolean(), default=True),
        sa.Column("created_at", sa.DateTime()),
    )

    op.create_table(
        "centers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("partner_id", sa.String(20),
                  sa.ForeignKey("partners.partner_id", ondelete="CASCADE"), nullable=False),
        sa.Column("center_name", sa.String(200), nullable=False),
        sa.Column("location", sa.String(200)),
        sa.Column("country", sa.String(100)),
        sa.Column("region", sa.String(100)),
        sa.Column("is_active", sa.Boolean(), default=True),
        sa.Column("created_at", sa.DateTime()),
    )
    op.create_index("ix_centers_partner_id", "centers", ["partner_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(200), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(256)),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("role", _enum("user_role", _ROLES, 20), nullable=False),
        sa.Column("partner_id", sa.String(20),
                  sa.ForeignKey("partners.partner_id", ondelete="SET NULL"), nullable=True),
        sa.Column("center_id", sa.Integer(),
                  sa.ForeignKey("centers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_partner_id", "users", ["partner_id"])

    op.create_table(
        "role_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("requester_id", sa.Integer(),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("partner_id", sa.String(20),
                  sa.ForeignKey("partners.partner_id", ondelete="RESTRICT"), nullable=False),
        sa.Column("center_id", sa.Integer(),
                  sa.ForeignKey("centers.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("requested_role", _enum("requested_role", _ROLES, 20), nullable=False),
        sa.Column("status", _enum("request_status", ("PENDING", "APPROVED", "REJECTED"), 20),
                  nullable=False),
        sa.Column("pending_key", sa.String(120), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approver_id", sa.Integer(),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.UniqueConstraint("pending_key", name="uq_role_request_pending"),
    )
    op.create_index("idx_role_request_requester", "role_requests", ["requester_id"])
    op.create_index("idx_role_request_status", "role_requests", ["status"])
    op.create_index("idx_role_request_partner", "role_requests", ["partner_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recipient_id", sa.Integer(),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("notification_type",
                  _enum("notification_type", ("ALERT", "REMINDER", "APPROVAL_REQUEST", "INFO"), 30),
                  nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("message", sa.Text()),
        sa.Column("priority", _enum("notification_priority", ("LOW", "MEDIUM", "HIGH"), 10),
                  nullable=False),
        sa.Column("role_request_id", sa.Integer(),
                  sa.ForeignKey("role_requests.id", ondelete="CASCADE"), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_index("idx_notification_recipient_read", "notifications", ["recipient_id", "is_read"])
    op.create_index("idx_notification_role_request", "notifications", ["role_request_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_id", sa.Integer(),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_role", sa.String(30), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=True),
        sa.Column("partner_id", sa.String(20), nullable=True),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_actor", "audit_logs", ["actor_id"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_partner", "audit_logs", ["partner_id"])
    op.create_index("idx_audit_ts", "audit_logs", ["created_at"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("notifications")
    op.drop_table("role_requests")
    op.drop_table("users")
    op.drop_table("centers")
    op.drop_table("partners")
