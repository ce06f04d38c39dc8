"""
Auth Models: partners, centers, users.

Partners are the tenant boundary of the platform; a center is a training
location owned by exactly one partner. A user's role and partner/center
affiliation are written only by an approved role request (or by the
``create-admin`` bootstrap command).
"""

from datetime import datetime, timezone
from enum import Enum

from dseme.models import db


class Role(str, Enum):
    """Closed set of platform roles."""
    UNASSIGNED = "UNASSIGNED"
    FACILITATOR = "FACILITATOR"
    ME_OFFICER = "ME_OFFICER"
    DONOR = "DONOR"
    ADMIN = "ADMIN"


# Roles an UNASSIGNED user may ask for. ADMIN is bootstrap-only.
REQUESTABLE_ROLES = frozenset({Role.FACILITATOR, Role.ME_OFFICER, Role.DONOR})


def parse_role(value) -> Role | None:
    """Coerce a string (any case) to a Role, or None if unknown."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value.strip().upper())
    except ValueError:
        return None


# ═══════════════════════════════════════════════════════════════
# 1. PARTNERS
# ═══════════════════════════════════════════════════════════════
class Partner(db.Model):
    __tablename__ = "partners"

    partner_id = db.Column(db.String(20), primary_key=True)  # e.g. "DSE201"
    partner_name = db.Column(db.String(200), nullable=False)
    country = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    centers = db.relationship("Center", back_populates="partner", lazy="dynamic")

    def to_dict(self):
        return {
            "partner_id": self.partner_id,
            "partner_name": self.partner_name,
            "country": self.country,
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# 2. CENTERS
# ═══════════════════════════════════════════════════════════════
class Center(db.Model):
    __tablename__ = "centers"

    id = db.Column(db.Integer, primary_key=True)
    partner_id = db.Column(
        db.String(20), db.ForeignKey("partners.partner_id", ondelete="CASCADE"), nullable=False
    )
    center_name = db.Column(db.String(200), nullable=False)
    location = db.Column(db.String(200))
    country = db.Column(db.String(100))
    region = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.Index("ix_centers_partner_id", "partner_id"),
    )

    partner = db.relationship("Partner", back_populates="centers")

    def to_dict(self):
        return {
            "id": self.id,
            "partner_id": self.partner_id,
            "center_name": self.center_name,
            "location": self.location,
            "country": self.country,
            "region": self.region,
            "is_active": self.is_active,
        }


# ═══════════════════════════════════════════════════════════════
# 3. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    role = db.Column(
        db.Enum(Role, name="user_role", native_enum=False, create_constraint=True, length=20),
        nullable=False,
        default=Role.UNASSIGNED,
    )
    partner_id = db.Column(
        db.String(20), db.ForeignKey("partners.partner_id", ondelete="SET NULL"), nullable=True
    )
    center_id = db.Column(
        db.Integer, db.ForeignKey("centers.id", ondelete="SET NULL"), nullable=True
    )
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_users_role", "role"),
        db.Index("ix_users_partner_id", "partner_id"),
    )

    partner = db.relationship("Partner")
    center = db.relationship("Center")

    @property
    def full_name(self):
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.email

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role.value if self.role else None,
            "partner_id": self.partner_id,
            "center_id": self.center_id,
            "is_active": self.is_active,
            "is_verified": self.is_verified,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
