"""
Shared pytest fixtures for the DSEME role-request test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - partner_a / partner_b / center_c1 / center_c2: tenant fixtures
    - u1 / m1 / m2 / f1 / donor / admin: users in each role
    - make_user, auth_header, actor_for: helpers
"""

import pytest

from dseme import create_app
from dseme.models import db as _db
from dseme.models.auth import Center, Partner, Role, User
from dseme.services.actor_resolver import Actor
from dseme.services.jwt_service import generate_access_token
from dseme.utils.crypto import hash_password

TEST_PASSWORD = "Passw0rd!234"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_user(email, role=Role.UNASSIGNED, partner_id=None, center_id=None,
               is_active=True, password=TEST_PASSWORD):
    user = User(
        email=email,
        password_hash=hash_password(password, rounds=4),
        first_name=email.split("@")[0],
        role=role,
        partner_id=partner_id,
        center_id=center_id,
        is_active=is_active,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def make_user():
    """Factory: make_user(email, role=..., partner_id=..., center_id=...)."""
    return _make_user


@pytest.fixture()
def auth_header():
    """Build an Authorization header for a user."""
    def _header(user):
        token = generate_access_token(user.id, user.role.value)
        return {"Authorization": f"Bearer {token}"}
    return _header


@pytest.fixture()
def actor_for():
    """Resolve a fresh Actor value from the current user row."""
    def _actor(user):
        _db.session.refresh(user)
        return Actor.from_user(user)
    return _actor


# ── Tenant fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def partner_a():
    p = Partner(partner_id="DSE201", partner_name="Partner A", country="Kenya")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def partner_b():
    p = Partner(partner_id="DSE202", partner_name="Partner B", country="Uganda")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def center_c1(partner_a):
    c = Center(partner_id=partner_a.partner_id, center_name="C1", location="Nairobi")
    _db.session.add(c)
    _db.session.commit()
    return c


@pytest.fixture()
def center_c2(partner_b):
    c = Center(partner_id=partner_b.partner_id, center_name="C2", location="Kampala")
    _db.session.add(c)
    _db.session.commit()
    return c


# ── User fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def u1():
    """UNASSIGNED requester."""
    return _make_user("u1@dseme.org")


@pytest.fixture()
def m1(partner_a):
    """ME_OFFICER of DSE201."""
    return _make_user("m1@dseme.org", Role.ME_OFFICER, partner_id=partner_a.partner_id)


@pytest.fixture()
def m2(partner_b):
    """ME_OFFICER of DSE202."""
    return _make_user("m2@dseme.org", Role.ME_OFFICER, partner_id=partner_b.partner_id)


@pytest.fixture()
def f1(partner_a, center_c1):
    """FACILITATOR of DSE201 / C1."""
    return _make_user(
        "f1@dseme.org", Role.FACILITATOR,
        partner_id=partner_a.partner_id, center_id=center_c1.id,
    )


@pytest.fixture()
def donor(partner_a):
    return _make_user("donor@dseme.org", Role.DONOR, partner_id=partner_a.partner_id)


@pytest.fixture()
def admin():
    return _make_user("admin@dseme.org", Role.ADMIN)
