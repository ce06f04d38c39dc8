"""
DSEME Role-Request Platform
Flask Application Factory.

Usage:
    from dseme import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from dseme.config import config
from dseme.core.exceptions import AuditWriteError
from dseme.middleware.logging_config import configure_logging
from dseme.middleware.rate_limiter import init_rate_limits
from dseme.middleware.timing import init_request_timing
from dseme.models import db
from dseme.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None, config_overrides=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        config_overrides: Optional mapping applied on top of the config
                     class, e.g. a different SQLALCHEMY_DATABASE_URI.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    if config_overrides:
        app.config.update(config_overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    os.makedirs(app.instance_path, exist_ok=True)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from dseme.models import auth as _auth_models                  # noqa: F401
    from dseme.models import role_request as _role_request_models  # noqa: F401
    from dseme.models import notification as _notification_models  # noqa: F401
    from dseme.models import audit as _audit_models                # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from dseme.blueprints.audit_bp import audit_bp
    from dseme.blueprints.auth_bp import auth_bp
    from dseme.blueprints.health_bp import health_bp
    from dseme.blueprints.notification_bp import notification_bp
    from dseme.blueprints.role_request_bp import role_request_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(role_request_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(health_bp)

    _register_cli(app)
    _register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app


def _register_error_handlers(app):
    @app.errorhandler(AuditWriteError)
    def audit_write_failed(e):
        db.session.rollback()
        logger.error("Aborted action, audit write failed: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error", status=500)

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error", status=500)


def _register_cli(app):
    from dseme.services.user_service import (
        UserServiceError,
        create_admin,
        create_center,
        create_partner,
        deactivate_user,
    )

    @app.cli.command("create-partner")
    @click.argument("partner_id")
    @click.argument("partner_name")
    @click.option("--country", default=None)
    def create_partner_cmd(partner_id, partner_name, country):
        """Register a partner organisation, e.g. DSE201."""
        try:
            partner = create_partner(partner_id, partner_name, country=country)
        except UserServiceError as e:
            raise click.ClickException(e.message)
        click.echo(f"Created partner {partner.partner_id}")

    @app.cli.command("create-center")
    @click.argument("partner_id")
    @click.argument("center_name")
    @click.option("--location", default=None)
    @click.option("--country", default=None)
    @click.option("--region", default=None)
    def create_center_cmd(partner_id, center_name, location, country, region):
        """Register a center under an existing partner."""
        try:
            center = create_center(partner_id, center_name, location=location,
                                   country=country, region=region)
        except UserServiceError as e:
            raise click.ClickException(e.message)
        click.echo(f"Created center {center.id} for {center.partner_id}")

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.password_option()
    def create_admin_cmd(email, password):
        """Bootstrap an ADMIN account."""
        try:
            user = create_admin(email, password)
        except UserServiceError as e:
            raise click.ClickException(e.message)
        click.echo(f"Created ADMIN {user.email} (id={user.id})")

    @app.cli.command("deactivate-user")
    @click.argument("email")
    def deactivate_user_cmd(email):
        """Disable an account; it can no longer log in, request or approve."""
        try:
            user = deactivate_user(email)
        except UserServiceError as e:
            raise click.ClickException(e.message)
        click.echo(f"Deactivated {user.email} (id={user.id})")
