"""
SaaS Operations Dashboard
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os
from datetime import datetime, timezone

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from app.config import config
from app.core.exceptions import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.models import db
from app.utils.errors import E, api_error, code_for_status

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
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

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

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import user as _user_models               # noqa: F401
    from app.models import project as _project_models         # noqa: F401
    from app.models import roadmap as _roadmap_models         # noqa: F401
    from app.models import campaign as _campaign_models       # noqa: F401
    from app.models import sales as _sales_models             # noqa: F401
    from app.models import idea as _idea_models               # noqa: F401
    from app.models import insight as _insight_models         # noqa: F401
    from app.models import activity as _activity_models       # noqa: F401
    from app.models import notification as _notification_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        if config_name != "testing":
            os.makedirs(app.instance_path, exist_ok=True)
        db.create_all()
        app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.health_bp import health_bp
    from app.blueprints.user_bp import user_bp
    from app.blueprints.project_bp import project_bp
    from app.blueprints.roadmap_bp import roadmap_bp
    from app.blueprints.campaign_bp import campaign_bp
    from app.blueprints.customer_bp import customer_bp
    from app.blueprints.deal_bp import deal_bp
    from app.blueprints.sales_activity_bp import sales_activity_bp
    from app.blueprints.idea_bp import idea_bp
    from app.blueprints.insight_bp import insight_bp
    from app.blueprints.activity_bp import activity_bp
    from app.blueprints.notification_bp import notification_bp
    from app.blueprints.dashboard_bp import dashboard_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(roadmap_bp)
    app.register_blueprint(campaign_bp)
    app.register_blueprint(customer_bp)
    app.register_blueprint(deal_bp)
    app.register_blueprint(sales_activity_bp)
    app.register_blueprint(idea_bp)
    app.register_blueprint(insight_bp)
    app.register_blueprint(activity_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(dashboard_bp)

    _register_cli(app)

    @app.route("/health")
    def health():
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    _register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app


def _register_error_handlers(app):
    """Map service exceptions and HTTP errors onto the JSON error envelope."""

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        logger.info("Not found: %s id=%s", error.resource, error.resource_id)
        return api_error(E.NOT_FOUND, str(error))

    @app.errorhandler(AccessDeniedError)
    def _handle_access_denied(error: AccessDeniedError):
        logger.warning(
            "Access denied: %s id=%s", error.resource, error.resource_id,
            extra={"user_id": error.user_id},
        )
        return api_error(E.FORBIDDEN, str(error))

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @app.errorhandler(IntegrityError)
    def _handle_integrity(error: IntegrityError):
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", error.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": e.description})

    @app.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return api_error(code_for_status(error.code), error.description or error.name, status=error.code)
        db.session.rollback()
        logger.exception("Unexpected error endpoint=%s", request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")


def _resolve_cli_user(email, user_id):
    from app.services import user_service

    if user_id is not None:
        return user_service.get_user(user_id=user_id)
    if email:
        user = user_service.get_user_by_email(email)
        if user is None:
            raise click.ClickException(f"No user with email {email}")
        return user
    raise click.UsageError("Pass --email or --user-id")


def _register_cli(app):
    """Development-data commands (``flask seed-dev-data``, ``flask clear-dev-data``,
    ``flask seed-campaign-templates``)."""

    @app.cli.command("seed-dev-data")
    @click.option("--email", help="Owner email.")
    @click.option("--user-id", type=int, help="Owner id.")
    def seed_dev_data_cmd(email, user_id):
        """Create the sample development project for a user."""
        from app.services.project_service import seed_development_data

        user = _resolve_cli_user(email, user_id)
        result = seed_development_data(user_id=user.id)
        click.echo(f"Seeded project {result['project_id']} with {len(result['phase_ids'])} phases.")

    @app.cli.command("clear-dev-data")
    @click.option("--email", help="Owner email.")
    @click.option("--user-id", type=int, help="Owner id.")
    def clear_dev_data_cmd(email, user_id):
        """Delete all of a user's projects with their phases and tasks."""
        from app.services.project_service import clear_development_data

        user = _resolve_cli_user(email, user_id)
        count = clear_development_data(user_id=user.id)
        click.echo(f"Removed {count} projects.")

    @app.cli.command("seed-campaign-templates")
    def seed_campaign_templates_cmd():
        """Insert the shared campaign template catalog."""
        from app.services.campaign_service import seed_campaign_templates

        created = seed_campaign_templates()
        click.echo(f"Seeded {len(created)} campaign templates.")
