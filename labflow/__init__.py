"""
Lab Report Workflow Service
Flask Application Factory.

Usage:
    from labflow import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from labflow.config import config
from labflow.models import db
from labflow.middleware.identity import init_identity_middleware
from labflow.middleware.logging_config import configure_logging
from labflow.middleware.rate_limiter import init_rate_limits
from labflow.middleware.security_headers import init_security_headers
from labflow.middleware.timing import init_request_timing
from labflow.utils.errors import init_error_handlers

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
    default_limits=[],                     # no global limit; applied per route category
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
    os.makedirs(app.instance_path, exist_ok=True)

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

    # ── Middleware ───────────────────────────────────────────────────────
    init_request_timing(app)
    init_identity_middleware(app)
    init_security_headers(app)
    init_error_handlers(app)

    @app.before_request
    def _guard_request():
        from flask import abort, request as _req
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            ct = _req.content_type or ""
            if _req.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from labflow.models import audit as _audit_models        # noqa: F401
    from labflow.models import auth as _auth_models          # noqa: F401
    from labflow.models import report as _report_models      # noqa: F401
    from labflow.models import template as _template_models  # noqa: F401

    # ── Auto-create tables in development/testing ────────────────────────
    if app.config.get("DEBUG") or app.config.get("TESTING"):
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from labflow.blueprints.audit_bp import audit_bp
    from labflow.blueprints.health_bp import health_bp
    from labflow.blueprints.report_bp import report_bp
    from labflow.blueprints.template_bp import template_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(report_bp)
    app.register_blueprint(template_bp)
    app.register_blueprint(audit_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("create-user")
    @click.option("--id", "user_id", required=True, help="User id as carried in the JWT 'sub' claim.")
    @click.option("--role", required=True, type=click.Choice([r.value for r in _roles()], case_sensitive=False))
    @click.option("--email", default=None)
    @click.option("--name", "full_name", default=None)
    @click.option("--client-code", default=None)
    @click.password_option(help="E-signature password.")
    def create_user_cmd(user_id, role, email, full_name, client_code, password):
        """Provision (or reset) a user's e-signature credentials."""
        from labflow.services.user_service import upsert_user
        user = upsert_user(
            user_id=user_id, role=role, email=email, full_name=full_name,
            client_code=client_code, password=password,
            rounds=app.config.get("BCRYPT_ROUNDS", 12),
        )
        logger.info("User %s (%s) saved.", user.id, user.role)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app


def _roles():
    from labflow.models.workflow import Role
    return list(Role)
