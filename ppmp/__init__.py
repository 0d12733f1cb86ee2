"""
PPMP Administration Service
Flask Application Factory.

Usage:
    from ppmp import create_app
    app = create_app()           # defaults to "development"
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
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from ppmp.config import config
from ppmp.middleware.jwt_auth import init_jwt_middleware
from ppmp.middleware.logging_config import configure_logging
from ppmp.middleware.rate_limiter import init_rate_limits
from ppmp.middleware.timing import init_request_timing
from ppmp.models import db
from ppmp.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],                     # no global limit - apply per-blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
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
    config_cls = config[config_name]
    app.config.from_object(config_cls())

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

    # ── Request middleware ───────────────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)
    register_error_handlers(app)

    # ── Import all models so create_all / Alembic see them ───────────────
    from ppmp.models import audit as _audit_models                # noqa: F401
    from ppmp.models import auth as _auth_models                  # noqa: F401
    from ppmp.models import disbursement as _disbursement_models  # noqa: F401
    from ppmp.models import notification as _notification_models  # noqa: F401
    from ppmp.models import plan as _plan_models                  # noqa: F401
    from ppmp.models import purchase_request as _pr_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
        if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
            os.makedirs(app.instance_path, exist_ok=True)
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from ppmp.blueprints.audit_bp import audit_bp
    from ppmp.blueprints.auth_bp import auth_bp
    from ppmp.blueprints.disbursement_bp import disbursement_bp
    from ppmp.blueprints.health_bp import health_bp
    from ppmp.blueprints.notification_bp import notification_bp
    from ppmp.blueprints.plan_bp import plan_bp
    from ppmp.blueprints.product_bp import product_bp
    from ppmp.blueprints.purchase_request_bp import purchase_request_bp
    from ppmp.blueprints.reporting_bp import reporting_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(plan_bp)
    app.register_blueprint(reporting_bp)
    app.register_blueprint(disbursement_bp)
    app.register_blueprint(product_bp)
    app.register_blueprint(purchase_request_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(notification_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    @click.option("--password", default="password123", help="Password for every seeded account.")
    def seed_demo_cmd(password):
        """Seed departments, one user per role, products and vouchers."""
        from ppmp.seed import seed_demo
        created = seed_demo(password=password)
        click.echo(f"Seeded: {created}")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
