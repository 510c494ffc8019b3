"""
Rental Marketplace Workflow Service
Flask Application Factory.

Usage:
    from rentflow import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import importlib
import logging
import os

from flask import Flask, g, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from rentflow.config import config
from rentflow.middleware.logging_config import configure_logging
from rentflow.middleware.rate_limiter import init_rate_limits
from rentflow.middleware.timing import init_request_timing
from rentflow.models import db
from rentflow.services.context import EXTENSION_KEY
from rentflow.services.document_storage import storage_from_config
from rentflow.services.feature_flags import FeatureFlags
from rentflow.services.kv_store import kv_store_from_url
from rentflow.utils.messages import SUPPORTED_LOCALES

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
limiter = Limiter(key_func=get_remote_address, default_limits=[])  # per-blueprint limits only


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its secrets
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

    # ── Workflow dependencies (storage, flags) ───────────────────────────
    kv = kv_store_from_url(app.config["KV_STORE_URL"])
    app.extensions[EXTENSION_KEY] = {
        "storage": storage_from_config(app.config),
        "flags": FeatureFlags(kv),
        "kv": kv,
    }

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    @app.before_request
    def _resolve_locale():
        g.locale = request.accept_languages.best_match(SUPPORTED_LOCALES) or app.config.get("DEFAULT_LOCALE")

    # ── Import all models so Alembic can detect them ─────────────────────
    from rentflow.models import alert as _alert_models                  # noqa: F401
    from rentflow.models import certification as _certification_models  # noqa: F401
    from rentflow.models import lease as _lease_models                  # noqa: F401
    from rentflow.models import mandate as _mandate_models              # noqa: F401
    from rentflow.models import processing as _processing_models        # noqa: F401
    from rentflow.models import profile as _profile_models              # noqa: F401
    from rentflow.models import role_request as _role_request_models    # noqa: F401
    from rentflow.models import scheduling as _scheduling_models        # noqa: F401

    # ── Auto-create tables for SQLite development databases ──────────────
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite") and not app.config["TESTING"]:
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from rentflow.blueprints.alert_bp import alert_bp
    from rentflow.blueprints.certification_bp import certification_bp
    from rentflow.blueprints.mandate_bp import mandate_bp
    from rentflow.blueprints.review_queue_bp import review_queue_bp
    from rentflow.blueprints.role_request_bp import role_request_bp

    app.register_blueprint(role_request_bp)
    app.register_blueprint(certification_bp)
    app.register_blueprint(review_queue_bp)
    app.register_blueprint(mandate_bp)
    app.register_blueprint(alert_bp)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Rental Marketplace Workflow Service"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error on %s", request.path, exc_info=e)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    importlib.import_module("rentflow.services.scheduled_jobs")
    from rentflow.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    return app
