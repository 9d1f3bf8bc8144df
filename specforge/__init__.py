"""
SpecForge
Flask Application Factory.

Usage:
    from specforge import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event
from werkzeug.exceptions import RequestEntityTooLarge, UnsupportedMediaType

from specforge.ai.capabilities import init_ai
from specforge.blueprints import register_blueprints
from specforge.blueprints.errors import register_error_handlers
from specforge.config import config
from specforge.middleware.jwt_auth import init_jwt_middleware
from specforge.middleware.logging_config import configure_logging
from specforge.middleware.rate_limiter import init_rate_limits
from specforge.middleware.security_headers import init_security_headers
from specforge.middleware.timing import init_request_timing
from specforge.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, per-blueprint only
    storage_uri=os.getenv("REDIS_URL") or "memory://",
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
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

    # ── Middleware (order matters: timing first so it sees every request) ─
    init_request_timing(app)
    init_security_headers(app)

    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            raise RequestEntityTooLarge("Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            if request.get_data(cache=True) and not request.is_json:
                raise UnsupportedMediaType("Content-Type must be application/json")

    init_jwt_middleware(app)

    # ── AI capability layer ──────────────────────────────────────────────
    init_ai(app)

    # ── Models & tables ──────────────────────────────────────────────────
    from specforge.models import activity, ai, estimate, organization, project  # noqa: F401
    from specforge.models import requirement, tech_stack, user_flow, wireframe  # noqa: F401

    with app.app_context():
        db.create_all()

    # ── Blueprints & error handlers ──────────────────────────────────────
    register_blueprints(app)
    register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    logger.debug("Application created with config '%s'", config_name)
    return app
