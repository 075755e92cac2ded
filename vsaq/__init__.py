"""
VSAQ Questionnaire Service
Flask Application Factory.

Usage:
    from vsaq import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import json
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

from vsaq.config import config
from vsaq.middleware.logging_config import configure_logging
from vsaq.middleware.rate_limiter import init_rate_limits
from vsaq.middleware.security_headers import init_security_headers
from vsaq.middleware.timing import init_request_timing
from vsaq.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (answers cascade with their instance) ─────────
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
    default_limits=[],                     # limits are set per blueprint
    storage_uri=os.getenv("REDIS_URL") or "memory://",
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
    # Instantiate so ProductionConfig can refuse to start without its env vars
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

    init_security_headers(app)
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        from flask import abort, request as _req
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and _req.content_length and _req.content_length > max_len:
            abort(413, description="Request body too large")
        # HTML forms cannot send JSON, which keeps cross-site form posts out
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            ct = _req.content_type or ""
            if (_req.content_length or 0) > 0 and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import models so Alembic can detect them ─────────────────────────
    from vsaq.models import questionnaire as _questionnaire_models  # noqa: F401

    if app.config.get("SQLALCHEMY_DATABASE_URI", "").startswith("sqlite:///") \
            and ":memory:" not in app.config["SQLALCHEMY_DATABASE_URI"]:
        os.makedirs(app.instance_path, exist_ok=True)

    with app.app_context():
        try:
            db.create_all()
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from vsaq.blueprints.auth_bp import auth_bp
    from vsaq.blueprints.fill_bp import fill_bp
    from vsaq.blueprints.health_bp import health_bp
    from vsaq.blueprints.instance_bp import instance_bp
    from vsaq.blueprints.template_bp import template_bp

    app.register_blueprint(fill_bp)
    app.register_blueprint(template_bp)
    app.register_blueprint(instance_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-sample-template")
    def seed_sample_template_cmd():
        """Seed the bundled sample questionnaire templates (validated first)."""
        from vsaq.auth import DEV_ADMIN_USERNAME
        from vsaq.models.questionnaire import Admin
        from vsaq.services.template_service import seed_sample_templates

        admin = Admin.query.filter_by(username=DEV_ADMIN_USERNAME).first()
        if admin is None:
            admin = Admin(username=DEV_ADMIN_USERNAME)
            db.session.add(admin)
            db.session.flush()
        count = seed_sample_templates(admin.id)
        db.session.commit()
        logger.info("Seeded %s sample template(s).", count)

    @app.cli.command("import-answers")
    @click.argument("link")
    @click.argument("answers_file", type=click.File("r"))
    @click.option("--remote", default=None, metavar="URL",
                  help="Save through the fill API of this server instead of the local database.")
    @click.option("--submit", is_flag=True, help="Submit the questionnaire after importing.")
    def import_answers_cmd(link, answers_file, remote, submit):
        """Import a {question_id: value} JSON file into the instance at LINK."""
        from vsaq.services.answer_import_service import import_answers, store_for

        report = import_answers(store_for(remote), link, json.load(answers_file), submit=submit)
        click.echo(json.dumps(report, indent=2))

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
