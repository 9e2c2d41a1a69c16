"""Flask application factory."""

import logging
import os
from pathlib import Path
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from flask import Flask, g, jsonify, session
from flask_wtf.csrf import CSRFError, CSRFProtect
from sqlalchemy import text
from werkzeug.middleware.proxy_fix import ProxyFix

from otj_portal.errors import OtjError, StorageFailure
from otj_portal.models import db

logger = logging.getLogger(__name__)

csrf = CSRFProtect()

_INSECURE_SECRET_KEY = "dev-key-change-in-production"


def create_app(test_config=None):
    app = Flask(__name__)

    # Database: prefer DATABASE_URL (Railway PostgreSQL), fall back to SQLite
    db_url = os.environ.get("DATABASE_URL")
    if db_url:
        # Railway historically issued postgres:// which SQLAlchemy rejects
        if db_url.startswith("postgres://"):
            db_url = db_url.replace("postgres://", "postgresql://", 1)
        db_url = _normalize_db_url_password(db_url)
    else:
        db_path = os.environ.get(
            "OTJ_DB_PATH",
            str(Path(__file__).resolve().parent.parent.parent / "data" / "otj.db"),
        )
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        db_url = f"sqlite:///{db_path}"

    _validate_railway_env(db_url)

    app.config["SQLALCHEMY_DATABASE_URI"] = db_url
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", _INSECURE_SECRET_KEY)
    app.config["GOOGLE_CLIENT_ID"] = os.environ.get("GOOGLE_CLIENT_ID")
    app.config["GOOGLE_CLIENT_SECRET"] = os.environ.get("GOOGLE_CLIENT_SECRET")
    app.config["DEV_AUTO_LOGIN_EMAIL"] = os.environ.get("DEV_AUTO_LOGIN_EMAIL")
    app.config["DEV_AUTO_LOGIN_ROLE"] = os.environ.get("DEV_AUTO_LOGIN_ROLE", "learner")
    app.config["ALLOWED_EMAILS"] = os.environ.get("ALLOWED_EMAILS", "")
    app.config["TUTOR_EMAILS"] = os.environ.get("TUTOR_EMAILS", "")
    app.config["OTJ_DEFAULT_STANDARD"] = os.environ.get("OTJ_DEFAULT_STANDARD", "ST0763")
    # Cap on a single hand-entered weekly total
    app.config["OTJ_MAX_WEEKLY_HOURS"] = float(os.environ.get("OTJ_MAX_WEEKLY_HOURS", "40"))

    if test_config:
        app.config.update(test_config)

    # Trust Railway's HTTPS proxy so url_for(..., _external=True) produces https://
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    db.init_app(app)
    csrf.init_app(app)

    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:
            if not _is_duplicate_ddl_error(exc):
                raise
            logger.debug("create_all: some tables already exist (concurrent worker startup), continuing: %s", exc)
        migration_results = _migrate_db()

        # Startup diagnostics
        db_dialect = db.engine.dialect.name
        oauth_ok = bool(app.config.get("GOOGLE_CLIENT_ID") and app.config.get("GOOGLE_CLIENT_SECRET"))
        dev_login = bool(app.config.get("DEV_AUTO_LOGIN_EMAIL"))
        applied = sum(1 for ok in migration_results if ok)
        skipped = sum(1 for ok in migration_results if not ok)
        logger.info(
            "Startup: db=%s oauth=%s dev_login=%s default_standard=%s migrations(applied=%d skipped=%d)",
            db_dialect, oauth_ok, dev_login, app.config["OTJ_DEFAULT_STANDARD"], applied, skipped,
        )

    # Register blueprints
    from otj_portal.routes.auth import bp as auth_bp, init_oauth
    from otj_portal.routes.entries import bp as entries_bp
    from otj_portal.routes.events import bp as events_bp
    from otj_portal.routes.health import bp as health_bp
    from otj_portal.routes.standards import bp as standards_bp
    from otj_portal.routes.weekly import bp as weekly_bp

    init_oauth(app)
    app.register_blueprint(auth_bp)
    app.register_blueprint(entries_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(standards_bp)
    app.register_blueprint(weekly_bp)

    @app.errorhandler(OtjError)
    def handle_otj_error(exc):
        if isinstance(exc, StorageFailure):
            logger.error("Storage failure surfaced to client: %s (cause: %r)", exc.message, exc.__cause__)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(CSRFError)
    def handle_csrf_error(exc):
        return jsonify({"error": "CSRFError", "message": exc.description}), 400

    @app.before_request
    def load_user():
        from otj_portal.models import User
        user_id = session.get("user_id")

        dev_email = app.config.get("DEV_AUTO_LOGIN_EMAIL")
        if dev_email and user_id is None:
            user = User.query.filter_by(email=dev_email).first()
            if not user:
                user = User(email=dev_email, name="Dev User", role=app.config["DEV_AUTO_LOGIN_ROLE"])
                db.session.add(user)
                db.session.commit()
            session["user_id"] = user.id
            user_id = user.id

        g.user = db.session.get(User, user_id) if user_id else None

    return app


def _normalize_db_url_password(url: str) -> str:
    """Re-encode the password component of a database URL.

    Railway passwords can contain ``@``, ``#`` or ``%``; whether they arrive
    percent-encoded or not, the result has exactly one encoding applied so
    SQLAlchemy parses host and port correctly.  Unparseable input is
    returned unchanged.
    """
    try:
        parts = urlsplit(url)
        password = parts.password
    except ValueError:
        return url
    if not password:
        return url

    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    username = userinfo.split(":", 1)[0]
    netloc = f"{username}:{quote(unquote(password), safe='')}@{hostinfo}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def _validate_railway_env(db_url: str):
    """Fail fast on Railway when required configuration is missing.

    Outside Railway (no ``RAILWAY_ENVIRONMENT``) this is a no-op.  Every
    problem found is reported in a single RuntimeError.
    """
    if not os.environ.get("RAILWAY_ENVIRONMENT"):
        return

    problems = []
    secret = os.environ.get("SECRET_KEY")
    if not secret or secret == _INSECURE_SECRET_KEY:
        problems.append("SECRET_KEY must be set to a long random value.")

    oauth_ok = bool(os.environ.get("GOOGLE_CLIENT_ID") and os.environ.get("GOOGLE_CLIENT_SECRET"))
    if not oauth_ok and not os.environ.get("DEV_AUTO_LOGIN_EMAIL"):
        problems.append(
            "No login method configured: set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET "
            "(or DEV_AUTO_LOGIN_EMAIL for a private deployment)."
        )

    if db_url.startswith("postgresql://"):
        try:
            parts = urlsplit(db_url)
            password, host = parts.password, parts.hostname
        except ValueError:
            password, host = None, None
        if not password:
            problems.append("DATABASE_URL has no password component.")
        if not host:
            problems.append("DATABASE_URL has no host component.")

    if problems:
        raise RuntimeError("Invalid Railway configuration:\n  - " + "\n  - ".join(problems))


def _is_duplicate_ddl_error(exc: Exception) -> bool:
    """Return True if *exc* indicates a DDL object (table/column) already exists.

    Covers both SQLite ('already exists') and PostgreSQL ('already exists',
    'duplicate column', 'duplicate table') error messages.
    """
    msg = str(exc).lower()
    return any(kw in msg for kw in ("already exists", "duplicate column", "duplicate table"))


def _migrate_db() -> list[bool]:
    """Apply incremental schema migrations for existing databases.

    Each statement is executed independently.  Errors caused by a column or
    index already existing are treated as expected and logged at DEBUG level.
    Unexpected errors are logged at WARNING level.

    Returns a list of booleans indicating whether each migration was applied
    (True) or skipped (False, already present).
    """
    migrations = [
        "ALTER TABLE app_user ADD COLUMN role VARCHAR(50) NOT NULL DEFAULT 'learner'",
        "ALTER TABLE app_user ADD COLUMN selected_standard VARCHAR(20)",
        "ALTER TABLE app_user ADD COLUMN otj_target_hours REAL",
        "ALTER TABLE weekly_otj_record ADD COLUMN entry_mode VARCHAR(20) NOT NULL DEFAULT 'manual'",
        "ALTER TABLE weekly_otj_record ADD COLUMN status_override VARCHAR(20)",
        "ALTER TABLE weekly_otj_record ADD COLUMN tutor_notes TEXT",
        (
            "CREATE UNIQUE INDEX uq_weekly_otj_learner_week"
            " ON weekly_otj_record (learner_id, week_start_date)"
        ),
    ]
    results: list[bool] = []
    for sql in migrations:
        try:
            with db.engine.connect() as conn:
                conn.execute(text(sql))
                conn.commit()
            logger.debug("Migration applied: %.80s", sql)
            results.append(True)
        except Exception as exc:
            if _is_duplicate_ddl_error(exc):
                logger.debug("Migration skipped (already applied): %.80s", sql)
            else:
                logger.warning("Migration failed unexpectedly: sql=%.80s error=%s", sql, exc)
            results.append(False)
    return results
