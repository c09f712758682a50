"""Flask application factory for the citizen complaint service."""
import os
from datetime import timedelta
from typing import Mapping, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException

from extensions import csrf, db, login_manager, migrate
from utils.complaint_service import EXTENSION_KEY, ComplaintService, current_service
from utils.errors import ComplaintError, InternalError, Unauthorized
from utils.logger import init_logging
from utils.security import AttemptTracker, apply_security_headers
from utils.store import EntityStore, MemoryStore


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ComplaintError)
    def complaint_error(error: ComplaintError):
        if error.status_code >= 500:
            app.logger.error(
                "%s: %s", error.kind, error.message, extra={"path": request.path, "method": request.method}
            )
        else:
            app.logger.info(
                "%s: %s", error.kind, error.message, extra={"path": request.path, "method": request.method}
            )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        app.logger.warning(
            "%s %s", error.code, error.name, extra={"path": request.path, "method": request.method}
        )
        return jsonify({"error": error.name.lower().replace(" ", "_"), "message": error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error: Exception):
        app.logger.exception("500 Internal Server Error")
        return jsonify(InternalError().to_dict()), 500


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        # For SQLite just make sure the parent directory exists.
        if url.database:
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # If we cannot connect/create, let the normal app startup fail loudly later.
            pass
        finally:
            engine.dispose()


def build_store(app: Flask) -> EntityStore:
    backend = app.config.get("STORE_BACKEND", "sql")
    if backend == "memory":
        return MemoryStore()
    if backend == "sql":
        from utils.sql_store import SqlStore  # Local import keeps the memory backend free of table setup

        ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])
        import models.tables  # noqa: F401  registers the tables on db.metadata

        with app.app_context():
            db.create_all()
        return SqlStore()
    raise ValueError(f"Unknown STORE_BACKEND '{backend}'")


def seed_defaults(app: Flask, service: ComplaintService) -> None:
    """Make sure a default admin can log in and the stock categories exist."""
    with app.app_context():
        if app.config.get("SEED_DEFAULT_CATEGORIES", True):
            service.ensure_default_categories()
        username = (app.config.get("DEFAULT_ADMIN_USERNAME") or "").strip()
        password = app.config.get("DEFAULT_ADMIN_PASSWORD") or ""
        if username and password:
            service.ensure_admin(username, password)


def create_app(config_name: Optional[str] = None, overrides: Optional[Mapping] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    # Resolve configuration
    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())
    if overrides:
        app.config.update(overrides)

    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    # Initialize logging early
    logger = init_logging(app)
    app.logger = logger

    # Initialize extensions
    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    login_manager.session_protection = "strong"

    store = build_store(app)
    service = ComplaintService(store)
    app.extensions[EXTENSION_KEY] = service
    app.extensions["login_attempts"] = AttemptTracker(
        limit=int(app.config.get("LOGIN_ATTEMPT_LIMIT", 10)),
        window=timedelta(minutes=int(app.config.get("LOGIN_ATTEMPT_WINDOW_MINUTES", 15))),
    )

    @login_manager.user_loader
    def load_user(user_id):
        if not user_id:
            return None
        try:
            return current_service().get_user(int(user_id))
        except ValueError:
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        raise Unauthorized()

    # Blueprints
    from routes import auth_bp, complaints_bp, main_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(complaints_bp, url_prefix="/api")
    csrf.exempt(auth_bp)
    csrf.exempt(complaints_bp)

    # Error handlers
    register_error_handlers(app)

    @app.after_request
    def _after_request(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    seed_defaults(app, service)

    return app


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port, use_reloader=False)
