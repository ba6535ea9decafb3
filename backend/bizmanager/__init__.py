# backend/bizmanager/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate, STORE_EXTENSION_KEY
from .errors import PersistenceError


def create_app(config=None) -> Flask:
    """
    Build the API app around one BusinessStore.

    config: optional mapping applied over Config (tests pass overrides here).
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    logging.getLogger(__name__).setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    if app.config.get("SQL_CREATE_TABLES"):
        with app.app_context():
            db.create_all()

    app.extensions[STORE_EXTENSION_KEY] = _build_store(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.customers import customers_bp
    from .routes.vendors import vendors_bp
    from .routes.expenses import expenses_bp
    from .routes.invoices import invoices_bp
    from .routes.payments import payments_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(vendors_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(reports_bp)

    @app.before_request
    def sync_business_store():
        store = app.extensions[STORE_EXTENSION_KEY]
        if store.state == "failed":
            _load_store(app, store)
        elif store.is_ready:
            try:
                store.sync_remote()
            except PersistenceError:
                app.logger.warning("Pulling remote changes failed; serving local state", exc_info=True)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = (
                "Content-Type, X-Actor-Id, X-Actor-Name, X-Actor-Role"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def _build_store(app: Flask):
    from .decorators import current_actor
    from .models import BusinessProfile
    from .persistence import build_port
    from .services.business_store import BusinessStore

    store = BusinessStore(
        build_port(app.config, app),
        scope=app.config["BUSINESS_SCOPE"],
        profile=BusinessProfile.from_config(app.config),
        actor_provider=current_actor,
        writer_mode=app.config["WRITER_MODE"],
        retry_attempts=int(app.config["PERSISTENCE_RETRY_ATTEMPTS"]),
        retry_backoff=float(app.config["PERSISTENCE_RETRY_BACKOFF"]),
    )
    store.on_persistence_failure(
        lambda exc, op: app.logger.error("Unsynced change %s %s: %s", op.entity_type, op.entity_id, exc)
    )
    _load_store(app, store)
    return store


def _load_store(app: Flask, store) -> None:
    from .services.seed_service import seed_sample_data

    seed = seed_sample_data if app.config.get("SEED_SAMPLE_DATA") else None
    try:
        store.load(seed=seed)
    except PersistenceError:
        app.logger.error("Business store failed to load; API answers 503 until a retry succeeds")
