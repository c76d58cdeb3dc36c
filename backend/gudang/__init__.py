# backend/gudang/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def _engine_options(uri: str, timeout: float) -> dict:
    """Bound every backing store call by the driver's own timeout."""
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": timeout}}
    if uri.startswith("postgresql"):
        return {"pool_pre_ping": True, "pool_timeout": timeout, "connect_args": {"connect_timeout": int(timeout)}}
    return {"pool_pre_ping": True}


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        _engine_options(app.config["SQLALCHEMY_DATABASE_URI"], app.config["STORE_TIMEOUT_SECONDS"]),
    )
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.row_store import SqlAlchemyRowStore
    app.extensions["gudang.row_store"] = SqlAlchemyRowStore(
        attempts=app.config["STORE_RETRY_ATTEMPTS"],
        backoff_base=app.config["STORE_RETRY_BACKOFF_SECONDS"],
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.transactions import transactions_bp
    from .routes.opname import opname_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(opname_bp)
    app.register_blueprint(reports_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
