# backend/orderdesk/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    """
    Application factory.

    overrides are applied before extensions are initialised, since
    Flask-SQLAlchemy binds its engines in init_app.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.orders import orders_bp
    from .routes.stock import stock_bp
    from .routes.audit import audit_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(audit_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
