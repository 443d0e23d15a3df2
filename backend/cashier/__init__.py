# backend/cashier/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        # Applied before extensions bind so the engine uses the test database
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.checkout import checkout_bp
    from .routes.transactions import transactions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(transactions_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
