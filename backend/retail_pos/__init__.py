# backend/retail_pos/__init__.py
from flask import Flask

from .config import Config, PosSettings
from .extensions import configure_sqlite_transactions, db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    with app.app_context():
        configure_sqlite_transactions(db.engine)

    from .services.pos_service import PosService

    app.extensions["pos"] = PosService(PosSettings.from_config(app.config))

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.registers import registers_bp
    from .routes.sessions import sessions_bp
    from .routes.transactions import transactions_bp
    from .routes.reports import reports_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(registers_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(inventory_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
