# backend/fulfillment/__init__.py
from __future__ import annotations

import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Default sinks; tests and embedding apps may replace them
    from .services.audit_service import DatabaseAuditSink
    from .services.notification_service import DatabaseNotificationSink
    app.extensions["audit_sink"] = DatabaseAuditSink()
    app.extensions["notification_sink"] = DatabaseNotificationSink()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.requests import requests_bp
    from .routes.warehouse_access import warehouse_access_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(warehouse_access_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
