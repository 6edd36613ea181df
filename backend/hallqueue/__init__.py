# backend/hallqueue/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def _sqlite_engine_options(app: Flask) -> None:
    # Writers queue on the database lock instead of failing immediately
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite") and ":memory:" not in uri:
        options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
        connect_args = dict(options.get("connect_args") or {})
        connect_args.setdefault("timeout", app.config.get("SQLITE_BUSY_TIMEOUT", 30))
        options["connect_args"] = connect_args
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = options


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    from .services.statistics_service import STRATEGIES
    if app.config["STATISTICS_STRATEGY"] not in STRATEGIES:
        raise ValueError(
            f"STATISTICS_STRATEGY must be one of {', '.join(STRATEGIES)}, "
            f"got {app.config['STATISTICS_STRATEGY']!r}"
        )

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))
    _sqlite_engine_options(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.kiosk import kiosk_bp
    from .routes.persons import persons_bp
    from .routes.catalog import catalog_bp
    from .routes.requests import requests_bp
    from .routes.queue import queue_bp
    from .routes.statistics import statistics_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(kiosk_bp)
    app.register_blueprint(persons_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(requests_bp)
    app.register_blueprint(queue_bp)
    app.register_blueprint(statistics_bp)

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
                f"Content-Type, {app.config['IDENTITY_HEADER']}"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
