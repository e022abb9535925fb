# backend/reseller_ops/__init__.py
from __future__ import annotations

from flask import Flask, request

from .config import Config
from .extensions import db, init_cache, migrate



def create_app(config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    init_cache(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.environments import environments_bp
    from .routes.dashboard import dashboard_bp, cache_bp
    from .routes.products import products_bp
    from .routes.locations import locations_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(environments_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(cache_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(locations_bp)

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
                f"Content-Type, {app.config['USER_ID_HEADER']}"
            )
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
