# Overview: Flask extension instances for database, migrations and the stats cache.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

CACHE_EXTENSION_KEY = "reseller_ops.cache"


def init_cache(app, store=None):
    """Attach a fresh cache store to the app (one per app, never shared)."""
    from .services.cache_service import CacheStore

    app.extensions[CACHE_EXTENSION_KEY] = store if store is not None else CacheStore()
    return app.extensions[CACHE_EXTENSION_KEY]


def get_cache_store():
    return current_app.extensions[CACHE_EXTENSION_KEY]
