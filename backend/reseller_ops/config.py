# backend/reseller_ops/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/reseller_ops.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///reseller_ops.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Identity is asserted by the upstream identity provider in this header
    USER_ID_HEADER = os.environ.get("USER_ID_HEADER", "X-User-Id")

    DEMO_ENVIRONMENT_SLUG = "demo"
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "EUR")

    REVENUE_WINDOW_DAYS = int(os.environ.get("REVENUE_WINDOW_DAYS", "30"))
    IMPORT_BATCH_SIZE = int(os.environ.get("IMPORT_BATCH_SIZE", "50"))
