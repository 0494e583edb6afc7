# backend/edition_ledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/editions.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #production Postgres URL
        "sqlite:///editions.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer token for write endpoints; unset disables the check (local dev only)
    EDITIONS_API_TOKEN = os.environ.get("EDITIONS_API_TOKEN")

    # Certificate links are issued as <base>/certificate/<line_item_id>
    CERTIFICATE_BASE_URL = os.environ.get("CERTIFICATE_BASE_URL", "")

    RECONCILE_RETRY_ATTEMPTS = int(os.environ.get("RECONCILE_RETRY_ATTEMPTS", "3"))
    RECONCILE_RETRY_BACKOFF = float(os.environ.get("RECONCILE_RETRY_BACKOFF", "0.1"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
