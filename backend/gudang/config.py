# backend/gudang/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///gudang.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Backing store calls: bounded timeout, one try plus a single retry
    STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "10"))
    STORE_RETRY_ATTEMPTS = int(os.environ.get("STORE_RETRY_ATTEMPTS", "2"))
    STORE_RETRY_BACKOFF_SECONDS = float(os.environ.get("STORE_RETRY_BACKOFF_SECONDS", "0.2"))

    # Compare-and-swap retries on the product balance row
    BALANCE_CONFLICT_ATTEMPTS = int(os.environ.get("BALANCE_CONFLICT_ATTEMPTS", "3"))

    # Day and month buckets in balance history are cut in this zone
    REPORT_TIMEZONE = os.environ.get("REPORT_TIMEZONE", "UTC")

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "12"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
