# backend/batchpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/batchpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///batchpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Batch allocation / alerting windows (days)
    EXPIRY_WARNING_DAYS = int(os.environ.get("EXPIRY_WARNING_DAYS", "30"))
    EXPIRY_ALERT_HORIZON_DAYS = int(os.environ.get("EXPIRY_ALERT_HORIZON_DAYS", "30"))
    DEFAULT_MIN_BATCH_STOCK_LEVEL = int(os.environ.get("DEFAULT_MIN_BATCH_STOCK_LEVEL", "5"))

    # Settlement retry policy
    INVOICE_NUMBER_ATTEMPTS = int(os.environ.get("INVOICE_NUMBER_ATTEMPTS", "5"))
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))
