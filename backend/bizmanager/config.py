# backend/bizmanager/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB used when PERSISTENCE_BACKEND=sql
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///bizmanager.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Development shortcut; production schemas come from migrations
    SQL_CREATE_TABLES = _env_bool("SQL_CREATE_TABLES", False)

    # memory | json | sql
    PERSISTENCE_BACKEND = os.environ.get("PERSISTENCE_BACKEND", "json")
    LOCAL_STORE_DIR = os.environ.get("LOCAL_STORE_DIR", "instance/data")
    BUSINESS_SCOPE = os.environ.get("BUSINESS_SCOPE", "default")

    # background: writes drained by a worker thread (mutations never wait)
    # sync: one attempt per write before the mutation returns; retries on flush
    WRITER_MODE = os.environ.get("WRITER_MODE", "background")
    PERSISTENCE_RETRY_ATTEMPTS = _env_int("PERSISTENCE_RETRY_ATTEMPTS", 3)
    PERSISTENCE_RETRY_BACKOFF = float(os.environ.get("PERSISTENCE_RETRY_BACKOFF", "0.1"))

    SEED_SAMPLE_DATA = _env_bool("SEED_SAMPLE_DATA", False)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Business profile (read-only to the store)
    BUSINESS_NAME = os.environ.get("BUSINESS_NAME", "My Business")
    CURRENCY = os.environ.get("CURRENCY", "INR")
    INVOICE_PREFIX = os.environ.get("INVOICE_PREFIX", "INV-")
    INVOICE_NUMBER_WIDTH = _env_int("INVOICE_NUMBER_WIDTH", 3)
    INVOICE_NUMBERING = os.environ.get("INVOICE_NUMBERING", "sequential")
    LAST_INVOICE_NUMBER = _env_int("LAST_INVOICE_NUMBER", 0)
    DEFAULT_TAX_RATE_BPS = _env_int("DEFAULT_TAX_RATE_BPS", 1000)
    DEFAULT_DUE_DAYS = _env_int("DEFAULT_DUE_DAYS", 14)
    LOYALTY_CENTS_PER_POINT = _env_int("LOYALTY_CENTS_PER_POINT", 10000)
