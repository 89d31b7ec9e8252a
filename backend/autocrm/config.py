# backend/autocrm/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/autocrm.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///autocrm.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # PoS behaviour
    POS_DEFAULT_CURRENCY = os.environ.get("POS_DEFAULT_CURRENCY", "GEL")
    # Open a shift on the operator's first sale instead of rejecting it
    POS_IMPLICIT_SHIFT = _env_bool("POS_IMPLICIT_SHIFT", True)
    POS_RETRY_ATTEMPTS = int(os.environ.get("POS_RETRY_ATTEMPTS", "3"))
    POS_RETRY_BACKOFF = float(os.environ.get("POS_RETRY_BACKOFF", "0.1"))
