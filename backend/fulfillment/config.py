# backend/fulfillment/config.py
from __future__ import annotations
import os


def _csv_env(name: str, default: str) -> frozenset[str]:
    raw = os.environ.get(name, default)
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fulfillment.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fulfillment.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Roles that bypass per-warehouse assignments entirely
    ADMIN_ROLES = _csv_env("ADMIN_ROLES", "Admin")

    # Roles notified when a request is submitted for approval
    REQUEST_APPROVER_ROLES = _csv_env("REQUEST_APPROVER_ROLES", "Admin,Manager")

    # Items may still be added/removed after submit, until approval
    REQUEST_ITEMS_EDITABLE_WHEN_SUBMITTED = _bool_env("REQUEST_ITEMS_EDITABLE_WHEN_SUBMITTED", True)

    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "20"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "100"))
