from __future__ import annotations

import os
from pathlib import Path


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///sigs.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    AGENCY_NAME = os.getenv("AGENCY_NAME", "PATRIA S.A.")
    # Empty means <instance_path>/storage
    STORAGE_ROOT = os.getenv("STORAGE_ROOT", "")

    EDIT_GRANT_HOURS = int(os.getenv("EDIT_GRANT_HOURS", "24"))
    MANUAL_EDIT_GRANT_HOURS = int(os.getenv("MANUAL_EDIT_GRANT_HOURS", "72"))
    REJECTION_REASON_MIN_LENGTH = int(os.getenv("REJECTION_REASON_MIN_LENGTH", "10"))
    CLAIM_ATTENTION_DAYS = int(os.getenv("CLAIM_ATTENTION_DAYS", "10"))

    DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
    MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))

    WHATSAPP_COUNTRY_CODE = os.getenv("WHATSAPP_COUNTRY_CODE", "591")
    NOTIFY_TIMEZONE = os.getenv("NOTIFY_TIMEZONE", "America/La_Paz")


def storage_root(app) -> Path:
    configured = (app.config.get("STORAGE_ROOT") or "").strip()
    if configured:
        return Path(configured)
    return Path(app.instance_path) / "storage"
