# backend/stockledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3 unless overridden
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Retail price seeded on products auto-created from a purchase line
    RETAIL_MARKUP = os.environ.get("RETAIL_MARKUP", "1.5")

    # "clamp": decreases stop at zero (legacy behaviour)
    # "reject": a decrease that would go negative is recorded as an item error
    NEGATIVE_STOCK_POLICY = os.environ.get("NEGATIVE_STOCK_POLICY", "clamp")

    # "name": purchase delete/restore resolve products by name only (legacy)
    # "variant": delete/restore use the same variant-aware resolution as create/edit
    REVERSAL_RESOLUTION = os.environ.get("REVERSAL_RESOLUTION", "name")

    # Availability revalidation on order edit adds back the order's own allocation
    ORDER_EDIT_CREDITS_OWN_ALLOCATION = _env_bool("ORDER_EDIT_CREDITS_OWN_ALLOCATION", True)

    LEDGER_TOLERANCE_CENTS = int(os.environ.get("LEDGER_TOLERANCE_CENTS", "1"))
    TRANSACTION_RETRY_ATTEMPTS = int(os.environ.get("TRANSACTION_RETRY_ATTEMPTS", "3"))
