# backend/posledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/posledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "product": each product's tax_included flag decides
    # "inclusive" / "exclusive": force one policy for every line
    PRICE_TAX_MODE = os.environ.get("PRICE_TAX_MODE", "product")

    PURCHASE_TAX_RATE_BPS = int(os.environ.get("PURCHASE_TAX_RATE_BPS", "1600"))

    # Roles that may close someone else's shift or cancel sales
    ELEVATED_ROLES = tuple(
        r.strip().upper()
        for r in os.environ.get("ELEVATED_ROLES", "ADMIN,MANAGER").split(",")
        if r.strip()
    )

    TRANSACTION_TIMEOUT_MS = int(os.environ.get("TRANSACTION_TIMEOUT_MS", "10000"))

    CACHE_ENABLED = _env_bool("CACHE_ENABLED", False)
    CACHE_DEFAULT_TTL = int(os.environ.get("CACHE_DEFAULT_TTL", "60"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
