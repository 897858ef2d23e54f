# backend/balepos/config.py
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

    # SQLite DB stored in backend/instance/balepos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///balepos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # IANA zone for the wall-clock stamps on order audit lines
    SHOP_TIMEZONE = os.environ.get("SHOP_TIMEZONE", "Asia/Manila")

    # Remote mirror (PostgREST-style table API). Empty URL disables mirroring.
    MIRROR_URL = os.environ.get("MIRROR_URL", "")
    MIRROR_API_KEY = os.environ.get("MIRROR_API_KEY", "")
    MIRROR_TIMEOUT_SECONDS = float(os.environ.get("MIRROR_TIMEOUT_SECONDS", "10"))

    # Device approval gate
    DEVICE_GATE_ENABLED = _env_bool("DEVICE_GATE_ENABLED", True)
    IP_LOOKUP_URL = os.environ.get("IP_LOOKUP_URL", "https://ipwho.is/")
    IP_LOOKUP_TIMEOUT_SECONDS = float(os.environ.get("IP_LOOKUP_TIMEOUT_SECONDS", "4"))

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]
