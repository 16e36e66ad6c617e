# backend/voucherhub/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/voucherhub.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///voucherhub.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Geolocation lookup used by redemption location checks.
    # "{address}" is substituted with the requester's network address.
    GEOLOCATION_URL_TEMPLATE = os.environ.get(
        "GEOLOCATION_URL_TEMPLATE", "https://ipinfo.io/{address}/json"
    )
    GEOLOCATION_TIMEOUT_SECONDS = float(os.environ.get("GEOLOCATION_TIMEOUT_SECONDS", "3.0"))
    GEOLOCATION_FIELD = os.environ.get("GEOLOCATION_FIELD", "city")

    # Each lost race on a voucher row costs one attempt
    REDEMPTION_RETRY_ATTEMPTS = int(os.environ.get("REDEMPTION_RETRY_ATTEMPTS", "5"))

    VOUCHER_PAGE_SIZE = int(os.environ.get("VOUCHER_PAGE_SIZE", "15"))
    VOUCHER_MAX_PAGE_SIZE = int(os.environ.get("VOUCHER_MAX_PAGE_SIZE", "100"))

    # When set, every address resolves to this label and no HTTP lookup is made
    GEOLOCATION_STATIC_LABEL = os.environ.get("GEOLOCATION_STATIC_LABEL")

    # Honour the first X-Forwarded-For entry as the requester address
    TRUST_FORWARDED_FOR = os.environ.get("TRUST_FORWARDED_FOR", "false").lower() == "true"

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",")
        if origin.strip()
    ]

    SESSION_ABSOLUTE_HOURS = int(os.environ.get("SESSION_ABSOLUTE_HOURS", "24"))
    SESSION_IDLE_MINUTES = int(os.environ.get("SESSION_IDLE_MINUTES", "120"))
