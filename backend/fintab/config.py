# backend/fintab/config.py
from __future__ import annotations
import os


def _csv(value: str) -> set[str]:
    return {part.strip() for part in value.split(",") if part.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fintab.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fintab.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ORIGINS = _csv(os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    ))

    # Rolling incident log kept per business for postmortems
    INCIDENT_LOG_LIMIT = int(os.environ.get("INCIDENT_LOG_LIMIT", "10"))

    MAX_BANK_ACCOUNTS = int(os.environ.get("MAX_BANK_ACCOUNTS", "10"))
    INVITATION_TTL_DAYS = int(os.environ.get("INVITATION_TTL_DAYS", "7"))

    # bcrypt cost factor; tests lower it
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
