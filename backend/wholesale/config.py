# backend/wholesale/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/wholesale.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///wholesale.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]

    # Business defaults
    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 50)
    DEFAULT_DUE_DAYS = _env_int("DEFAULT_DUE_DAYS", 30)
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "TND")
    CURRENCY_DECIMALS = _env_int("CURRENCY_DECIMALS", 3)

    # Security
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
    SESSION_ABSOLUTE_HOURS = _env_int("SESSION_ABSOLUTE_HOURS", 24)
    SESSION_IDLE_HOURS = _env_int("SESSION_IDLE_HOURS", 2)


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BCRYPT_ROUNDS = 4
