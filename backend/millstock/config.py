# backend/millstock/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/millstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///millstock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer token for /api/admin/*; unset means every admin call is rejected
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Optimistic-lock conflicts are re-run this many times before giving up
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.05"))

    # 75 kg unmilled -> one 50 kg sack
    MILLING_DEFAULT_YIELD_RATE = Decimal(os.environ.get("MILLING_DEFAULT_YIELD_RATE", "66.67"))
