# backend/cashier/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cashier.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cashier.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Flat tax rate in basis points (1100 = 11%) for stores without their own rate
    DEFAULT_TAX_RATE_BPS = int(os.environ.get("DEFAULT_TAX_RATE_BPS", "1100"))

    # Bounded retry for lock/conflict failures while committing a checkout
    COMMIT_RETRY_ATTEMPTS = int(os.environ.get("COMMIT_RETRY_ATTEMPTS", "3"))
    COMMIT_RETRY_BACKOFF_SECONDS = float(os.environ.get("COMMIT_RETRY_BACKOFF_SECONDS", "0.05"))

    # Receipt presentation
    RECEIPT_CURRENCY_PREFIX = os.environ.get("RECEIPT_CURRENCY_PREFIX", "Rp")
    RECEIPT_FOOTER = os.environ.get("RECEIPT_FOOTER", "Thank you for your purchase!")

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    # One loyalty point per 100.00 spent
    LOYALTY_CENTS_PER_POINT = int(os.environ.get("LOYALTY_CENTS_PER_POINT", "10000"))
