# backend/orderdesk/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file relative to the working directory unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///orderdesk.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Absolute lifetime of a bearer session issued by /api/auth/login
    SESSION_HOURS = int(os.environ.get("SESSION_HOURS", "24"))

    # bcrypt cost factor for password hashes
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Courier device side: where pending actions are kept while offline,
    # and which API the replay talks to.
    OFFLINE_QUEUE_URL = os.environ.get("OFFLINE_QUEUE_URL", "sqlite:///offline_queue.sqlite3")
    API_BASE_URL = os.environ.get("API_BASE_URL", "http://127.0.0.1:5000")
    API_TIMEOUT_SECONDS = float(os.environ.get("API_TIMEOUT_SECONDS", "10"))
