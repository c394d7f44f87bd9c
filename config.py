import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to config.py as login_guard.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "login_guard.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Brute-force protection (milliseconds)
    LOGIN_RATE_WINDOW_MS = int(os.getenv("LOGIN_RATE_WINDOW_MS", str(15 * 60 * 1000)))    # counting window
    LOGIN_RATE_MAX_ATTEMPTS = int(os.getenv("LOGIN_RATE_MAX_ATTEMPTS", "5"))               # failures before block
    LOGIN_RATE_BLOCK_MS = int(os.getenv("LOGIN_RATE_BLOCK_MS", str(30 * 60 * 1000)))       # block length

    # "sql" shares state across workers; "memory" is single-process only
    LOGIN_RATE_STORE = os.getenv("LOGIN_RATE_STORE", "sql")

    # Client identifier headers, most trusted first
    TRUSTED_PROXY_HEADERS = ("CF-Connecting-IP", "X-Forwarded-For", "X-Real-IP")

    AUDIT_LOG_ENABLED = os.getenv("AUDIT_LOG_ENABLED", "true").lower() == "true"

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOGIN_RATE_STORE = "sql"
