import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or "dev-secret-key"

    # Remote document store: "memory" (in-process) or "mysql"
    STORE_BACKEND = os.environ.get("STORE_BACKEND", "memory").lower()

    DB_USER = os.environ.get("DB_USER", "root")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = int(os.environ.get("DB_PORT", "3306"))
    DB_NAME = os.environ.get("DB_NAME", "cadet_roster")

    # Local cache
    CACHE_PATH = os.environ.get(
        "CACHE_PATH", os.path.join(os.path.expanduser("~"), ".cadet_roster", "cache.db")
    )
    CACHE_MAX_AGE_SECONDS = int(os.environ.get("CACHE_MAX_AGE_SECONDS", "300"))

    REMOTE_BATCH_LIMIT = int(os.environ.get("REMOTE_BATCH_LIMIT", "500"))
    SUBSCRIPTION_POLL_SECONDS = float(os.environ.get("SUBSCRIPTION_POLL_SECONDS", "5"))
    BACKGROUND_WORKERS = int(os.environ.get("BACKGROUND_WORKERS", "2"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


DB_CONFIG = {
    "host": Config.DB_HOST,
    "port": Config.DB_PORT,
    "user": Config.DB_USER,
    "password": Config.DB_PASSWORD,
    "database": Config.DB_NAME,
}
