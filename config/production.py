import os

from config.config import DB_CONFIG, Config

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")
DEBUG = False
LOG_LEVEL = Config.LOG_LEVEL

STORE_BACKEND = os.getenv("STORE_BACKEND", "mysql").lower()
DB_CONFIG = DB_CONFIG

CACHE_PATH = Config.CACHE_PATH
CACHE_MAX_AGE_SECONDS = Config.CACHE_MAX_AGE_SECONDS
REMOTE_BATCH_LIMIT = Config.REMOTE_BATCH_LIMIT
SUBSCRIPTION_POLL_SECONDS = Config.SUBSCRIPTION_POLL_SECONDS
BACKGROUND_WORKERS = Config.BACKGROUND_WORKERS
