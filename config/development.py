import os

from config.config import DB_CONFIG, Config

SECRET_KEY = Config.SECRET_KEY
DEBUG = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()

STORE_BACKEND = Config.STORE_BACKEND
DB_CONFIG = DB_CONFIG

CACHE_PATH = Config.CACHE_PATH
CACHE_MAX_AGE_SECONDS = Config.CACHE_MAX_AGE_SECONDS
REMOTE_BATCH_LIMIT = Config.REMOTE_BATCH_LIMIT
SUBSCRIPTION_POLL_SECONDS = Config.SUBSCRIPTION_POLL_SECONDS
BACKGROUND_WORKERS = Config.BACKGROUND_WORKERS
