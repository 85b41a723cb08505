SECRET_KEY = "test-secret"
DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

STORE_BACKEND = "memory"
DB_CONFIG = {}

# In-memory SQLite keeps test runs from touching ~/.cadet_roster
CACHE_PATH = ":memory:"
CACHE_MAX_AGE_SECONDS = 300
REMOTE_BATCH_LIMIT = 500
SUBSCRIPTION_POLL_SECONDS = 0.1
BACKGROUND_WORKERS = 1
