"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

ATTENDANCE_COLLECTION = "attendance"
CADETS_COLLECTION = "cadets"
TRAINING_EVENTS_COLLECTION = "trainingEvents"
PT_PLANS_COLLECTION = "ptPlans"

CACHED_COLLECTIONS = (
    CADETS_COLLECTION,
    ATTENDANCE_COLLECTION,
    TRAINING_EVENTS_COLLECTION,
    PT_PLANS_COLLECTION,
)

# Remote store limits
DEFAULT_BATCH_LIMIT = 500
IN_FILTER_LIMIT = 10

DEFAULT_CACHE_MAX_AGE_SECONDS = 5 * 60
DEFAULT_POLL_SECONDS = 5.0
DEFAULT_BACKGROUND_WORKERS = 2

BACKUP_FORMAT_VERSION = "1.0"
