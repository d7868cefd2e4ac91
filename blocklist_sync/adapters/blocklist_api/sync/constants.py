"""Constants for blocklist synchronization."""

from datetime import timedelta

# Persisted key-value store keys
BLOCKED_USERS_KEY = "blockedUsers"
API_KEY_KEY = "apiKey"
SYNC_STATE_KEY = "syncState"

# Bulk upload item message that means the identity is already blocked remotely
ALREADY_BLOCKED_MESSAGE = "User is already blocked"

# Wait before retry attempt N (1-indexed); the length is the retry ceiling
DEFAULT_BACKOFF_SCHEDULE: tuple[timedelta, ...] = (
    timedelta(hours=1),
    timedelta(hours=4),
    timedelta(hours=12),
)
