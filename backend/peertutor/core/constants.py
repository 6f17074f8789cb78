"""Application-wide constants for the peer tutoring platform."""

from __future__ import annotations

BRAND_NAME = "PeerTutor"
API_VERSION = "1.0.0"

# Text constraints
MAX_SUBJECT_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000
MAX_REASON_LENGTH = 500
MAX_NOTES_LENGTH = 1000

# Query limits
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Session realtime channel (one per participant)
SESSION_CHANNEL_TEMPLATE = "user:{user_id}:sessions"

# Path parameter validation for ULID identifiers
ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"
