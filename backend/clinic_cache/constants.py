"""
Clinic Cache Global Constants

Centralized location for namespaces, key prefixes and well-known tags.
"""

import time

# Cache namespaces, one manager per entity family
PATIENTS_NAMESPACE = "patients"
APPOINTMENTS_NAMESPACE = "appointments"
REPORTS_NAMESPACE = "reports"
ANALYTICS_NAMESPACE = "analytics"
SESSIONS_NAMESPACE = "sessions"
QUERIES_NAMESPACE = "queries"
DEFAULT_NAMESPACE = "default"

CACHE_NAMESPACES = (
    PATIENTS_NAMESPACE,
    APPOINTMENTS_NAMESPACE,
    REPORTS_NAMESPACE,
    ANALYTICS_NAMESPACE,
    SESSIONS_NAMESPACE,
    QUERIES_NAMESPACE,
    DEFAULT_NAMESPACE,
)

# Key layout
TAG_KEY_SEGMENT = "tag"
REFRESH_KEY_SUFFIX = "refresh"
LOCK_KEY_SUFFIX = "lock"
SESSION_KEY_PREFIX = "session"
USER_SESSIONS_KEY_PREFIX = "user_sessions"

# Well-known tags
SESSIONS_TAG = "sessions"
DAILY_SCHEDULE_TAG = "daily-schedule"
DASHBOARD_TAG = "dashboard"

# Batch size for prefix-scan deletion
CLEAR_BATCH_SIZE = 500

# Rolling window of response time samples per cache manager
RESPONSE_TIME_WINDOW = 1000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
