"""Queue names and job types used across the platform."""

BOOKINGS = "bookings"
NOTIFICATIONS = "notifications"
SEARCH_INDEXING = "search-indexing"

ALL_QUEUES = (BOOKINGS, NOTIFICATIONS, SEARCH_INDEXING)

# bookings
CHECK_EXPIRATION = "check-expiration"
SEND_REMINDER = "send-reminder"
AUTO_COMPLETE = "auto-complete"
UPDATE_STATUS = "update-status"
RELEASE_PAYMENT = "release-payment"

# notifications
SEND = "send"
SEND_BATCH = "send-batch"
SCHEDULED = "scheduled"

# search-indexing
INDEX_LISTING = "index-listing"
REINDEX_ALL = "reindex-all"

REQUIRED_BINDINGS = (
    (BOOKINGS, CHECK_EXPIRATION),
    (BOOKINGS, SEND_REMINDER),
    (BOOKINGS, AUTO_COMPLETE),
    (BOOKINGS, UPDATE_STATUS),
    (BOOKINGS, RELEASE_PAYMENT),
    (NOTIFICATIONS, SEND),
    (NOTIFICATIONS, SEND_BATCH),
    (NOTIFICATIONS, SCHEDULED),
    (SEARCH_INDEXING, INDEX_LISTING),
    (SEARCH_INDEXING, REINDEX_ALL),
)

# Celery task that carries every job to a worker
RUN_JOB_TASK = "jobs.run"
