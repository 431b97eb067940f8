"""Email account, sync and queue enums."""

from enum import Enum


class EmailProvider(str, Enum):
    """Mailbox providers."""

    GOOGLE = "google"
    MICROSOFT = "microsoft"
    IMAP = "imap"


# Aliases accepted from clients and older rows
PROVIDER_ALIASES = {
    "gmail": EmailProvider.GOOGLE,
    "outlook": EmailProvider.MICROSOFT,
}


class ImapSecurity(str, Enum):
    SSL = "SSL"
    STARTTLS = "STARTTLS"
    NONE = "None"


class EmailType(str, Enum):
    RECEIVED = "received"
    SENT = "sent"


class SyncMode(str, Enum):
    INITIAL = "initial"
    INCREMENTAL = "incremental"


class QueueStatus(str, Enum):
    """Lifecycle of an email queue item."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REQUIRES_REVIEW = "requires_review"
    APPROVED = "approved"
    REJECTED = "rejected"


# Terminal states eligible for cleanup
QUEUE_FINISHED_STATUSES = (
    QueueStatus.COMPLETED,
    QueueStatus.APPROVED,
    QueueStatus.REJECTED,
)


class QueuePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK = {
    QueuePriority.URGENT.value: 4,
    QueuePriority.HIGH.value: 3,
    QueuePriority.MEDIUM.value: 2,
    QueuePriority.LOW.value: 1,
}
