"""Job-related enums."""

from enum import Enum


class JobType(str, Enum):
    """Types of background jobs."""

    EMAIL_SYNC = "email_sync"  # Initial or incremental mailbox sync
    EMAIL_QUEUE_PROCESS = "email_queue_process"  # AI analysis of queued emails
    METAKOCKA_SYNC = "metakocka_sync"  # One entity sync against Metakocka
    NOTIFICATION = "notification"


class JobStatus(str, Enum):
    """Status of background jobs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
