"""Pydantic schemas for email accounts, synced emails and the AI queue."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aris.db.enums import QueuePriority, SyncMode


# =============================================================================
# Accounts
# =============================================================================


class EmailAccountCreate(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    provider_type: str
    display_name: str | None = None
    imap_host: str | None = None
    imap_port: int | None = Field(default=None, ge=1, le=65535)
    imap_security: str | None = None
    smtp_host: str | None = None
    smtp_port: int | None = Field(default=None, ge=1, le=65535)
    smtp_security: str | None = None
    username: str | None = None
    password: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None


class EmailAccountUpdate(BaseModel):
    display_name: str | None = None
    imap_host: str | None = None
    imap_port: int | None = Field(default=None, ge=1, le=65535)
    imap_security: str | None = None
    smtp_host: str | None = None
    smtp_port: int | None = Field(default=None, ge=1, le=65535)
    smtp_security: str | None = None
    username: str | None = None
    password: str | None = None
    is_active: bool | None = None
    polling_interval_minutes: float | None = Field(default=None, gt=0)
    enable_webhooks: bool | None = None


class EmailAccountTokens(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None


class EmailAccountRead(BaseModel):
    """Account response. Never carries passwords or tokens."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    email: str
    display_name: str | None
    provider_type: str
    imap_host: str | None
    imap_port: int | None
    imap_security: str | None
    smtp_host: str | None
    smtp_port: int | None
    smtp_security: str | None
    username: str | None
    is_active: bool
    real_time_sync_active: bool
    polling_interval_minutes: float | None
    enable_webhooks: bool
    last_sync_at: datetime | None
    next_sync_at: datetime | None
    last_full_sync_at: datetime | None
    last_sync_error: str | None
    setup_completed: bool
    setup_completed_at: datetime | None
    created_at: datetime


class ConnectionTestResult(BaseModel):
    success: bool
    message: str


# =============================================================================
# Sync
# =============================================================================


class EmailSyncRequest(BaseModel):
    account_id: UUID | None = None
    mode: SyncMode = SyncMode.INCREMENTAL
    max_emails: int | None = Field(default=None, ge=1, le=10000)
    folder: str = "INBOX"


class SyncResultRead(BaseModel):
    fetched: int
    stored: int
    duplicates: int
    errors: list[str]
    cursor: str | None


class CatchUpSyncRequest(BaseModel):
    account_id: UUID
    sync_days: int = Field(default=30, ge=1, le=365)


class CatchUpSyncResponse(BaseModel):
    emails_before: int
    emails_after: int
    new_emails: int
    days_synced: int


class RealTimeSyncConfigIn(BaseModel):
    polling_interval: float | None = Field(default=None, gt=0)
    enable_webhooks: bool = False
    enable_ai: bool = True
    enable_draft_preparation: bool = True


class RealTimeSyncStatus(BaseModel):
    account_id: UUID
    active: bool
    config: dict | None
    polling_interval_seconds: float | None
    last_sync_at: datetime | None
    next_sync_at: datetime | None
    last_sync_error: str | None


class EmailRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email_account_id: UUID
    message_id: str
    thread_id: str | None
    subject: str | None
    preview_text: str | None
    sender_email: str | None
    recipient_email: str | None
    email_type: str
    folder_name: str | None
    sent_at: datetime | None
    received_at: datetime | None
    has_attachments: bool
    is_read: bool


class EmailListResponse(BaseModel):
    items: list[EmailRead]
    total: int


class EmailContentRead(EmailRead):
    html_content: str | None = None
    plain_content: str | None = None


# =============================================================================
# Queue
# =============================================================================


class QueueItemCreate(BaseModel):
    email_id: UUID
    contact_id: UUID | None = None
    priority: QueuePriority = QueuePriority.MEDIUM


class QueueItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    email_id: UUID
    contact_id: UUID | None
    user_id: UUID | None
    status: str
    priority: str
    processing_attempts: int
    max_attempts: int
    last_processed_at: datetime | None
    error_message: str | None
    requires_manual_review: bool
    metadata: dict = Field(validation_alias="details")
    created_at: datetime
    updated_at: datetime


class QueueListResponse(BaseModel):
    items: list[QueueItemRead]


class QueueReviewRequest(BaseModel):
    approved: bool
    feedback: str | None = None


class QueueBatchRequest(BaseModel):
    batch_size: int = Field(default=10, ge=1, le=100)


class QueueProcessResult(BaseModel):
    processed: int
    require_review: int
    completed: int
    failed: int


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    requires_review: int = 0
    approved: int = 0
    rejected: int = 0
    total: int = 0


class QueueResetRequest(BaseModel):
    max_attempts: int = Field(default=3, ge=1, le=20)


class QueueCleanupRequest(BaseModel):
    days_to_keep: int = Field(default=30, ge=1, le=3650)


class QueueCountResponse(BaseModel):
    count: int

