"""Email account, index and queue models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aris.db.base import Base
from aris.db.types import JSONType, utcnow


class EmailAccount(Base):
    """
    A connected mailbox (Gmail, Microsoft 365 or generic IMAP).

    Passwords and OAuth tokens are Fernet-encrypted at rest.
    """

    __tablename__ = "email_accounts"
    __table_args__ = (
        UniqueConstraint("organization_id", "email", name="uq_email_accounts_org_email"),
        Index("idx_email_accounts_due", "real_time_sync_active", "next_sync_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # IMAP / SMTP
    imap_host: Mapped[str | None] = mapped_column(String(255), nullable=True)
    imap_port: Mapped[int | None] = mapped_column(Integer, nullable=True)
    imap_security: Mapped[str | None] = mapped_column(String(20), nullable=True)
    smtp_host: Mapped[str | None] = mapped_column(String(255), nullable=True)
    smtp_port: Mapped[int | None] = mapped_column(Integer, nullable=True)
    smtp_security: Mapped[str | None] = mapped_column(String(20), nullable=True)
    username: Mapped[str | None] = mapped_column(String(320), nullable=True)
    password_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)

    # OAuth (Google / Microsoft)
    access_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )

    # Real-time sync
    real_time_sync_active: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    sync_config: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    polling_interval_minutes: Mapped[float | None] = mapped_column(Float, nullable=True)
    enable_webhooks: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    last_sync_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_sync_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_full_sync_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Onboarding
    setup_completed: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    setup_completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    sync_states: Mapped[list["EmailSyncState"]] = relationship(
        back_populates="account", cascade="all, delete-orphan"
    )


class EmailSyncState(Base):
    """Per-folder incremental sync cursor (historyId, deltaLink or last UID)."""

    __tablename__ = "email_sync_states"
    __table_args__ = (
        UniqueConstraint("email_account_id", "folder", name="uq_email_sync_state_folder"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("email_accounts.id", ondelete="CASCADE"), nullable=False
    )
    folder: Mapped[str] = mapped_column(String(255), nullable=False)
    cursor: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(nullable=True)

    account: Mapped["EmailAccount"] = relationship(back_populates="sync_states")


class EmailIndex(Base):
    """
    Lightweight metadata row for every synced message.

    UNIQUE(email_account_id, message_id) is the duplicate-message guard:
    re-running a sync never creates a second row for the same message.
    """

    __tablename__ = "email_index"
    __table_args__ = (
        UniqueConstraint("email_account_id", "message_id", name="uq_email_index_account_message"),
        Index("idx_email_index_org_received", "organization_id", "received_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    email_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("email_accounts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    message_id: Mapped[str] = mapped_column(String(512), nullable=False)
    thread_id: Mapped[str | None] = mapped_column(String(512), nullable=True)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    preview_text: Mapped[str | None] = mapped_column(String(200), nullable=True)
    sender_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    recipient_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    email_type: Mapped[str] = mapped_column(String(20), nullable=False)
    folder_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(nullable=True)
    has_attachments: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    is_read: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    content: Mapped["EmailContentCache | None"] = relationship(
        back_populates="email", cascade="all, delete-orphan", uselist=False
    )


class EmailContentCache(Base):
    """Full message bodies, kept apart from the index for cheap list queries."""

    __tablename__ = "email_content_cache"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email_index_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("email_index.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    message_id: Mapped[str] = mapped_column(String(512), nullable=False)
    html_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    plain_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    email: Mapped["EmailIndex"] = relationship(back_populates="content")


class EmailQueueItem(Base):
    """
    An email waiting for (or finished with) AI analysis.

    UNIQUE(organization_id, email_id) keeps a message from being queued twice.
    """

    __tablename__ = "email_queue"
    __table_args__ = (
        UniqueConstraint("organization_id", "email_id", name="uq_email_queue_org_email"),
        Index("idx_email_queue_org_status", "organization_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    email_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("email_index.id", ondelete="CASCADE"), nullable=False
    )
    contact_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(30), default="pending", server_default=text("'pending'"), nullable=False
    )
    priority: Mapped[str] = mapped_column(
        String(20), default="medium", server_default=text("'medium'"), nullable=False
    )
    processing_attempts: Mapped[int] = mapped_column(
        Integer, default=0, server_default=text("0"), nullable=False
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, default=3, server_default=text("3"), nullable=False
    )
    last_processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    requires_manual_review: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    # analysis / draft / review payloads ("metadata" is reserved by SQLAlchemy)
    details: Mapped[dict] = mapped_column("metadata", JSONType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    email: Mapped["EmailIndex"] = relationship()
