"""Metakocka ERP credentials, mappings and integration logs."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
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
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from aris.db.base import Base
from aris.db.types import JSONType, utcnow


class MetakockaCredentials(Base):
    """One Metakocka company per organization."""

    __tablename__ = "metakocka_credentials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    company_id: Mapped[str] = mapped_column(String(50), nullable=False)
    secret_key_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    api_endpoint: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("true"), nullable=False
    )
    last_verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class _MappingColumns:
    """Columns shared by every CRM <-> Metakocka mapping table."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    @declared_attr
    def organization_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
        )

    # NULL while a first export is pending
    metakocka_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sync_status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default=text("'pending'"), nullable=False
    )
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_direction: Mapped[str] = mapped_column(
        String(30),
        default="crm_to_metakocka",
        server_default=text("'crm_to_metakocka'"),
        nullable=False,
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(nullable=True)
    details: Mapped[dict] = mapped_column("metadata", JSONType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )


class MetakockaProductMapping(_MappingColumns, Base):
    __tablename__ = "metakocka_product_mappings"
    __table_args__ = (
        UniqueConstraint("organization_id", "product_id", name="uq_mk_product_crm"),
        UniqueConstraint("organization_id", "metakocka_id", name="uq_mk_product_mk"),
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    metakocka_code: Mapped[str | None] = mapped_column(String(100), nullable=True)


class MetakockaContactMapping(_MappingColumns, Base):
    __tablename__ = "metakocka_contact_mappings"
    __table_args__ = (
        UniqueConstraint("organization_id", "contact_id", name="uq_mk_contact_crm"),
        UniqueConstraint("organization_id", "metakocka_id", name="uq_mk_contact_mk"),
    )

    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    metakocka_code: Mapped[str | None] = mapped_column(String(100), nullable=True)


class MetakockaSalesDocumentMapping(_MappingColumns, Base):
    __tablename__ = "metakocka_sales_document_mappings"
    __table_args__ = (
        UniqueConstraint("organization_id", "document_id", name="uq_mk_document_crm"),
        UniqueConstraint("organization_id", "metakocka_id", name="uq_mk_document_mk"),
    )

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sales_documents.id", ondelete="CASCADE"), nullable=False
    )
    metakocka_document_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    metakocka_document_number: Mapped[str | None] = mapped_column(String(100), nullable=True)


class MetakockaIntegrationLog(Base):
    """Persistent integration error / event log, resolvable by admins."""

    __tablename__ = "metakocka_integration_logs"
    __table_args__ = (
        Index("idx_mk_logs_org_created", "organization_id", "created_at"),
        Index("idx_mk_logs_org_resolved", "organization_id", "resolved"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    context: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    resolved: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


class MetakockaAutoSyncSettings(Base):
    """Per-org auto-sync schedule. Disabled until an admin turns it on."""

    __tablename__ = "metakocka_auto_sync_settings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    enabled: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    products_interval_minutes: Mapped[int] = mapped_column(
        Integer, default=30, server_default=text("30"), nullable=False
    )
    invoices_interval_minutes: Mapped[int] = mapped_column(
        Integer, default=15, server_default=text("15"), nullable=False
    )
    contacts_interval_minutes: Mapped[int] = mapped_column(
        Integer, default=60, server_default=text("60"), nullable=False
    )
    inventory_interval_minutes: Mapped[int] = mapped_column(
        Integer, default=10, server_default=text("10"), nullable=False
    )
    # entity -> direction
    directions: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    # entity -> ISO timestamp of last run
    last_run_at: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )
