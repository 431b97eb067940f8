"""Pydantic schemas for the Metakocka ERP integration."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aris.db.enums import OrderStatus

MetakockaDocType = Literal["invoice", "offer", "order", "proforma"]


# =============================================================================
# Credentials
# =============================================================================


class CredentialsUpdate(BaseModel):
    company_id: str = Field(min_length=1, max_length=50)
    secret_key: str | None = Field(default=None, min_length=1)
    api_endpoint: str | None = None
    is_active: bool = True


class CredentialsRead(BaseModel):
    """Credentials response. The secret key never leaves the server."""
    model_config = ConfigDict(from_attributes=True)

    company_id: str
    api_endpoint: str | None
    is_active: bool
    last_verified_at: datetime | None
    updated_at: datetime


class CredentialsStatus(BaseModel):
    configured: bool
    credentials: CredentialsRead | None = None


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    error_type: str | None = None


# =============================================================================
# Sync
# =============================================================================


class BulkSyncRequest(BaseModel):
    ids: list[UUID] | None = None


class DocumentImportRequest(BaseModel):
    doc_type: MetakockaDocType = "invoice"
    metakocka_ids: list[str] | None = None


class SyncResponse(BaseModel):
    """Counts from a bulk sync; keys vary by entity and direction."""
    model_config = ConfigDict(extra="allow")

    success: bool = True
    errors: list[Any] = []


# =============================================================================
# Orders
# =============================================================================


class OrderStatusUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    status: OrderStatus


class OrderFulfillRequest(BaseModel):
    fulfillment: dict[str, Any] | None = None


class OrderCancelRequest(BaseModel):
    reason: str | None = None


# =============================================================================
# Mappings
# =============================================================================


class MappingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    metakocka_id: str | None
    sync_status: str
    sync_error: str | None
    sync_direction: str
    last_synced_at: datetime | None
    metadata: dict = Field(validation_alias="details")
    created_at: datetime
    updated_at: datetime
    crm_id: UUID | None = None


class MappingListResponse(BaseModel):
    items: list[MappingRead]
    total: int


class MappingReviewResolve(BaseModel):
    keep: Literal["crm", "metakocka"]


# =============================================================================
# Logs
# =============================================================================


class IntegrationLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID | None
    level: str
    category: str
    message: str
    context: dict
    resolved: bool
    resolution_notes: str | None
    resolved_at: datetime | None
    resolved_by: UUID | None
    created_at: datetime


class IntegrationLogListResponse(BaseModel):
    items: list[IntegrationLogRead]
    total: int


class LogResolveRequest(BaseModel):
    notes: str | None = None


class ErrorStatistics(BaseModel):
    total: int
    unresolved: int
    by_category: dict[str, int]
    by_level: dict[str, int]


# =============================================================================
# Auto-sync
# =============================================================================


class AutoSyncSettingsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    enabled: bool
    products_interval_minutes: int
    invoices_interval_minutes: int
    contacts_interval_minutes: int
    inventory_interval_minutes: int
    directions: dict[str, str]
    last_run_at: dict[str, str]
    updated_at: datetime


class AutoSyncSettingsUpdate(BaseModel):
    enabled: bool | None = None
    products_interval_minutes: int | None = Field(default=None, ge=1, le=1440)
    invoices_interval_minutes: int | None = Field(default=None, ge=1, le=1440)
    contacts_interval_minutes: int | None = Field(default=None, ge=1, le=1440)
    inventory_interval_minutes: int | None = Field(default=None, ge=1, le=1440)
    directions: dict[str, str] | None = None
