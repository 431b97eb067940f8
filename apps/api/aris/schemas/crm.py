"""Pydantic schemas for suppliers, contacts and products."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Suppliers
# =============================================================================


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=320)
    phone: str | None = None
    website: str | None = None
    notes: str | None = None
    reliability_score: float | None = Field(default=None, ge=0, le=100)


class SupplierUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=320)
    phone: str | None = None
    website: str | None = None
    notes: str | None = None
    reliability_score: float | None = Field(default=None, ge=0, le=100)


class SupplierRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    phone: str | None
    website: str | None
    notes: str | None
    reliability_score: float | None
    created_at: datetime
    updated_at: datetime


class SupplierListResponse(BaseModel):
    items: list[SupplierRead]
    total: int


# =============================================================================
# Contacts
# =============================================================================


class ContactCreate(BaseModel):
    firstname: str | None = Field(default=None, max_length=255)
    lastname: str | None = Field(default=None, max_length=255)
    full_name: str | None = Field(default=None, max_length=511)
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = None
    company: str | None = None
    position: str | None = None
    notes: str | None = None
    status: str | None = None


class ContactUpdate(ContactCreate):
    pass


class ContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    firstname: str | None
    lastname: str | None
    full_name: str | None
    email: str | None
    phone: str | None
    company: str | None
    position: str | None
    notes: str | None
    status: str
    created_at: datetime
    updated_at: datetime


class ContactListResponse(BaseModel):
    items: list[ContactRead]
    total: int


# =============================================================================
# Products
# =============================================================================


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    sku: str | None = Field(default=None, max_length=100)
    description: str | None = None
    category: str | None = None
    price: float | None = Field(default=None, ge=0)


class ProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    sku: str | None = Field(default=None, max_length=100)
    description: str | None = None
    category: str | None = None
    price: float | None = Field(default=None, ge=0)


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    sku: str | None
    description: str | None
    category: str | None
    price: float | None
    quantity_on_hand: float
    quantity_reserved: float
    quantity_available: float
    inventory_synced_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    items: list[ProductRead]
    total: int
