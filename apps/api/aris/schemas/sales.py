"""Pydantic schemas for sales documents."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aris.db.enums import SalesDocumentType


class SalesDocumentItemIn(BaseModel):
    product_id: UUID | None = None
    description: str = Field(min_length=1)
    quantity: float = Field(default=1, gt=0)
    unit_price: float = Field(ge=0)
    tax_rate: float = Field(default=0, ge=0, le=100)
    discount: float = Field(default=0, ge=0, le=100)


class SalesDocumentItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    position: int
    product_id: UUID | None
    description: str
    quantity: float
    unit_price: float
    tax_rate: float
    discount: float
    total_price: float


class SalesDocumentCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    document_type: SalesDocumentType
    number: str | None = None
    document_date: date | None = None
    due_date: date | None = None
    customer_id: UUID | None = None
    customer_name: str | None = None
    customer_address: str | None = None
    customer_email: str | None = None
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    status: str | None = None
    notes: str | None = None
    metadata: dict | None = None
    items: list[SalesDocumentItemIn] = []


class SalesDocumentUpdate(BaseModel):
    number: str | None = None
    document_date: date | None = None
    due_date: date | None = None
    customer_id: UUID | None = None
    customer_name: str | None = None
    customer_address: str | None = None
    customer_email: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    status: str | None = None
    notes: str | None = None
    metadata: dict | None = None
    items: list[SalesDocumentItemIn] | None = None


class SalesDocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    document_type: str
    number: str | None
    document_date: date | None
    due_date: date | None
    customer_id: UUID | None
    customer_name: str | None
    customer_address: str | None
    customer_email: str | None
    total_amount: float
    tax_amount: float
    currency: str
    status: str
    notes: str | None
    metadata: dict = Field(validation_alias="details")
    items: list[SalesDocumentItemRead]
    created_at: datetime
    updated_at: datetime


class SalesDocumentListResponse(BaseModel):
    items: list[SalesDocumentRead]
    total: int
