"""Pydantic schemas for subscriptions and billing webhooks."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aris.db.enums import SubscriptionStatus


class PlanRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    price: float
    billing_interval: str
    features: dict
    is_active: bool


class SubscriptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    subscription_plan_id: UUID
    status: str
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    subscription_provider: str | None
    provider_subscription_id: str | None
    created_at: datetime


class SubscriptionCreate(BaseModel):
    plan_id: UUID
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    payment_method_id: str | None = None


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    subscription_id: UUID
    amount: float
    status: str
    due_date: datetime | None
    paid_at: datetime | None
    invoice_url: str | None
    provider_invoice_id: str | None
    created_at: datetime


class WebhookEvent(BaseModel):
    type: str = Field(min_length=1)
    data: dict[str, Any] = {}


class WebhookResponse(BaseModel):
    success: bool
    event: str
