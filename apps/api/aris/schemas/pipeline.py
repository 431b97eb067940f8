"""Pydantic schemas for sales pipelines and opportunities."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aris.db.enums import ActivityType, OpportunityPriority, OpportunityStatus


class StageIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    probability: int = Field(default=0, ge=0, le=100)
    is_closed_won: bool = False
    is_closed_lost: bool = False


class StageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    color: str
    probability: int
    sort_order: int
    is_closed_won: bool
    is_closed_lost: bool


class PipelineCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    sort_order: int = 0
    stages: list[StageIn] = Field(min_length=1)


class PipelineUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    sort_order: int | None = None
    is_active: bool | None = None


class PipelineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    color: str
    is_active: bool
    sort_order: int
    stages: list[StageRead]
    created_at: datetime


class OpportunityCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    pipeline_id: UUID
    stage_id: UUID
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    value: float = Field(default=0, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    probability: float | None = Field(default=None, ge=0, le=100)
    priority: OpportunityPriority = OpportunityPriority.MEDIUM
    contact_id: UUID | None = None
    assigned_to: UUID | None = None
    expected_close_date: date | None = None
    tags: list[str] = []


class OpportunityUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    value: float | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    probability: float | None = Field(default=None, ge=0, le=100)
    status: OpportunityStatus | None = None
    priority: OpportunityPriority | None = None
    contact_id: UUID | None = None
    assigned_to: UUID | None = None
    expected_close_date: date | None = None
    tags: list[str] | None = None


class OpportunityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    pipeline_id: UUID
    stage_id: UUID
    title: str
    description: str | None
    value: float
    currency: str
    probability: float
    status: str
    priority: str
    contact_id: UUID | None
    assigned_to: UUID | None
    expected_close_date: date | None
    actual_close_date: date | None
    tags: list
    created_at: datetime
    updated_at: datetime


class OpportunityListResponse(BaseModel):
    items: list[OpportunityRead]
    total: int


class StageWithOpportunities(BaseModel):
    stage: StageRead
    opportunities: list[OpportunityRead]
    opportunities_count: int
    total_value: float
    weighted_value: float


class PipelineBoard(BaseModel):
    pipeline: PipelineRead
    stages: list[StageWithOpportunities]


class MoveStageRequest(BaseModel):
    stage_id: UUID
    note: str | None = None


class ActivityCreate(BaseModel):
    activity_type: ActivityType = ActivityType.NOTE_ADDED
    description: str = Field(min_length=1)
    metadata: dict[str, Any] | None = None


class ActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    activity_type: str
    description: str | None
    metadata: dict = Field(validation_alias="details")
    created_by: UUID | None
    created_at: datetime


class OpportunityDetail(BaseModel):
    opportunity: OpportunityRead
    stage: StageRead
    activities: list[ActivityRead]
    weighted_value: float


class BulkOpportunityUpdate(BaseModel):
    opportunity_ids: list[UUID] = Field(min_length=1, max_length=500)
    stage_id: UUID | None = None
    changes: OpportunityUpdate


class BulkUpdateResult(BaseModel):
    updated: int
    failed: int
