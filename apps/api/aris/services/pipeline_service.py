"""Pipeline service - sales pipelines, stages and opportunities.

Stages are ordered by sort_order (1-based). Every opportunity change worth
auditing writes an OpportunityActivity row.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from aris.db.enums import ActivityType, OpportunityStatus
from aris.db.models import Opportunity, OpportunityActivity, PipelineStage, SalesPipeline
from aris.db.types import as_utc

logger = logging.getLogger(__name__)

DEFAULT_PIPELINE_COLOR = "#3B82F6"
DEFAULT_STAGE_COLOR = "#6B7280"

UPDATABLE_OPPORTUNITY_FIELDS = {
    "title",
    "description",
    "value",
    "currency",
    "probability",
    "status",
    "priority",
    "contact_id",
    "assigned_to",
    "expected_close_date",
    "actual_close_date",
    "tags",
}


class PipelineError(Exception):
    """Base exception for pipeline operations."""


class PipelineNotFoundError(PipelineError):
    pass


class OpportunityNotFoundError(PipelineError):
    pass


class PipelineValidationError(PipelineError):
    pass


# =============================================================================
# Pipelines
# =============================================================================


def get_pipelines(db: Session, org_id: UUID, include_inactive: bool = False) -> list[SalesPipeline]:
    query = db.query(SalesPipeline).options(selectinload(SalesPipeline.stages)).filter(
        SalesPipeline.organization_id == org_id,
    )
    if not include_inactive:
        query = query.filter(SalesPipeline.is_active == True)  # noqa: E712
    return query.order_by(SalesPipeline.sort_order, SalesPipeline.created_at).all()


def get_pipeline(db: Session, org_id: UUID, pipeline_id: UUID) -> SalesPipeline:
    pipeline = db.query(SalesPipeline).filter(
        SalesPipeline.id == pipeline_id,
        SalesPipeline.organization_id == org_id,
    ).first()
    if not pipeline:
        raise PipelineNotFoundError("Pipeline not found")
    return pipeline


def create_pipeline(
    db: Session,
    org_id: UUID,
    user_id: UUID | None,
    name: str,
    stages: list[dict[str, Any]],
    description: str | None = None,
    color: str | None = None,
    sort_order: int = 0,
) -> SalesPipeline:
    """
    Create a pipeline with its stages in one transaction.

    Stage sort_order is the 1-based position in ``stages``.
    """
    pipeline = SalesPipeline(
        organization_id=org_id,
        name=name,
        description=description,
        color=color or DEFAULT_PIPELINE_COLOR,
        sort_order=sort_order,
        created_by=user_id,
    )
    for index, stage in enumerate(stages, start=1):
        probability = stage.get("probability", 0) or 0
        if not 0 <= probability <= 100:
            raise PipelineValidationError("Stage probability must be between 0 and 100")
        pipeline.stages.append(
            PipelineStage(
                name=stage["name"],
                color=stage.get("color") or DEFAULT_STAGE_COLOR,
                probability=probability,
                sort_order=index,
                is_closed_won=bool(stage.get("is_closed_won")),
                is_closed_lost=bool(stage.get("is_closed_lost")),
            )
        )

    db.add(pipeline)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(pipeline)
    logger.info("Pipeline created org=%s pipeline=%s stages=%s", org_id, pipeline.id, len(stages))
    return pipeline


def update_pipeline(db: Session, pipeline: SalesPipeline, **changes: Any) -> SalesPipeline:
    for field in ("name", "description", "color", "is_active", "sort_order"):
        value = changes.get(field)
        if value is not None:
            setattr(pipeline, field, value)
    db.commit()
    db.refresh(pipeline)
    return pipeline


def delete_pipeline(db: Session, pipeline: SalesPipeline) -> None:
    """Soft delete; opportunities stay readable."""
    pipeline.is_active = False
    db.commit()


def _stage_in_pipeline(db: Session, pipeline_id: UUID, stage_id: UUID) -> PipelineStage:
    stage = db.query(PipelineStage).filter(
        PipelineStage.id == stage_id,
        PipelineStage.pipeline_id == pipeline_id,
    ).first()
    if not stage:
        raise PipelineValidationError("Stage does not belong to this pipeline")
    return stage


def _opportunity_filters(query, filters: dict[str, Any] | None):
    filters = filters or {}
    if filters.get("status"):
        query = query.filter(Opportunity.status.in_(filters["status"]))
    if filters.get("priority"):
        query = query.filter(Opportunity.priority.in_(filters["priority"]))
    if filters.get("assigned_to"):
        query = query.filter(Opportunity.assigned_to == filters["assigned_to"])
    return query


def weighted(value: float | None, probability: float | None) -> float:
    return (value or 0) * (probability or 0) / 100


def get_pipeline_with_opportunities(
    db: Session,
    org_id: UUID,
    pipeline_id: UUID,
    filters: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Pipeline board: every stage with its opportunities and value totals."""
    pipeline = get_pipeline(db, org_id, pipeline_id)
    query = db.query(Opportunity).filter(
        Opportunity.organization_id == org_id,
        Opportunity.pipeline_id == pipeline.id,
    )
    opportunities = _opportunity_filters(query, filters).order_by(Opportunity.created_at.desc()).all()

    by_stage: dict[UUID, list[Opportunity]] = {}
    for opp in opportunities:
        by_stage.setdefault(opp.stage_id, []).append(opp)

    stages = []
    for stage in pipeline.stages:
        stage_opps = by_stage.get(stage.id, [])
        stages.append(
            {
                "stage": stage,
                "opportunities": stage_opps,
                "opportunities_count": len(stage_opps),
                "total_value": sum(o.value or 0 for o in stage_opps),
                "weighted_value": sum(weighted(o.value, o.probability) for o in stage_opps),
            }
        )
    return {"pipeline": pipeline, "stages": stages}


# =============================================================================
# Opportunities
# =============================================================================


def _log_activity(
    db: Session,
    opportunity: Opportunity,
    activity_type: ActivityType,
    description: str,
    user_id: UUID | None,
    details: dict[str, Any] | None = None,
) -> OpportunityActivity:
    activity = OpportunityActivity(
        opportunity_id=opportunity.id,
        activity_type=activity_type.value,
        description=description,
        details=details or {},
        created_by=user_id,
    )
    db.add(activity)
    return activity


def get_opportunity(db: Session, org_id: UUID, opportunity_id: UUID) -> Opportunity:
    opp = db.query(Opportunity).filter(
        Opportunity.id == opportunity_id,
        Opportunity.organization_id == org_id,
    ).first()
    if not opp:
        raise OpportunityNotFoundError("Opportunity not found")
    return opp


def list_opportunities(
    db: Session,
    org_id: UUID,
    pipeline_id: UUID | None = None,
    filters: dict[str, Any] | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Opportunity], int]:
    query = db.query(Opportunity).filter(Opportunity.organization_id == org_id)
    if pipeline_id:
        query = query.filter(Opportunity.pipeline_id == pipeline_id)
    query = _opportunity_filters(query, filters)
    total = query.count()
    items = query.order_by(Opportunity.created_at.desc()).offset(offset).limit(limit).all()
    return items, total


def create_opportunity(
    db: Session,
    org_id: UUID,
    user_id: UUID | None,
    pipeline_id: UUID,
    stage_id: UUID,
    title: str,
    **fields: Any,
) -> Opportunity:
    pipeline = get_pipeline(db, org_id, pipeline_id)
    stage = _stage_in_pipeline(db, pipeline.id, stage_id)

    opp = Opportunity(
        organization_id=org_id,
        pipeline_id=pipeline.id,
        stage_id=stage.id,
        title=title,
        created_by=user_id,
    )
    for field, value in fields.items():
        if field in UPDATABLE_OPPORTUNITY_FIELDS and value is not None:
            setattr(opp, field, value)
    if fields.get("probability") is None:
        opp.probability = stage.probability
    db.add(opp)
    db.flush()

    _log_activity(db, opp, ActivityType.NOTE_ADDED, "Opportunity created", user_id)
    db.commit()
    db.refresh(opp)
    return opp


def update_opportunity(
    db: Session,
    opportunity: Opportunity,
    user_id: UUID | None,
    **changes: Any,
) -> Opportunity:
    """Apply field changes; value and status changes are logged."""
    old_value = opportunity.value
    old_status = opportunity.status

    for field, value in changes.items():
        if field in UPDATABLE_OPPORTUNITY_FIELDS and value is not None:
            setattr(opportunity, field, value)

    if "value" in changes and changes["value"] is not None and changes["value"] != old_value:
        _log_activity(
            db, opportunity, ActivityType.VALUE_CHANGED,
            f"Value changed from {old_value} to {opportunity.value}", user_id,
            {"from": old_value, "to": opportunity.value},
        )
    if opportunity.status != old_status:
        if opportunity.status != OpportunityStatus.OPEN.value and not opportunity.actual_close_date:
            opportunity.actual_close_date = date.today()
        _log_activity(
            db, opportunity, ActivityType.STATUS_CHANGED,
            f"Status changed from {old_status} to {opportunity.status}", user_id,
            {"from": old_status, "to": opportunity.status},
        )

    db.commit()
    db.refresh(opportunity)
    return opportunity


def move_opportunity_to_stage(
    db: Session,
    opportunity: Opportunity,
    stage_id: UUID,
    user_id: UUID | None,
    note: str | None = None,
) -> Opportunity:
    """Move within the opportunity's pipeline; closed stages close the deal."""
    new_stage = _stage_in_pipeline(db, opportunity.pipeline_id, stage_id)
    old_stage = opportunity.stage

    opportunity.stage_id = new_stage.id
    opportunity.probability = new_stage.probability
    if new_stage.is_closed_won:
        opportunity.status = OpportunityStatus.WON.value
        opportunity.actual_close_date = date.today()
    elif new_stage.is_closed_lost:
        opportunity.status = OpportunityStatus.LOST.value
        opportunity.actual_close_date = date.today()
    else:
        opportunity.status = OpportunityStatus.OPEN.value
        opportunity.actual_close_date = None

    description = f"Moved from {old_stage.name if old_stage else 'unknown'} to {new_stage.name}"
    if note:
        description = f"{description}: {note}"
    _log_activity(
        db, opportunity, ActivityType.STAGE_CHANGED, description, user_id,
        {
            "from_stage_id": str(old_stage.id) if old_stage else None,
            "to_stage_id": str(new_stage.id),
        },
    )
    db.commit()
    db.refresh(opportunity)
    return opportunity


def delete_opportunity(db: Session, opportunity: Opportunity) -> None:
    db.delete(opportunity)
    db.commit()


def get_opportunity_with_details(db: Session, org_id: UUID, opportunity_id: UUID) -> dict[str, Any]:
    opp = get_opportunity(db, org_id, opportunity_id)
    return {
        "opportunity": opp,
        "stage": opp.stage,
        "activities": opp.activities[:20],
        "weighted_value": weighted(opp.value, opp.probability),
    }


def add_activity(
    db: Session,
    opportunity: Opportunity,
    activity_type: ActivityType,
    description: str,
    user_id: UUID | None,
    details: dict[str, Any] | None = None,
) -> OpportunityActivity:
    activity = _log_activity(db, opportunity, activity_type, description, user_id, details)
    db.commit()
    db.refresh(activity)
    return activity


def get_activities(
    db: Session,
    opportunity: Opportunity,
    limit: int = 50,
    offset: int = 0,
) -> list[OpportunityActivity]:
    return (
        db.query(OpportunityActivity)
        .filter(OpportunityActivity.opportunity_id == opportunity.id)
        .order_by(OpportunityActivity.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def bulk_update_opportunities(
    db: Session,
    org_id: UUID,
    opportunity_ids: list[UUID],
    user_id: UUID | None,
    changes: dict[str, Any],
) -> dict[str, int]:
    updated = failed = 0
    for opportunity_id in opportunity_ids:
        try:
            opp = get_opportunity(db, org_id, opportunity_id)
            if changes.get("stage_id"):
                move_opportunity_to_stage(db, opp, changes["stage_id"], user_id)
            update_opportunity(db, opp, user_id, **changes)
        except PipelineError as exc:
            db.rollback()
            logger.warning("Bulk update skipped opportunity=%s: %s", opportunity_id, exc)
            failed += 1
            continue
        updated += 1
    return {"updated": updated, "failed": failed}


# =============================================================================
# Reporting
# =============================================================================


def _win_rate(won: int, lost: int) -> float:
    closed = won + lost
    return round(won / closed * 100, 2) if closed else 0.0


def get_pipeline_summary(db: Session, org_id: UUID, pipeline_id: UUID) -> dict[str, Any]:
    board = get_pipeline_with_opportunities(db, org_id, pipeline_id)
    all_opps = [o for s in board["stages"] for o in s["opportunities"]]
    won = [o for o in all_opps if o.status == OpportunityStatus.WON.value]
    lost = [o for o in all_opps if o.status == OpportunityStatus.LOST.value]
    open_opps = [o for o in all_opps if o.status == OpportunityStatus.OPEN.value]

    return {
        "pipeline_id": board["pipeline"].id,
        "pipeline_name": board["pipeline"].name,
        "total_opportunities": len(all_opps),
        "open_opportunities": len(open_opps),
        "won_opportunities": len(won),
        "lost_opportunities": len(lost),
        "total_value": sum(o.value or 0 for o in all_opps),
        "open_value": sum(o.value or 0 for o in open_opps),
        "won_value": sum(o.value or 0 for o in won),
        "weighted_value": sum(weighted(o.value, o.probability) for o in open_opps),
        "win_rate": _win_rate(len(won), len(lost)),
        "stages": [
            {
                "stage_id": s["stage"].id,
                "stage_name": s["stage"].name,
                "opportunities_count": s["opportunities_count"],
                "total_value": s["total_value"],
                "weighted_value": s["weighted_value"],
            }
            for s in board["stages"]
        ],
    }


def get_pipeline_analytics(
    db: Session,
    org_id: UUID,
    pipeline_id: UUID,
    days: int = 90,
) -> dict[str, Any]:
    """Deal metrics for opportunities created in the last ``days`` days."""
    pipeline = get_pipeline(db, org_id, pipeline_id)
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    opps = [
        o
        for o in db.query(Opportunity).filter(
            Opportunity.organization_id == org_id,
            Opportunity.pipeline_id == pipeline.id,
        ).all()
        if as_utc(o.created_at) >= cutoff
    ]

    won = [o for o in opps if o.status == OpportunityStatus.WON.value]
    lost = [o for o in opps if o.status == OpportunityStatus.LOST.value]
    cycle_days = [
        (o.actual_close_date - as_utc(o.created_at).date()).days
        for o in won
        if o.actual_close_date
    ]

    # Reaching a stage means sitting in it now or in any later stage
    stage_conversion = []
    positions = {s.id: s.sort_order for s in pipeline.stages}
    total = len(opps)
    for stage in pipeline.stages:
        reached = sum(1 for o in opps if positions.get(o.stage_id, 0) >= stage.sort_order)
        stage_conversion.append(
            {
                "stage_id": stage.id,
                "stage_name": stage.name,
                "reached": reached,
                "conversion_rate": round(reached / total * 100, 2) if total else 0.0,
            }
        )

    return {
        "pipeline_id": pipeline.id,
        "days": days,
        "total_opportunities": total,
        "total_value": sum(o.value or 0 for o in opps),
        "weighted_pipeline_value": sum(
            weighted(o.value, o.probability) for o in opps if o.status == OpportunityStatus.OPEN.value
        ),
        "average_deal_size": round(sum(o.value or 0 for o in won) / len(won), 2) if won else 0.0,
        "win_rate": _win_rate(len(won), len(lost)),
        "average_sales_cycle_days": round(sum(cycle_days) / len(cycle_days), 1) if cycle_days else 0.0,
        "stage_conversion_rates": stage_conversion,
    }
