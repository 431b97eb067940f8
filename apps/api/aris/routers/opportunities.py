"""Opportunities router - deals moving through pipelines."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_current_session, get_db, require_csrf_header
from aris.db.enums import OpportunityPriority, OpportunityStatus
from aris.schemas.auth import UserSession
from aris.schemas.pipeline import (
    ActivityCreate,
    ActivityRead,
    BulkOpportunityUpdate,
    BulkUpdateResult,
    MoveStageRequest,
    OpportunityCreate,
    OpportunityDetail,
    OpportunityListResponse,
    OpportunityRead,
    OpportunityUpdate,
)
from aris.services import pipeline_service

router = APIRouter()


def _get_or_404(db: Session, org_id: UUID, opportunity_id: UUID):
    try:
        return pipeline_service.get_opportunity(db, org_id, opportunity_id)
    except pipeline_service.OpportunityNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("", response_model=OpportunityListResponse)
def list_opportunities(
    pipeline_id: UUID | None = None,
    status: OpportunityStatus | None = None,
    priority: OpportunityPriority | None = None,
    assigned_to: UUID | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    filters = {
        "status": [status.value] if status else None,
        "priority": [priority.value] if priority else None,
        "assigned_to": assigned_to,
    }
    items, total = pipeline_service.list_opportunities(
        db, session.org_id, pipeline_id=pipeline_id, filters=filters, limit=limit, offset=offset
    )
    return OpportunityListResponse(
        items=[OpportunityRead.model_validate(o) for o in items],
        total=total,
    )


@router.post("", response_model=OpportunityRead, dependencies=[Depends(require_csrf_header)])
def create_opportunity(
    body: OpportunityCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Create an opportunity.

    Errors:
    - 400: the stage does not belong to the pipeline
    - 404: unknown pipeline
    """
    fields = body.model_dump(exclude={"pipeline_id", "stage_id", "title"})
    try:
        opp = pipeline_service.create_opportunity(
            db,
            session.org_id,
            session.user_id,
            pipeline_id=body.pipeline_id,
            stage_id=body.stage_id,
            title=body.title,
            **fields,
        )
    except pipeline_service.PipelineNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except pipeline_service.PipelineValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return OpportunityRead.model_validate(opp)


@router.post("/bulk-update", response_model=BulkUpdateResult, dependencies=[Depends(require_csrf_header)])
def bulk_update(
    body: BulkOpportunityUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    changes = body.changes.model_dump(exclude_unset=True)
    if body.stage_id:
        changes["stage_id"] = body.stage_id
    result = pipeline_service.bulk_update_opportunities(
        db, session.org_id, body.opportunity_ids, session.user_id, changes
    )
    return BulkUpdateResult(**result)


@router.get("/{opportunity_id}", response_model=OpportunityDetail)
def get_opportunity(
    opportunity_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Opportunity with its stage, latest activities and weighted value."""
    try:
        detail = pipeline_service.get_opportunity_with_details(db, session.org_id, opportunity_id)
    except pipeline_service.OpportunityNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return OpportunityDetail.model_validate(detail, from_attributes=True)


@router.patch("/{opportunity_id}", response_model=OpportunityRead, dependencies=[Depends(require_csrf_header)])
def update_opportunity(
    opportunity_id: UUID,
    body: OpportunityUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    opp = _get_or_404(db, session.org_id, opportunity_id)
    opp = pipeline_service.update_opportunity(
        db, opp, session.user_id, **body.model_dump(exclude_unset=True)
    )
    return OpportunityRead.model_validate(opp)


@router.post("/{opportunity_id}/move", response_model=OpportunityRead, dependencies=[Depends(require_csrf_header)])
def move_opportunity(
    opportunity_id: UUID,
    body: MoveStageRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Move to another stage of the same pipeline. Closed stages close the deal."""
    opp = _get_or_404(db, session.org_id, opportunity_id)
    try:
        opp = pipeline_service.move_opportunity_to_stage(
            db, opp, body.stage_id, session.user_id, note=body.note
        )
    except pipeline_service.PipelineValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return OpportunityRead.model_validate(opp)


@router.delete("/{opportunity_id}", dependencies=[Depends(require_csrf_header)])
def delete_opportunity(
    opportunity_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipeline_service.delete_opportunity(db, _get_or_404(db, session.org_id, opportunity_id))
    return {"deleted": True}


@router.get("/{opportunity_id}/activities", response_model=list[ActivityRead])
def list_activities(
    opportunity_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    opp = _get_or_404(db, session.org_id, opportunity_id)
    activities = pipeline_service.get_activities(db, opp, limit=limit, offset=offset)
    return [ActivityRead.model_validate(a) for a in activities]


@router.post(
    "/{opportunity_id}/activities",
    response_model=ActivityRead,
    dependencies=[Depends(require_csrf_header)],
)
def add_activity(
    opportunity_id: UUID,
    body: ActivityCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    opp = _get_or_404(db, session.org_id, opportunity_id)
    activity = pipeline_service.add_activity(
        db,
        opp,
        activity_type=body.activity_type,
        description=body.description,
        user_id=session.user_id,
        details=body.metadata,
    )
    return ActivityRead.model_validate(activity)
