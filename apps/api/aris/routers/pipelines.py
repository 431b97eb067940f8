"""Pipelines router - sales pipelines, their board view and reporting."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_current_session, get_db, require_csrf_header, require_roles
from aris.db.enums import ROLES_CAN_MANAGE_INTEGRATIONS, OpportunityPriority, OpportunityStatus
from aris.schemas.auth import UserSession
from aris.schemas.pipeline import PipelineBoard, PipelineCreate, PipelineRead, PipelineUpdate
from aris.services import pipeline_service

router = APIRouter()


def _get_or_404(db: Session, org_id: UUID, pipeline_id: UUID):
    try:
        return pipeline_service.get_pipeline(db, org_id, pipeline_id)
    except pipeline_service.PipelineNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("", response_model=list[PipelineRead])
def list_pipelines(
    include_inactive: bool = False,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    pipelines = pipeline_service.get_pipelines(db, session.org_id, include_inactive=include_inactive)
    return [PipelineRead.model_validate(p) for p in pipelines]


@router.post("", response_model=PipelineRead, dependencies=[Depends(require_csrf_header)])
def create_pipeline(
    body: PipelineCreate,
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_INTEGRATIONS)),
    db: Session = Depends(get_db),
):
    """Create a pipeline together with its ordered stages."""
    try:
        pipeline = pipeline_service.create_pipeline(
            db,
            session.org_id,
            session.user_id,
            name=body.name,
            stages=[stage.model_dump() for stage in body.stages],
            description=body.description,
            color=body.color,
            sort_order=body.sort_order,
        )
    except pipeline_service.PipelineValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return PipelineRead.model_validate(pipeline)


@router.get("/{pipeline_id}", response_model=PipelineBoard)
def get_pipeline_board(
    pipeline_id: UUID,
    status: OpportunityStatus | None = None,
    priority: OpportunityPriority | None = None,
    assigned_to: UUID | None = None,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Pipeline with opportunities grouped by stage, plus total and weighted value per stage."""
    filters = {
        "status": [status.value] if status else None,
        "priority": [priority.value] if priority else None,
        "assigned_to": assigned_to,
    }
    try:
        board = pipeline_service.get_pipeline_with_opportunities(
            db, session.org_id, pipeline_id, filters=filters
        )
    except pipeline_service.PipelineNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return PipelineBoard.model_validate(board, from_attributes=True)


@router.patch(
    "/{pipeline_id}",
    response_model=PipelineRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_pipeline(
    pipeline_id: UUID,
    body: PipelineUpdate,
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_INTEGRATIONS)),
    db: Session = Depends(get_db),
):
    pipeline = _get_or_404(db, session.org_id, pipeline_id)
    pipeline = pipeline_service.update_pipeline(db, pipeline, **body.model_dump(exclude_unset=True))
    return PipelineRead.model_validate(pipeline)


@router.delete("/{pipeline_id}", dependencies=[Depends(require_csrf_header)])
def delete_pipeline(
    pipeline_id: UUID,
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_INTEGRATIONS)),
    db: Session = Depends(get_db),
):
    """Soft delete: the pipeline is deactivated and keeps its opportunities."""
    pipeline_service.delete_pipeline(db, _get_or_404(db, session.org_id, pipeline_id))
    return {"deleted": True}


@router.get("/{pipeline_id}/summary")
def pipeline_summary(
    pipeline_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        return pipeline_service.get_pipeline_summary(db, session.org_id, pipeline_id)
    except pipeline_service.PipelineNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/{pipeline_id}/analytics")
def pipeline_analytics(
    pipeline_id: UUID,
    days: int = Query(90, ge=1, le=730),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        return pipeline_service.get_pipeline_analytics(db, session.org_id, pipeline_id, days=days)
    except pipeline_service.PipelineNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
