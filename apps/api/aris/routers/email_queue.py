"""
Email queue router - /email-queue endpoints.

Lists, processes and reviews emails waiting for AI analysis.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_current_session, get_db, require_csrf_header, require_roles
from aris.db.enums import ROLES_CAN_MANAGE_INTEGRATIONS, QueuePriority, QueueStatus
from aris.schemas.auth import UserSession
from aris.schemas.email import (
    QueueBatchRequest,
    QueueCleanupRequest,
    QueueCountResponse,
    QueueItemCreate,
    QueueItemRead,
    QueueListResponse,
    QueueProcessResult,
    QueueResetRequest,
    QueueReviewRequest,
    QueueStats,
)
from aris.services import email_queue_service

router = APIRouter()


def _get_or_404(db: Session, org_id: UUID, item_id: UUID):
    try:
        return email_queue_service.get_queue_item(db, org_id, item_id)
    except email_queue_service.QueueItemNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("", response_model=QueueListResponse)
def list_queue(
    status: QueueStatus | None = None,
    priority: QueuePriority | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Queue items, most urgent first, then oldest first."""
    items = email_queue_service.get_queue_items(
        db,
        session.org_id,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        limit=limit,
        offset=offset,
    )
    return QueueListResponse(items=[QueueItemRead.model_validate(i) for i in items])


@router.post("", response_model=QueueItemRead, dependencies=[Depends(require_csrf_header)])
def add_to_queue(
    body: QueueItemCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Queue an email. Queuing it twice returns the existing item."""
    try:
        item = email_queue_service.add_to_queue(
            db,
            org_id=session.org_id,
            email_id=body.email_id,
            contact_id=body.contact_id,
            priority=body.priority,
            user_id=session.user_id,
        )
    except email_queue_service.QueueEmailNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return QueueItemRead.model_validate(item)


@router.get("/stats", response_model=QueueStats)
def queue_stats(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return QueueStats(**email_queue_service.get_queue_stats(db, session.org_id))


@router.post(
    "/process-pending",
    response_model=QueueProcessResult,
    dependencies=[Depends(require_csrf_header)],
)
async def process_pending(
    body: QueueBatchRequest | None = None,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    batch_size = body.batch_size if body else 10
    results = await email_queue_service.process_pending_emails(
        db, org_id=session.org_id, batch_size=batch_size
    )
    return QueueProcessResult(**results)


@router.post(
    "/reset-failed",
    response_model=QueueCountResponse,
    dependencies=[Depends(require_csrf_header)],
)
def reset_failed(
    body: QueueResetRequest | None = None,
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_INTEGRATIONS)),
    db: Session = Depends(get_db),
):
    max_attempts = body.max_attempts if body else 3
    count = email_queue_service.reset_failed_queue_items(
        db, org_id=session.org_id, max_attempts=max_attempts
    )
    return QueueCountResponse(count=count)


@router.post(
    "/cleanup",
    response_model=QueueCountResponse,
    dependencies=[Depends(require_csrf_header)],
)
def cleanup(
    body: QueueCleanupRequest | None = None,
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_INTEGRATIONS)),
    db: Session = Depends(get_db),
):
    days_to_keep = body.days_to_keep if body else 30
    count = email_queue_service.cleanup_old_queue_items(
        db, org_id=session.org_id, days_to_keep=days_to_keep
    )
    return QueueCountResponse(count=count)


@router.get("/{item_id}", response_model=QueueItemRead)
def get_queue_item(
    item_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return QueueItemRead.model_validate(_get_or_404(db, session.org_id, item_id))


@router.delete("/{item_id}", dependencies=[Depends(require_csrf_header)])
def delete_queue_item(
    item_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    email_queue_service.delete_queue_item(db, _get_or_404(db, session.org_id, item_id))
    return {"deleted": True}


@router.post(
    "/{item_id}/process",
    response_model=QueueItemRead,
    dependencies=[Depends(require_csrf_header)],
)
async def process_item(
    item_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Process one item now. Failures are recorded on the item, not raised."""
    item = _get_or_404(db, session.org_id, item_id)
    item = await email_queue_service.process_queued_email(db, item)
    return QueueItemRead.model_validate(item)


@router.post(
    "/{item_id}/review",
    response_model=QueueItemRead,
    dependencies=[Depends(require_csrf_header)],
)
def review_item(
    item_id: UUID,
    body: QueueReviewRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Approve or reject a drafted response. Only items awaiting review qualify."""
    item = _get_or_404(db, session.org_id, item_id)
    try:
        item = email_queue_service.review_email_response(
            db,
            item,
            reviewer_id=session.user_id,
            approved=body.approved,
            feedback=body.feedback,
        )
    except email_queue_service.QueueStateError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return QueueItemRead.model_validate(item)
