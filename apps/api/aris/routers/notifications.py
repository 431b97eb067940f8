"""In-app notifications for the signed-in user (``/me/notifications``)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_current_session, get_db, require_csrf_header
from aris.db.enums import NotificationType
from aris.schemas.auth import UserSession
from aris.schemas.notification import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationRead,
    UnreadCountResponse,
)
from aris.services import notification_service

router = APIRouter(prefix="/notifications")

NOT_FOUND = "Notification not found"


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = Query(False),
    type: NotificationType | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    notifications = notification_service.get_notifications(
        db,
        session.user_id,
        session.org_id,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
        type=type.value if type else None,
    )
    return NotificationListResponse(
        items=[NotificationRead.model_validate(n) for n in notifications],
        unread_count=notification_service.get_unread_count(db, session.user_id, session.org_id),
    )


@router.get("/count", response_model=UnreadCountResponse)
def unread_count(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Cheap endpoint for the header badge poll."""
    return UnreadCountResponse(
        count=notification_service.get_unread_count(db, session.user_id, session.org_id)
    )


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationRead,
    dependencies=[Depends(require_csrf_header)],
)
def mark_read(
    notification_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    notification = notification_service.mark_read(db, notification_id, session.user_id, session.org_id)
    if notification is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return NotificationRead.model_validate(notification)


@router.post("/read-all", response_model=MarkAllReadResponse, dependencies=[Depends(require_csrf_header)])
def mark_all_read(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return MarkAllReadResponse(
        marked_read=notification_service.mark_all_read(db, session.user_id, session.org_id)
    )


@router.delete("/{notification_id}", dependencies=[Depends(require_csrf_header)])
def delete_notification(
    notification_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    if not notification_service.delete_notification(db, notification_id, session.user_id, session.org_id):
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return {"deleted": True}
