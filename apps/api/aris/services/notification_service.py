"""
Notification Service - handles in-app notifications.

Provides CRUD for notifications and trigger functions for subscription,
Metakocka and email events.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from aris.db.enums import NotificationType, Role
from aris.db.models import Membership, Notification


DEDUPE_WINDOW = timedelta(hours=1)


# =============================================================================
# Notification CRUD
# =============================================================================


def create_notification(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    type: NotificationType,
    title: str,
    message: str,
    action_url: Optional[str] = None,
    details: Optional[dict] = None,
    dedupe_key: Optional[str] = None,
) -> Optional[Notification]:
    """
    Create a notification.

    Dedupes by dedupe_key + org_id + user_id within 1 hour window.
    Returns None when an identical notification was sent recently.
    """
    if dedupe_key:
        cutoff = datetime.now(timezone.utc) - DEDUPE_WINDOW
        existing = db.query(Notification).filter(
            Notification.dedupe_key == dedupe_key,
            Notification.organization_id == org_id,
            Notification.user_id == user_id,
            Notification.created_at > cutoff,
        ).first()

        if existing:
            return None

    notification = Notification(
        organization_id=org_id,
        user_id=user_id,
        type=type.value,
        title=title,
        message=message,
        action_url=action_url,
        details=details or {},
        dedupe_key=dedupe_key,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def notify_org_admins(
    db: Session,
    org_id: UUID,
    type: NotificationType,
    title: str,
    message: str,
    action_url: Optional[str] = None,
    details: Optional[dict] = None,
    dedupe_key: Optional[str] = None,
) -> list[Notification]:
    """Notify every admin and owner of the organization."""
    admins = db.query(Membership).filter(
        Membership.organization_id == org_id,
        Membership.role.in_([Role.ADMIN.value, Role.OWNER.value]),
    ).all()

    created = []
    for membership in admins:
        notification = create_notification(
            db=db,
            org_id=org_id,
            user_id=membership.user_id,
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            details=details,
            dedupe_key=f"{dedupe_key}:{membership.user_id}" if dedupe_key else None,
        )
        if notification:
            created.append(notification)
    return created


def _for_user(db: Session, user_id: UUID, org_id: UUID):
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.organization_id == org_id,
    )


def get_notifications(
    db: Session,
    user_id: UUID,
    org_id: UUID,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
    type: str | None = None,
) -> list[Notification]:
    """Get notifications for user, newest first."""
    query = _for_user(db, user_id, org_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    if type:
        query = query.filter(Notification.type == type)
    return query.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()


def get_unread_count(db: Session, user_id: UUID, org_id: UUID) -> int:
    return _for_user(db, user_id, org_id).filter(Notification.read.is_(False)).count()


def get_notification(
    db: Session, notification_id: UUID, user_id: UUID, org_id: UUID
) -> Optional[Notification]:
    """One of the user's notifications; other users' rows are invisible."""
    return _for_user(db, user_id, org_id).filter(Notification.id == notification_id).first()


def mark_read(
    db: Session,
    notification_id: UUID,
    user_id: UUID,
    org_id: UUID,
) -> Optional[Notification]:
    notification = get_notification(db, notification_id, user_id, org_id)
    if notification and not notification.read:
        notification.read = True
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: UUID, org_id: UUID) -> int:
    """Mark all notifications as read. Returns count updated."""
    count = (
        _for_user(db, user_id, org_id)
        .filter(Notification.read.is_(False))
        .update({"read": True}, synchronize_session=False)
    )
    db.commit()
    return count


def delete_notification(db: Session, notification_id: UUID, user_id: UUID, org_id: UUID) -> bool:
    """Returns False if the notification does not exist for this user."""
    notification = get_notification(db, notification_id, user_id, org_id)
    if not notification:
        return False
    db.delete(notification)
    db.commit()
    return True


# =============================================================================
# Notification Triggers (called from integration services)
# =============================================================================


def notify_metakocka_sync_failed(
    db: Session,
    org_id: UUID,
    entity: str,
    error: str,
) -> None:
    """Tell org admins that a Metakocka sync run failed."""
    notify_org_admins(
        db=db,
        org_id=org_id,
        type=NotificationType.METAKOCKA_SYNC_FAILED,
        title=f"Metakocka {entity} sync failed",
        message=error[:500],
        action_url="/settings/integrations/metakocka",
        details={"entity": entity},
        dedupe_key=f"metakocka_sync_failed:{org_id}:{entity}",
    )


def notify_email_review_required(
    db: Session,
    org_id: UUID,
    user_id: UUID | None,
    queue_item_id: UUID,
    subject: str | None,
) -> None:
    """Tell the mailbox owner (or admins) that an AI draft needs review."""
    title = "Email response needs review"
    message = f"Review the suggested reply for: {(subject or '(no subject)')[:100]}"
    action_url = f"/email-queue/{queue_item_id}"
    dedupe_key = f"email_review:{queue_item_id}"
    if user_id:
        create_notification(
            db=db,
            org_id=org_id,
            user_id=user_id,
            type=NotificationType.EMAIL_REVIEW_REQUIRED,
            title=title,
            message=message,
            action_url=action_url,
            dedupe_key=dedupe_key,
        )
    else:
        notify_org_admins(
            db=db,
            org_id=org_id,
            type=NotificationType.EMAIL_REVIEW_REQUIRED,
            title=title,
            message=message,
            action_url=action_url,
            dedupe_key=dedupe_key,
        )
