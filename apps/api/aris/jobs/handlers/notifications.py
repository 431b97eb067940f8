"""Notification job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

from aris.db.enums import NotificationType
from aris.services import notification_service

logger = logging.getLogger(__name__)


def _coerce_notification_type(raw_type: str | None) -> NotificationType:
    if not raw_type:
        return NotificationType.SYSTEM_UPDATE
    try:
        return NotificationType(raw_type)
    except ValueError:
        logger.warning("Unknown notification type '%s'; defaulting to system_update", raw_type)
        return NotificationType.SYSTEM_UPDATE


def _coerce_uuid(raw_id: str | None) -> UUID | None:
    if not raw_id:
        return None
    try:
        return UUID(str(raw_id))
    except (TypeError, ValueError):
        logger.warning("Invalid UUID value '%s' in notification payload", raw_id)
        return None


async def process_notification(db, job) -> None:
    """Create an in-app notification, or fan out to org admins when no user is given."""
    payload = job.payload or {}
    message = payload.get("message") or payload.get("body")
    if not message:
        logger.warning("Notification job %s has no message; skipping", job.id)
        return

    kwargs = dict(
        type=_coerce_notification_type(payload.get("type")),
        title=payload.get("title", "Notification"),
        message=message,
        action_url=payload.get("action_url"),
        dedupe_key=payload.get("dedupe_key"),
    )
    user_id = _coerce_uuid(payload.get("user_id"))
    if user_id:
        notification_service.create_notification(
            db=db, org_id=job.organization_id, user_id=user_id, **kwargs
        )
    else:
        notification_service.notify_org_admins(db=db, org_id=job.organization_id, **kwargs)
