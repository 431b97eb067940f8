"""Email queue service - AI processing of synced emails.

Queue items move pending -> processing -> completed | requires_review |
approved | failed. Reviewed items end approved or rejected. UNIQUE
(organization_id, email_id) keeps an email from being queued twice.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aris.core.config import settings
from aris.db.enums import PRIORITY_RANK, QUEUE_FINISHED_STATUSES, QueuePriority, QueueStatus
from aris.db.models import EmailIndex, EmailQueueItem
from aris.services import email_analysis_service, notification_service
from aris.services.email_analysis_service import EmailAnalysis

logger = logging.getLogger(__name__)

REVIEW_SENTIMENT_THRESHOLD = -0.7
REVIEW_CONTENT_LENGTH = 1000
REVIEW_CONFIDENCE_THRESHOLD = 0.7
SUMMARY_MAX_LENGTH = 150


class EmailQueueError(Exception):
    """Base exception for email queue operations."""


class QueueItemNotFoundError(EmailQueueError):
    pass


class QueueEmailNotFoundError(EmailQueueError):
    pass


class QueueStateError(EmailQueueError):
    """Operation not allowed in the item's current status."""


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def summarize_analysis(text: str | None) -> str:
    text = text or ""
    if len(text) <= SUMMARY_MAX_LENGTH:
        return text
    return text[:SUMMARY_MAX_LENGTH] + "..."


def needs_manual_review(analysis: EmailAnalysis, content: str | None) -> bool:
    """
    A human must look at the reply when the sender is very unhappy, the mail
    mentions urgency, the mail is long, or the analysis is unsure.
    """
    content = content or ""
    return (
        analysis.sentiment_score < REVIEW_SENTIMENT_THRESHOLD
        or bool(email_analysis_service.find_urgent_keywords(content))
        or len(content) > REVIEW_CONTENT_LENGTH
        or analysis.confidence < REVIEW_CONFIDENCE_THRESHOLD
    )


# =============================================================================
# CRUD
# =============================================================================


def add_to_queue(
    db: Session,
    org_id: UUID,
    email_id: UUID,
    contact_id: UUID | None = None,
    priority: QueuePriority | str = QueuePriority.MEDIUM,
    user_id: UUID | None = None,
) -> EmailQueueItem:
    """Queue an email for processing. Re-adding returns the existing item."""
    email = db.query(EmailIndex).filter(
        EmailIndex.id == email_id,
        EmailIndex.organization_id == org_id,
    ).first()
    if not email:
        raise QueueEmailNotFoundError("Email not found")

    existing = _find_by_email(db, org_id, email_id)
    if existing:
        return existing

    item = EmailQueueItem(
        organization_id=org_id,
        email_id=email_id,
        contact_id=contact_id,
        user_id=user_id or email.user_id,
        priority=QueuePriority(priority).value,
        status=QueueStatus.PENDING.value,
        max_attempts=settings.EMAIL_QUEUE_MAX_ATTEMPTS,
        details={},
    )
    db.add(item)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = _find_by_email(db, org_id, email_id)
        if existing is None:
            raise
        return existing
    db.refresh(item)
    return item


def _find_by_email(db: Session, org_id: UUID, email_id: UUID) -> EmailQueueItem | None:
    return db.query(EmailQueueItem).filter(
        EmailQueueItem.organization_id == org_id,
        EmailQueueItem.email_id == email_id,
    ).first()


def _priority_order():
    return case(PRIORITY_RANK, value=EmailQueueItem.priority, else_=0)


def get_queue_items(
    db: Session,
    org_id: UUID,
    status: QueueStatus | str | None = None,
    priority: QueuePriority | str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[EmailQueueItem]:
    """Queue items, most urgent first, then oldest first."""
    query = db.query(EmailQueueItem).filter(EmailQueueItem.organization_id == org_id)
    if status:
        query = query.filter(EmailQueueItem.status == QueueStatus(status).value)
    if priority:
        query = query.filter(EmailQueueItem.priority == QueuePriority(priority).value)
    return (
        query.order_by(_priority_order().desc(), EmailQueueItem.created_at.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_queue_item(db: Session, org_id: UUID, item_id: UUID) -> EmailQueueItem:
    item = db.query(EmailQueueItem).filter(
        EmailQueueItem.id == item_id,
        EmailQueueItem.organization_id == org_id,
    ).first()
    if not item:
        raise QueueItemNotFoundError("Queue item not found")
    return item


def delete_queue_item(db: Session, item: EmailQueueItem) -> None:
    db.delete(item)
    db.commit()


# =============================================================================
# Processing
# =============================================================================


def _email_text(email: EmailIndex) -> str:
    content = email.content
    if content is None:
        return email.preview_text or ""
    return content.plain_content or email_analysis_service.html_to_text(content.html_content)


async def process_queued_email(
    db: Session,
    item: EmailQueueItem,
    auto_reply_mode: str | None = None,
    auto_reply_threshold: float | None = None,
) -> EmailQueueItem:
    """
    Analyse one queued email and decide what happens to the reply.

    Failures mark the item failed with the error message; they are not
    raised to the caller.
    """
    mode = auto_reply_mode or settings.EMAIL_AUTO_REPLY_MODE
    threshold = (
        auto_reply_threshold
        if auto_reply_threshold is not None
        else settings.EMAIL_AUTO_REPLY_THRESHOLD
    )

    item.status = QueueStatus.PROCESSING.value
    item.processing_attempts += 1
    item.last_processed_at = _now_utc()
    db.commit()

    try:
        email = db.query(EmailIndex).filter(
            EmailIndex.id == item.email_id,
            EmailIndex.organization_id == item.organization_id,
        ).first()
        if not email:
            raise EmailQueueError("Email not found")

        content = _email_text(email)
        analysis = await email_analysis_service.analyze_email(db, email, content)
        requires_review = needs_manual_review(analysis, content)

        auto_approved = (
            not requires_review
            and mode == "full"
            and bool(analysis.draft_reply)
            and (analysis.draft_confidence or 0) >= threshold
        )
        if requires_review:
            status = QueueStatus.REQUIRES_REVIEW
        elif auto_approved:
            status = QueueStatus.APPROVED
        else:
            status = QueueStatus.COMPLETED

        details = dict(item.details or {})
        details["analysis"] = analysis.as_dict()
        details["analysis_summary"] = summarize_analysis(analysis.summary)
        details["requires_manual_review"] = requires_review
        if analysis.draft_reply:
            details["draft"] = {
                "subject": f"Re: {email.subject or ''}".strip(),
                "body": analysis.draft_reply,
                "confidence": analysis.draft_confidence,
            }
        if auto_approved:
            details["auto_approved"] = True

        item.details = details
        item.requires_manual_review = requires_review
        item.status = status.value
        item.error_message = None
        db.commit()
    except Exception as exc:
        db.rollback()
        item.status = QueueStatus.FAILED.value
        item.error_message = str(exc) or exc.__class__.__name__
        item.last_processed_at = _now_utc()
        db.commit()
        logger.warning("Queue item %s failed: %s", item.id, exc)
        return item

    if requires_review:
        try:
            notification_service.notify_email_review_required(
                db,
                org_id=item.organization_id,
                user_id=item.user_id,
                queue_item_id=item.id,
                subject=email.subject,
            )
        except Exception:
            db.rollback()
            logger.exception("Review notification failed for queue item %s", item.id)
    db.refresh(item)
    return item


async def process_pending_emails(
    db: Session,
    org_id: UUID | None = None,
    batch_size: int = 10,
) -> dict[str, int]:
    """Process up to ``batch_size`` pending items in priority order."""
    query = db.query(EmailQueueItem).filter(EmailQueueItem.status == QueueStatus.PENDING.value)
    if org_id:
        query = query.filter(EmailQueueItem.organization_id == org_id)
    items = (
        query.order_by(_priority_order().desc(), EmailQueueItem.created_at.asc())
        .limit(batch_size)
        .all()
    )

    results = {"processed": 0, "require_review": 0, "completed": 0, "failed": 0}
    for item in items:
        await process_queued_email(db, item)
        results["processed"] += 1
        if item.status == QueueStatus.REQUIRES_REVIEW.value:
            results["require_review"] += 1
        elif item.status == QueueStatus.FAILED.value:
            results["failed"] += 1
        else:
            results["completed"] += 1
    return results


def review_email_response(
    db: Session,
    item: EmailQueueItem,
    reviewer_id: UUID,
    approved: bool,
    feedback: str | None = None,
) -> EmailQueueItem:
    if item.status != QueueStatus.REQUIRES_REVIEW.value:
        raise QueueStateError(f"Cannot review an item with status '{item.status}'")

    details = dict(item.details or {})
    details["review"] = {
        "reviewed_by": str(reviewer_id),
        "reviewed_at": _now_utc().isoformat(),
        "approved": approved,
        "feedback": feedback,
    }
    item.details = details
    item.status = (QueueStatus.APPROVED if approved else QueueStatus.REJECTED).value
    db.commit()
    db.refresh(item)
    return item


# =============================================================================
# Maintenance
# =============================================================================


def get_queue_stats(db: Session, org_id: UUID) -> dict[str, int]:
    """Counts per status (every status present) plus total."""
    stats = {status.value: 0 for status in QueueStatus}
    rows = (
        db.query(EmailQueueItem.status, func.count(EmailQueueItem.id))
        .filter(EmailQueueItem.organization_id == org_id)
        .group_by(EmailQueueItem.status)
        .all()
    )
    for status, count in rows:
        stats[status] = count
    stats["total"] = sum(count for _, count in rows)
    return stats


def reset_failed_queue_items(
    db: Session,
    org_id: UUID | None = None,
    max_attempts: int = 3,
) -> int:
    """Send failed items with attempts left back to pending."""
    query = db.query(EmailQueueItem).filter(
        EmailQueueItem.status == QueueStatus.FAILED.value,
        EmailQueueItem.processing_attempts < max_attempts,
    )
    if org_id:
        query = query.filter(EmailQueueItem.organization_id == org_id)
    count = query.update(
        {"status": QueueStatus.PENDING.value, "error_message": None},
        synchronize_session=False,
    )
    db.commit()
    return count


def cleanup_old_queue_items(
    db: Session,
    org_id: UUID | None = None,
    days_to_keep: int = 30,
) -> int:
    """Delete finished items created before the retention cutoff."""
    cutoff = _now_utc() - timedelta(days=days_to_keep)
    query = db.query(EmailQueueItem).filter(
        EmailQueueItem.status.in_([s.value for s in QUEUE_FINISHED_STATUSES]),
        EmailQueueItem.created_at < cutoff,
    )
    if org_id:
        query = query.filter(EmailQueueItem.organization_id == org_id)
    count = query.delete(synchronize_session=False)
    db.commit()
    return count


def run_scheduled_maintenance(db: Session) -> dict[str, Any]:
    """Cron entry: reset retryable failures, then prune old finished items."""
    return {
        "reset": reset_failed_queue_items(db, max_attempts=settings.EMAIL_QUEUE_MAX_ATTEMPTS),
        "cleaned_up": cleanup_old_queue_items(db, days_to_keep=settings.EMAIL_QUEUE_RETENTION_DAYS),
    }
