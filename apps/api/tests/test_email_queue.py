"""Email queue: review rules, ordering, processing and maintenance."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from aris.db.enums import QueuePriority, QueueStatus
from aris.db.models import EmailQueueItem, Notification
from aris.services import email_queue_service, notification_service
from aris.services.email_analysis_service import EmailAnalysis


def _analysis(sentiment: float = 0.5, confidence: float = 0.9) -> EmailAnalysis:
    return EmailAnalysis(
        sentiment_score=sentiment,
        confidence=confidence,
        category="general",
        summary="",
    )


# =============================================================================
# Review rules
# =============================================================================

def test_needs_review_for_very_negative_sentiment():
    assert email_queue_service.needs_manual_review(_analysis(sentiment=-0.8), "hi")
    assert not email_queue_service.needs_manual_review(_analysis(sentiment=-0.7), "hi")


@pytest.mark.parametrize("keyword", ["urgent", "immediately", "ASAP", "emergency", "critical"])
def test_needs_review_for_urgent_keywords(keyword):
    assert email_queue_service.needs_manual_review(_analysis(), f"Please reply {keyword}.")


def test_needs_review_for_long_content():
    assert email_queue_service.needs_manual_review(_analysis(), "a" * 1001)
    assert not email_queue_service.needs_manual_review(_analysis(), "a" * 1000)


def test_needs_review_for_low_confidence():
    assert email_queue_service.needs_manual_review(_analysis(confidence=0.69), "hi")
    assert not email_queue_service.needs_manual_review(_analysis(confidence=0.7), "hi")


def test_summarize_analysis_truncates():
    assert email_queue_service.summarize_analysis("short") == "short"
    summary = email_queue_service.summarize_analysis("x" * 200)
    assert summary == "x" * 150 + "..."
    assert email_queue_service.summarize_analysis(None) == ""


# =============================================================================
# Queue CRUD
# =============================================================================

def test_add_to_queue_is_idempotent(db, test_org, make_email):
    email = make_email()

    first = email_queue_service.add_to_queue(db, test_org.id, email.id)
    second = email_queue_service.add_to_queue(db, test_org.id, email.id, priority="urgent")

    assert first.id == second.id
    assert second.priority == QueuePriority.MEDIUM.value
    assert db.query(EmailQueueItem).count() == 1


def test_add_to_queue_unknown_email(db, test_org):
    with pytest.raises(email_queue_service.QueueEmailNotFoundError):
        email_queue_service.add_to_queue(db, test_org.id, uuid4())


def test_queue_items_ordered_by_priority_then_age(db, test_org, make_email):
    low = email_queue_service.add_to_queue(db, test_org.id, make_email().id, priority="low")
    urgent = email_queue_service.add_to_queue(db, test_org.id, make_email().id, priority="urgent")
    medium = email_queue_service.add_to_queue(db, test_org.id, make_email().id, priority="medium")
    high = email_queue_service.add_to_queue(db, test_org.id, make_email().id, priority="high")

    items = email_queue_service.get_queue_items(db, test_org.id)
    assert [i.id for i in items] == [urgent.id, high.id, medium.id, low.id]

    only_low = email_queue_service.get_queue_items(db, test_org.id, priority=QueuePriority.LOW)
    assert [i.id for i in only_low] == [low.id]


# =============================================================================
# Processing
# =============================================================================

@pytest.mark.asyncio
async def test_process_friendly_short_email_completes(db, test_org, make_email):
    item = email_queue_service.add_to_queue(db, test_org.id, make_email().id)

    result = await email_queue_service.process_queued_email(db, item, auto_reply_mode="manual")

    assert result.status == QueueStatus.COMPLETED.value
    assert result.processing_attempts == 1
    assert result.last_processed_at is not None
    assert result.details["analysis"]["sentiment_score"] > 0
    assert result.details["draft"]["subject"] == "Re: Question about my order"
    assert result.requires_manual_review is False


@pytest.mark.asyncio
async def test_process_urgent_email_requires_review_and_notifies(db, test_org, test_user, make_email):
    email = make_email(subject="Broken delivery", body="This is urgent, the parcel is broken.")
    item = email_queue_service.add_to_queue(db, test_org.id, email.id)

    result = await email_queue_service.process_queued_email(db, item)

    assert result.status == QueueStatus.REQUIRES_REVIEW.value
    assert result.requires_manual_review is True
    notification = db.query(Notification).filter(Notification.user_id == test_user.id).one()
    assert notification.type == "email_review_required"


@pytest.mark.asyncio
async def test_review_notification_failure_keeps_review_status(db, test_org, make_email, monkeypatch):
    email = make_email(subject="Broken delivery", body="This is urgent, the parcel is broken.")
    item = email_queue_service.add_to_queue(db, test_org.id, email.id)

    def broken_notify(*args, **kwargs):
        raise RuntimeError("notifications down")

    monkeypatch.setattr(notification_service, "notify_email_review_required", broken_notify)

    result = await email_queue_service.process_queued_email(db, item)

    assert result.status == QueueStatus.REQUIRES_REVIEW.value
    assert db.query(Notification).count() == 0


@pytest.mark.asyncio
async def test_full_auto_reply_mode_approves_confident_drafts(db, test_org, make_email):
    item = email_queue_service.add_to_queue(db, test_org.id, make_email().id)

    result = await email_queue_service.process_queued_email(
        db, item, auto_reply_mode="full", auto_reply_threshold=0.5
    )

    assert result.status == QueueStatus.APPROVED.value
    assert result.details["auto_approved"] is True


@pytest.mark.asyncio
async def test_full_mode_below_threshold_stays_completed(db, test_org, make_email):
    item = email_queue_service.add_to_queue(db, test_org.id, make_email().id)

    result = await email_queue_service.process_queued_email(
        db, item, auto_reply_mode="full", auto_reply_threshold=0.9
    )

    assert result.status == QueueStatus.COMPLETED.value
    assert "auto_approved" not in result.details


@pytest.mark.asyncio
async def test_analysis_failure_marks_item_failed(db, test_org, make_email, monkeypatch):
    item = email_queue_service.add_to_queue(db, test_org.id, make_email().id)

    async def boom(*args, **kwargs):
        raise RuntimeError("model unavailable")

    monkeypatch.setattr("aris.services.email_analysis_service.analyze_email", boom)

    result = await email_queue_service.process_queued_email(db, item)

    assert result.status == QueueStatus.FAILED.value
    assert result.error_message == "model unavailable"


@pytest.mark.asyncio
async def test_process_pending_counts_outcomes(db, test_org, make_email):
    email_queue_service.add_to_queue(db, test_org.id, make_email().id)
    email_queue_service.add_to_queue(
        db, test_org.id, make_email(body="Need this fixed asap").id, priority="high"
    )

    results = await email_queue_service.process_pending_emails(db, org_id=test_org.id)

    assert results == {"processed": 2, "require_review": 1, "completed": 1, "failed": 0}


# =============================================================================
# Review
# =============================================================================

def test_review_requires_review_status(db, test_org, test_user, make_email):
    item = email_queue_service.add_to_queue(db, test_org.id, make_email().id)

    with pytest.raises(email_queue_service.QueueStateError):
        email_queue_service.review_email_response(db, item, test_user.id, approved=True)


def test_review_records_decision(db, test_org, test_user, make_email):
    item = email_queue_service.add_to_queue(db, test_org.id, make_email().id)
    item.status = QueueStatus.REQUIRES_REVIEW.value
    db.commit()

    result = email_queue_service.review_email_response(
        db, item, test_user.id, approved=False, feedback="Too formal"
    )

    assert result.status == QueueStatus.REJECTED.value
    review = result.details["review"]
    assert review["reviewed_by"] == str(test_user.id)
    assert review["approved"] is False
    assert review["feedback"] == "Too formal"


# =============================================================================
# Stats and maintenance
# =============================================================================

def test_queue_stats_zero_fill(db, test_org, make_email):
    email_queue_service.add_to_queue(db, test_org.id, make_email().id)

    stats = email_queue_service.get_queue_stats(db, test_org.id)

    assert stats["pending"] == 1
    assert stats["total"] == 1
    for status in QueueStatus:
        assert status.value in stats


def test_reset_failed_respects_max_attempts(db, test_org, make_email):
    retryable = email_queue_service.add_to_queue(db, test_org.id, make_email().id)
    exhausted = email_queue_service.add_to_queue(db, test_org.id, make_email().id)
    for item, attempts in ((retryable, 1), (exhausted, 3)):
        item.status = QueueStatus.FAILED.value
        item.processing_attempts = attempts
        item.error_message = "boom"
    db.commit()

    count = email_queue_service.reset_failed_queue_items(db, test_org.id, max_attempts=3)

    assert count == 1
    db.expire_all()
    assert retryable.status == QueueStatus.PENDING.value
    assert retryable.error_message is None
    assert exhausted.status == QueueStatus.FAILED.value


def test_cleanup_removes_only_old_finished_items(db, test_org, make_email):
    old_done = email_queue_service.add_to_queue(db, test_org.id, make_email().id)
    old_pending = email_queue_service.add_to_queue(db, test_org.id, make_email().id)
    recent_done = email_queue_service.add_to_queue(db, test_org.id, make_email().id)

    long_ago = datetime.now(timezone.utc) - timedelta(days=45)
    old_done.status = QueueStatus.COMPLETED.value
    old_done.created_at = long_ago
    old_pending.created_at = long_ago
    recent_done.status = QueueStatus.APPROVED.value
    db.commit()
    old_done_id = old_done.id

    count = email_queue_service.cleanup_old_queue_items(db, test_org.id, days_to_keep=30)

    assert count == 1
    db.expire_all()
    remaining = {i.id for i in db.query(EmailQueueItem).all()}
    assert old_done_id not in remaining
    assert remaining == {old_pending.id, recent_done.id}
