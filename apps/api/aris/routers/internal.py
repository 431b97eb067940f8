"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from external cron (Render/Railway/GH Actions).
"""
from typing import Any

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel

from aris.core.config import settings
from aris.core.security import secrets_match
from aris.db.session import SessionLocal
from aris.services import email_queue_service, metakocka_auto_sync, real_time_sync_service


router = APIRouter(prefix="/internal/scheduled", tags=["internal"])


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if not secrets_match(x_internal_secret, expected):
        raise HTTPException(status_code=403, detail="Invalid internal secret")


class EmailPollingResponse(BaseModel):
    accounts_checked: int
    accounts_synced: int
    emails_stored: int
    emails_queued: int
    errors: list[dict[str, Any]]


class EmailQueueRunResponse(BaseModel):
    processed: int
    completed: int
    require_review: int
    failed: int
    reset: int
    cleaned_up: int


class AutoSyncRunResponse(BaseModel):
    orgs_checked: int
    syncs_run: int
    errors: list[dict[str, Any]]


@router.post("/email-polling", response_model=EmailPollingResponse)
async def poll_email_accounts(x_internal_secret: str = Header(...)):
    """
    Incremental sync for every account whose next_sync_at is due.

    New emails are queued for AI processing unless the account disabled it.
    """
    verify_internal_secret(x_internal_secret)

    with SessionLocal() as db:
        summary = await real_time_sync_service.run_due_syncs(db)
    return EmailPollingResponse(**summary)


@router.post("/email-queue", response_model=EmailQueueRunResponse)
async def run_email_queue(x_internal_secret: str = Header(...)):
    """Process a batch of pending queue items, then reset retryable failures and prune."""
    verify_internal_secret(x_internal_secret)

    with SessionLocal() as db:
        processed = await email_queue_service.process_pending_emails(
            db, batch_size=settings.EMAIL_QUEUE_BATCH_SIZE
        )
        maintenance = email_queue_service.run_scheduled_maintenance(db)
    return EmailQueueRunResponse(**processed, **maintenance)


@router.post("/metakocka-auto-sync", response_model=AutoSyncRunResponse)
async def run_metakocka_auto_sync(x_internal_secret: str = Header(...)):
    """Run every due entity sync for orgs with auto-sync enabled."""
    verify_internal_secret(x_internal_secret)

    with SessionLocal() as db:
        summary = await metakocka_auto_sync.run_auto_sync(db)
    return AutoSyncRunResponse(**summary)
