"""Email sync and queue job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

from aris.core.config import settings
from aris.db.enums import SyncMode
from aris.jobs.utils import mask_email
from aris.services import email_account_service, email_queue_service, email_sync_service

logger = logging.getLogger(__name__)


async def process_email_sync(db, job) -> None:
    """Sync one mailbox. Errors propagate so the job is retried."""
    payload = job.payload or {}
    account_id = payload.get("account_id")
    if not account_id:
        raise ValueError("Missing account_id in job payload")

    account = email_account_service.get_account(db, job.organization_id, UUID(str(account_id)))
    mode = SyncMode(payload.get("mode") or SyncMode.INCREMENTAL.value)
    result = await email_sync_service.sync_account(
        db, account, mode=mode, max_emails=payload.get("max_emails")
    )
    logger.info(
        "Email sync job %s for %s: fetched=%s stored=%s duplicates=%s",
        job.id,
        mask_email(account.email),
        result.fetched,
        result.stored,
        result.duplicates,
    )


async def process_email_queue(db, job) -> None:
    payload = job.payload or {}
    batch_size = int(payload.get("batch_size") or settings.EMAIL_QUEUE_BATCH_SIZE)
    results = await email_queue_service.process_pending_emails(
        db, org_id=job.organization_id, batch_size=batch_size
    )
    logger.info("Email queue job %s: %s", job.id, results)
