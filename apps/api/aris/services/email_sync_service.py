"""Email sync service - pull mail from providers into the email index.

Every fetched message becomes one ``email_index`` row plus one
``email_content_cache`` row. UNIQUE(email_account_id, message_id) makes
re-syncs idempotent: known messages are counted as duplicates and skipped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aris.db.enums import EmailProvider, SyncMode
from aris.db.models import EmailAccount, EmailContentCache, EmailIndex, EmailSyncState
from aris.jobs.utils import mask_email
from aris.services import email_account_service
from aris.services.mailbox import CursorExpiredError, FetchedEmail, FetchResult

logger = logging.getLogger(__name__)

INITIAL_MAX_EMAILS = 200
INCREMENTAL_MAX_EMAILS = 50
CATCH_UP_MAX_EMAILS = 1000
AI_LEARNING_MIN_EMAILS = 10
MAX_ERROR_LENGTH = 1000


class EmailSyncError(Exception):
    """Base exception for email sync operations."""


class EmailNotFoundError(EmailSyncError):
    pass


@dataclass
class SyncResult:
    fetched: int = 0
    stored: int = 0
    duplicates: int = 0
    errors: list[str] = field(default_factory=list)
    cursor: str | None = None
    stored_ids: list[UUID] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "fetched": self.fetched,
            "stored": self.stored,
            "duplicates": self.duplicates,
            "errors": list(self.errors),
            "cursor": self.cursor,
        }


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Sync state
# =============================================================================


def get_sync_state(db: Session, account_id: UUID, folder: str) -> EmailSyncState | None:
    return db.query(EmailSyncState).filter(
        EmailSyncState.email_account_id == account_id,
        EmailSyncState.folder == folder,
    ).first()


def _save_cursor(db: Session, account: EmailAccount, folder: str, cursor: str | None) -> None:
    state = get_sync_state(db, account.id, folder)
    if state is None:
        state = EmailSyncState(email_account_id=account.id, folder=folder)
        db.add(state)
    if cursor:
        state.cursor = cursor
    state.last_synced_at = _now_utc()


# =============================================================================
# Storage
# =============================================================================


def _index_row(account: EmailAccount, fetched: FetchedEmail, folder: str) -> EmailIndex:
    row = EmailIndex(
        organization_id=account.organization_id,
        email_account_id=account.id,
        user_id=account.user_id,
        message_id=fetched.message_id,
        thread_id=fetched.thread_id,
        subject=fetched.subject,
        preview_text=fetched.preview_text,
        sender_email=fetched.sender_email,
        recipient_email=fetched.recipient_email,
        email_type=fetched.email_type.value,
        folder_name=fetched.folder or folder,
        sent_at=fetched.sent_at,
        received_at=fetched.received_at or fetched.sent_at,
        has_attachments=fetched.has_attachments,
        is_read=fetched.is_read,
    )
    row.content = EmailContentCache(
        message_id=fetched.message_id,
        html_content=fetched.html_content,
        plain_content=fetched.plain_content,
    )
    return row


def store_fetched_emails(
    db: Session,
    account: EmailAccount,
    emails: list[FetchedEmail],
    folder: str = "INBOX",
    result: SyncResult | None = None,
) -> SyncResult:
    """
    Insert index + content rows for messages not yet stored.

    Safe to call repeatedly with the same messages.
    """
    result = result or SyncResult()
    candidates: dict[str, FetchedEmail] = {}
    for fetched in emails:
        if not fetched.message_id:
            result.errors.append("Message without an id skipped")
            continue
        if fetched.message_id in candidates:
            result.duplicates += 1
            continue
        candidates[fetched.message_id] = fetched

    if candidates:
        existing = {
            message_id
            for (message_id,) in db.query(EmailIndex.message_id).filter(
                EmailIndex.email_account_id == account.id,
                EmailIndex.message_id.in_(list(candidates)),
            )
        }
        result.duplicates += len(existing)
        new_rows = [
            _index_row(account, fetched, folder)
            for message_id, fetched in candidates.items()
            if message_id not in existing
        ]
    else:
        new_rows = []

    if not new_rows:
        return result

    db.add_all(new_rows)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent sync stored some of these; fall back to row-by-row
        db.rollback()
        new_rows = _store_one_by_one(db, account, [candidates[r.message_id] for r in new_rows], folder, result)
    result.stored += len(new_rows)
    result.stored_ids.extend(row.id for row in new_rows)
    return result


def _store_one_by_one(
    db: Session,
    account: EmailAccount,
    emails: list[FetchedEmail],
    folder: str,
    result: SyncResult,
) -> list[EmailIndex]:
    stored = []
    for fetched in emails:
        row = _index_row(account, fetched, folder)
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            result.duplicates += 1
            continue
        stored.append(row)
    return stored


# =============================================================================
# Provider dispatch
# =============================================================================


async def fetch_from_provider(
    db: Session,
    account: EmailAccount,
    *,
    folder: str,
    cursor: str | None,
    max_emails: int,
    since: datetime | None = None,
) -> FetchResult:
    from aris.services import gmail_service, imap_service, outlook_service

    provider = email_account_service.normalize_provider(account.provider_type)
    if provider == EmailProvider.IMAP:
        return await imap_service.fetch_messages(
            imap_service.credentials_for(account),
            folder=folder,
            cursor=cursor,
            max_emails=max_emails,
            since=since,
        )

    token = await email_account_service.get_valid_access_token(db, account)
    fetcher = gmail_service if provider == EmailProvider.GOOGLE else outlook_service
    return await fetcher.fetch_messages(
        token,
        folder=folder,
        cursor=cursor,
        max_emails=max_emails,
        since=since,
    )


# =============================================================================
# Sync operations
# =============================================================================


async def sync_account(
    db: Session,
    account: EmailAccount,
    mode: SyncMode | str = SyncMode.INITIAL,
    max_emails: int | None = None,
    folder: str = "INBOX",
    since: datetime | None = None,
) -> SyncResult:
    """
    Sync one folder of a mailbox.

    Initial mode reads the newest ``max_emails`` (200). Incremental mode
    (50) resumes from the stored cursor and falls back to an initial run when
    there is none or the provider no longer accepts it.

    On failure ``last_sync_error`` is stored and the exception re-raised.
    """
    mode = SyncMode(mode)
    state = get_sync_state(db, account.id, folder)
    cursor = state.cursor if state else None
    if mode == SyncMode.INCREMENTAL and not cursor:
        logger.info("No cursor for %s/%s, running initial sync", mask_email(account.email), folder)
        mode = SyncMode.INITIAL
    if max_emails is None:
        max_emails = INITIAL_MAX_EMAILS if mode == SyncMode.INITIAL else INCREMENTAL_MAX_EMAILS

    try:
        try:
            fetched = await fetch_from_provider(
                db,
                account,
                folder=folder,
                cursor=cursor if mode == SyncMode.INCREMENTAL else None,
                max_emails=max_emails,
                since=since,
            )
        except CursorExpiredError:
            logger.warning("Sync cursor expired for %s, resyncing", mask_email(account.email))
            fetched = await fetch_from_provider(
                db, account, folder=folder, cursor=None, max_emails=max_emails, since=since
            )

        result = SyncResult(fetched=len(fetched.emails), cursor=fetched.cursor)
        store_fetched_emails(db, account, fetched.emails, folder=folder, result=result)

        _save_cursor(db, account, folder, fetched.cursor)
        account.last_sync_at = _now_utc()
        account.last_sync_error = None
        db.commit()
    except Exception as exc:
        db.rollback()
        account.last_sync_error = str(exc)[:MAX_ERROR_LENGTH] or exc.__class__.__name__
        db.commit()
        logger.warning("Email sync failed for %s: %s", mask_email(account.email), exc)
        raise

    logger.info(
        "Synced %s (%s): fetched=%d stored=%d duplicates=%d",
        mask_email(account.email),
        mode.value,
        result.fetched,
        result.stored,
        result.duplicates,
    )
    return result


def count_emails(db: Session, account_id: UUID) -> int:
    return db.query(EmailIndex).filter(EmailIndex.email_account_id == account_id).count()


async def setup_account(db: Session, account: EmailAccount) -> dict[str, Any]:
    """
    First-time setup for a newly connected mailbox.

    Runs the initial sync, learns sender patterns once enough mail is
    available, starts real-time sync and marks the account as set up.
    """
    from aris.services import email_analysis_service, real_time_sync_service

    results: dict[str, Any] = {"account_id": str(account.id)}

    sync = await sync_account(db, account, mode=SyncMode.INITIAL)
    results["initial_sync"] = sync.as_dict()

    processed = count_emails(db, account.id)
    results["emails_processed"] = processed
    if processed >= AI_LEARNING_MIN_EMAILS:
        results["ai_learning"] = email_analysis_service.learn_from_emails(db, account)
    else:
        results["ai_learning"] = {
            "skipped": True,
            "reason": f"Need at least {AI_LEARNING_MIN_EMAILS} emails, found {processed}",
        }

    await real_time_sync_service.start_real_time_sync(db, account, run_initial_sync=False)
    results["real_time_sync"] = True

    now = _now_utc()
    account.setup_completed = True
    account.setup_completed_at = now
    account.last_full_sync_at = now
    db.commit()
    results["setup_completed"] = True
    return results


async def catch_up_sync(db: Session, account: EmailAccount, sync_days: int = 30) -> dict[str, int]:
    """Re-read the last ``sync_days`` days to fill any gaps."""
    before = count_emails(db, account.id)
    since = _now_utc() - timedelta(days=sync_days)
    await sync_account(
        db,
        account,
        mode=SyncMode.INITIAL,
        max_emails=CATCH_UP_MAX_EMAILS,
        since=since,
    )
    after = count_emails(db, account.id)
    account.last_full_sync_at = _now_utc()
    db.commit()
    return {
        "emails_before": before,
        "emails_after": after,
        "new_emails": after - before,
        "days_synced": sync_days,
    }


# =============================================================================
# Reading
# =============================================================================


def list_emails(
    db: Session,
    org_id: UUID,
    account_id: UUID | None = None,
    folder: str | None = None,
    email_type: str | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[EmailIndex], int]:
    """List indexed emails, newest first."""
    query = db.query(EmailIndex).filter(EmailIndex.organization_id == org_id)
    if account_id:
        query = query.filter(EmailIndex.email_account_id == account_id)
    if folder:
        query = query.filter(EmailIndex.folder_name == folder)
    if email_type:
        query = query.filter(EmailIndex.email_type == email_type)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                EmailIndex.subject.ilike(pattern),
                EmailIndex.sender_email.ilike(pattern),
                EmailIndex.preview_text.ilike(pattern),
            )
        )
    total = query.count()
    items = (
        query.order_by(EmailIndex.received_at.desc(), EmailIndex.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def get_email_content(
    db: Session,
    org_id: UUID,
    message_id: str,
) -> tuple[EmailIndex, EmailContentCache | None]:
    email = db.query(EmailIndex).filter(
        EmailIndex.organization_id == org_id,
        EmailIndex.message_id == message_id,
    ).first()
    if not email:
        raise EmailNotFoundError("Email not found")
    return email, email.content
