"""Real-time sync manager.

Mailboxes with real-time sync enabled carry a ``next_sync_at`` timestamp.
An external cron (``/internal/scheduled/email-polling``) or the worker calls
``run_due_syncs`` which runs an incremental sync for each due account and
schedules its next run.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from aris.db.enums import EmailProvider, EmailType, SyncMode
from aris.db.models import EmailAccount, EmailIndex
from aris.db.types import as_utc
from aris.jobs.utils import mask_email
from aris.services import email_sync_service

logger = logging.getLogger(__name__)

FAST_POLLING_PROVIDERS = {"microsoft", "outlook", "google", "gmail", "imap"}
WEBHOOK_PROVIDERS = {"microsoft", "outlook", "google", "gmail"}

DEFAULT_FAST_INTERVAL_MINUTES = 0.5
DEFAULT_INTERVAL_MINUTES = 1.0

WEBHOOK_MIN_SECONDS = 30
WEBHOOK_MAX_SECONDS = 120
OAUTH_MIN_SECONDS = 60
IMAP_MIN_SECONDS = 30

DEFAULT_BATCH_LIMIT = 50


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def default_polling_interval(provider: str) -> float:
    """Default polling interval in minutes."""
    if (provider or "").lower() in FAST_POLLING_PROVIDERS:
        return DEFAULT_FAST_INTERVAL_MINUTES
    return DEFAULT_INTERVAL_MINUTES


def calculate_polling_interval(
    provider: str,
    base_minutes: float,
    enable_webhooks: bool,
) -> float:
    """
    Effective polling interval in seconds.

    Webhook-capable providers with webhooks on poll as a safety net, between
    30 seconds and 2 minutes. Without webhooks OAuth providers poll no
    faster than once a minute and IMAP no faster than every 30 seconds.
    """
    provider = (provider or "").lower()
    base_seconds = base_minutes * 60

    if enable_webhooks and provider in WEBHOOK_PROVIDERS:
        return max(WEBHOOK_MIN_SECONDS, min(base_seconds, WEBHOOK_MAX_SECONDS))
    if provider in WEBHOOK_PROVIDERS:
        return max(base_seconds, OAUTH_MIN_SECONDS)
    if provider == EmailProvider.IMAP.value:
        return max(base_seconds, IMAP_MIN_SECONDS)
    return base_seconds


def build_config(account: EmailAccount, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    config = {
        "provider": account.provider_type,
        "account_id": str(account.id),
        "user_id": str(account.user_id),
        "email": account.email,
        "enable_webhooks": account.enable_webhooks,
        "polling_interval": account.polling_interval_minutes
        or default_polling_interval(account.provider_type),
        "enable_ai": True,
        "enable_draft_preparation": True,
    }
    config.update(overrides)
    return config


def interval_seconds_for(account: EmailAccount) -> float:
    config = account.sync_config or build_config(account)
    return calculate_polling_interval(
        account.provider_type,
        float(config.get("polling_interval") or default_polling_interval(account.provider_type)),
        bool(config.get("enable_webhooks")),
    )


async def start_real_time_sync(
    db: Session,
    account: EmailAccount,
    config: dict[str, Any] | None = None,
    run_initial_sync: bool = True,
) -> dict[str, Any]:
    """Store the sync config, mark the account active and optionally sync now."""
    merged = build_config(account, config)
    account.sync_config = merged
    account.enable_webhooks = bool(merged["enable_webhooks"])
    account.polling_interval_minutes = float(merged["polling_interval"])
    account.real_time_sync_active = True
    account.next_sync_at = _now_utc()
    db.commit()
    logger.info("Real-time sync started for %s", mask_email(account.email))

    if run_initial_sync:
        try:
            await email_sync_service.sync_account(db, account, mode=SyncMode.INITIAL)
        except Exception as exc:
            # Stored on the account; polling retries it
            logger.warning("Initial real-time sync failed for %s: %s", mask_email(account.email), exc)
        else:
            account.next_sync_at = _now_utc() + timedelta(seconds=interval_seconds_for(account))
            db.commit()
    return get_sync_status(account)


def stop_real_time_sync(db: Session, account: EmailAccount) -> dict[str, Any]:
    account.real_time_sync_active = False
    account.next_sync_at = None
    db.commit()
    logger.info("Real-time sync stopped for %s", mask_email(account.email))
    return get_sync_status(account)


def get_sync_status(account: EmailAccount) -> dict[str, Any]:
    return {
        "account_id": account.id,
        "active": account.real_time_sync_active,
        "config": account.sync_config,
        "polling_interval_seconds": (
            interval_seconds_for(account) if account.real_time_sync_active else None
        ),
        "last_sync_at": account.last_sync_at,
        "next_sync_at": account.next_sync_at,
        "last_sync_error": account.last_sync_error,
    }


def start_all_active_syncs(db: Session) -> int:
    """Re-arm every real-time account so it is polled on the next tick."""
    now = _now_utc()
    count = db.query(EmailAccount).filter(
        EmailAccount.real_time_sync_active.is_(True),
        EmailAccount.is_active.is_(True),
    ).update({"next_sync_at": now}, synchronize_session=False)
    db.commit()
    return count


def get_due_accounts(
    db: Session,
    now: datetime | None = None,
    limit: int = DEFAULT_BATCH_LIMIT,
) -> list[EmailAccount]:
    """Active real-time accounts whose next_sync_at has passed (NULL is due)."""
    now = now or _now_utc()
    return (
        db.query(EmailAccount)
        .filter(
            EmailAccount.is_active.is_(True),
            EmailAccount.real_time_sync_active.is_(True),
            or_(EmailAccount.next_sync_at.is_(None), EmailAccount.next_sync_at <= now),
        )
        .order_by(EmailAccount.next_sync_at.asc())
        .limit(limit)
        .all()
    )


def _enqueue_new_emails(db: Session, account: EmailAccount, email_ids: list[UUID]) -> int:
    from aris.services import email_queue_service

    if not email_ids:
        return 0
    received = db.query(EmailIndex).filter(
        EmailIndex.id.in_(email_ids),
        EmailIndex.email_type == EmailType.RECEIVED.value,
    ).all()
    for email in received:
        email_queue_service.add_to_queue(
            db,
            org_id=account.organization_id,
            email_id=email.id,
            user_id=account.user_id,
        )
    return len(received)


async def run_due_syncs(
    db: Session,
    now: datetime | None = None,
    limit: int = DEFAULT_BATCH_LIMIT,
) -> dict[str, Any]:
    """
    Run incremental syncs for every due account.

    A failing account records ``last_sync_error`` and is rescheduled; the
    rest of the batch continues.
    """
    now = now or _now_utc()
    accounts = get_due_accounts(db, now=now, limit=limit)
    summary: dict[str, Any] = {
        "accounts_checked": len(accounts),
        "accounts_synced": 0,
        "emails_stored": 0,
        "emails_queued": 0,
        "errors": [],
    }

    for account in accounts:
        interval = timedelta(seconds=interval_seconds_for(account))
        try:
            result = await email_sync_service.sync_account(db, account, mode=SyncMode.INCREMENTAL)
        except Exception as exc:
            summary["errors"].append({"account_id": str(account.id), "error": str(exc)})
        else:
            summary["accounts_synced"] += 1
            summary["emails_stored"] += result.stored
            if (account.sync_config or {}).get("enable_ai", True):
                summary["emails_queued"] += _enqueue_new_emails(db, account, result.stored_ids)
        base = as_utc(account.next_sync_at) or now
        account.next_sync_at = max(base, now) + interval
        db.commit()

    if accounts:
        logger.info(
            "Email polling: %d checked, %d synced, %d errors",
            summary["accounts_checked"],
            summary["accounts_synced"],
            len(summary["errors"]),
        )
    return summary
