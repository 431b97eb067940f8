"""Tests for mailbox sync, storage idempotency and real-time polling."""

from datetime import datetime, timedelta, timezone

import pytest

from aris.db.enums import EmailType, SyncMode
from aris.db.models import EmailContentCache, EmailIndex, EmailQueueItem
from aris.db.types import as_utc
from aris.services import email_sync_service, real_time_sync_service
from aris.services.mailbox import CursorExpiredError, FetchedEmail, FetchResult


def _fetched(message_id: str, **kwargs) -> FetchedEmail:
    defaults = {
        "subject": f"Subject {message_id}",
        "sender_email": "customer@example.com",
        "recipient_email": "sales@test.com",
        "plain_content": "Hello there,\n\nplease send a quote.",
        "received_at": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    }
    defaults.update(kwargs)
    return FetchedEmail(message_id=message_id, **defaults)


# =============================================================================
# Storage
# =============================================================================


def test_store_fetched_emails_skips_known_messages(db, email_account):
    first = email_sync_service.store_fetched_emails(
        db, email_account, [_fetched("m1"), _fetched("m2")]
    )
    assert first.stored == 2
    assert first.duplicates == 0

    second = email_sync_service.store_fetched_emails(
        db, email_account, [_fetched("m2"), _fetched("m3"), _fetched("m3")]
    )
    assert second.stored == 1
    assert second.duplicates == 2

    assert db.query(EmailIndex).count() == 3
    assert db.query(EmailContentCache).count() == 3


def test_store_fetched_emails_builds_preview_and_content(db, email_account):
    result = email_sync_service.store_fetched_emails(
        db,
        email_account,
        [_fetched("m1", html_content="<p>Hi</p>", email_type=EmailType.SENT)],
        folder="Sent",
    )

    row = db.query(EmailIndex).filter(EmailIndex.id == result.stored_ids[0]).one()
    assert row.preview_text == "Hello there, please send a quote."
    assert row.email_type == "sent"
    assert row.folder_name == "Sent"
    assert row.organization_id == email_account.organization_id
    assert row.content.html_content == "<p>Hi</p>"


def test_store_fetched_emails_reports_missing_ids(db, email_account):
    result = email_sync_service.store_fetched_emails(db, email_account, [_fetched("")])

    assert result.stored == 0
    assert result.errors == ["Message without an id skipped"]


# =============================================================================
# Sync
# =============================================================================


@pytest.mark.asyncio
async def test_incremental_without_cursor_runs_initial_then_resumes(db, email_account, monkeypatch):
    calls = []

    async def fake_fetch(db, account, *, folder, cursor, max_emails, since=None):
        calls.append({"cursor": cursor, "max_emails": max_emails})
        if cursor is None:
            return FetchResult(emails=[_fetched("m1")], cursor="c1")
        return FetchResult(emails=[_fetched("m2")], cursor="c2")

    monkeypatch.setattr(email_sync_service, "fetch_from_provider", fake_fetch)

    first = await email_sync_service.sync_account(db, email_account, mode=SyncMode.INCREMENTAL)
    second = await email_sync_service.sync_account(db, email_account, mode=SyncMode.INCREMENTAL)

    assert calls == [
        {"cursor": None, "max_emails": 200},
        {"cursor": "c1", "max_emails": 50},
    ]
    assert first.stored == 1
    assert second.stored == 1
    state = email_sync_service.get_sync_state(db, email_account.id, "INBOX")
    assert state.cursor == "c2"
    assert email_account.last_sync_at is not None
    assert email_account.last_sync_error is None


@pytest.mark.asyncio
async def test_expired_cursor_falls_back_to_full_fetch(db, email_account, monkeypatch):
    seen = []

    async def fake_fetch(db, account, *, folder, cursor, max_emails, since=None):
        seen.append(cursor)
        if cursor:
            raise CursorExpiredError("history too old")
        return FetchResult(emails=[_fetched("m1")], cursor="fresh")

    monkeypatch.setattr(email_sync_service, "fetch_from_provider", fake_fetch)

    email_sync_service._save_cursor(db, email_account, "INBOX", "stale")
    db.commit()

    result = await email_sync_service.sync_account(db, email_account, mode=SyncMode.INCREMENTAL)

    assert seen == ["stale", None]
    assert result.stored == 1
    assert result.cursor == "fresh"


@pytest.mark.asyncio
async def test_sync_failure_records_error_and_raises(db, email_account, monkeypatch):
    async def failing_fetch(*args, **kwargs):
        raise RuntimeError("provider down")

    monkeypatch.setattr(email_sync_service, "fetch_from_provider", failing_fetch)

    with pytest.raises(RuntimeError):
        await email_sync_service.sync_account(db, email_account)

    db.refresh(email_account)
    assert email_account.last_sync_error == "provider down"


@pytest.mark.asyncio
async def test_catch_up_sync_reports_new_emails(db, email_account, make_email, monkeypatch):
    make_email(message_id="existing")
    captured = {}

    async def fake_fetch(db, account, *, folder, cursor, max_emails, since=None):
        captured["max_emails"] = max_emails
        captured["since"] = since
        return FetchResult(emails=[_fetched("existing"), _fetched("new-1")], cursor=None)

    monkeypatch.setattr(email_sync_service, "fetch_from_provider", fake_fetch)

    result = await email_sync_service.catch_up_sync(db, email_account, sync_days=7)

    assert result == {"emails_before": 1, "emails_after": 2, "new_emails": 1, "days_synced": 7}
    assert captured["max_emails"] == 1000
    assert captured["since"] < datetime.now(timezone.utc) - timedelta(days=6)


def test_list_emails_filters_and_searches(db, test_org, make_email):
    make_email(subject="Invoice 42", sender="billing@acme.test")
    make_email(subject="Lunch?", sender="friend@example.com")
    make_email(subject="Sent reply", email_type="sent")

    items, total = email_sync_service.list_emails(db, test_org.id, search="acme")
    assert total == 1
    assert items[0].subject == "Invoice 42"

    _, received_total = email_sync_service.list_emails(db, test_org.id, email_type="received")
    assert received_total == 2


def test_get_email_content_unknown_message(db, test_org):
    with pytest.raises(email_sync_service.EmailNotFoundError):
        email_sync_service.get_email_content(db, test_org.id, "missing")


# =============================================================================
# Real-time polling
# =============================================================================


@pytest.mark.parametrize(
    "provider,base_minutes,webhooks,expected",
    [
        ("google", 0.5, True, 30),
        ("microsoft", 5, True, 120),
        ("google", 0.5, False, 60),
        ("outlook", 3, False, 180),
        ("imap", 0.25, False, 30),
        ("imap", 2, True, 120),
    ],
)
def test_calculate_polling_interval(provider, base_minutes, webhooks, expected):
    assert real_time_sync_service.calculate_polling_interval(provider, base_minutes, webhooks) == expected


def test_default_polling_interval():
    assert real_time_sync_service.default_polling_interval("gmail") == 0.5
    assert real_time_sync_service.default_polling_interval("other") == 1.0


@pytest.mark.asyncio
async def test_start_and_stop_real_time_sync(db, email_account):
    status = await real_time_sync_service.start_real_time_sync(
        db, email_account, config={"polling_interval": 2}, run_initial_sync=False
    )

    assert status["active"] is True
    assert status["config"]["polling_interval"] == 2
    assert status["polling_interval_seconds"] == 120
    assert email_account.next_sync_at is not None

    stopped = real_time_sync_service.stop_real_time_sync(db, email_account)
    assert stopped["active"] is False
    assert stopped["next_sync_at"] is None


def test_due_accounts_only_include_active_and_elapsed(db, email_account):
    now = datetime.now(timezone.utc)
    email_account.real_time_sync_active = True
    email_account.next_sync_at = now + timedelta(minutes=5)
    db.commit()

    assert real_time_sync_service.get_due_accounts(db, now=now) == []
    assert real_time_sync_service.get_due_accounts(db, now=now + timedelta(minutes=6)) == [email_account]

    email_account.is_active = False
    db.commit()
    assert real_time_sync_service.get_due_accounts(db, now=now + timedelta(minutes=6)) == []


@pytest.mark.asyncio
async def test_run_due_syncs_stores_queues_and_reschedules(db, email_account, monkeypatch):
    async def fake_fetch(db, account, *, folder, cursor, max_emails, since=None):
        return FetchResult(
            emails=[_fetched("in-1"), _fetched("out-1", email_type=EmailType.SENT)],
            cursor="c1",
        )

    monkeypatch.setattr(email_sync_service, "fetch_from_provider", fake_fetch)

    now = datetime.now(timezone.utc)
    email_account.real_time_sync_active = True
    email_account.next_sync_at = None
    email_account.polling_interval_minutes = 2
    db.commit()

    summary = await real_time_sync_service.run_due_syncs(db, now=now)

    assert summary == {
        "accounts_checked": 1,
        "accounts_synced": 1,
        "emails_stored": 2,
        "emails_queued": 1,
        "errors": [],
    }
    assert db.query(EmailQueueItem).count() == 1
    assert as_utc(email_account.next_sync_at) == now + timedelta(seconds=120)


@pytest.mark.asyncio
async def test_run_due_syncs_continues_after_failure(db, email_account, monkeypatch):
    async def failing_fetch(*args, **kwargs):
        raise RuntimeError("token revoked")

    monkeypatch.setattr(email_sync_service, "fetch_from_provider", failing_fetch)

    now = datetime.now(timezone.utc)
    email_account.real_time_sync_active = True
    db.commit()

    summary = await real_time_sync_service.run_due_syncs(db, now=now)

    assert summary["accounts_synced"] == 0
    assert summary["errors"] == [{"account_id": str(email_account.id), "error": "token revoked"}]
    assert as_utc(email_account.next_sync_at) > now
