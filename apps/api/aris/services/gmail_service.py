"""Gmail API mailbox fetcher.

Lists messages from ``users/me/messages`` and reads each with
``format=full``. Incremental runs walk the ``history`` API from the stored
historyId.
"""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from email.utils import getaddresses, parseaddr, parsedate_to_datetime
from typing import Any

import httpx

from aris.db.enums import EmailType
from aris.services.http_service import request_with_retries
from aris.services.mailbox import (
    CursorExpiredError,
    FetchedEmail,
    FetchResult,
    MailboxAuthError,
    MailboxError,
    clamp_target_count,
)

logger = logging.getLogger(__name__)

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"
MAX_PAGE_SIZE = 500

# Folder names used across providers -> Gmail system labels
FOLDER_LABELS = {
    "INBOX": "INBOX",
    "SENT": "SENT",
    "SENT ITEMS": "SENT",
    "DRAFTS": "DRAFT",
    "SPAM": "SPAM",
    "TRASH": "TRASH",
}


def folder_to_label(folder: str | None) -> str:
    if not folder:
        return "INBOX"
    return FOLDER_LABELS.get(folder.upper(), folder)


# =============================================================================
# Parsing
# =============================================================================


def _decode_body(data: str | None) -> str:
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode()).decode("utf-8", errors="replace")


def _walk_parts(part: dict) -> list[dict]:
    parts = [part]
    for child in part.get("parts") or []:
        parts.extend(_walk_parts(child))
    return parts


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_gmail_message(data: dict[str, Any], folder: str | None = None) -> FetchedEmail:
    """Convert a ``format=full`` Gmail message into a FetchedEmail."""
    payload = data.get("payload") or {}
    headers = {
        h.get("name", "").lower(): h.get("value", "")
        for h in payload.get("headers") or []
    }
    labels = list(data.get("labelIds") or [])

    plain_parts: list[str] = []
    html_parts: list[str] = []
    has_attachments = False
    for part in _walk_parts(payload):
        if part.get("filename"):
            has_attachments = True
            continue
        mime_type = part.get("mimeType", "")
        body_data = (part.get("body") or {}).get("data")
        if mime_type == "text/plain" and body_data:
            plain_parts.append(_decode_body(body_data))
        elif mime_type == "text/html" and body_data:
            html_parts.append(_decode_body(body_data))

    sent_at = _parse_date(headers.get("date"))
    received_at = sent_at
    internal_date = data.get("internalDate")
    if internal_date:
        received_at = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)

    recipients = [addr for _, addr in getaddresses([headers.get("to", "")]) if addr]

    return FetchedEmail(
        message_id=data["id"],
        thread_id=data.get("threadId"),
        subject=headers.get("subject") or None,
        sender_email=parseaddr(headers.get("from", ""))[1] or None,
        recipient_email=", ".join(recipients) or None,
        sent_at=sent_at,
        received_at=received_at,
        plain_content="\n".join(plain_parts) or data.get("snippet") or None,
        html_content="\n".join(html_parts) or None,
        has_attachments=has_attachments,
        is_read="UNREAD" not in labels,
        folder=folder,
        labels=labels,
        email_type=EmailType.SENT if "SENT" in labels else EmailType.RECEIVED,
    )


# =============================================================================
# API calls
# =============================================================================


async def _get(
    client: httpx.AsyncClient,
    access_token: str,
    path: str,
    params: dict | None = None,
) -> httpx.Response:
    response = await request_with_retries(
        lambda: client.get(
            f"{GMAIL_API_BASE}/{path}",
            headers={"Authorization": f"Bearer {access_token}"},
            params=params,
        ),
        label="Gmail API request",
    )
    if response.status_code == 401:
        raise MailboxAuthError("Gmail rejected the access token")
    return response


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code >= 400:
        raise MailboxError(f"Gmail API error: {response.status_code}")


async def get_profile(
    access_token: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Return ``{emailAddress, historyId, ...}`` for the mailbox."""
    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        response = await _get(client, access_token, "profile")
        _raise_for_status(response)
        return response.json()


async def _get_message(
    client: httpx.AsyncClient, access_token: str, message_id: str, folder: str | None
) -> FetchedEmail | None:
    response = await _get(client, access_token, f"messages/{message_id}", {"format": "full"})
    if response.status_code == 404:
        # Deleted between list and get
        return None
    _raise_for_status(response)
    return parse_gmail_message(response.json(), folder=folder)


async def _list_message_ids(
    client: httpx.AsyncClient,
    access_token: str,
    label: str,
    target: int,
    since: datetime | None,
) -> list[str]:
    ids: list[str] = []
    page_token: str | None = None
    while len(ids) < target:
        params: dict[str, Any] = {
            "maxResults": min(MAX_PAGE_SIZE, target - len(ids)),
            "labelIds": label,
        }
        if since:
            params["q"] = f"after:{int(since.timestamp())}"
        if page_token:
            params["pageToken"] = page_token
        response = await _get(client, access_token, "messages", params)
        _raise_for_status(response)
        data = response.json()
        ids.extend(m["id"] for m in data.get("messages") or [])
        page_token = data.get("nextPageToken")
        if not page_token:
            break
    return ids[:target]


async def _list_history_ids(
    client: httpx.AsyncClient,
    access_token: str,
    label: str,
    start_history_id: str,
    target: int,
) -> tuple[list[str], str]:
    ids: list[str] = []
    seen: set[str] = set()
    latest = start_history_id
    page_token: str | None = None
    while True:
        params: dict[str, Any] = {
            "startHistoryId": start_history_id,
            "historyTypes": "messageAdded",
            "labelId": label,
            "maxResults": MAX_PAGE_SIZE,
        }
        if page_token:
            params["pageToken"] = page_token
        response = await _get(client, access_token, "history", params)
        if response.status_code == 404:
            raise CursorExpiredError("Gmail historyId is too old")
        _raise_for_status(response)
        data = response.json()
        latest = str(data.get("historyId") or latest)
        for record in data.get("history") or []:
            for added in record.get("messagesAdded") or []:
                message_id = (added.get("message") or {}).get("id")
                if message_id and message_id not in seen:
                    seen.add(message_id)
                    ids.append(message_id)
        page_token = data.get("nextPageToken")
        if not page_token or len(ids) >= target:
            break
    return ids[:target], latest


async def fetch_messages(
    access_token: str,
    *,
    folder: str = "INBOX",
    cursor: str | None = None,
    max_emails: int | None = None,
    since: datetime | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FetchResult:
    """
    Fetch messages from a Gmail mailbox.

    With a cursor (historyId) only messages added since that point are read;
    otherwise the most recent ``max_emails`` in the folder label are listed.
    The returned cursor is the mailbox historyId to resume from.
    """
    label = folder_to_label(folder)
    target = clamp_target_count(max_emails, 200)

    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        if cursor:
            ids, next_cursor = await _list_history_ids(client, access_token, label, cursor, target)
        else:
            profile_response = await _get(client, access_token, "profile")
            _raise_for_status(profile_response)
            next_cursor = str(profile_response.json().get("historyId") or "") or None
            ids = await _list_message_ids(client, access_token, label, target, since)

        emails = []
        for message_id in ids:
            fetched = await _get_message(client, access_token, message_id, folder)
            if fetched is not None:
                emails.append(fetched)

    logger.info("Gmail fetch returned %d messages", len(emails))
    return FetchResult(emails=emails, cursor=next_cursor)
