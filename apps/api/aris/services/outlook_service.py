"""Microsoft Graph mailbox fetcher.

Initial runs page through ``/me/mailFolders/{folder}/messages``. Incremental
runs replay the folder's ``/delta`` link.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
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

GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"
MAX_PAGE_SIZE = 100

# Folder names used across providers -> Graph well-known folder names
WELL_KNOWN_FOLDERS = {
    "INBOX": "inbox",
    "SENT": "sentitems",
    "SENT ITEMS": "sentitems",
    "DRAFTS": "drafts",
    "SPAM": "junkemail",
    "JUNK": "junkemail",
    "TRASH": "deleteditems",
}

MESSAGE_FIELDS = ",".join([
    "id",
    "internetMessageId",
    "conversationId",
    "subject",
    "from",
    "toRecipients",
    "receivedDateTime",
    "sentDateTime",
    "isRead",
    "hasAttachments",
    "body",
    "bodyPreview",
])


def folder_to_graph(folder: str | None) -> str:
    if not folder:
        return "inbox"
    return WELL_KNOWN_FOLDERS.get(folder.upper(), folder)


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_graph_message(data: dict[str, Any], folder: str | None = None) -> FetchedEmail:
    """Convert a Graph message resource into a FetchedEmail."""
    body = data.get("body") or {}
    content_type = (body.get("contentType") or "").lower()
    content = body.get("content")
    sender = ((data.get("from") or {}).get("emailAddress") or {}).get("address")
    recipients = [
        (r.get("emailAddress") or {}).get("address")
        for r in data.get("toRecipients") or []
    ]
    graph_folder = folder_to_graph(folder)

    return FetchedEmail(
        message_id=data.get("internetMessageId") or data["id"],
        thread_id=data.get("conversationId"),
        subject=data.get("subject"),
        sender_email=sender,
        recipient_email=", ".join(r for r in recipients if r) or None,
        sent_at=_parse_datetime(data.get("sentDateTime")),
        received_at=_parse_datetime(data.get("receivedDateTime")),
        plain_content=content if content_type == "text" else data.get("bodyPreview"),
        html_content=content if content_type == "html" else None,
        has_attachments=bool(data.get("hasAttachments")),
        is_read=bool(data.get("isRead")),
        folder=folder,
        email_type=EmailType.SENT if graph_folder == "sentitems" else EmailType.RECEIVED,
    )


async def _get(
    client: httpx.AsyncClient,
    access_token: str,
    url: str,
    params: dict | None = None,
) -> dict[str, Any]:
    response = await request_with_retries(
        lambda: client.get(
            url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Prefer": f"odata.maxpagesize={MAX_PAGE_SIZE}",
            },
            params=params,
        ),
        label="Graph API request",
    )
    if response.status_code == 401:
        raise MailboxAuthError("Microsoft Graph rejected the access token")
    if response.status_code == 410:
        raise CursorExpiredError("Graph delta link expired")
    if response.status_code >= 400:
        raise MailboxError(f"Graph API error: {response.status_code}")
    return response.json()


async def get_profile(
    access_token: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Return the signed-in user's profile (``mail``, ``userPrincipalName``)."""
    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        return await _get(client, access_token, f"{GRAPH_API_BASE}/me")


async def _walk_delta(
    client: httpx.AsyncClient,
    access_token: str,
    url: str,
    params: dict | None,
    target: int | None,
    folder: str,
) -> tuple[list[FetchedEmail], str | None]:
    """Follow nextLinks until the deltaLink; stop early at ``target`` messages."""
    emails: list[FetchedEmail] = []
    while True:
        data = await _get(client, access_token, url, params)
        params = None
        for item in data.get("value") or []:
            if "@removed" in item:
                continue
            emails.append(parse_graph_message(item, folder=folder))
        delta_link = data.get("@odata.deltaLink")
        next_link = data.get("@odata.nextLink")
        if delta_link:
            return emails, delta_link
        if not next_link:
            return emails, None
        if target is not None and len(emails) >= target:
            # Resume from the unread page next time
            return emails, next_link
        url = next_link


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
    Fetch messages from a Microsoft 365 mailbox.

    With a cursor (deltaLink or an unfinished nextLink) only changes are
    read. Without one the newest ``max_emails`` are listed, then a delta
    link anchored at the newest message is established for later runs.
    """
    graph_folder = folder_to_graph(folder)
    target = clamp_target_count(max_emails, 200)

    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        if cursor:
            emails, next_cursor = await _walk_delta(
                client, access_token, cursor, None, target, folder
            )
            return FetchResult(emails=emails, cursor=next_cursor or cursor)

        url = f"{GRAPH_API_BASE}/me/mailFolders/{graph_folder}/messages"
        params: dict[str, Any] | None = {
            "$top": min(MAX_PAGE_SIZE, target),
            "$orderby": "receivedDateTime desc",
            "$select": MESSAGE_FIELDS,
        }
        if since:
            params["$filter"] = f"receivedDateTime ge {since.strftime('%Y-%m-%dT%H:%M:%SZ')}"

        emails = []
        while url and len(emails) < target:
            data = await _get(client, access_token, url, params)
            params = None
            emails.extend(
                parse_graph_message(item, folder=folder) for item in data.get("value") or []
            )
            url = data.get("@odata.nextLink")
        emails = emails[:target]

        anchor = max(
            (e.received_at for e in emails if e.received_at),
            default=datetime.now(timezone.utc),
        )
        _, delta_link = await _walk_delta(
            client,
            access_token,
            f"{GRAPH_API_BASE}/me/mailFolders/{graph_folder}/messages/delta",
            {
                "$filter": f"receivedDateTime ge {anchor.strftime('%Y-%m-%dT%H:%M:%SZ')}",
                "$select": MESSAGE_FIELDS,
            },
            None,
            folder,
        )

    logger.info("Graph fetch returned %d messages", len(emails))
    return FetchResult(emails=emails, cursor=delta_link)
