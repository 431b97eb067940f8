"""Provider fetchers: Gmail, Microsoft Graph and IMAP parsing and paging."""

import base64
from email.message import EmailMessage
from types import SimpleNamespace

import httpx
import pytest

from aris.db.enums import EmailType
from aris.services import gmail_service, imap_service, outlook_service
from aris.services.mailbox import (
    CursorExpiredError,
    MailboxAuthError,
    MailboxError,
    clamp_target_count,
)


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def test_clamp_target_count():
    assert clamp_target_count(None, 200) == 200
    assert clamp_target_count(0, 200) == 1
    assert clamp_target_count(50000, 200) == 10000


# =============================================================================
# Gmail
# =============================================================================

GMAIL_MESSAGE = {
    "id": "gm-1",
    "threadId": "thread-1",
    "labelIds": ["INBOX", "UNREAD"],
    "internalDate": "1714564800000",
    "snippet": "snippet text",
    "payload": {
        "mimeType": "multipart/mixed",
        "headers": [
            {"name": "Subject", "value": "Order 1001"},
            {"name": "From", "value": "Ana Novak <ana@example.com>"},
            {"name": "To", "value": "sales@test.com, Boss <boss@test.com>"},
            {"name": "Date", "value": "Wed, 01 May 2024 11:59:00 +0000"},
        ],
        "parts": [
            {
                "mimeType": "multipart/alternative",
                "parts": [
                    {"mimeType": "text/plain", "body": {"data": _b64("Hello plain")}},
                    {"mimeType": "text/html", "body": {"data": _b64("<b>Hello</b>")}},
                ],
            },
            {"mimeType": "application/pdf", "filename": "offer.pdf", "body": {"attachmentId": "x"}},
        ],
    },
}


def test_parse_gmail_message():
    fetched = gmail_service.parse_gmail_message(GMAIL_MESSAGE, folder="INBOX")

    assert fetched.message_id == "gm-1"
    assert fetched.thread_id == "thread-1"
    assert fetched.subject == "Order 1001"
    assert fetched.sender_email == "ana@example.com"
    assert fetched.recipient_email == "sales@test.com, boss@test.com"
    assert fetched.plain_content == "Hello plain"
    assert fetched.html_content == "<b>Hello</b>"
    assert fetched.has_attachments is True
    assert fetched.is_read is False
    assert fetched.email_type == EmailType.RECEIVED
    assert fetched.received_at.year == 2024
    assert fetched.sent_at.minute == 59


def test_parse_gmail_sent_message_falls_back_to_snippet():
    data = {"id": "gm-2", "labelIds": ["SENT"], "snippet": "only a snippet", "payload": {}}

    fetched = gmail_service.parse_gmail_message(data)

    assert fetched.email_type == EmailType.SENT
    assert fetched.is_read is True
    assert fetched.plain_content == "only a snippet"


def test_folder_to_label():
    assert gmail_service.folder_to_label(None) == "INBOX"
    assert gmail_service.folder_to_label("Sent Items") == "SENT"
    assert gmail_service.folder_to_label("Label_7") == "Label_7"


@pytest.mark.asyncio
async def test_gmail_fetch_lists_messages_and_returns_history_cursor():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path.endswith("/profile"):
            return httpx.Response(200, json={"emailAddress": "sales@test.com", "historyId": "900"})
        if path.endswith("/messages"):
            return httpx.Response(200, json={"messages": [{"id": "gm-1"}, {"id": "gone"}]})
        if path.endswith("/messages/gm-1"):
            return httpx.Response(200, json=GMAIL_MESSAGE)
        return httpx.Response(404)

    result = await gmail_service.fetch_messages(
        "token", max_emails=5, transport=httpx.MockTransport(handler)
    )

    assert [e.message_id for e in result.emails] == ["gm-1"]
    assert result.cursor == "900"
    assert requests[0].headers["Authorization"] == "Bearer token"
    list_request = next(r for r in requests if r.url.path.endswith("/messages"))
    assert list_request.url.params["labelIds"] == "INBOX"
    assert list_request.url.params["maxResults"] == "5"


@pytest.mark.asyncio
async def test_gmail_fetch_with_history_cursor():
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/history"):
            assert request.url.params["startHistoryId"] == "800"
            return httpx.Response(
                200,
                json={
                    "historyId": "950",
                    "history": [
                        {"messagesAdded": [{"message": {"id": "gm-1"}}]},
                        {"messagesAdded": [{"message": {"id": "gm-1"}}]},
                    ],
                },
            )
        if path.endswith("/messages/gm-1"):
            return httpx.Response(200, json=GMAIL_MESSAGE)
        return httpx.Response(500)

    result = await gmail_service.fetch_messages(
        "token", cursor="800", transport=httpx.MockTransport(handler)
    )

    assert len(result.emails) == 1
    assert result.cursor == "950"


@pytest.mark.asyncio
async def test_gmail_expired_history_raises_cursor_expired():
    transport = httpx.MockTransport(lambda request: httpx.Response(404))

    with pytest.raises(CursorExpiredError):
        await gmail_service.fetch_messages("token", cursor="1", transport=transport)


@pytest.mark.asyncio
async def test_gmail_rejected_token_raises_auth_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(401))

    with pytest.raises(MailboxAuthError):
        await gmail_service.get_profile("bad", transport=transport)


# =============================================================================
# Microsoft Graph
# =============================================================================

GRAPH_MESSAGE = {
    "id": "AAMk-1",
    "internetMessageId": "<abc@mail.example.com>",
    "conversationId": "conv-1",
    "subject": "Quote request",
    "from": {"emailAddress": {"address": "buyer@example.com"}},
    "toRecipients": [{"emailAddress": {"address": "sales@test.com"}}],
    "receivedDateTime": "2024-05-01T12:00:00Z",
    "sentDateTime": "2024-05-01T11:59:30Z",
    "isRead": True,
    "hasAttachments": False,
    "body": {"contentType": "html", "content": "<p>Please quote</p>"},
    "bodyPreview": "Please quote",
}


def test_parse_graph_message():
    fetched = outlook_service.parse_graph_message(GRAPH_MESSAGE, folder="INBOX")

    assert fetched.message_id == "<abc@mail.example.com>"
    assert fetched.thread_id == "conv-1"
    assert fetched.sender_email == "buyer@example.com"
    assert fetched.recipient_email == "sales@test.com"
    assert fetched.html_content == "<p>Please quote</p>"
    assert fetched.plain_content == "Please quote"
    assert fetched.is_read is True
    assert fetched.received_at.hour == 12
    assert fetched.email_type == EmailType.RECEIVED


def test_parse_graph_sent_items_are_sent():
    fetched = outlook_service.parse_graph_message({"id": "x"}, folder="Sent Items")

    assert fetched.message_id == "x"
    assert fetched.email_type == EmailType.SENT


@pytest.mark.asyncio
async def test_graph_delta_cursor_skips_removed_items():
    cursor = "https://graph.microsoft.com/v1.0/me/mailFolders/inbox/messages/delta?token=1"
    next_delta = "https://graph.microsoft.com/v1.0/me/mailFolders/inbox/messages/delta?token=2"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["token"] == "1"
        return httpx.Response(
            200,
            json={
                "value": [GRAPH_MESSAGE, {"id": "old", "@removed": {"reason": "deleted"}}],
                "@odata.deltaLink": next_delta,
            },
        )

    result = await outlook_service.fetch_messages(
        "token", cursor=cursor, transport=httpx.MockTransport(handler)
    )

    assert [e.message_id for e in result.emails] == ["<abc@mail.example.com>"]
    assert result.cursor == next_delta


@pytest.mark.asyncio
async def test_graph_initial_fetch_establishes_delta_link():
    delta_link = "https://graph.microsoft.com/v1.0/me/mailFolders/inbox/messages/delta?token=new"

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/delta"):
            assert "2024-05-01T12:00:00Z" in request.url.params["$filter"]
            return httpx.Response(200, json={"value": [], "@odata.deltaLink": delta_link})
        return httpx.Response(200, json={"value": [GRAPH_MESSAGE]})

    result = await outlook_service.fetch_messages("token", transport=httpx.MockTransport(handler))

    assert len(result.emails) == 1
    assert result.cursor == delta_link


@pytest.mark.asyncio
async def test_graph_gone_delta_raises_cursor_expired():
    transport = httpx.MockTransport(lambda request: httpx.Response(410))

    with pytest.raises(CursorExpiredError):
        await outlook_service.fetch_messages(
            "token", cursor="https://graph.microsoft.com/v1.0/delta", transport=transport
        )


# =============================================================================
# IMAP
# =============================================================================


def _raw_message() -> bytes:
    msg = EmailMessage()
    msg["Subject"] = "Café order"
    msg["From"] = "Ana <ana@example.com>"
    msg["To"] = "sales@test.com"
    msg["Date"] = "Wed, 01 May 2024 12:00:00 +0200"
    msg["Message-ID"] = "<imap-1@example.com>"
    msg.set_content("Plain body")
    msg.add_alternative("<p>Html body</p>", subtype="html")
    msg.add_attachment(b"%PDF", maintype="application", subtype="pdf", filename="a.pdf")
    return msg.as_bytes()


def test_parse_imap_message():
    fetched = imap_service.parse_imap_message(
        _raw_message(), uid="7", folder="INBOX", flags=["\\Seen"]
    )

    assert fetched.message_id == "<imap-1@example.com>"
    assert fetched.subject == "Café order"
    assert fetched.sender_email == "ana@example.com"
    assert fetched.recipient_email == "sales@test.com"
    assert fetched.plain_content.strip() == "Plain body"
    assert fetched.html_content.strip() == "<p>Html body</p>"
    assert fetched.has_attachments is True
    assert fetched.is_read is True
    assert fetched.sent_at.utcoffset().total_seconds() == 7200


def test_parse_imap_message_without_message_id_uses_uid():
    raw = b"From: a@example.com\r\nSubject: hi\r\n\r\nbody\r\n"

    fetched = imap_service.parse_imap_message(raw, uid="12", folder="Sent")

    assert fetched.message_id == "imap:Sent:12"
    assert fetched.email_type == EmailType.SENT
    assert fetched.is_read is False


def test_credentials_require_host_and_password():
    account = SimpleNamespace(
        imap_host=None, username="u", password_encrypted="x", imap_port=None, imap_security=None
    )

    with pytest.raises(MailboxError):
        imap_service.credentials_for(account)


class FakeImap:
    def __init__(self, search_result: bytes, messages: dict[int, bytes] | None = None):
        self.search_result = search_result
        self.messages = messages or {}
        self.commands = []
        self.logged_out = False

    def select(self, folder, readonly=False):
        self.commands.append(("select", folder, readonly))
        return "OK", [b"3"]

    def uid(self, command, *args):
        self.commands.append((command, *args))
        if command == "search":
            return "OK", [self.search_result]
        data = []
        for uid in (int(u) for u in args[0].split(",")):
            meta = f"{uid} (UID {uid} FLAGS (\\Seen) BODY[] {{10}}".encode()
            data.extend([(meta, self.messages[uid]), b")"])
        return "OK", data

    def logout(self):
        self.logged_out = True


CREDS = imap_service.ImapCredentials(host="imap.example.com", username="u", password="p")


@pytest.mark.asyncio
async def test_imap_fetch_reads_newest_uids(monkeypatch):
    raw = _raw_message()
    conn = FakeImap(b"1 2 3", {2: raw, 3: raw})
    monkeypatch.setattr(imap_service, "connect", lambda creds: conn)

    result = await imap_service.fetch_messages(CREDS, max_emails=2)

    assert len(result.emails) == 2
    assert result.cursor == "3"
    assert ("select", "INBOX", True) in conn.commands
    assert ("fetch", "2,3", "(UID FLAGS BODY.PEEK[])") in conn.commands
    assert conn.logged_out is True


@pytest.mark.asyncio
async def test_imap_fetch_with_cursor_ignores_already_seen_uid(monkeypatch):
    conn = FakeImap(b"5")
    monkeypatch.setattr(imap_service, "connect", lambda creds: conn)

    result = await imap_service.fetch_messages(CREDS, cursor="5")

    assert result.emails == []
    assert result.cursor == "5"
    assert ("search", None, "UID 6:*") in conn.commands
