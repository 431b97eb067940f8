"""IMAP mailbox fetcher.

Uses stdlib ``imaplib`` in a worker thread. Messages are read with
``BODY.PEEK[]`` so fetching never flips the ``\\Seen`` flag.
"""

from __future__ import annotations

import email
import imaplib
import logging
import re
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.header import decode_header, make_header
from email.message import Message
from email.utils import getaddresses, parseaddr, parsedate_to_datetime

from aris.core.async_utils import run_blocking
from aris.db.enums import EmailType, ImapSecurity
from aris.services.mailbox import (
    FetchedEmail,
    FetchResult,
    MailboxAuthError,
    MailboxError,
    clamp_target_count,
)

logger = logging.getLogger(__name__)

DEFAULT_IMAP_PORT = 993
DEFAULT_MAX_EMAILS = 50
IMAP_TIMEOUT_SECONDS = 30

SENT_FOLDER_NAMES = {"sent", "sent items", "sent mail", "[gmail]/sent mail", "inbox.sent"}

_UID_RE = re.compile(rb"UID (\d+)")
_FLAGS_RE = re.compile(rb"FLAGS \(([^)]*)\)")


@dataclass
class ImapCredentials:
    host: str
    username: str
    password: str
    port: int = DEFAULT_IMAP_PORT
    security: str = ImapSecurity.SSL.value


def credentials_for(account) -> ImapCredentials:
    """Build credentials from an EmailAccount row (decrypts the password)."""
    from aris.core.encryption import decrypt_token

    if not account.imap_host or not account.username or not account.password_encrypted:
        raise MailboxError("IMAP account is missing host, username or password")
    return ImapCredentials(
        host=account.imap_host,
        port=account.imap_port or DEFAULT_IMAP_PORT,
        security=account.imap_security or ImapSecurity.SSL.value,
        username=account.username,
        password=decrypt_token(account.password_encrypted),
    )


# =============================================================================
# Connection
# =============================================================================


def connect(creds: ImapCredentials) -> imaplib.IMAP4:
    """Open and authenticate an IMAP connection according to the security mode."""
    try:
        if creds.security == ImapSecurity.SSL.value:
            conn: imaplib.IMAP4 = imaplib.IMAP4_SSL(
                creds.host,
                creds.port,
                ssl_context=ssl.create_default_context(),
                timeout=IMAP_TIMEOUT_SECONDS,
            )
        else:
            conn = imaplib.IMAP4(creds.host, creds.port, timeout=IMAP_TIMEOUT_SECONDS)
            if creds.security == ImapSecurity.STARTTLS.value:
                conn.starttls(ssl_context=ssl.create_default_context())
    except (OSError, imaplib.IMAP4.error) as exc:
        raise MailboxError(f"IMAP connection to {creds.host} failed: {exc}") from exc

    try:
        conn.login(creds.username, creds.password)
    except imaplib.IMAP4.error as exc:
        _safe_logout(conn)
        raise MailboxAuthError("IMAP login failed") from exc
    return conn


def _safe_logout(conn: imaplib.IMAP4) -> None:
    try:
        conn.logout()
    except (OSError, imaplib.IMAP4.error):
        logger.debug("IMAP logout failed", exc_info=True)


def _test_connection_sync(creds: ImapCredentials) -> None:
    conn = connect(creds)
    try:
        status, _ = conn.select("INBOX", readonly=True)
        if status != "OK":
            raise MailboxError("Could not open INBOX")
    finally:
        _safe_logout(conn)


async def test_connection(creds: ImapCredentials) -> None:
    """Log in and open INBOX. Raises MailboxError on failure."""
    await run_blocking(_test_connection_sync, creds)


# =============================================================================
# Parsing
# =============================================================================


def _decode(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return str(make_header(decode_header(value)))
    except (UnicodeDecodeError, LookupError):
        return value


def _part_text(part: Message) -> str:
    payload = part.get_payload(decode=True) or b""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


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


def parse_imap_message(
    raw: bytes,
    *,
    uid: str,
    folder: str,
    flags: list[str] | None = None,
) -> FetchedEmail:
    """Parse an RFC 822 message fetched over IMAP."""
    msg = email.message_from_bytes(raw)
    flags = flags or []

    plain_parts: list[str] = []
    html_parts: list[str] = []
    has_attachments = False
    for part in msg.walk():
        if part.is_multipart():
            continue
        disposition = (part.get("Content-Disposition") or "").lower()
        if part.get_filename() or disposition.startswith("attachment"):
            has_attachments = True
            continue
        content_type = part.get_content_type()
        if content_type == "text/plain":
            plain_parts.append(_part_text(part))
        elif content_type == "text/html":
            html_parts.append(_part_text(part))

    sent_at = _parse_date(msg.get("Date"))
    recipients = [addr for _, addr in getaddresses(msg.get_all("To", [])) if addr]
    message_id = (msg.get("Message-ID") or "").strip() or f"imap:{folder}:{uid}"

    return FetchedEmail(
        message_id=message_id,
        thread_id=(msg.get("In-Reply-To") or "").strip() or None,
        subject=_decode(msg.get("Subject")),
        sender_email=parseaddr(msg.get("From", ""))[1] or None,
        recipient_email=", ".join(recipients) or None,
        sent_at=sent_at,
        received_at=sent_at,
        plain_content="\n".join(plain_parts) or None,
        html_content="\n".join(html_parts) or None,
        has_attachments=has_attachments,
        is_read="\\Seen" in flags,
        folder=folder,
        labels=flags,
        email_type=EmailType.SENT if folder.lower() in SENT_FOLDER_NAMES else EmailType.RECEIVED,
    )


def _split_fetch_response(data: list) -> list[tuple[str, list[str], bytes]]:
    """Pull (uid, flags, raw message) triples out of an imaplib FETCH response."""
    messages = []
    for item in data:
        if not isinstance(item, tuple) or len(item) < 2:
            continue
        meta, raw = item[0], item[1]
        uid_match = _UID_RE.search(meta)
        if not uid_match:
            continue
        flags_match = _FLAGS_RE.search(meta)
        flags = flags_match.group(1).decode().split() if flags_match else []
        messages.append((uid_match.group(1).decode(), flags, raw))
    return messages


# =============================================================================
# Fetching
# =============================================================================


def _fetch_sync(
    creds: ImapCredentials,
    folder: str,
    last_uid: int | None,
    max_emails: int,
    since: datetime | None,
) -> FetchResult:
    conn = connect(creds)
    try:
        status, _ = conn.select(folder, readonly=True)
        if status != "OK":
            raise MailboxError(f"Could not open folder {folder}")

        if last_uid is not None:
            status, data = conn.uid("search", None, f"UID {last_uid + 1}:*")
        elif since is not None:
            status, data = conn.uid("search", None, f"SINCE {since.strftime('%d-%b-%Y')}")
        else:
            status, data = conn.uid("search", None, "ALL")
        if status != "OK":
            raise MailboxError(f"IMAP search failed in {folder}")

        uids = [int(u) for u in (data[0] or b"").split()]
        if last_uid is not None:
            # "n:*" always matches the newest message, even when n is past it
            uids = [u for u in uids if u > last_uid]
        uids = sorted(uids)[-max_emails:]

        emails: list[FetchedEmail] = []
        if uids:
            uid_set = ",".join(str(u) for u in uids)
            status, data = conn.uid("fetch", uid_set, "(UID FLAGS BODY.PEEK[])")
            if status != "OK":
                raise MailboxError(f"IMAP fetch failed in {folder}")
            for uid, flags, raw in _split_fetch_response(data):
                emails.append(parse_imap_message(raw, uid=uid, folder=folder, flags=flags))

        newest = max(uids) if uids else last_uid
        return FetchResult(
            emails=emails,
            cursor=str(newest) if newest is not None else None,
        )
    finally:
        _safe_logout(conn)


async def fetch_messages(
    creds: ImapCredentials,
    *,
    folder: str = "INBOX",
    cursor: str | None = None,
    max_emails: int | None = None,
    since: datetime | None = None,
) -> FetchResult:
    """
    Fetch messages over IMAP.

    The cursor is the highest UID seen in the folder; with one, only newer
    UIDs are read. Without one the newest ``max_emails`` UIDs are read.
    """
    last_uid = int(cursor) if cursor and cursor.isdigit() else None
    target = clamp_target_count(max_emails, DEFAULT_MAX_EMAILS)
    result = await run_blocking(_fetch_sync, creds, folder, last_uid, target, since)
    logger.info("IMAP fetch returned %d messages", len(result.emails))
    return result
