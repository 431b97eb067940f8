"""Provider-neutral types shared by the Gmail, Graph and IMAP fetchers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from aris.db.enums import EmailType

PREVIEW_LENGTH = 200
MIN_TARGET_COUNT = 1
MAX_TARGET_COUNT = 10000


class MailboxError(Exception):
    """A provider call failed."""


class MailboxAuthError(MailboxError):
    """The provider rejected our credentials or token."""


class CursorExpiredError(MailboxError):
    """The stored incremental cursor is no longer accepted by the provider."""


@dataclass
class FetchedEmail:
    """One message as returned by any provider, before it is indexed."""

    message_id: str
    thread_id: str | None = None
    subject: str | None = None
    sender_email: str | None = None
    recipient_email: str | None = None
    sent_at: datetime | None = None
    received_at: datetime | None = None
    plain_content: str | None = None
    html_content: str | None = None
    has_attachments: bool = False
    is_read: bool = False
    folder: str | None = None
    labels: list[str] = field(default_factory=list)
    email_type: EmailType = EmailType.RECEIVED

    @property
    def preview_text(self) -> str | None:
        if not self.plain_content:
            return None
        return " ".join(self.plain_content.split())[:PREVIEW_LENGTH]


@dataclass
class FetchResult:
    emails: list[FetchedEmail]
    cursor: str | None = None


def clamp_target_count(value: int | None, default: int) -> int:
    if value is None:
        value = default
    return max(MIN_TARGET_COUNT, min(MAX_TARGET_COUNT, int(value)))
