"""Email account service - connected mailboxes and their credentials.

Passwords and OAuth tokens are stored Fernet-encrypted. Access tokens are
refreshed against the provider's token endpoint shortly before they expire.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aris.core.config import settings
from aris.core.encryption import decrypt_token, encrypt_token
from aris.db.enums import PROVIDER_ALIASES, EmailProvider, ImapSecurity
from aris.db.models import EmailAccount
from aris.db.types import as_utc
from aris.jobs.utils import mask_email
from aris.services.http_service import request_with_retries

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
MICROSOFT_SCOPES = "offline_access https://graph.microsoft.com/Mail.Read"

# Refresh this long before the provider says the token expires
REFRESH_MARGIN = timedelta(minutes=5)

UPDATABLE_FIELDS = {
    "display_name",
    "imap_host",
    "imap_port",
    "imap_security",
    "smtp_host",
    "smtp_port",
    "smtp_security",
    "username",
    "is_active",
    "polling_interval_minutes",
    "enable_webhooks",
}


class EmailAccountError(Exception):
    """Base exception for email account operations."""


class EmailAccountNotFoundError(EmailAccountError):
    pass


class EmailAccountConflictError(EmailAccountError):
    pass


class EmailAccountValidationError(EmailAccountError):
    pass


class EmailAccountTokenError(EmailAccountError):
    """No usable access token and no way to refresh one."""


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_provider(value: str) -> EmailProvider:
    """Accept provider names and their aliases ('gmail', 'outlook')."""
    key = (value or "").strip().lower()
    if key in PROVIDER_ALIASES:
        return PROVIDER_ALIASES[key]
    try:
        return EmailProvider(key)
    except ValueError:
        raise EmailAccountValidationError(f"Unsupported provider: {value}")


# =============================================================================
# CRUD
# =============================================================================


def list_accounts(db: Session, org_id: UUID, user_id: UUID | None = None) -> list[EmailAccount]:
    query = db.query(EmailAccount).filter(EmailAccount.organization_id == org_id)
    if user_id:
        query = query.filter(EmailAccount.user_id == user_id)
    return query.order_by(EmailAccount.created_at).all()


def get_account(db: Session, org_id: UUID, account_id: UUID) -> EmailAccount:
    account = db.query(EmailAccount).filter(
        EmailAccount.id == account_id,
        EmailAccount.organization_id == org_id,
    ).first()
    if not account:
        raise EmailAccountNotFoundError("Email account not found")
    return account


def create_account(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    data: dict[str, Any],
) -> EmailAccount:
    """
    Create a mailbox connection.

    IMAP accounts need host, username and password. OAuth accounts may be
    created with tokens already obtained by the client.
    """
    provider = normalize_provider(data.get("provider_type", ""))
    email = (data.get("email") or "").strip().lower()
    if not email:
        raise EmailAccountValidationError("email is required")

    if provider == EmailProvider.IMAP:
        missing = [f for f in ("imap_host", "username", "password") if not data.get(f)]
        if missing:
            raise EmailAccountValidationError(
                f"IMAP accounts require: {', '.join(missing)}"
            )
        security = data.get("imap_security") or ImapSecurity.SSL.value
        if security not in {s.value for s in ImapSecurity}:
            raise EmailAccountValidationError(f"Unsupported IMAP security: {security}")

    existing = db.query(EmailAccount).filter(
        EmailAccount.organization_id == org_id,
        EmailAccount.email == email,
    ).first()
    if existing:
        raise EmailAccountConflictError("An account with this email already exists")

    account = EmailAccount(
        organization_id=org_id,
        user_id=user_id,
        email=email,
        display_name=data.get("display_name"),
        provider_type=provider.value,
    )
    if provider == EmailProvider.IMAP:
        account.imap_host = data.get("imap_host")
        account.imap_port = data.get("imap_port") or 993
        account.imap_security = data.get("imap_security") or ImapSecurity.SSL.value
        account.smtp_host = data.get("smtp_host")
        account.smtp_port = data.get("smtp_port")
        account.smtp_security = data.get("smtp_security")
        account.username = data.get("username")
        account.password_encrypted = encrypt_token(data.get("password"))

    if data.get("access_token"):
        _apply_tokens(
            account,
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
        )

    db.add(account)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise EmailAccountConflictError("An account with this email already exists")
    db.refresh(account)
    logger.info("Email account created", extra={"account_id": str(account.id)})
    return account


def update_account(db: Session, account: EmailAccount, updates: dict[str, Any]) -> EmailAccount:
    for key, value in updates.items():
        if key == "password":
            if value:
                account.password_encrypted = encrypt_token(value)
        elif key in UPDATABLE_FIELDS:
            setattr(account, key, value)
    db.commit()
    db.refresh(account)
    return account


def delete_account(db: Session, account: EmailAccount) -> None:
    db.delete(account)
    db.commit()


# =============================================================================
# OAuth tokens
# =============================================================================


def _apply_tokens(
    account: EmailAccount,
    access_token: str,
    refresh_token: str | None = None,
    expires_in: int | None = None,
) -> None:
    account.access_token_encrypted = encrypt_token(access_token)
    if refresh_token:
        account.refresh_token_encrypted = encrypt_token(refresh_token)
    account.token_expires_at = (
        _now_utc() + timedelta(seconds=int(expires_in)) if expires_in else None
    )


def store_tokens(
    db: Session,
    account: EmailAccount,
    access_token: str,
    refresh_token: str | None = None,
    expires_in: int | None = None,
) -> EmailAccount:
    """Store (re-encrypted) OAuth tokens for an account."""
    _apply_tokens(account, access_token, refresh_token, expires_in)
    db.commit()
    db.refresh(account)
    return account


def _needs_refresh(expires_at: datetime | None) -> bool:
    if expires_at is None:
        return False
    return as_utc(expires_at) <= _now_utc() + REFRESH_MARGIN


async def _post_token_request(url: str, data: dict[str, str]) -> dict[str, Any]:
    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await request_with_retries(
            lambda: client.post(url, data=data),
            label="OAuth token refresh",
        )
    if response.status_code >= 400:
        raise EmailAccountTokenError(
            f"Token refresh rejected by provider ({response.status_code})"
        )
    return response.json()


async def refresh_google_token(refresh_token: str) -> dict[str, Any]:
    return await _post_token_request(
        GOOGLE_TOKEN_URL,
        {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        },
    )


async def refresh_microsoft_token(refresh_token: str) -> dict[str, Any]:
    return await _post_token_request(
        MICROSOFT_TOKEN_URL.format(tenant=settings.MICROSOFT_TENANT),
        {
            "client_id": settings.MICROSOFT_CLIENT_ID,
            "client_secret": settings.MICROSOFT_CLIENT_SECRET,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
            "scope": MICROSOFT_SCOPES,
        },
    )


async def get_valid_access_token(db: Session, account: EmailAccount) -> str:
    """
    Return a usable access token for an OAuth account.

    Tokens expiring within five minutes are refreshed and stored first.

    Raises:
        EmailAccountTokenError: no token stored, or refresh impossible/failed
    """
    provider = normalize_provider(account.provider_type)
    if provider == EmailProvider.IMAP:
        raise EmailAccountTokenError("IMAP accounts do not use access tokens")

    access_token = decrypt_token(account.access_token_encrypted)
    if access_token and not _needs_refresh(account.token_expires_at):
        return access_token

    refresh_token = decrypt_token(account.refresh_token_encrypted)
    if not refresh_token:
        raise EmailAccountTokenError("No valid access token; reconnect the account")

    if provider == EmailProvider.GOOGLE:
        data = await refresh_google_token(refresh_token)
    else:
        data = await refresh_microsoft_token(refresh_token)

    new_token = data.get("access_token")
    if not new_token:
        raise EmailAccountTokenError("Token refresh returned no access token")

    store_tokens(
        db,
        account,
        access_token=new_token,
        refresh_token=data.get("refresh_token"),
        expires_in=data.get("expires_in"),
    )
    logger.info("Refreshed access token for %s", mask_email(account.email))
    return new_token


# =============================================================================
# Connection test
# =============================================================================


async def test_connection(db: Session, account: EmailAccount) -> dict[str, Any]:
    """
    Check that the stored credentials work.

    IMAP: login and select INBOX. Google/Microsoft: profile call.
    """
    from aris.services import gmail_service, imap_service, outlook_service
    from aris.services.mailbox import MailboxError

    provider = normalize_provider(account.provider_type)
    try:
        if provider == EmailProvider.IMAP:
            await imap_service.test_connection(imap_service.credentials_for(account))
        else:
            token = await get_valid_access_token(db, account)
            if provider == EmailProvider.GOOGLE:
                await gmail_service.get_profile(token)
            else:
                await outlook_service.get_profile(token)
    except (MailboxError, EmailAccountTokenError, httpx.HTTPError) as exc:
        logger.warning("Connection test failed for %s: %s", mask_email(account.email), exc)
        return {"success": False, "message": str(exc)}
    return {"success": True, "message": "Connection successful"}
