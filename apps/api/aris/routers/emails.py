"""Emails router - mailbox sync and the synced email index."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_current_session, get_db, is_owner_or_can_manage, require_csrf_header
from aris.db.enums import EmailType
from aris.schemas.auth import UserSession
from aris.schemas.email import (
    CatchUpSyncRequest,
    CatchUpSyncResponse,
    EmailContentRead,
    EmailListResponse,
    EmailRead,
    EmailSyncRequest,
    SyncResultRead,
)
from aris.services import email_account_service, email_sync_service
from aris.services.mailbox import MailboxAuthError, MailboxError

router = APIRouter()
logger = logging.getLogger(__name__)


def raise_for_sync_error(exc: Exception) -> None:
    """Translate provider/account failures raised during a sync to HTTP errors."""
    if isinstance(exc, (email_account_service.EmailAccountTokenError, MailboxAuthError)):
        raise HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, email_account_service.EmailAccountValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, MailboxError):
        raise HTTPException(status_code=500, detail=f"Email sync failed: {exc}")
    raise exc


def load_account(db: Session, session: UserSession, account_id: UUID):
    try:
        account = email_account_service.get_account(db, session.org_id, account_id)
    except email_account_service.EmailAccountNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    if not is_owner_or_can_manage(session, account.user_id):
        raise HTTPException(status_code=403, detail="Not allowed to use this email account")
    return account


@router.post("/sync", response_model=SyncResultRead, dependencies=[Depends(require_csrf_header)])
async def sync_emails(
    body: EmailSyncRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Sync a mailbox now.

    Errors:
    - 400: account_id missing
    - 401: the account has no usable token
    - 404: unknown account
    """
    if body.account_id is None:
        raise HTTPException(status_code=400, detail="account_id is required")
    account = load_account(db, session, body.account_id)
    try:
        result = await email_sync_service.sync_account(
            db,
            account,
            mode=body.mode,
            max_emails=body.max_emails,
            folder=body.folder,
        )
    except Exception as exc:
        raise_for_sync_error(exc)
    return SyncResultRead(**result.as_dict())


@router.post(
    "/catch-up-sync",
    response_model=CatchUpSyncResponse,
    dependencies=[Depends(require_csrf_header)],
)
async def catch_up_sync(
    body: CatchUpSyncRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Re-read the last ``sync_days`` days of mail to fill gaps."""
    account = load_account(db, session, body.account_id)
    try:
        summary = await email_sync_service.catch_up_sync(db, account, sync_days=body.sync_days)
    except Exception as exc:
        raise_for_sync_error(exc)
    return CatchUpSyncResponse(**summary)


@router.get("", response_model=EmailListResponse)
def list_emails(
    account_id: UUID | None = None,
    folder: str | None = None,
    email_type: EmailType | None = None,
    search: str | None = Query(None, max_length=200),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    items, total = email_sync_service.list_emails(
        db,
        session.org_id,
        account_id=account_id,
        folder=folder,
        email_type=email_type.value if email_type else None,
        search=search,
        limit=limit,
        offset=offset,
    )
    return EmailListResponse(items=[EmailRead.model_validate(e) for e in items], total=total)


@router.get("/{message_id:path}", response_model=EmailContentRead)
def get_email(
    message_id: str,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Index row plus cached body for one message."""
    try:
        email, content = email_sync_service.get_email_content(db, session.org_id, message_id)
    except email_sync_service.EmailNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    read = EmailRead.model_validate(email)
    return EmailContentRead(
        **read.model_dump(),
        html_content=content.html_content if content else None,
        plain_content=content.plain_content if content else None,
    )
