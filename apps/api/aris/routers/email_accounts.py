"""Email accounts router - connect mailboxes and control their sync."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from aris.core.deps import (
    can_manage_integrations,
    get_current_session,
    get_db,
    require_csrf_header,
)
from aris.db.enums import JobType
from aris.schemas.auth import UserSession
from aris.schemas.email import (
    ConnectionTestResult,
    EmailAccountCreate,
    EmailAccountRead,
    EmailAccountTokens,
    EmailAccountUpdate,
    RealTimeSyncConfigIn,
    RealTimeSyncStatus,
)
from aris.schemas.job import JobRead, SyncJobRequest
from aris.services import (
    email_account_service,
    email_sync_service,
    job_service,
    real_time_sync_service,
)
from aris.routers.emails import load_account, raise_for_sync_error

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=list[EmailAccountRead])
def list_accounts(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Members see their own mailboxes; admins see every mailbox in the org."""
    user_id = None if can_manage_integrations(session) else session.user_id
    accounts = email_account_service.list_accounts(db, session.org_id, user_id=user_id)
    return [EmailAccountRead.model_validate(a) for a in accounts]


@router.post("", response_model=EmailAccountRead, dependencies=[Depends(require_csrf_header)])
def create_account(
    body: EmailAccountCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Connect a mailbox.

    Errors:
    - 400: unsupported provider, or IMAP without host/username/password
    - 409: the email is already connected in this organization
    """
    try:
        account = email_account_service.create_account(
            db, session.org_id, session.user_id, body.model_dump()
        )
    except email_account_service.EmailAccountValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except email_account_service.EmailAccountConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return EmailAccountRead.model_validate(account)


@router.get("/{account_id}", response_model=EmailAccountRead)
def get_account(
    account_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return EmailAccountRead.model_validate(load_account(db, session, account_id))


@router.patch("/{account_id}", response_model=EmailAccountRead, dependencies=[Depends(require_csrf_header)])
def update_account(
    account_id: UUID,
    body: EmailAccountUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    account = load_account(db, session, account_id)
    account = email_account_service.update_account(db, account, body.model_dump(exclude_unset=True))
    return EmailAccountRead.model_validate(account)


@router.delete("/{account_id}", dependencies=[Depends(require_csrf_header)])
def delete_account(
    account_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    email_account_service.delete_account(db, load_account(db, session, account_id))
    return {"deleted": True}


@router.post(
    "/{account_id}/test",
    response_model=ConnectionTestResult,
    dependencies=[Depends(require_csrf_header)],
)
async def test_account(
    account_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    account = load_account(db, session, account_id)
    result = await email_account_service.test_connection(db, account)
    return ConnectionTestResult(**result)


@router.put(
    "/{account_id}/tokens",
    response_model=EmailAccountRead,
    dependencies=[Depends(require_csrf_header)],
)
def store_tokens(
    account_id: UUID,
    body: EmailAccountTokens,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Store OAuth tokens obtained by the client. They are encrypted at rest."""
    account = load_account(db, session, account_id)
    account = email_account_service.store_tokens(
        db,
        account,
        access_token=body.access_token,
        refresh_token=body.refresh_token,
        expires_in=body.expires_in,
    )
    return EmailAccountRead.model_validate(account)


@router.post("/{account_id}/setup", dependencies=[Depends(require_csrf_header)])
async def setup_account(
    account_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Initial sync, sender learning and real-time sync for a new mailbox."""
    account = load_account(db, session, account_id)
    try:
        return await email_sync_service.setup_account(db, account)
    except Exception as exc:
        raise_for_sync_error(exc)


# =============================================================================
# Real-time sync
# =============================================================================


@router.post(
    "/{account_id}/real-time/start",
    response_model=RealTimeSyncStatus,
    dependencies=[Depends(require_csrf_header)],
)
async def start_real_time(
    account_id: UUID,
    body: RealTimeSyncConfigIn | None = None,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    account = load_account(db, session, account_id)
    config = body.model_dump(exclude_none=True) if body else None
    status = await real_time_sync_service.start_real_time_sync(db, account, config)
    return RealTimeSyncStatus(**status)


@router.post(
    "/{account_id}/real-time/stop",
    response_model=RealTimeSyncStatus,
    dependencies=[Depends(require_csrf_header)],
)
def stop_real_time(
    account_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    account = load_account(db, session, account_id)
    return RealTimeSyncStatus(**real_time_sync_service.stop_real_time_sync(db, account))


@router.get("/{account_id}/real-time", response_model=RealTimeSyncStatus)
def real_time_status(
    account_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    account = load_account(db, session, account_id)
    return RealTimeSyncStatus(**real_time_sync_service.get_sync_status(account))


# =============================================================================
# Background sync
# =============================================================================


@router.post(
    "/{account_id}/sync-jobs",
    response_model=JobRead,
    dependencies=[Depends(require_csrf_header)],
)
def schedule_sync_job(
    account_id: UUID,
    body: SyncJobRequest,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Queue a mailbox sync for the worker. Same idempotency key, same job."""
    account = load_account(db, session, account_id)
    payload = {"account_id": str(account.id), "mode": body.mode.value}
    if body.max_emails:
        payload["max_emails"] = body.max_emails
    job = job_service.schedule_job(
        db,
        org_id=session.org_id,
        job_type=JobType.EMAIL_SYNC,
        payload=payload,
        idempotency_key=body.idempotency_key,
    )
    logger.info("Scheduled email sync job %s for account %s", job.id, account.id)
    return JobRead.model_validate(job)
