"""Metakocka credentials - one encrypted company/secret pair per organization."""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from aris.core.encryption import decrypt_token, encrypt_token
from aris.db.enums import NotificationType
from aris.db.models import MetakockaCredentials
from aris.services import notification_service
from aris.services.metakocka_client import MetakockaClient, MetakockaError

logger = logging.getLogger(__name__)


class MetakockaCredentialsError(Exception):
    """No usable Metakocka credentials for the organization."""


def get_credentials(db: Session, org_id: UUID) -> MetakockaCredentials | None:
    return db.query(MetakockaCredentials).filter(
        MetakockaCredentials.organization_id == org_id
    ).first()


def save_credentials(
    db: Session,
    org_id: UUID,
    company_id: str,
    secret_key: str | None,
    api_endpoint: str | None = None,
    is_active: bool = True,
    user_id: UUID | None = None,
) -> MetakockaCredentials:
    """
    Create or replace the org's credentials.

    An omitted secret keeps the stored one; a new row requires it.
    """
    creds = get_credentials(db, org_id)
    if creds is None:
        if not secret_key:
            raise MetakockaCredentialsError("Secret key is required")
        creds = MetakockaCredentials(
            organization_id=org_id,
            company_id=company_id,
            secret_key_encrypted=encrypt_token(secret_key),
            created_by=user_id,
        )
        db.add(creds)
    else:
        creds.company_id = company_id
        if secret_key:
            creds.secret_key_encrypted = encrypt_token(secret_key)
            creds.last_verified_at = None

    creds.api_endpoint = api_endpoint or None
    creds.is_active = is_active
    db.commit()
    db.refresh(creds)
    return creds


def build_client(creds: MetakockaCredentials, **kwargs) -> MetakockaClient:
    return MetakockaClient(
        company_id=creds.company_id,
        secret_key=decrypt_token(creds.secret_key_encrypted),
        base_url=creds.api_endpoint,
        **kwargs,
    )


def get_client_for_org(db: Session, org_id: UUID) -> MetakockaClient:
    creds = get_credentials(db, org_id)
    if not creds or not creds.is_active:
        raise MetakockaCredentialsError("Metakocka credentials not found or inactive")
    return build_client(creds)


async def test_credentials(db: Session, org_id: UUID) -> dict:
    """Call the API with the stored credentials and stamp last_verified_at."""
    creds = get_credentials(db, org_id)
    if not creds:
        raise MetakockaCredentialsError("Metakocka credentials not found or inactive")

    client = build_client(creds)
    try:
        await client.test_connection()
    except MetakockaError as exc:
        logger.warning("Metakocka credentials test failed for org=%s: %s", org_id, exc.message)
        return {"success": False, "message": exc.message, "error_type": exc.type.value}

    first_verification = creds.last_verified_at is None
    creds.last_verified_at = datetime.now(timezone.utc)
    db.commit()
    if first_verification:
        notification_service.notify_org_admins(
            db=db,
            org_id=org_id,
            type=NotificationType.METAKOCKA_CONNECTED,
            title="Metakocka connected",
            message=f"Company {creds.company_id} is now connected.",
            action_url="/settings/integrations/metakocka",
            dedupe_key=f"metakocka_connected:{org_id}",
        )
    return {"success": True, "message": "Connection successful", "error_type": None}
