"""
Metakocka auto-sync.

Cron calls ``run_auto_sync``; each enabled organization runs every entity
whose interval has elapsed since its last run. Auto-sync only imports from
Metakocka. A crm_to_metakocka direction is skipped with a warning.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from aris.db.enums import LogCategory, MetakockaEntity, SyncDirection
from aris.db.models import MetakockaAutoSyncSettings
from aris.db.types import as_utc
from aris.services import (
    metakocka_contact_sync,
    metakocka_credentials_service,
    metakocka_inventory_service,
    metakocka_log_service,
    metakocka_product_sync,
    metakocka_sales_document_sync,
    notification_service,
)
from aris.services.metakocka_client import MetakockaClient, MetakockaError

logger = logging.getLogger(__name__)

DEFAULT_INTERVALS = {
    MetakockaEntity.PRODUCTS: 30,
    MetakockaEntity.INVOICES: 15,
    MetakockaEntity.CONTACTS: 60,
    MetakockaEntity.INVENTORY: 10,
}
DEFAULT_DIRECTION = SyncDirection.METAKOCKA_TO_CRM.value
BIDIRECTIONAL = "bidirectional"


def get_settings(db: Session, org_id: UUID) -> MetakockaAutoSyncSettings:
    """The org's auto-sync settings, created disabled with defaults on first use."""
    row = db.query(MetakockaAutoSyncSettings).filter(
        MetakockaAutoSyncSettings.organization_id == org_id
    ).first()
    if row is None:
        row = MetakockaAutoSyncSettings(
            organization_id=org_id,
            enabled=False,
            directions={
                entity.value: DEFAULT_DIRECTION
                for entity in DEFAULT_INTERVALS
                if entity != MetakockaEntity.INVENTORY
            },
            last_run_at={},
        )
        db.add(row)
        db.commit()
        db.refresh(row)
    return row


def update_settings(db: Session, org_id: UUID, **changes: Any) -> MetakockaAutoSyncSettings:
    row = get_settings(db, org_id)
    directions = changes.pop("directions", None)
    for field, value in changes.items():
        if value is not None:
            setattr(row, field, value)
    if directions:
        row.directions = {**(row.directions or {}), **directions}
    db.commit()
    db.refresh(row)
    return row


def interval_minutes(row: MetakockaAutoSyncSettings, entity: MetakockaEntity) -> int:
    return getattr(row, f"{entity.value}_interval_minutes") or DEFAULT_INTERVALS[entity]


def is_due(row: MetakockaAutoSyncSettings, entity: MetakockaEntity, now: datetime) -> bool:
    last = (row.last_run_at or {}).get(entity.value)
    if not last:
        return True
    last_run = as_utc(datetime.fromisoformat(last))
    return now - last_run >= timedelta(minutes=interval_minutes(row, entity))


async def run_entity_sync(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    entity: MetakockaEntity,
) -> dict[str, Any]:
    """One from-Metakocka import for a single entity."""
    if entity == MetakockaEntity.PRODUCTS:
        return await metakocka_product_sync.sync_products_from_metakocka(db, client, org_id)
    if entity == MetakockaEntity.CONTACTS:
        return await metakocka_contact_sync.sync_contacts_from_metakocka(db, client, org_id)
    if entity == MetakockaEntity.INVOICES:
        return await metakocka_sales_document_sync.sync_sales_documents_from_metakocka(
            db, client, org_id, doc_type="invoice"
        )
    return await metakocka_inventory_service.sync_inventory_from_metakocka(db, client, org_id)


def _record_failure(db: Session, org_id: UUID, entity: MetakockaEntity, message: str) -> None:
    metakocka_log_service.log_error(
        db,
        org_id,
        f"Auto-sync of {entity.value} failed: {message}",
        category=LogCategory.SYNC,
        context={"entity": entity.value, "auto_sync": True},
    )
    notification_service.notify_metakocka_sync_failed(db, org_id, entity.value, message)


async def run_org_auto_sync(
    db: Session,
    row: MetakockaAutoSyncSettings,
    now: datetime,
) -> dict[str, Any]:
    org_id = row.organization_id
    result: dict[str, Any] = {"syncs_run": 0, "errors": []}

    try:
        client = metakocka_credentials_service.get_client_for_org(db, org_id)
    except metakocka_credentials_service.MetakockaCredentialsError as exc:
        logger.warning("Auto-sync skipped for org=%s: %s", org_id, exc)
        result["errors"].append({"organization_id": str(org_id), "entity": None, "error": str(exc)})
        return result

    for entity in DEFAULT_INTERVALS:
        if not is_due(row, entity, now):
            continue
        direction = (row.directions or {}).get(entity.value, DEFAULT_DIRECTION)
        if direction == SyncDirection.CRM_TO_METAKOCKA.value:
            logger.warning(
                "Auto-sync of %s for org=%s skipped: Metakocka data is read-only",
                entity.value, org_id,
            )
            continue

        try:
            outcome = await run_entity_sync(db, client, org_id, entity)
        except MetakockaError as exc:
            db.rollback()
            _record_failure(db, org_id, entity, exc.message)
            result["errors"].append(
                {"organization_id": str(org_id), "entity": entity.value, "error": exc.message}
            )
        else:
            result["syncs_run"] += 1
            if outcome.get("failed"):
                _record_failure(db, org_id, entity, f"{outcome['failed']} record(s) failed")
                result["errors"].append(
                    {
                        "organization_id": str(org_id),
                        "entity": entity.value,
                        "error": f"{outcome['failed']} record(s) failed",
                    }
                )

        row.last_run_at = {**(row.last_run_at or {}), entity.value: now.isoformat()}
        db.commit()

    return result


async def run_auto_sync(db: Session, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    rows = db.query(MetakockaAutoSyncSettings).filter(
        MetakockaAutoSyncSettings.enabled.is_(True)
    ).all()

    summary: dict[str, Any] = {"orgs_checked": len(rows), "syncs_run": 0, "errors": []}
    for row in rows:
        result = await run_org_auto_sync(db, row, now)
        summary["syncs_run"] += result["syncs_run"]
        summary["errors"].extend(result["errors"])

    logger.info(
        "Metakocka auto-sync: orgs=%s syncs=%s errors=%s",
        summary["orgs_checked"], summary["syncs_run"], len(summary["errors"]),
    )
    return summary
