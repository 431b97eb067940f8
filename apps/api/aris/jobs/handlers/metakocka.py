"""Metakocka sync job handlers."""

from __future__ import annotations

import logging

from aris.db.enums import MetakockaEntity, SyncDirection
from aris.services import (
    metakocka_auto_sync,
    metakocka_contact_sync,
    metakocka_credentials_service,
    metakocka_product_sync,
    metakocka_sales_document_sync,
)

logger = logging.getLogger(__name__)

EXPORTERS = {
    MetakockaEntity.PRODUCTS: metakocka_product_sync.sync_products_to_metakocka,
    MetakockaEntity.CONTACTS: metakocka_contact_sync.sync_contacts_to_metakocka,
    MetakockaEntity.INVOICES: metakocka_sales_document_sync.sync_sales_documents_to_metakocka,
}


async def process_metakocka_sync(db, job) -> None:
    """
    Run one entity sync against Metakocka.

    Payload: ``entity`` (products/contacts/invoices/inventory) and
    ``direction`` (defaults to metakocka_to_crm). Inventory is import-only.
    """
    payload = job.payload or {}
    entity = MetakockaEntity(payload.get("entity"))
    direction = SyncDirection(payload.get("direction") or SyncDirection.METAKOCKA_TO_CRM.value)

    client = metakocka_credentials_service.get_client_for_org(db, job.organization_id)

    if direction == SyncDirection.CRM_TO_METAKOCKA:
        exporter = EXPORTERS.get(entity)
        if exporter is None:
            raise ValueError(f"{entity.value} cannot be exported to Metakocka")
        result = await exporter(db, client, job.organization_id)
    else:
        result = await metakocka_auto_sync.run_entity_sync(db, client, job.organization_id, entity)

    logger.info(
        "Metakocka %s sync job %s (%s): %s", entity.value, job.id, direction.value, result
    )
    if result.get("failed"):
        raise RuntimeError(f"{result['failed']} {entity.value} record(s) failed to sync")
