"""Order lifecycle on top of sales document sync."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from aris.db.enums import OrderStatus, SalesDocumentType
from aris.db.models import Product, SalesDocument
from aris.services import (
    metakocka_inventory_service,
    metakocka_mapping_service as mappings,
    metakocka_sales_document_sync,
)
from aris.services.metakocka_client import MetakockaClient, MetakockaError, MetakockaErrorType

logger = logging.getLogger(__name__)


def _require_order(document: SalesDocument) -> None:
    if document.document_type != SalesDocumentType.ORDER.value:
        raise MetakockaError(
            f"Document {document.id} is not an order", MetakockaErrorType.VALIDATION
        )


def _set_status_synced(db: Session, org_id: UUID, document: SalesDocument, status: str) -> None:
    """Status change that Metakocka already has; keep the mapping in step."""
    mapping = mappings.get_by_crm_id(db, "sales_documents", org_id, document.id)
    crm_edited = mappings.crm_changed_since_sync(document, mapping)
    synced_at = datetime.now(timezone.utc)
    document.status = status
    if mapping and not crm_edited:
        document.updated_at = synced_at
        mapping.last_synced_at = synced_at
    db.commit()


async def check_order_inventory(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    document: SalesDocument,
) -> list[dict[str, Any]]:
    """Shortages against live Metakocka stock for every line that references a product."""
    shortages = []
    for item in document.items:
        if not item.product_id:
            continue
        product = db.get(Product, item.product_id)
        if product is None:
            continue
        availability = await metakocka_inventory_service.check_live_availability(
            db, client, org_id, product, item.quantity
        )
        if not availability["available"]:
            shortages.append(
                {
                    "product_id": str(product.id),
                    "product_name": product.name,
                    "requested_quantity": item.quantity,
                    "available_quantity": availability["available_quantity"],
                }
            )
    return shortages


async def create_order_in_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    document: SalesDocument,
) -> dict[str, Any]:
    """Push an order after checking stock; a successful push confirms it."""
    _require_order(document)

    shortages = await check_order_inventory(db, client, org_id, document)
    if shortages:
        names = ", ".join(s["product_name"] for s in shortages)
        raise MetakockaError(
            f"Insufficient inventory for: {names}",
            MetakockaErrorType.VALIDATION,
            "INSUFFICIENT_INVENTORY",
            shortages,
        )

    result = await metakocka_sales_document_sync.sync_sales_document_to_metakocka(
        db, client, org_id, document
    )
    if result["success"]:
        _set_status_synced(db, org_id, document, OrderStatus.CONFIRMED.value)
    return result


async def update_order_status(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    document: SalesDocument,
    status: str,
) -> dict[str, Any]:
    _require_order(document)
    try:
        new_status = OrderStatus(status)
    except ValueError:
        raise MetakockaError(f"Invalid order status: {status}", MetakockaErrorType.VALIDATION)

    metakocka_id = metakocka_sales_document_sync.get_metakocka_id_for_document(db, org_id, document)
    if not metakocka_id:
        raise MetakockaError(
            f"Order {document.id} has not been synced to Metakocka", MetakockaErrorType.NOT_FOUND
        )

    await client.update_order_status(metakocka_id, new_status.value)
    _set_status_synced(db, org_id, document, new_status.value)
    return {
        "success": True,
        "document_id": str(document.id),
        "metakocka_id": metakocka_id,
        "status": new_status.value,
    }


async def _finish_order(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    document: SalesDocument,
    status: OrderStatus,
    details_update: dict[str, Any],
) -> dict[str, Any]:
    details = dict(document.details or {})
    details.update(details_update)
    document.details = details
    try:
        return await update_order_status(db, client, org_id, document, status.value)
    except MetakockaError:
        db.rollback()
        raise


async def fulfill_order(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    document: SalesDocument,
    fulfillment: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return await _finish_order(
        db, client, org_id, document, OrderStatus.FULFILLED,
        {"fulfillment": {**(fulfillment or {}), "fulfilled_on": date.today().isoformat()}},
    )


async def cancel_order(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    document: SalesDocument,
    reason: str | None = None,
) -> dict[str, Any]:
    return await _finish_order(
        db, client, org_id, document, OrderStatus.CANCELLED,
        {"cancellation_reason": reason} if reason else {},
    )
