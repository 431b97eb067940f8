"""Inventory levels pulled from Metakocka onto CRM products."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from aris.db.models import MetakockaProductMapping, Product
from aris.services import metakocka_log_service, metakocka_mapping_service as mappings
from aris.services.metakocka_client import MetakockaClient, MetakockaError, MetakockaErrorType

logger = logging.getLogger(__name__)

DEFAULT_LOW_STOCK_THRESHOLD = 5


def _require_metakocka_id(db: Session, org_id: UUID, product: Product) -> MetakockaProductMapping:
    mapping = mappings.get_by_crm_id(db, "products", org_id, product.id)
    if not mapping or not mapping.metakocka_id:
        raise MetakockaError(
            f"Product {product.id} is not mapped to Metakocka", MetakockaErrorType.NOT_FOUND
        )
    return mapping


async def get_product_inventory(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    product: Product,
) -> dict[str, Any]:
    """Live stock levels straight from Metakocka."""
    mapping = _require_metakocka_id(db, org_id, product)
    return await client.get_product_inventory(mapping.metakocka_id)


async def sync_product_inventory(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    product: Product,
) -> dict[str, Any]:
    mapping = _require_metakocka_id(db, org_id, product)
    inventory = await client.get_product_inventory(mapping.metakocka_id)

    # A pending CRM edit must stay newer than last_synced_at so the next
    # product import parks it for review instead of overwriting it.
    crm_edited = mappings.crm_changed_since_sync(product, mapping)
    synced_at = datetime.now(timezone.utc)
    product.quantity_on_hand = inventory["quantity_on_hand"]
    product.quantity_reserved = inventory["quantity_reserved"]
    product.quantity_available = inventory["quantity_available"]
    product.inventory_synced_at = synced_at
    if not crm_edited:
        product.updated_at = synced_at
        mapping.last_synced_at = synced_at
    db.commit()
    return {"product_id": str(product.id), **inventory}


async def sync_inventory_from_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
) -> dict[str, Any]:
    """Refresh stock for every mapped product."""
    products = (
        db.query(Product)
        .join(MetakockaProductMapping, MetakockaProductMapping.product_id == Product.id)
        .filter(
            Product.organization_id == org_id,
            MetakockaProductMapping.organization_id == org_id,
            MetakockaProductMapping.metakocka_id.isnot(None),
        )
        .all()
    )

    result: dict[str, Any] = {"success": True, "synced": 0, "failed": 0, "errors": []}
    for product in products:
        try:
            await sync_product_inventory(db, client, org_id, product)
        except MetakockaError as exc:
            db.rollback()
            result["failed"] += 1
            result["errors"].append({"product_id": str(product.id), "error": exc.message})
            metakocka_log_service.log_metakocka_error(
                db, org_id, exc, context={"product_id": str(product.id), "operation": "inventory"}
            )
            continue
        result["synced"] += 1
    result["success"] = result["failed"] == 0
    return result


def check_product_availability(product: Product, quantity: float) -> dict[str, Any]:
    """Availability against the last synced stock level."""
    available_quantity = product.quantity_available or 0
    return {
        "product_id": str(product.id),
        "available": available_quantity >= quantity,
        "available_quantity": available_quantity,
        "requested_quantity": quantity,
    }


async def check_live_availability(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    product: Product,
    quantity: float,
) -> dict[str, Any]:
    """Availability against current Metakocka stock; unmapped products are unavailable."""
    mapping = mappings.get_by_crm_id(db, "products", org_id, product.id)
    if not mapping or not mapping.metakocka_id:
        available_quantity = 0.0
    else:
        inventory = await client.get_product_inventory(mapping.metakocka_id)
        available_quantity = inventory["quantity_available"]
    return {
        "product_id": str(product.id),
        "available": available_quantity >= quantity,
        "available_quantity": available_quantity,
        "requested_quantity": quantity,
    }


def get_low_stock_products(
    db: Session,
    org_id: UUID,
    threshold: float = DEFAULT_LOW_STOCK_THRESHOLD,
) -> list[Product]:
    return (
        db.query(Product)
        .filter(
            Product.organization_id == org_id,
            Product.inventory_synced_at.isnot(None),
            Product.quantity_available <= threshold,
        )
        .order_by(Product.quantity_available.asc(), Product.name.asc())
        .all()
    )
