"""Product sync between the CRM catalogue and Metakocka."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from aris.db.enums import SyncDirection, SyncStatus
from aris.db.models import Product
from aris.services import metakocka_log_service, metakocka_mapping_service as mappings
from aris.services.metakocka_client import MetakockaClient, MetakockaError, MetakockaErrorType

logger = logging.getLogger(__name__)

ENTITY = "products"


def default_code(product: Product) -> str:
    return product.sku or f"PROD-{str(product.id)[:8]}"


def product_to_metakocka(product: Product, mapping=None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "count_code": (mapping.metakocka_code if mapping else None) or default_code(product),
        "name": product.name,
        "unit": "piece",
        "service": "false",
        "sales": "true",
    }
    if product.description:
        payload["name_desc"] = product.description
    if mapping and mapping.metakocka_id:
        payload["mk_id"] = mapping.metakocka_id
    return payload


def apply_metakocka_product(product: Product, payload: dict[str, Any]) -> None:
    product.name = payload.get("name") or product.name
    product.description = payload.get("name_desc") or product.description
    if payload.get("count_code"):
        product.sku = payload["count_code"]


async def sync_product_to_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    product: Product,
) -> dict[str, Any]:
    """Add or update one product. Failures end in an error mapping, not an exception."""
    mapping = mappings.get_by_crm_id(db, ENTITY, org_id, product.id)
    is_update = bool(mapping and mapping.metakocka_id)
    payload = product_to_metakocka(product, mapping)

    if mapping is None:
        mapping = mappings.save_mapping(
            db, ENTITY, org_id, product.id, None,
            code=payload["count_code"], status=SyncStatus.PENDING,
        )

    try:
        if is_update:
            await client.update_product(payload)
            metakocka_id = mapping.metakocka_id
        else:
            response = await client.add_product(payload)
            metakocka_id = str(response.get("mk_id") or "")
            if not metakocka_id:
                raise MetakockaError(
                    "Metakocka did not return a product id", MetakockaErrorType.UNKNOWN
                )
    except MetakockaError as exc:
        mappings.mark_error(db, mapping, exc.message)
        metakocka_log_service.log_metakocka_error(
            db, org_id, exc, context={"product_id": str(product.id), "operation": "export"}
        )
        return {"success": False, "product_id": str(product.id), "error": exc.message}

    mappings.save_mapping(
        db, ENTITY, org_id, product.id, metakocka_id, code=payload["count_code"]
    )
    return {
        "success": True,
        "product_id": str(product.id),
        "metakocka_id": metakocka_id,
        "created": not is_update,
    }


async def sync_products_to_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    product_ids: list[UUID] | None = None,
) -> dict[str, Any]:
    query = db.query(Product).filter(Product.organization_id == org_id)
    if product_ids:
        query = query.filter(Product.id.in_(product_ids))

    result: dict[str, Any] = {"success": True, "created": 0, "updated": 0, "failed": 0, "errors": []}
    for product in query.order_by(Product.created_at.asc()).all():
        outcome = await sync_product_to_metakocka(db, client, org_id, product)
        if not outcome["success"]:
            result["failed"] += 1
            result["errors"].append({"product_id": outcome["product_id"], "error": outcome["error"]})
        elif outcome["created"]:
            result["created"] += 1
        else:
            result["updated"] += 1
    result["success"] = result["failed"] == 0
    return result


async def sync_products_from_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
) -> dict[str, Any]:
    """
    Import every Metakocka product.

    Mapped products are updated unless edited in the CRM since the last sync,
    in which case the mapping is flagged needs_review.
    """
    response = await client.list_products()
    products = response.get("product_list")
    if products is None:
        raise MetakockaError(
            "Invalid response format from Metakocka: missing product_list",
            MetakockaErrorType.VALIDATION,
        )
    if isinstance(products, dict):
        products = [products]

    result: dict[str, Any] = {
        "success": True, "created": 0, "updated": 0, "needs_review": 0, "failed": 0, "errors": [],
    }
    for payload in products:
        mk_id = str(payload.get("mk_id") or "")
        try:
            if not mk_id:
                raise MetakockaError("Product without mk_id", MetakockaErrorType.VALIDATION)
            outcome = _import_product(db, org_id, mk_id, payload)
        except MetakockaError as exc:
            db.rollback()
            result["failed"] += 1
            result["errors"].append({"metakocka_id": mk_id or None, "error": exc.message})
            metakocka_log_service.log_metakocka_error(
                db, org_id, exc, context={"metakocka_id": mk_id, "operation": "import"}
            )
            continue
        result[outcome] += 1

    result["success"] = result["failed"] == 0
    logger.info(
        "Metakocka product import org=%s created=%s updated=%s review=%s failed=%s",
        org_id, result["created"], result["updated"], result["needs_review"], result["failed"],
    )
    return result


def _import_product(db: Session, org_id: UUID, mk_id: str, payload: dict[str, Any]) -> str:
    mapping = mappings.get_by_metakocka_id(db, ENTITY, org_id, mk_id)
    product = db.get(Product, mapping.product_id) if mapping else None

    if product is not None and mappings.crm_changed_since_sync(product, mapping):
        mappings.mark_needs_review(db, mapping, payload)
        return "needs_review"

    synced_at = datetime.now(timezone.utc)
    outcome = "updated"
    if product is None:
        product = Product(organization_id=org_id, name=payload.get("name") or mk_id)
        db.add(product)
        outcome = "created"
    apply_metakocka_product(product, payload)
    product.updated_at = synced_at
    db.flush()

    mappings.save_mapping(
        db, ENTITY, org_id, product.id, mk_id,
        code=payload.get("count_code"),
        direction=SyncDirection.METAKOCKA_TO_CRM,
        synced_at=synced_at,
    )
    return outcome
