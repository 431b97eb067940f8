"""
Sales document sync between the CRM and Metakocka.

CRM document types map onto Metakocka types; the four Metakocka endpoint
families (bill, offer, order, proforma) carry all of them, with unknown or
bill-like types going through the bill endpoints.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from aris.db.enums import SyncDirection, SyncStatus
from aris.db.models import SalesDocument, SalesDocumentItem
from aris.services import metakocka_log_service, metakocka_mapping_service as mappings
from aris.services.metakocka_client import (
    DOCUMENT_ENDPOINTS,
    MetakockaClient,
    MetakockaError,
    MetakockaErrorType,
)

logger = logging.getLogger(__name__)

ENTITY = "sales_documents"
ITEM_COUNT_CODE = "KOS"

CRM_TO_METAKOCKA_TYPE = {
    "invoice": "invoice",
    "quote": "offer",
    "order": "order",
    "receipt": "receipt",
    "credit_note": "credit_note",
    "debit_note": "debit_note",
    "proforma": "proforma",
    "advance": "advance",
}
METAKOCKA_TO_CRM_TYPE = {v: k for k, v in CRM_TO_METAKOCKA_TYPE.items()}

# Keys Metakocka uses for list responses
LIST_KEYS = ("document_list", "sales_bill_list", "sales_offer_list", "sales_order_list")


def metakocka_document_type(crm_type: str | None) -> str:
    return CRM_TO_METAKOCKA_TYPE.get(crm_type or "", "invoice")


def endpoint_type(mk_type: str) -> str:
    return mk_type if mk_type in DOCUMENT_ENDPOINTS else "invoice"


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _fmt(value: Any) -> str:
    number = _float(value)
    return str(int(number)) if number.is_integer() else str(number)


def get_metakocka_id_for_document(db: Session, org_id: UUID, document: SalesDocument) -> str | None:
    """Mapping first, then the legacy metadata["metakockaId"]."""
    mapping = mappings.get_by_crm_id(db, ENTITY, org_id, document.id)
    if mapping and mapping.metakocka_id:
        return mapping.metakocka_id
    return (document.details or {}).get("metakockaId")


def save_sales_document_mapping(
    db: Session,
    org_id: UUID,
    document_id: UUID,
    metakocka_id: str | None,
    document_type: str,
    document_number: str | None = None,
    status: SyncStatus = SyncStatus.SYNCED,
    direction: SyncDirection = SyncDirection.CRM_TO_METAKOCKA,
    error: str | None = None,
    synced_at: datetime | None = None,
):
    return mappings.save_mapping(
        db, ENTITY, org_id, document_id, metakocka_id,
        code=document_number,
        status=status,
        direction=direction,
        error=error,
        synced_at=synced_at,
        extra={"metakocka_document_type": document_type},
    )


# =============================================================================
# CRM -> Metakocka
# =============================================================================


def build_metakocka_document(db: Session, org_id: UUID, document: SalesDocument) -> dict[str, Any]:
    mk_type = metakocka_document_type(document.document_type)
    items = []
    for item in document.items:
        row: dict[str, Any] = {
            "count_code": ITEM_COUNT_CODE,
            "name": item.description,
            "amount": _fmt(item.quantity or 1),
            "price": _fmt(item.unit_price),
            "discount": _fmt(item.discount),
            "tax_rate": _fmt(item.tax_rate),
            "notes": item.description,
        }
        if item.product_id:
            product_mapping = mappings.get_by_crm_id(db, "products", org_id, item.product_id)
            if product_mapping and product_mapping.metakocka_id:
                row["product_id"] = product_mapping.metakocka_id
        items.append(row)

    payload: dict[str, Any] = {
        "doc_type": mk_type,
        "title": document.number or "",
        "doc_date": (document.document_date or date.today()).isoformat(),
        "due_date": document.due_date.isoformat() if document.due_date else "",
        "status_id": document.status,
        "doc_number": document.number or "",
        "notes": document.notes or "",
        "currency_code": document.currency,
        "sales_items": items,
    }

    contact_mapping = (
        mappings.get_by_crm_id(db, "contacts", org_id, document.customer_id)
        if document.customer_id
        else None
    )
    if contact_mapping and contact_mapping.metakocka_id:
        payload["partner_id"] = contact_mapping.metakocka_id
    else:
        payload["partner"] = {
            "business_entity": "false",
            "name": document.customer_name or "",
            "street": document.customer_address or "",
            "email": document.customer_email or "",
        }

    payment_method = (document.details or {}).get("payment_method")
    if payment_method:
        payload["payment_method"] = payment_method
    return payload


async def sync_sales_document_to_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    document: SalesDocument,
) -> dict[str, Any]:
    """Create or update one document. Returns a result dict; never raises MetakockaError."""
    mk_type = metakocka_document_type(document.document_type)
    existing_id = get_metakocka_id_for_document(db, org_id, document)
    payload = build_metakocka_document(db, org_id, document)

    if not mappings.get_by_crm_id(db, ENTITY, org_id, document.id):
        save_sales_document_mapping(
            db, org_id, document.id, existing_id, mk_type, status=SyncStatus.PENDING
        )

    try:
        if existing_id:
            payload["mk_id"] = existing_id
            response = await client.update_document(endpoint_type(mk_type), payload)
            metakocka_id = existing_id
        else:
            response = await client.put_document(endpoint_type(mk_type), payload)
            metakocka_id = str(response.get("mk_id") or "")
            if not metakocka_id:
                raise MetakockaError(
                    "Metakocka did not return a document id", MetakockaErrorType.UNKNOWN
                )
    except MetakockaError as exc:
        mapping = mappings.get_by_crm_id(db, ENTITY, org_id, document.id)
        mappings.mark_error(db, mapping, exc.message)
        metakocka_log_service.log_metakocka_error(
            db, org_id, exc, context={"document_id": str(document.id), "operation": "export"}
        )
        return {"success": False, "document_id": str(document.id), "error": exc.message}

    save_sales_document_mapping(
        db, org_id, document.id, metakocka_id, mk_type,
        document_number=response.get("count_code") or response.get("doc_number") or document.number,
    )
    return {
        "success": True,
        "document_id": str(document.id),
        "metakocka_id": metakocka_id,
        "created": not existing_id,
    }


async def sync_sales_documents_to_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    document_ids: list[UUID] | None = None,
) -> dict[str, Any]:
    query = db.query(SalesDocument).filter(SalesDocument.organization_id == org_id)
    if document_ids:
        query = query.filter(SalesDocument.id.in_(document_ids))

    result: dict[str, Any] = {"success": True, "created": 0, "updated": 0, "failed": 0, "errors": []}
    for document in query.order_by(SalesDocument.created_at.asc()).all():
        outcome = await sync_sales_document_to_metakocka(db, client, org_id, document)
        if not outcome["success"]:
            result["failed"] += 1
            result["errors"].append(
                {"document_id": outcome["document_id"], "error": outcome["error"]}
            )
        elif outcome["created"]:
            result["created"] += 1
        else:
            result["updated"] += 1
    result["success"] = result["failed"] == 0
    return result


# =============================================================================
# Metakocka -> CRM
# =============================================================================


def apply_metakocka_document(
    db: Session,
    org_id: UUID,
    document: SalesDocument,
    payload: dict[str, Any],
) -> None:
    """Overwrite the CRM document (header and items) from a Metakocka payload."""
    mk_id = str(payload.get("mk_id") or "")
    document.document_type = METAKOCKA_TO_CRM_TYPE.get(payload.get("doc_type"), "invoice")
    document.number = payload.get("doc_number") or document.number or f"MK-{mk_id[:8]}"
    document.document_date = _parse_date(payload.get("doc_date")) or document.document_date
    document.due_date = _parse_date(payload.get("due_date"))
    document.currency = payload.get("currency_code") or "EUR"
    document.tax_amount = _float(payload.get("sum_tax"))
    document.total_amount = _float(payload.get("sum_all"))
    if payload.get("notes") is not None:
        document.notes = payload.get("notes")
    details = dict(document.details or {})
    details["metakockaId"] = mk_id
    document.details = details

    partner_id = payload.get("partner_id")
    if partner_id:
        contact_mapping = mappings.get_by_metakocka_id(db, "contacts", org_id, str(partner_id))
        if contact_mapping:
            document.customer_id = contact_mapping.contact_id
    partner = payload.get("partner") or {}
    if partner.get("name"):
        document.customer_name = partner["name"]
        document.customer_email = partner.get("email") or document.customer_email
        document.customer_address = partner.get("street") or document.customer_address

    new_items = []
    for position, row in enumerate(payload.get("sales_items") or []):
        quantity = _float(row.get("amount"), 1.0)
        unit_price = _float(row.get("price"))
        discount = _float(row.get("discount"))
        product_id = None
        if row.get("product_id"):
            product_mapping = mappings.get_by_metakocka_id(
                db, "products", org_id, str(row["product_id"])
            )
            product_id = product_mapping.product_id if product_mapping else None
        new_items.append(
            SalesDocumentItem(
                position=position,
                product_id=product_id,
                description=row.get("name") or row.get("notes") or "",
                quantity=quantity,
                unit_price=unit_price,
                tax_rate=_float(row.get("tax_rate")),
                discount=discount,
                total_price=round(quantity * unit_price * (1 - discount / 100), 2),
            )
        )
    document.items = new_items


def _import_document(db: Session, org_id: UUID, mk_id: str, payload: dict[str, Any]) -> tuple[str, SalesDocument]:
    mapping = mappings.get_by_metakocka_id(db, ENTITY, org_id, mk_id)
    document = db.get(SalesDocument, mapping.document_id) if mapping else None

    if document is not None and mappings.crm_changed_since_sync(document, mapping):
        mappings.mark_needs_review(db, mapping, payload)
        return "needs_review", document

    synced_at = datetime.now(timezone.utc)
    outcome = "updated"
    if document is None:
        document = SalesDocument(organization_id=org_id, document_type="invoice", details={})
        db.add(document)
        outcome = "created"
    apply_metakocka_document(db, org_id, document, {**payload, "mk_id": mk_id})
    document.updated_at = synced_at
    db.flush()

    save_sales_document_mapping(
        db, org_id, document.id, mk_id,
        metakocka_document_type(document.document_type),
        document_number=payload.get("doc_number"),
        direction=SyncDirection.METAKOCKA_TO_CRM,
        synced_at=synced_at,
    )
    return outcome, document


async def sync_sales_document_from_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    metakocka_id: str,
    doc_type: str = "invoice",
) -> dict[str, Any]:
    payload = await client.get_document(endpoint_type(doc_type), metakocka_id)
    if not payload:
        raise MetakockaError(
            f"Document not found in Metakocka: {metakocka_id}", MetakockaErrorType.NOT_FOUND
        )
    payload.setdefault("doc_type", doc_type)
    outcome, document = _import_document(db, org_id, metakocka_id, payload)
    return {"outcome": outcome, "document_id": str(document.id), "metakocka_id": metakocka_id}


def _extract_documents(response: dict[str, Any]) -> list[dict[str, Any]]:
    for key in LIST_KEYS:
        if key in response:
            value = response[key]
            return [value] if isinstance(value, dict) else list(value or [])
    raise MetakockaError(
        "Invalid response format from Metakocka: missing document list",
        MetakockaErrorType.VALIDATION,
    )


async def sync_sales_documents_from_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    doc_type: str = "invoice",
    metakocka_ids: list[str] | None = None,
) -> dict[str, Any]:
    result: dict[str, Any] = {
        "success": True, "created": 0, "updated": 0, "needs_review": 0, "failed": 0, "errors": [],
    }

    if metakocka_ids:
        payloads = []
        for mk_id in metakocka_ids:
            try:
                payloads.append({**await client.get_document(endpoint_type(doc_type), mk_id), "mk_id": mk_id})
            except MetakockaError as exc:
                result["failed"] += 1
                result["errors"].append({"document_id": mk_id, "error": exc.message})
    else:
        payloads = _extract_documents(await client.list_documents(endpoint_type(doc_type)))

    for payload in payloads:
        mk_id = str(payload.get("mk_id") or "")
        payload.setdefault("doc_type", doc_type)
        try:
            if not mk_id:
                raise MetakockaError("Document without mk_id", MetakockaErrorType.VALIDATION)
            outcome, _ = _import_document(db, org_id, mk_id, payload)
        except MetakockaError as exc:
            db.rollback()
            result["failed"] += 1
            result["errors"].append({"document_id": mk_id or None, "error": exc.message})
            metakocka_log_service.log_metakocka_error(
                db, org_id, exc, context={"metakocka_id": mk_id, "operation": "import"}
            )
            continue
        result[outcome] += 1

    result["success"] = result["failed"] == 0
    return result


async def get_unsynced_sales_documents_from_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    doc_type: str = "invoice",
) -> list[dict[str, Any]]:
    """Metakocka documents that have no CRM mapping yet."""
    documents = _extract_documents(await client.list_documents(endpoint_type(doc_type)))
    return [
        doc
        for doc in documents
        if doc.get("mk_id")
        and not mappings.get_by_metakocka_id(db, ENTITY, org_id, str(doc["mk_id"]))
    ]
