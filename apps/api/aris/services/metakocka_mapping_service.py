"""
CRM <-> Metakocka mapping rows and their sync state.

State machine per mapping:
    (new export)  pending -> synced | error
    (re-sync)     synced  -> error on failure
    (import)      synced  -> needs_review when the CRM row changed after
                  last_synced_at; the CRM row is left untouched
    (resolve)     needs_review -> synced (keep CRM or overwrite from ERP)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from aris.db.enums import SyncDirection, SyncStatus
from aris.db.models import (
    Contact,
    MetakockaContactMapping,
    MetakockaProductMapping,
    MetakockaSalesDocumentMapping,
    Product,
    SalesDocument,
)
from aris.db.types import as_utc

logger = logging.getLogger(__name__)


class MappingNotFoundError(Exception):
    pass


class MappingStateError(Exception):
    pass


@dataclass(frozen=True)
class MappingKind:
    model: type
    crm_model: type
    crm_field: str
    code_field: str


MAPPING_KINDS: dict[str, MappingKind] = {
    "products": MappingKind(MetakockaProductMapping, Product, "product_id", "metakocka_code"),
    "contacts": MappingKind(MetakockaContactMapping, Contact, "contact_id", "metakocka_code"),
    "sales_documents": MappingKind(
        MetakockaSalesDocumentMapping,
        SalesDocument,
        "document_id",
        "metakocka_document_number",
    ),
}


def get_kind(entity: str) -> MappingKind:
    kind = MAPPING_KINDS.get(entity)
    if not kind:
        raise MappingNotFoundError(f"Unknown mapping entity: {entity}")
    return kind


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Lookups
# =============================================================================


def get_by_crm_id(db: Session, entity: str, org_id: UUID, crm_id: UUID):
    kind = get_kind(entity)
    return db.query(kind.model).filter(
        kind.model.organization_id == org_id,
        getattr(kind.model, kind.crm_field) == crm_id,
    ).first()


def get_by_metakocka_id(db: Session, entity: str, org_id: UUID, metakocka_id: str):
    kind = get_kind(entity)
    return db.query(kind.model).filter(
        kind.model.organization_id == org_id,
        kind.model.metakocka_id == metakocka_id,
    ).first()


def list_mappings(
    db: Session,
    entity: str,
    org_id: UUID,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list, int]:
    kind = get_kind(entity)
    query = db.query(kind.model).filter(kind.model.organization_id == org_id)
    if status:
        query = query.filter(kind.model.sync_status == SyncStatus(status).value)
    total = query.count()
    items = query.order_by(kind.model.updated_at.desc()).offset(offset).limit(limit).all()
    return items, total


# =============================================================================
# Writes
# =============================================================================


def save_mapping(
    db: Session,
    entity: str,
    org_id: UUID,
    crm_id: UUID,
    metakocka_id: str | None,
    *,
    code: str | None = None,
    status: SyncStatus = SyncStatus.SYNCED,
    direction: SyncDirection = SyncDirection.CRM_TO_METAKOCKA,
    error: str | None = None,
    synced_at: datetime | None = None,
    extra: dict[str, Any] | None = None,
    commit: bool = True,
):
    """Upsert the mapping for a CRM row. sync_error is kept only for errors."""
    kind = get_kind(entity)
    mapping = get_by_crm_id(db, entity, org_id, crm_id)
    if mapping is None:
        mapping = kind.model(organization_id=org_id, details={})
        setattr(mapping, kind.crm_field, crm_id)
        db.add(mapping)

    if metakocka_id is not None:
        mapping.metakocka_id = metakocka_id
    if code is not None:
        setattr(mapping, kind.code_field, code)
    for key, value in (extra or {}).items():
        setattr(mapping, key, value)
    mapping.sync_status = status.value
    mapping.sync_error = error if status == SyncStatus.ERROR else None
    mapping.sync_direction = direction.value
    if status == SyncStatus.SYNCED:
        mapping.last_synced_at = synced_at or _now()

    if commit:
        db.commit()
        db.refresh(mapping)
    else:
        db.flush()
    return mapping


def mark_error(db: Session, mapping, error: str) -> None:
    mapping.sync_status = SyncStatus.ERROR.value
    mapping.sync_error = error[:2000]
    db.commit()


def crm_changed_since_sync(crm_row, mapping) -> bool:
    """True when the CRM row was edited after the mapping last synced."""
    if mapping is None or mapping.last_synced_at is None:
        return False
    updated = as_utc(getattr(crm_row, "updated_at", None))
    return bool(updated and updated > as_utc(mapping.last_synced_at))


def mark_needs_review(db: Session, mapping, payload: dict[str, Any]) -> None:
    """Park an incoming ERP payload until someone decides which side wins."""
    details = dict(mapping.details or {})
    details["pending_payload"] = payload
    details["review_requested_at"] = _now().isoformat()
    mapping.details = details
    mapping.sync_status = SyncStatus.NEEDS_REVIEW.value
    mapping.sync_error = None
    db.commit()


def resolve_mapping_review(
    db: Session,
    entity: str,
    org_id: UUID,
    mapping_id: UUID,
    keep: str,
):
    """
    Settle a needs_review mapping.

    keep="crm" leaves the CRM row as is; keep="metakocka" overwrites it from
    the parked ERP payload. Either way the mapping ends synced.
    """
    from aris.services import (
        metakocka_contact_sync,
        metakocka_product_sync,
        metakocka_sales_document_sync,
    )

    appliers = {
        "products": metakocka_product_sync.apply_metakocka_product,
        "contacts": metakocka_contact_sync.apply_metakocka_partner,
        "sales_documents": lambda row, payload: metakocka_sales_document_sync.apply_metakocka_document(
            db, org_id, row, payload
        ),
    }

    kind = get_kind(entity)
    mapping = db.query(kind.model).filter(
        kind.model.id == mapping_id,
        kind.model.organization_id == org_id,
    ).first()
    if not mapping:
        raise MappingNotFoundError("Mapping not found")
    if mapping.sync_status != SyncStatus.NEEDS_REVIEW.value:
        raise MappingStateError(f"Mapping is '{mapping.sync_status}', not needs_review")
    if keep not in ("crm", "metakocka"):
        raise MappingStateError("keep must be 'crm' or 'metakocka'")

    details = dict(mapping.details or {})
    payload = details.pop("pending_payload", None)
    details.pop("review_requested_at", None)
    details["last_review"] = {"kept": keep, "resolved_at": _now().isoformat()}

    synced_at = _now()
    if keep == "metakocka" and payload:
        crm_row = db.get(kind.crm_model, getattr(mapping, kind.crm_field))
        if crm_row is not None:
            appliers[entity](crm_row, payload)
            crm_row.updated_at = synced_at

    mapping.details = details
    mapping.sync_status = SyncStatus.SYNCED.value
    mapping.sync_error = None
    mapping.last_synced_at = synced_at
    db.commit()
    db.refresh(mapping)
    return mapping
