"""
Metakocka router - /integrations/metakocka endpoints.

Credentials, product/contact/sales-document sync in both directions,
inventory, order lifecycle, mapping review, integration logs and auto-sync
settings. Admin/owner only.
"""

import logging
from typing import Any, Awaitable
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_db, require_csrf_header, require_roles
from aris.db.enums import ROLES_CAN_MANAGE_INTEGRATIONS, SyncStatus
from aris.schemas.auth import UserSession
from aris.schemas.crm import ProductRead
from aris.schemas.metakocka import (
    AutoSyncSettingsRead,
    AutoSyncSettingsUpdate,
    BulkSyncRequest,
    ConnectionTestResponse,
    CredentialsRead,
    CredentialsStatus,
    CredentialsUpdate,
    DocumentImportRequest,
    ErrorStatistics,
    IntegrationLogListResponse,
    IntegrationLogRead,
    LogResolveRequest,
    MappingListResponse,
    MappingRead,
    MappingReviewResolve,
    MetakockaDocType,
    OrderCancelRequest,
    OrderFulfillRequest,
    OrderStatusUpdate,
)
from aris.services import (
    contact_service,
    metakocka_auto_sync,
    metakocka_contact_sync,
    metakocka_credentials_service,
    metakocka_inventory_service,
    metakocka_log_service,
    metakocka_mapping_service,
    metakocka_order_service,
    metakocka_product_sync,
    metakocka_sales_document_sync,
    product_service,
    sales_document_service,
)
from aris.services.metakocka_client import MetakockaClient, MetakockaError, MetakockaErrorType

router = APIRouter()
logger = logging.getLogger(__name__)

require_admin = require_roles(ROLES_CAN_MANAGE_INTEGRATIONS)

STATUS_BY_ERROR_TYPE = {
    MetakockaErrorType.AUTHENTICATION: 401,
    MetakockaErrorType.VALIDATION: 400,
    MetakockaErrorType.NOT_FOUND: 404,
}


def _client(db: Session, org_id: UUID) -> MetakockaClient:
    try:
        return metakocka_credentials_service.get_client_for_org(db, org_id)
    except metakocka_credentials_service.MetakockaCredentialsError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


async def _call(db: Session, session: UserSession, operation: Awaitable[Any]) -> Any:
    """Await a Metakocka operation; API errors are logged and mapped to HTTP."""
    try:
        return await operation
    except MetakockaError as exc:
        db.rollback()
        metakocka_log_service.log_metakocka_error(
            db, session.org_id, exc, context={"details": exc.details}, user_id=session.user_id
        )
        raise HTTPException(
            status_code=STATUS_BY_ERROR_TYPE.get(exc.type, 500),
            detail=exc.message,
        )


# =============================================================================
# Credentials
# =============================================================================


@router.get("/credentials", response_model=CredentialsStatus)
def get_credentials(
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Stored credentials without the secret key."""
    creds = metakocka_credentials_service.get_credentials(db, session.org_id)
    if not creds:
        return CredentialsStatus(configured=False)
    return CredentialsStatus(configured=True, credentials=CredentialsRead.model_validate(creds))


@router.put("/credentials", response_model=CredentialsRead, dependencies=[Depends(require_csrf_header)])
def save_credentials(
    body: CredentialsUpdate,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        creds = metakocka_credentials_service.save_credentials(
            db,
            session.org_id,
            company_id=body.company_id,
            secret_key=body.secret_key,
            api_endpoint=body.api_endpoint,
            is_active=body.is_active,
            user_id=session.user_id,
        )
    except metakocka_credentials_service.MetakockaCredentialsError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return CredentialsRead.model_validate(creds)


@router.post("/test", response_model=ConnectionTestResponse, dependencies=[Depends(require_csrf_header)])
async def test_connection(
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        result = await metakocka_credentials_service.test_credentials(db, session.org_id)
    except metakocka_credentials_service.MetakockaCredentialsError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return ConnectionTestResponse(**result)


# =============================================================================
# Products
# =============================================================================


@router.post("/products/sync-to", dependencies=[Depends(require_csrf_header)])
async def sync_products_to(
    body: BulkSyncRequest | None = None,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_product_sync.sync_products_to_metakocka(
        db, client, session.org_id, product_ids=body.ids if body else None
    ))


@router.post("/products/sync-from", dependencies=[Depends(require_csrf_header)])
async def sync_products_from(
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_product_sync.sync_products_from_metakocka(
        db, client, session.org_id
    ))


@router.post("/products/{product_id}/sync", dependencies=[Depends(require_csrf_header)])
async def sync_product(
    product_id: UUID,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        product = product_service.get_product(db, session.org_id, product_id)
    except product_service.ProductNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_product_sync.sync_product_to_metakocka(
        db, client, session.org_id, product
    ))


# =============================================================================
# Contacts
# =============================================================================


@router.post("/contacts/sync-to", dependencies=[Depends(require_csrf_header)])
async def sync_contacts_to(
    body: BulkSyncRequest | None = None,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_contact_sync.sync_contacts_to_metakocka(
        db, client, session.org_id, contact_ids=body.ids if body else None
    ))


@router.post("/contacts/sync-from", dependencies=[Depends(require_csrf_header)])
async def sync_contacts_from(
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_contact_sync.sync_contacts_from_metakocka(
        db, client, session.org_id
    ))


@router.post("/contacts/{contact_id}/sync", dependencies=[Depends(require_csrf_header)])
async def sync_contact(
    contact_id: UUID,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        contact = contact_service.get_contact(db, session.org_id, contact_id)
    except contact_service.ContactNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_contact_sync.sync_contact_to_metakocka(
        db, client, session.org_id, contact
    ))


# =============================================================================
# Sales documents
# =============================================================================


def _document_or_404(db: Session, org_id: UUID, document_id: UUID):
    try:
        return sales_document_service.get_document(db, org_id, document_id)
    except sales_document_service.SalesDocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("/sales-documents/sync-to", dependencies=[Depends(require_csrf_header)])
async def sync_documents_to(
    body: BulkSyncRequest | None = None,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_sales_document_sync.sync_sales_documents_to_metakocka(
        db, client, session.org_id, document_ids=body.ids if body else None
    ))


@router.post("/sales-documents/sync-from", dependencies=[Depends(require_csrf_header)])
async def sync_documents_from(
    body: DocumentImportRequest | None = None,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    body = body or DocumentImportRequest()
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_sales_document_sync.sync_sales_documents_from_metakocka(
        db, client, session.org_id, doc_type=body.doc_type, metakocka_ids=body.metakocka_ids
    ))


@router.get("/sales-documents/unsynced")
async def list_unsynced_documents(
    doc_type: MetakockaDocType = Query("invoice"),
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Metakocka documents with no CRM counterpart yet."""
    client = _client(db, session.org_id)
    documents = await _call(
        db,
        session,
        metakocka_sales_document_sync.get_unsynced_sales_documents_from_metakocka(
            db, client, session.org_id, doc_type=doc_type
        ),
    )
    return {"items": documents, "total": len(documents)}


@router.post("/sales-documents/import/{metakocka_id}", dependencies=[Depends(require_csrf_header)])
async def import_document(
    metakocka_id: str,
    doc_type: MetakockaDocType = Query("invoice"),
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_sales_document_sync.sync_sales_document_from_metakocka(
        db, client, session.org_id, metakocka_id, doc_type=doc_type
    ))


@router.post("/sales-documents/{document_id}/sync", dependencies=[Depends(require_csrf_header)])
async def sync_document(
    document_id: UUID,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    document = _document_or_404(db, session.org_id, document_id)
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_sales_document_sync.sync_sales_document_to_metakocka(
        db, client, session.org_id, document
    ))


# =============================================================================
# Inventory
# =============================================================================


@router.post("/inventory/sync", dependencies=[Depends(require_csrf_header)])
async def sync_inventory(
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Refresh stock levels for every mapped product."""
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_inventory_service.sync_inventory_from_metakocka(
        db, client, session.org_id
    ))


@router.get("/inventory/low-stock", response_model=list[ProductRead])
def low_stock(
    threshold: float = Query(metakocka_inventory_service.DEFAULT_LOW_STOCK_THRESHOLD, ge=0),
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    products = metakocka_inventory_service.get_low_stock_products(db, session.org_id, threshold)
    return [ProductRead.model_validate(p) for p in products]


@router.get("/inventory/{product_id}")
async def product_inventory(
    product_id: UUID,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        product = product_service.get_product(db, session.org_id, product_id)
    except product_service.ProductNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_inventory_service.get_product_inventory(
        db, client, session.org_id, product
    ))


@router.post("/inventory/{product_id}/sync", dependencies=[Depends(require_csrf_header)])
async def sync_product_inventory(
    product_id: UUID,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        product = product_service.get_product(db, session.org_id, product_id)
    except product_service.ProductNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_inventory_service.sync_product_inventory(
        db, client, session.org_id, product
    ))


# =============================================================================
# Orders
# =============================================================================


@router.post("/orders/{document_id}", dependencies=[Depends(require_csrf_header)])
async def create_order(
    document_id: UUID,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Check stock, push the order to Metakocka and confirm it."""
    document = _document_or_404(db, session.org_id, document_id)
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_order_service.create_order_in_metakocka(
        db, client, session.org_id, document
    ))


@router.put("/orders/{document_id}/status", dependencies=[Depends(require_csrf_header)])
async def update_order_status(
    document_id: UUID,
    body: OrderStatusUpdate,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    document = _document_or_404(db, session.org_id, document_id)
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_order_service.update_order_status(
        db, client, session.org_id, document, body.status
    ))


@router.post("/orders/{document_id}/fulfill", dependencies=[Depends(require_csrf_header)])
async def fulfill_order(
    document_id: UUID,
    body: OrderFulfillRequest | None = None,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    document = _document_or_404(db, session.org_id, document_id)
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_order_service.fulfill_order(
        db, client, session.org_id, document, fulfillment=body.fulfillment if body else None
    ))


@router.post("/orders/{document_id}/cancel", dependencies=[Depends(require_csrf_header)])
async def cancel_order(
    document_id: UUID,
    body: OrderCancelRequest | None = None,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    document = _document_or_404(db, session.org_id, document_id)
    client = _client(db, session.org_id)
    return await _call(db, session, metakocka_order_service.cancel_order(
        db, client, session.org_id, document, reason=body.reason if body else None
    ))


# =============================================================================
# Mappings
# =============================================================================


def _mapping_read(kind, mapping) -> MappingRead:
    read = MappingRead.model_validate(mapping)
    read.crm_id = getattr(mapping, kind.crm_field)
    return read


@router.get("/mappings/{entity}", response_model=MappingListResponse)
def list_mappings(
    entity: str,
    status: SyncStatus | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Mappings for ``products``, ``contacts`` or ``sales_documents``."""
    try:
        kind = metakocka_mapping_service.get_kind(entity)
    except metakocka_mapping_service.MappingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    items, total = metakocka_mapping_service.list_mappings(
        db,
        entity,
        session.org_id,
        status=status.value if status else None,
        limit=limit,
        offset=offset,
    )
    return MappingListResponse(items=[_mapping_read(kind, m) for m in items], total=total)


@router.post(
    "/mappings/{entity}/{mapping_id}/resolve",
    response_model=MappingRead,
    dependencies=[Depends(require_csrf_header)],
)
def resolve_mapping(
    entity: str,
    mapping_id: UUID,
    body: MappingReviewResolve,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Settle a needs_review mapping by keeping the CRM row or taking Metakocka's."""
    try:
        kind = metakocka_mapping_service.get_kind(entity)
        mapping = metakocka_mapping_service.resolve_mapping_review(
            db, entity, session.org_id, mapping_id, keep=body.keep
        )
    except metakocka_mapping_service.MappingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except metakocka_mapping_service.MappingStateError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _mapping_read(kind, mapping)


# =============================================================================
# Integration logs
# =============================================================================


@router.get("/logs", response_model=IntegrationLogListResponse)
def list_logs(
    level: str | None = None,
    category: str | None = None,
    resolved: bool | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    items, total = metakocka_log_service.list_logs(
        db,
        session.org_id,
        level=level,
        category=category,
        resolved=resolved,
        limit=limit,
        offset=offset,
    )
    return IntegrationLogListResponse(
        items=[IntegrationLogRead.model_validate(log) for log in items],
        total=total,
    )


@router.get("/logs/stats", response_model=ErrorStatistics)
def log_stats(
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return ErrorStatistics(**metakocka_log_service.get_error_statistics(db, session.org_id))


@router.post(
    "/logs/{log_id}/resolve",
    response_model=IntegrationLogRead,
    dependencies=[Depends(require_csrf_header)],
)
def resolve_log(
    log_id: UUID,
    body: LogResolveRequest | None = None,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        log = metakocka_log_service.resolve_log(
            db,
            session.org_id,
            log_id,
            resolved_by=session.user_id,
            notes=body.notes if body else None,
        )
    except metakocka_log_service.IntegrationLogNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return IntegrationLogRead.model_validate(log)


# =============================================================================
# Auto-sync
# =============================================================================


@router.get("/auto-sync", response_model=AutoSyncSettingsRead)
def get_auto_sync(
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return AutoSyncSettingsRead.model_validate(metakocka_auto_sync.get_settings(db, session.org_id))


@router.put("/auto-sync", response_model=AutoSyncSettingsRead, dependencies=[Depends(require_csrf_header)])
def update_auto_sync(
    body: AutoSyncSettingsUpdate,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    row = metakocka_auto_sync.update_settings(
        db, session.org_id, **body.model_dump(exclude_unset=True)
    )
    return AutoSyncSettingsRead.model_validate(row)
