"""Sales documents router - invoices, quotes, orders and friends."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_current_session, get_db, require_csrf_header
from aris.db.enums import SalesDocumentType
from aris.schemas.auth import UserSession
from aris.schemas.sales import (
    SalesDocumentCreate,
    SalesDocumentListResponse,
    SalesDocumentRead,
    SalesDocumentUpdate,
)
from aris.services import sales_document_service

router = APIRouter()


def _get_or_404(db: Session, org_id: UUID, document_id: UUID):
    try:
        return sales_document_service.get_document(db, org_id, document_id)
    except sales_document_service.SalesDocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("", response_model=SalesDocumentListResponse)
def list_sales_documents(
    document_type: SalesDocumentType | None = None,
    status: str | None = None,
    customer_id: UUID | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    items, total = sales_document_service.list_documents(
        db,
        session.org_id,
        document_type=document_type.value if document_type else None,
        status=status,
        customer_id=customer_id,
        limit=limit,
        offset=offset,
    )
    return SalesDocumentListResponse(
        items=[SalesDocumentRead.model_validate(d) for d in items],
        total=total,
    )


@router.post("", response_model=SalesDocumentRead, dependencies=[Depends(require_csrf_header)])
def create_sales_document(
    body: SalesDocumentCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    fields = body.model_dump(exclude={"items", "metadata", "document_type"})
    try:
        document = sales_document_service.create_document(
            db,
            session.org_id,
            session.user_id,
            document_type=body.document_type,
            items=[item.model_dump() for item in body.items],
            details=body.metadata,
            **fields,
        )
    except sales_document_service.SalesDocumentValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return SalesDocumentRead.model_validate(document)


@router.get("/{document_id}", response_model=SalesDocumentRead)
def get_sales_document(
    document_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return SalesDocumentRead.model_validate(_get_or_404(db, session.org_id, document_id))


@router.patch("/{document_id}", response_model=SalesDocumentRead, dependencies=[Depends(require_csrf_header)])
def update_sales_document(
    document_id: UUID,
    body: SalesDocumentUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    document = _get_or_404(db, session.org_id, document_id)
    changes = body.model_dump(exclude_unset=True, exclude={"items", "metadata"})
    try:
        document = sales_document_service.update_document(
            db,
            document,
            items=[item.model_dump() for item in body.items] if body.items is not None else None,
            details=body.metadata,
            **changes,
        )
    except sales_document_service.SalesDocumentValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return SalesDocumentRead.model_validate(document)


@router.delete("/{document_id}", dependencies=[Depends(require_csrf_header)])
def delete_sales_document(
    document_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    sales_document_service.delete_document(db, _get_or_404(db, session.org_id, document_id))
    return {"deleted": True}
