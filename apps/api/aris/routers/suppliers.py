"""Suppliers router - CRUD for the organization's suppliers."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_current_session, get_db, require_csrf_header
from aris.schemas.auth import UserSession
from aris.schemas.crm import SupplierCreate, SupplierListResponse, SupplierRead, SupplierUpdate
from aris.services import supplier_service

router = APIRouter()


def _get_or_404(db: Session, org_id: UUID, supplier_id: UUID):
    try:
        return supplier_service.get_supplier(db, org_id, supplier_id)
    except supplier_service.SupplierNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("", response_model=SupplierListResponse)
def list_suppliers(
    search: str | None = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    items, total = supplier_service.list_suppliers(
        db, session.org_id, search=search, limit=limit, offset=offset
    )
    return SupplierListResponse(
        items=[SupplierRead.model_validate(s) for s in items],
        total=total,
    )


@router.post("", response_model=SupplierRead, dependencies=[Depends(require_csrf_header)])
def create_supplier(
    body: SupplierCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Create a supplier. Returns 409 when the email is already used in the org."""
    try:
        supplier = supplier_service.create_supplier(
            db, session.org_id, session.user_id, **body.model_dump()
        )
    except supplier_service.SupplierConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return SupplierRead.model_validate(supplier)


@router.get("/{supplier_id}", response_model=SupplierRead)
def get_supplier(
    supplier_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return SupplierRead.model_validate(_get_or_404(db, session.org_id, supplier_id))


@router.patch("/{supplier_id}", response_model=SupplierRead, dependencies=[Depends(require_csrf_header)])
def update_supplier(
    supplier_id: UUID,
    body: SupplierUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    supplier = _get_or_404(db, session.org_id, supplier_id)
    try:
        supplier = supplier_service.update_supplier(db, supplier, **body.model_dump(exclude_unset=True))
    except supplier_service.SupplierConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return SupplierRead.model_validate(supplier)


@router.delete("/{supplier_id}", dependencies=[Depends(require_csrf_header)])
def delete_supplier(
    supplier_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    supplier_service.delete_supplier(db, _get_or_404(db, session.org_id, supplier_id))
    return {"deleted": True}
