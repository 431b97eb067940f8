"""Products router."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_current_session, get_db, require_csrf_header
from aris.schemas.auth import UserSession
from aris.schemas.crm import ProductCreate, ProductListResponse, ProductRead, ProductUpdate
from aris.services import metakocka_inventory_service, product_service

router = APIRouter()


def _get_or_404(db: Session, org_id: UUID, product_id: UUID):
    try:
        return product_service.get_product(db, org_id, product_id)
    except product_service.ProductNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("", response_model=ProductListResponse)
def list_products(
    search: str | None = Query(None, max_length=100),
    category: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    items, total = product_service.list_products(
        db, session.org_id, search=search, category=category, limit=limit, offset=offset
    )
    return ProductListResponse(items=[ProductRead.model_validate(p) for p in items], total=total)


@router.get("/low-stock", response_model=list[ProductRead])
def list_low_stock(
    threshold: float = Query(metakocka_inventory_service.DEFAULT_LOW_STOCK_THRESHOLD, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Products whose available quantity is at or below ``threshold``."""
    products = metakocka_inventory_service.get_low_stock_products(db, session.org_id, threshold)
    return [ProductRead.model_validate(p) for p in products]


@router.post("", response_model=ProductRead, dependencies=[Depends(require_csrf_header)])
def create_product(
    body: ProductCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    product = product_service.create_product(db, session.org_id, **body.model_dump())
    return ProductRead.model_validate(product)


@router.get("/{product_id}", response_model=ProductRead)
def get_product(
    product_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return ProductRead.model_validate(_get_or_404(db, session.org_id, product_id))


@router.get("/{product_id}/availability")
def check_availability(
    product_id: UUID,
    quantity: float = Query(1, gt=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    product = _get_or_404(db, session.org_id, product_id)
    return metakocka_inventory_service.check_product_availability(product, quantity)


@router.patch("/{product_id}", response_model=ProductRead, dependencies=[Depends(require_csrf_header)])
def update_product(
    product_id: UUID,
    body: ProductUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    product = _get_or_404(db, session.org_id, product_id)
    product = product_service.update_product(db, product, **body.model_dump(exclude_unset=True))
    return ProductRead.model_validate(product)


@router.delete("/{product_id}", dependencies=[Depends(require_csrf_header)])
def delete_product(
    product_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    product_service.delete_product(db, _get_or_404(db, session.org_id, product_id))
    return {"deleted": True}
