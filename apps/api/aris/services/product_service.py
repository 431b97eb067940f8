"""Product catalogue CRUD. Stock columns are owned by the inventory sync."""

from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from aris.db.models import Product

UPDATABLE_FIELDS = {"name", "sku", "description", "category", "price"}


class ProductNotFoundError(Exception):
    pass


def list_products(
    db: Session,
    org_id: UUID,
    search: str | None = None,
    category: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Product], int]:
    query = db.query(Product).filter(Product.organization_id == org_id)
    if category:
        query = query.filter(Product.category == category)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    total = query.count()
    return query.order_by(Product.name.asc()).offset(offset).limit(limit).all(), total


def get_product(db: Session, org_id: UUID, product_id: UUID) -> Product:
    product = db.query(Product).filter(
        Product.id == product_id,
        Product.organization_id == org_id,
    ).first()
    if not product:
        raise ProductNotFoundError("Product not found")
    return product


def create_product(db: Session, org_id: UUID, **fields) -> Product:
    product = Product(organization_id=org_id)
    for field, value in fields.items():
        if field in UPDATABLE_FIELDS:
            setattr(product, field, value)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def update_product(db: Session, product: Product, **changes) -> Product:
    for field, value in changes.items():
        if field in UPDATABLE_FIELDS and value is not None:
            setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


def delete_product(db: Session, product: Product) -> None:
    db.delete(product)
    db.commit()
