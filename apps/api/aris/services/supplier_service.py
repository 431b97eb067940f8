"""Supplier CRUD. Supplier email is unique within an organization."""

from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aris.db.models import Supplier

UPDATABLE_FIELDS = {"name", "email", "phone", "website", "notes", "reliability_score"}


class SupplierError(Exception):
    pass


class SupplierNotFoundError(SupplierError):
    pass


class SupplierConflictError(SupplierError):
    pass


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _email_taken(db: Session, org_id: UUID, email: str, exclude_id: UUID | None = None) -> bool:
    query = db.query(Supplier).filter(
        Supplier.organization_id == org_id,
        func.lower(Supplier.email) == email,
    )
    if exclude_id:
        query = query.filter(Supplier.id != exclude_id)
    return db.query(query.exists()).scalar()


def list_suppliers(
    db: Session,
    org_id: UUID,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Supplier], int]:
    query = db.query(Supplier).filter(Supplier.organization_id == org_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Supplier.name.ilike(pattern), Supplier.email.ilike(pattern)))
    total = query.count()
    return query.order_by(Supplier.name.asc()).offset(offset).limit(limit).all(), total


def get_supplier(db: Session, org_id: UUID, supplier_id: UUID) -> Supplier:
    supplier = db.query(Supplier).filter(
        Supplier.id == supplier_id,
        Supplier.organization_id == org_id,
    ).first()
    if not supplier:
        raise SupplierNotFoundError("Supplier not found")
    return supplier


def create_supplier(db: Session, org_id: UUID, user_id: UUID | None, **fields) -> Supplier:
    email = _normalize_email(fields.pop("email"))
    if _email_taken(db, org_id, email):
        raise SupplierConflictError("A supplier with this email already exists")

    supplier = Supplier(organization_id=org_id, email=email, created_by=user_id)
    for field, value in fields.items():
        if field in UPDATABLE_FIELDS:
            setattr(supplier, field, value)
    db.add(supplier)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise SupplierConflictError("A supplier with this email already exists")
    db.refresh(supplier)
    return supplier


def update_supplier(db: Session, supplier: Supplier, **changes) -> Supplier:
    if changes.get("email"):
        email = _normalize_email(changes["email"])
        if _email_taken(db, supplier.organization_id, email, exclude_id=supplier.id):
            raise SupplierConflictError("A supplier with this email already exists")
        changes["email"] = email
    for field, value in changes.items():
        if field in UPDATABLE_FIELDS and value is not None:
            setattr(supplier, field, value)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise SupplierConflictError("A supplier with this email already exists")
    db.refresh(supplier)
    return supplier


def delete_supplier(db: Session, supplier: Supplier) -> None:
    db.delete(supplier)
    db.commit()
