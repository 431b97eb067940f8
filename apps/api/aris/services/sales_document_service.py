"""Sales document CRUD with line items."""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from aris.db.enums import OrderStatus, SalesDocumentType
from aris.db.models import Contact, SalesDocument, SalesDocumentItem

HEADER_FIELDS = {
    "number",
    "document_date",
    "due_date",
    "customer_id",
    "customer_name",
    "customer_address",
    "customer_email",
    "currency",
    "status",
    "notes",
}


class SalesDocumentError(Exception):
    pass


class SalesDocumentNotFoundError(SalesDocumentError):
    pass


class SalesDocumentValidationError(SalesDocumentError):
    pass


def line_total(quantity: float, unit_price: float, discount: float = 0) -> float:
    """Net line amount; discount is a percentage."""
    return round(quantity * unit_price * (1 - (discount or 0) / 100), 2)


def _build_items(items: list[dict[str, Any]]) -> list[SalesDocumentItem]:
    rows = []
    for position, item in enumerate(items):
        quantity = item.get("quantity", 1)
        unit_price = item["unit_price"]
        discount = item.get("discount", 0) or 0
        rows.append(
            SalesDocumentItem(
                position=position,
                product_id=item.get("product_id"),
                description=item["description"],
                quantity=quantity,
                unit_price=unit_price,
                tax_rate=item.get("tax_rate", 0) or 0,
                discount=discount,
                total_price=line_total(quantity, unit_price, discount),
            )
        )
    return rows


def _recalculate_totals(document: SalesDocument) -> None:
    net = sum(item.total_price for item in document.items)
    tax = sum(item.total_price * (item.tax_rate or 0) / 100 for item in document.items)
    document.tax_amount = round(tax, 2)
    document.total_amount = round(net + tax, 2)


def _validate(db: Session, org_id: UUID, fields: dict[str, Any]) -> None:
    document_type = fields.get("document_type")
    if document_type is not None and document_type not in SalesDocumentType._value2member_map_:
        raise SalesDocumentValidationError(f"Invalid document type: {document_type}")
    if (
        fields.get("status")
        and fields.get("document_type") == SalesDocumentType.ORDER.value
        and fields["status"] not in OrderStatus._value2member_map_
    ):
        raise SalesDocumentValidationError(f"Invalid order status: {fields['status']}")
    customer_id = fields.get("customer_id")
    if customer_id:
        exists = db.query(Contact.id).filter(
            Contact.id == customer_id,
            Contact.organization_id == org_id,
        ).first()
        if not exists:
            raise SalesDocumentValidationError("Customer not found")


def _fill_customer(db: Session, document: SalesDocument) -> None:
    if not document.customer_id or document.customer_name:
        return
    contact = db.get(Contact, document.customer_id)
    if contact:
        document.customer_name = contact.company or contact.full_name
        document.customer_email = document.customer_email or contact.email


def list_documents(
    db: Session,
    org_id: UUID,
    document_type: str | None = None,
    status: str | None = None,
    customer_id: UUID | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[SalesDocument], int]:
    query = db.query(SalesDocument).filter(SalesDocument.organization_id == org_id)
    if document_type:
        query = query.filter(SalesDocument.document_type == document_type)
    if status:
        query = query.filter(SalesDocument.status == status)
    if customer_id:
        query = query.filter(SalesDocument.customer_id == customer_id)
    total = query.count()
    items = (
        query.options(selectinload(SalesDocument.items))
        .order_by(SalesDocument.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def get_document(db: Session, org_id: UUID, document_id: UUID) -> SalesDocument:
    document = db.query(SalesDocument).filter(
        SalesDocument.id == document_id,
        SalesDocument.organization_id == org_id,
    ).first()
    if not document:
        raise SalesDocumentNotFoundError("Sales document not found")
    return document


def create_document(
    db: Session,
    org_id: UUID,
    user_id: UUID | None,
    document_type: str,
    items: list[dict[str, Any]] | None = None,
    details: dict[str, Any] | None = None,
    **fields: Any,
) -> SalesDocument:
    _validate(db, org_id, {**fields, "document_type": document_type})
    document = SalesDocument(
        organization_id=org_id,
        document_type=document_type,
        created_by=user_id,
        details=details or {},
    )
    for field, value in fields.items():
        if field in HEADER_FIELDS and value is not None:
            setattr(document, field, value)
    document.items = _build_items(items or [])
    _recalculate_totals(document)
    _fill_customer(db, document)
    db.add(document)
    db.commit()
    db.refresh(document)
    return document


def update_document(
    db: Session,
    document: SalesDocument,
    items: list[dict[str, Any]] | None = None,
    details: dict[str, Any] | None = None,
    **changes: Any,
) -> SalesDocument:
    _validate(db, document.organization_id, {**changes, "document_type": document.document_type})
    for field, value in changes.items():
        if field in HEADER_FIELDS and value is not None:
            setattr(document, field, value)
    if details is not None:
        document.details = {**(document.details or {}), **details}
    if items is not None:
        document.items = _build_items(items)
        _recalculate_totals(document)
    _fill_customer(db, document)
    db.commit()
    db.refresh(document)
    return document


def delete_document(db: Session, document: SalesDocument) -> None:
    db.delete(document)
    db.commit()
