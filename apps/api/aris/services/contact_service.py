"""Contact CRUD."""

from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from aris.db.models import Contact

UPDATABLE_FIELDS = {
    "firstname",
    "lastname",
    "full_name",
    "email",
    "phone",
    "company",
    "position",
    "notes",
    "status",
}


class ContactNotFoundError(Exception):
    pass


def _fill_full_name(contact: Contact) -> None:
    if not contact.full_name:
        name = " ".join(p for p in (contact.firstname, contact.lastname) if p)
        contact.full_name = name or None


def list_contacts(
    db: Session,
    org_id: UUID,
    search: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Contact], int]:
    query = db.query(Contact).filter(Contact.organization_id == org_id)
    if status:
        query = query.filter(Contact.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Contact.full_name.ilike(pattern),
                Contact.email.ilike(pattern),
                Contact.company.ilike(pattern),
            )
        )
    total = query.count()
    return query.order_by(Contact.created_at.desc()).offset(offset).limit(limit).all(), total


def get_contact(db: Session, org_id: UUID, contact_id: UUID) -> Contact:
    contact = db.query(Contact).filter(
        Contact.id == contact_id,
        Contact.organization_id == org_id,
    ).first()
    if not contact:
        raise ContactNotFoundError("Contact not found")
    return contact


def find_by_email(db: Session, org_id: UUID, email: str) -> Contact | None:
    return db.query(Contact).filter(
        Contact.organization_id == org_id,
        Contact.email.ilike(email.strip()),
    ).first()


def create_contact(db: Session, org_id: UUID, user_id: UUID | None, **fields) -> Contact:
    contact = Contact(organization_id=org_id, created_by=user_id)
    for field, value in fields.items():
        if field in UPDATABLE_FIELDS and value is not None:
            setattr(contact, field, value)
    _fill_full_name(contact)
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return contact


def update_contact(db: Session, contact: Contact, **changes) -> Contact:
    for field, value in changes.items():
        if field in UPDATABLE_FIELDS and value is not None:
            setattr(contact, field, value)
    if ("firstname" in changes or "lastname" in changes) and "full_name" not in changes:
        contact.full_name = None
    _fill_full_name(contact)
    db.commit()
    db.refresh(contact)
    return contact


def delete_contact(db: Session, contact: Contact) -> None:
    db.delete(contact)
    db.commit()
