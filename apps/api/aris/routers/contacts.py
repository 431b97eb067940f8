"""Contacts router."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_current_session, get_db, require_csrf_header
from aris.schemas.auth import UserSession
from aris.schemas.crm import ContactCreate, ContactListResponse, ContactRead, ContactUpdate
from aris.services import contact_service

router = APIRouter()


def _get_or_404(db: Session, org_id: UUID, contact_id: UUID):
    try:
        return contact_service.get_contact(db, org_id, contact_id)
    except contact_service.ContactNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("", response_model=ContactListResponse)
def list_contacts(
    search: str | None = Query(None, max_length=100),
    status: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    items, total = contact_service.list_contacts(
        db, session.org_id, search=search, status=status, limit=limit, offset=offset
    )
    return ContactListResponse(items=[ContactRead.model_validate(c) for c in items], total=total)


@router.post("", response_model=ContactRead, dependencies=[Depends(require_csrf_header)])
def create_contact(
    body: ContactCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    fields = body.model_dump()
    if not any(fields.get(f) for f in ("firstname", "lastname", "full_name", "company", "email")):
        raise HTTPException(status_code=400, detail="A contact needs a name, company or email")
    contact = contact_service.create_contact(db, session.org_id, session.user_id, **fields)
    return ContactRead.model_validate(contact)


@router.get("/{contact_id}", response_model=ContactRead)
def get_contact(
    contact_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return ContactRead.model_validate(_get_or_404(db, session.org_id, contact_id))


@router.patch("/{contact_id}", response_model=ContactRead, dependencies=[Depends(require_csrf_header)])
def update_contact(
    contact_id: UUID,
    body: ContactUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    contact = _get_or_404(db, session.org_id, contact_id)
    contact = contact_service.update_contact(db, contact, **body.model_dump(exclude_unset=True))
    return ContactRead.model_validate(contact)


@router.delete("/{contact_id}", dependencies=[Depends(require_csrf_header)])
def delete_contact(
    contact_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    contact_service.delete_contact(db, _get_or_404(db, session.org_id, contact_id))
    return {"deleted": True}
