"""Contact sync between CRM contacts and Metakocka partners."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from aris.db.enums import SyncDirection, SyncStatus
from aris.db.models import Contact
from aris.services import metakocka_log_service, metakocka_mapping_service as mappings
from aris.services.metakocka_client import MetakockaClient, MetakockaError, MetakockaErrorType

logger = logging.getLogger(__name__)

ENTITY = "contacts"

PARTNER_BUSINESS = "B"
PARTNER_PERSON = "P"


def _person_name(contact: Contact) -> str:
    return " ".join(p for p in (contact.firstname, contact.lastname) if p).strip()


def split_name(name: str | None) -> tuple[str, str]:
    parts = (name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def contact_to_partner(contact: Contact, mapping=None) -> dict[str, Any]:
    person = _person_name(contact)
    partner: dict[str, Any] = {
        "count_code": (mapping.metakocka_code if mapping else None)
        or f"CONT-{str(contact.id)[:8]}",
        "name": contact.full_name or person,
        "email": contact.email,
        "contact_name": person or None,
        "contact_email": contact.email,
        "partner_type": PARTNER_PERSON,
        "sales": "true",
    }
    if contact.phone:
        partner["phone"] = contact.phone
        partner["contact_phone"] = contact.phone
    if contact.company:
        partner["name"] = contact.company
        partner["partner_type"] = PARTNER_BUSINESS
    if mapping and mapping.metakocka_id:
        partner["mk_id"] = mapping.metakocka_id
    return {k: v for k, v in partner.items() if v is not None}


def apply_metakocka_partner(contact: Contact, partner: dict[str, Any]) -> None:
    """Copy partner fields onto the contact. "B" partners are companies."""
    is_business = partner.get("partner_type") == PARTNER_BUSINESS
    if partner.get("contact_name"):
        first, last = split_name(partner["contact_name"])
    elif not is_business:
        first, last = split_name(partner.get("name"))
    else:
        first, last = contact.firstname or "", contact.lastname or ""

    contact.firstname = first or None
    contact.lastname = last or None
    contact.company = partner.get("name") if is_business else contact.company
    contact.full_name = " ".join(p for p in (first, last) if p) or partner.get("name")
    contact.email = partner.get("email") or partner.get("contact_email") or contact.email
    contact.phone = partner.get("phone") or partner.get("contact_phone") or contact.phone


async def sync_contact_to_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    contact: Contact,
) -> dict[str, Any]:
    mapping = mappings.get_by_crm_id(db, ENTITY, org_id, contact.id)
    is_update = bool(mapping and mapping.metakocka_id)
    partner = contact_to_partner(contact, mapping)

    if mapping is None:
        mapping = mappings.save_mapping(
            db, ENTITY, org_id, contact.id, None,
            code=partner["count_code"], status=SyncStatus.PENDING,
        )

    try:
        if is_update:
            await client.update_partner(partner)
            metakocka_id = mapping.metakocka_id
        else:
            response = await client.add_partner(partner)
            metakocka_id = str(response.get("mk_id") or "")
            if not metakocka_id:
                raise MetakockaError(
                    "Metakocka did not return a partner id", MetakockaErrorType.UNKNOWN
                )
    except MetakockaError as exc:
        mappings.mark_error(db, mapping, exc.message)
        metakocka_log_service.log_metakocka_error(
            db, org_id, exc, context={"contact_id": str(contact.id), "operation": "export"}
        )
        return {"success": False, "contact_id": str(contact.id), "error": exc.message}

    mappings.save_mapping(db, ENTITY, org_id, contact.id, metakocka_id, code=partner["count_code"])
    return {
        "success": True,
        "contact_id": str(contact.id),
        "metakocka_id": metakocka_id,
        "created": not is_update,
    }


async def sync_contacts_to_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
    contact_ids: list[UUID] | None = None,
) -> dict[str, Any]:
    query = db.query(Contact).filter(Contact.organization_id == org_id)
    if contact_ids:
        query = query.filter(Contact.id.in_(contact_ids))

    result: dict[str, Any] = {"success": True, "created": 0, "updated": 0, "failed": 0, "errors": []}
    for contact in query.order_by(Contact.created_at.asc()).all():
        outcome = await sync_contact_to_metakocka(db, client, org_id, contact)
        if not outcome["success"]:
            result["failed"] += 1
            result["errors"].append({"contact_id": outcome["contact_id"], "error": outcome["error"]})
        elif outcome["created"]:
            result["created"] += 1
        else:
            result["updated"] += 1
    result["success"] = result["failed"] == 0
    return result


async def sync_contacts_from_metakocka(
    db: Session,
    client: MetakockaClient,
    org_id: UUID,
) -> dict[str, Any]:
    response = await client.list_partners()
    partners = response.get("partner_list")
    if partners is None:
        raise MetakockaError(
            "Invalid response format from Metakocka: missing partner_list",
            MetakockaErrorType.VALIDATION,
        )
    if isinstance(partners, dict):
        partners = [partners]

    result: dict[str, Any] = {
        "success": True, "created": 0, "updated": 0, "needs_review": 0, "failed": 0, "errors": [],
    }
    for partner in partners:
        mk_id = str(partner.get("mk_id") or "")
        try:
            if not mk_id:
                raise MetakockaError("Partner without mk_id", MetakockaErrorType.VALIDATION)
            outcome = _import_partner(db, org_id, mk_id, partner)
        except MetakockaError as exc:
            db.rollback()
            result["failed"] += 1
            result["errors"].append({"metakocka_id": mk_id or None, "error": exc.message})
            metakocka_log_service.log_metakocka_error(
                db, org_id, exc, context={"metakocka_id": mk_id, "operation": "import"}
            )
            continue
        result[outcome] += 1

    result["success"] = result["failed"] == 0
    return result


def _import_partner(db: Session, org_id: UUID, mk_id: str, partner: dict[str, Any]) -> str:
    mapping = mappings.get_by_metakocka_id(db, ENTITY, org_id, mk_id)
    contact = db.get(Contact, mapping.contact_id) if mapping else None

    if contact is not None and mappings.crm_changed_since_sync(contact, mapping):
        mappings.mark_needs_review(db, mapping, partner)
        return "needs_review"

    synced_at = datetime.now(timezone.utc)
    outcome = "updated"
    if contact is None:
        contact = Contact(organization_id=org_id)
        db.add(contact)
        outcome = "created"
    apply_metakocka_partner(contact, partner)
    contact.updated_at = synced_at
    db.flush()

    mappings.save_mapping(
        db, ENTITY, org_id, contact.id, mk_id,
        code=partner.get("count_code"),
        direction=SyncDirection.METAKOCKA_TO_CRM,
        synced_at=synced_at,
    )
    return outcome
