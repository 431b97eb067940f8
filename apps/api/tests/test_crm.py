"""Suppliers, contacts and products."""

from datetime import datetime, timezone

import pytest

from aris.db.models import Organization, Product
from aris.services import contact_service, supplier_service


# =============================================================================
# Suppliers
# =============================================================================


def test_supplier_email_is_normalized_and_unique(db, test_org, test_user):
    supplier = supplier_service.create_supplier(
        db, test_org.id, test_user.id, name="Acme", email="  Orders@Acme.TEST "
    )
    assert supplier.email == "orders@acme.test"

    with pytest.raises(supplier_service.SupplierConflictError):
        supplier_service.create_supplier(db, test_org.id, None, name="Acme 2", email="ORDERS@acme.test")


def test_same_supplier_email_allowed_in_other_org(db, test_org):
    other = Organization(name="Other", slug="other-org")
    db.add(other)
    db.commit()

    supplier_service.create_supplier(db, test_org.id, None, name="Acme", email="orders@acme.test")
    supplier = supplier_service.create_supplier(db, other.id, None, name="Acme", email="orders@acme.test")

    assert supplier.organization_id == other.id


@pytest.mark.asyncio
async def test_supplier_api_conflict_returns_409(authed_client):
    body = {"name": "Acme", "email": "orders@acme.test"}

    created = await authed_client.post("/suppliers", json=body)
    duplicate = await authed_client.post("/suppliers", json=body)

    assert created.status_code == 200
    assert duplicate.status_code == 409
    assert duplicate.json() == {"error": "A supplier with this email already exists"}


@pytest.mark.asyncio
async def test_supplier_update_conflict(authed_client, db, test_org):
    supplier_service.create_supplier(db, test_org.id, None, name="A", email="a@acme.test")
    b = supplier_service.create_supplier(db, test_org.id, None, name="B", email="b@acme.test")

    response = await authed_client.patch(f"/suppliers/{b.id}", json={"email": "A@acme.test"})
    assert response.status_code == 409

    renamed = await authed_client.patch(f"/suppliers/{b.id}", json={"reliability_score": 87.5})
    assert renamed.json()["reliability_score"] == 87.5


@pytest.mark.asyncio
async def test_supplier_search(authed_client, db, test_org):
    supplier_service.create_supplier(db, test_org.id, None, name="Bolt Works", email="bolts@works.test")
    supplier_service.create_supplier(db, test_org.id, None, name="Paper Co", email="hello@paper.test")

    response = await authed_client.get("/suppliers", params={"search": "bolt"})

    assert response.json()["total"] == 1
    assert response.json()["items"][0]["name"] == "Bolt Works"


# =============================================================================
# Contacts
# =============================================================================


def test_contact_full_name_follows_name_parts(db, test_org, test_user):
    contact = contact_service.create_contact(
        db, test_org.id, test_user.id, firstname="Ana", lastname="Novak", email="ana@acme.test"
    )
    assert contact.full_name == "Ana Novak"

    contact_service.update_contact(db, contact, lastname="Kos")
    assert contact.full_name == "Ana Kos"

    found = contact_service.find_by_email(db, test_org.id, " ANA@acme.test")
    assert found.id == contact.id


@pytest.mark.asyncio
async def test_contact_api_crud(authed_client):
    created = await authed_client.post(
        "/contacts", json={"firstname": "Eva", "lastname": "Zupan", "company": "Acme"}
    )
    assert created.status_code == 200
    contact = created.json()
    assert contact["full_name"] == "Eva Zupan"
    assert contact["status"] == "active"

    listed = await authed_client.get("/contacts", params={"search": "acme"})
    assert listed.json()["total"] == 1

    deleted = await authed_client.delete(f"/contacts/{contact['id']}")
    assert deleted.json() == {"deleted": True}

    missing = await authed_client.get(f"/contacts/{contact['id']}")
    assert missing.status_code == 404


# =============================================================================
# Products
# =============================================================================


@pytest.mark.asyncio
async def test_product_api_and_low_stock(authed_client, db, test_org):
    created = await authed_client.post(
        "/products", json={"name": "Widget", "sku": "W-1", "price": 9.5}
    )
    assert created.status_code == 200
    assert created.json()["quantity_available"] == 0

    db.add_all(
        [
            Product(
                organization_id=test_org.id, name="Bolt", quantity_available=2,
                inventory_synced_at=datetime.now(timezone.utc),
            ),
            Product(
                organization_id=test_org.id, name="Nut", quantity_available=40,
                inventory_synced_at=datetime.now(timezone.utc),
            ),
        ]
    )
    db.commit()

    low = await authed_client.get("/products/low-stock")
    assert [p["name"] for p in low.json()] == ["Bolt"]

    raised = await authed_client.get("/products/low-stock", params={"threshold": 50})
    assert [p["name"] for p in raised.json()] == ["Bolt", "Nut"]


@pytest.mark.asyncio
async def test_product_price_must_not_be_negative(authed_client):
    response = await authed_client.post("/products", json={"name": "Widget", "price": -1})

    assert response.status_code == 400
