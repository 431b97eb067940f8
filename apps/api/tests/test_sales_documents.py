"""Sales documents: line totals, tax and validation."""

import uuid

import pytest

from aris.services import contact_service, sales_document_service

ITEMS = [
    {"description": "Widget", "quantity": 2, "unit_price": 10, "tax_rate": 22},
    {"description": "Service", "quantity": 1, "unit_price": 50, "discount": 10},
]


@pytest.mark.parametrize(
    "quantity,unit_price,discount,expected",
    [
        (2, 10, 0, 20.0),
        (3, 9.99, 0, 29.97),
        (1, 50, 10, 45.0),
        (4, 2.5, None, 10.0),
    ],
)
def test_line_total(quantity, unit_price, discount, expected):
    assert sales_document_service.line_total(quantity, unit_price, discount) == expected


def test_totals_include_item_tax(db, test_org, test_user):
    document = sales_document_service.create_document(
        db, test_org.id, test_user.id, "invoice", items=ITEMS, number="INV-1"
    )

    assert [item.total_price for item in document.items] == [20.0, 45.0]
    assert document.tax_amount == 4.4
    assert document.total_amount == 69.4
    assert document.status == "draft"
    assert document.currency == "EUR"


def test_customer_details_filled_from_contact(db, test_org, test_user):
    contact = contact_service.create_contact(
        db, test_org.id, None, firstname="Ana", lastname="Novak", email="ana@acme.test", company="Acme"
    )

    document = sales_document_service.create_document(
        db, test_org.id, test_user.id, "quote", customer_id=contact.id
    )

    assert document.customer_name == "Acme"
    assert document.customer_email == "ana@acme.test"


def test_validation_errors(db, test_org):
    with pytest.raises(sales_document_service.SalesDocumentValidationError, match="Invalid document type"):
        sales_document_service.create_document(db, test_org.id, None, "voucher")
    with pytest.raises(sales_document_service.SalesDocumentValidationError, match="Invalid order status"):
        sales_document_service.create_document(db, test_org.id, None, "order", status="shipped-ish")
    with pytest.raises(sales_document_service.SalesDocumentValidationError, match="Customer not found"):
        sales_document_service.create_document(
            db, test_org.id, None, "invoice", customer_id=uuid.UUID(int=0)
        )


def test_update_replaces_items_and_merges_details(db, test_org):
    document = sales_document_service.create_document(
        db, test_org.id, None, "invoice", items=ITEMS, details={"source": "crm"}
    )

    sales_document_service.update_document(
        db,
        document,
        items=[{"description": "Bolt", "quantity": 10, "unit_price": 1}],
        details={"metakockaId": "d-1"},
    )

    assert [item.description for item in document.items] == ["Bolt"]
    assert document.total_amount == 10.0
    assert document.tax_amount == 0
    assert document.details == {"source": "crm", "metakockaId": "d-1"}


# =============================================================================
# API
# =============================================================================


@pytest.mark.asyncio
async def test_create_and_update_via_api(authed_client):
    created = await authed_client.post(
        "/sales-documents",
        json={
            "document_type": "order",
            "number": "SO-1",
            "document_date": "2024-05-01",
            "metadata": {"channel": "web"},
            "items": ITEMS,
        },
    )
    assert created.status_code == 200
    document = created.json()
    assert document["total_amount"] == 69.4
    assert document["metadata"] == {"channel": "web"}
    assert [item["position"] for item in document["items"]] == [0, 1]

    updated = await authed_client.patch(
        f"/sales-documents/{document['id']}", json={"status": "confirmed"}
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "confirmed"
    assert updated.json()["total_amount"] == 69.4

    rejected = await authed_client.patch(
        f"/sales-documents/{document['id']}", json={"status": "teleported"}
    )
    assert rejected.status_code == 400


@pytest.mark.asyncio
async def test_list_filters_by_type(authed_client, db, test_org):
    sales_document_service.create_document(db, test_org.id, None, "invoice")
    sales_document_service.create_document(db, test_org.id, None, "quote")

    response = await authed_client.get("/sales-documents", params={"document_type": "quote"})

    assert response.json()["total"] == 1
    assert response.json()["items"][0]["document_type"] == "quote"


@pytest.mark.asyncio
async def test_item_quantity_must_be_positive(authed_client):
    response = await authed_client.post(
        "/sales-documents",
        json={"document_type": "invoice", "items": [{"description": "X", "quantity": 0, "unit_price": 1}]},
    )

    assert response.status_code == 400
