"""Metakocka inventory and order lifecycle."""

from datetime import date, datetime, timezone

import pytest

from aris.db.enums import OrderStatus, SyncStatus
from aris.db.models import (
    MetakockaIntegrationLog,
    MetakockaProductMapping,
    Product,
    SalesDocument,
    SalesDocumentItem,
)
from aris.services import (
    metakocka_credentials_service,
    metakocka_inventory_service,
    metakocka_mapping_service,
    metakocka_order_service,
    metakocka_product_sync,
    metakocka_sales_document_sync,
)
from aris.services.metakocka_client import MetakockaError, MetakockaErrorType

BASE = "/integrations/metakocka"


class FakeMetakocka:
    """Stock levels keyed by Metakocka product id; records every call."""

    def __init__(self, stock=None, **responses):
        self.stock = stock or {}
        self.responses = responses
        self.calls = []

    def _answer(self, name, payload):
        self.calls.append((name, payload))
        response = self.responses.get(name, {"opr_code": "0", "mk_id": f"mk-{len(self.calls)}"})
        if isinstance(response, Exception):
            raise response
        return response

    async def get_product_inventory(self, mk_id):
        self.calls.append(("get_product_inventory", mk_id))
        if mk_id not in self.stock:
            raise MetakockaError(f"Product not found with ID: {mk_id}", MetakockaErrorType.NOT_FOUND)
        amount = float(self.stock[mk_id])
        return {
            "product_id": mk_id,
            "product_code": f"MK-{mk_id}",
            "quantity_on_hand": amount + 1,
            "quantity_reserved": 1.0,
            "quantity_available": amount,
            "warehouse_id": "w1",
            "warehouse_name": "Main",
        }

    async def list_products(self):
        return self._answer("list_products", None)

    async def put_document(self, doc_type, document):
        return self._answer("put_document", (doc_type, document))

    async def update_document(self, doc_type, document):
        return self._answer("update_document", (doc_type, document))

    async def update_order_status(self, mk_id, status):
        return self._answer("update_order_status", (mk_id, status))


def _product(db, org, **kwargs) -> Product:
    product = Product(organization_id=org.id, name=kwargs.pop("name", "Widget"), **kwargs)
    db.add(product)
    db.commit()
    return product


def _map_product(db, org, product, metakocka_id):
    return metakocka_mapping_service.save_mapping(db, "products", org.id, product.id, metakocka_id)


def _order(db, org, product=None, quantity=2, document_type="order") -> SalesDocument:
    document = SalesDocument(
        organization_id=org.id,
        document_type=document_type,
        number="ORD-1",
        document_date=date(2024, 5, 1),
        customer_name="Walk-in customer",
        details={},
    )
    document.items = [
        SalesDocumentItem(
            position=0,
            product_id=product.id if product else None,
            description=product.name if product else "Service",
            quantity=quantity,
            unit_price=10,
            tax_rate=22,
            discount=0,
            total_price=10 * quantity,
        )
    ]
    db.add(document)
    db.commit()
    return document


def _synced_order(db, org, metakocka_id="d-1") -> SalesDocument:
    document = _order(db, org)
    metakocka_sales_document_sync.save_sales_document_mapping(
        db, org.id, document.id, metakocka_id, "order"
    )
    return document


# =============================================================================
# Inventory
# =============================================================================


def test_check_product_availability_uses_synced_stock(db, test_org):
    product = _product(db, test_org, quantity_available=4)

    enough = metakocka_inventory_service.check_product_availability(product, 4)
    short = metakocka_inventory_service.check_product_availability(product, 5)

    assert enough == {
        "product_id": str(product.id),
        "available": True,
        "available_quantity": 4,
        "requested_quantity": 4,
    }
    assert short["available"] is False


def test_low_stock_uses_default_threshold_and_skips_unsynced(db, test_org):
    synced_at = datetime.now(timezone.utc)
    _product(db, test_org, name="Plenty", quantity_available=6, inventory_synced_at=synced_at)
    _product(db, test_org, name="Edge", quantity_available=5, inventory_synced_at=synced_at)
    _product(db, test_org, name="Nearly out", quantity_available=1, inventory_synced_at=synced_at)
    _product(db, test_org, name="Never synced", quantity_available=0)

    low = metakocka_inventory_service.get_low_stock_products(db, test_org.id)

    assert metakocka_inventory_service.DEFAULT_LOW_STOCK_THRESHOLD == 5
    assert [p.name for p in low] == ["Nearly out", "Edge"]


@pytest.mark.asyncio
async def test_inventory_sync_copies_stock_and_advances_mapping(db, test_org):
    product = _product(db, test_org)
    mapping = _map_product(db, test_org, product, "900")
    before = mapping.last_synced_at
    client = FakeMetakocka(stock={"900": 7})

    result = await metakocka_inventory_service.sync_product_inventory(db, client, test_org.id, product)

    assert result["product_id"] == str(product.id)
    assert result["quantity_available"] == 7.0
    db.refresh(product)
    db.refresh(mapping)
    assert product.quantity_available == 7.0
    assert product.quantity_on_hand == 8.0
    assert product.inventory_synced_at is not None
    assert mapping.last_synced_at > before
    assert not metakocka_mapping_service.crm_changed_since_sync(product, mapping)


@pytest.mark.asyncio
async def test_inventory_sync_keeps_pending_crm_edit_for_review(db, test_org):
    client = FakeMetakocka(
        stock={"900": 12},
        list_products={
            "opr_code": "0",
            "product_list": [{"mk_id": "900", "count_code": "MK-900", "name": "From ERP"}],
        },
    )
    await metakocka_product_sync.sync_products_from_metakocka(db, client, test_org.id)
    product = db.query(Product).one()
    mapping = db.query(MetakockaProductMapping).one()

    product.name = "Edited in CRM"
    db.commit()
    db.refresh(mapping)
    synced_before = mapping.last_synced_at

    await metakocka_inventory_service.sync_product_inventory(db, client, test_org.id, product)

    db.refresh(product)
    db.refresh(mapping)
    assert product.quantity_available == 12.0
    assert mapping.last_synced_at == synced_before
    assert metakocka_mapping_service.crm_changed_since_sync(product, mapping)

    result = await metakocka_product_sync.sync_products_from_metakocka(db, client, test_org.id)

    assert result["needs_review"] == 1
    db.refresh(product)
    db.refresh(mapping)
    assert product.name == "Edited in CRM"
    assert mapping.sync_status == SyncStatus.NEEDS_REVIEW.value


@pytest.mark.asyncio
async def test_bulk_inventory_sync_counts_and_logs_failures(db, test_org):
    stocked = _product(db, test_org, name="Stocked")
    missing = _product(db, test_org, name="Gone from ERP")
    _product(db, test_org, name="Never mapped")
    _map_product(db, test_org, stocked, "900")
    _map_product(db, test_org, missing, "901")
    client = FakeMetakocka(stock={"900": 3})

    result = await metakocka_inventory_service.sync_inventory_from_metakocka(db, client, test_org.id)

    assert result["success"] is False
    assert result["synced"] == 1
    assert result["failed"] == 1
    assert result["errors"][0]["product_id"] == str(missing.id)
    log = db.query(MetakockaIntegrationLog).one()
    assert log.context["operation"] == "inventory"


@pytest.mark.asyncio
async def test_product_inventory_requires_mapping(db, test_org):
    product = _product(db, test_org)

    with pytest.raises(MetakockaError) as exc_info:
        await metakocka_inventory_service.get_product_inventory(db, FakeMetakocka(), test_org.id, product)

    assert exc_info.value.type == MetakockaErrorType.NOT_FOUND


# =============================================================================
# Orders
# =============================================================================


@pytest.mark.asyncio
async def test_create_order_checks_live_stock_and_confirms(db, test_org):
    # The local column says nothing is left; Metakocka has plenty.
    product = _product(db, test_org, quantity_available=0)
    _map_product(db, test_org, product, "900")
    document = _order(db, test_org, product, quantity=3)
    client = FakeMetakocka(
        stock={"900": 50},
        put_document={"opr_code": "0", "mk_id": "d-7", "count_code": "2024-007"},
    )

    result = await metakocka_order_service.create_order_in_metakocka(db, client, test_org.id, document)

    assert result["success"] is True
    assert result["metakocka_id"] == "d-7"
    assert [name for name, _ in client.calls] == ["get_product_inventory", "put_document"]
    db.refresh(document)
    assert document.status == OrderStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_create_order_treats_unmapped_products_as_unavailable(db, test_org):
    product = _product(db, test_org, name="Local only", quantity_available=100)
    document = _order(db, test_org, product, quantity=1)
    client = FakeMetakocka()

    with pytest.raises(MetakockaError) as exc_info:
        await metakocka_order_service.create_order_in_metakocka(db, client, test_org.id, document)

    exc = exc_info.value
    assert exc.type == MetakockaErrorType.VALIDATION
    assert exc.code == "INSUFFICIENT_INVENTORY"
    assert exc.message == "Insufficient inventory for: Local only"
    assert exc.details == [
        {
            "product_id": str(product.id),
            "product_name": "Local only",
            "requested_quantity": 1,
            "available_quantity": 0.0,
        }
    ]
    assert client.calls == []
    db.refresh(document)
    assert document.status == OrderStatus.DRAFT.value


@pytest.mark.asyncio
async def test_create_order_reports_live_shortage(db, test_org):
    product = _product(db, test_org, quantity_available=100)
    _map_product(db, test_org, product, "900")
    document = _order(db, test_org, product, quantity=5)
    client = FakeMetakocka(stock={"900": 2})

    with pytest.raises(MetakockaError) as exc_info:
        await metakocka_order_service.create_order_in_metakocka(db, client, test_org.id, document)

    assert exc_info.value.details[0]["available_quantity"] == 2.0
    assert [name for name, _ in client.calls] == ["get_product_inventory"]


@pytest.mark.asyncio
async def test_create_order_ignores_lines_without_products(db, test_org):
    document = _order(db, test_org, product=None)
    client = FakeMetakocka(put_document={"opr_code": "0", "mk_id": "d-8"})

    result = await metakocka_order_service.create_order_in_metakocka(db, client, test_org.id, document)

    assert result["success"] is True
    assert [name for name, _ in client.calls] == ["put_document"]


@pytest.mark.asyncio
async def test_create_order_rejects_other_document_types(db, test_org):
    document = _order(db, test_org, document_type="invoice")

    with pytest.raises(MetakockaError) as exc_info:
        await metakocka_order_service.create_order_in_metakocka(
            db, FakeMetakocka(), test_org.id, document
        )

    assert exc_info.value.type == MetakockaErrorType.VALIDATION
    assert exc_info.value.message == f"Document {document.id} is not an order"


@pytest.mark.asyncio
async def test_update_order_status_rejects_unknown_status(db, test_org):
    document = _synced_order(db, test_org)
    client = FakeMetakocka()

    with pytest.raises(MetakockaError) as exc_info:
        await metakocka_order_service.update_order_status(db, client, test_org.id, document, "shipped")

    assert exc_info.value.type == MetakockaErrorType.VALIDATION
    assert client.calls == []


@pytest.mark.asyncio
async def test_update_order_status_requires_synced_order(db, test_org):
    document = _order(db, test_org)

    with pytest.raises(MetakockaError) as exc_info:
        await metakocka_order_service.update_order_status(
            db, FakeMetakocka(), test_org.id, document, "processing"
        )

    assert exc_info.value.type == MetakockaErrorType.NOT_FOUND


@pytest.mark.asyncio
async def test_update_order_status_pushes_and_stores(db, test_org):
    document = _synced_order(db, test_org)
    client = FakeMetakocka()

    result = await metakocka_order_service.update_order_status(
        db, client, test_org.id, document, "processing"
    )

    assert result == {
        "success": True,
        "document_id": str(document.id),
        "metakocka_id": "d-1",
        "status": "processing",
    }
    assert client.calls == [("update_order_status", ("d-1", "processing"))]
    db.refresh(document)
    assert document.status == "processing"


@pytest.mark.asyncio
async def test_status_update_keeps_pending_crm_edit(db, test_org):
    document = _synced_order(db, test_org)
    mapping = metakocka_mapping_service.get_by_crm_id(db, "sales_documents", test_org.id, document.id)
    synced_before = mapping.last_synced_at

    document.notes = "Deliver after 5pm"
    db.commit()

    await metakocka_order_service.update_order_status(
        db, FakeMetakocka(), test_org.id, document, "on_hold"
    )

    db.refresh(document)
    db.refresh(mapping)
    assert document.status == "on_hold"
    assert mapping.last_synced_at == synced_before
    assert metakocka_mapping_service.crm_changed_since_sync(document, mapping)


@pytest.mark.asyncio
async def test_fulfill_order_records_fulfillment(db, test_org):
    document = _synced_order(db, test_org)
    client = FakeMetakocka()

    result = await metakocka_order_service.fulfill_order(
        db, client, test_org.id, document, fulfillment={"tracking_number": "TRK-1"}
    )

    assert result["status"] == OrderStatus.FULFILLED.value
    db.refresh(document)
    assert document.status == OrderStatus.FULFILLED.value
    assert document.details["fulfillment"] == {
        "tracking_number": "TRK-1",
        "fulfilled_on": date.today().isoformat(),
    }


@pytest.mark.asyncio
async def test_cancel_order_records_reason(db, test_org):
    document = _synced_order(db, test_org)
    client = FakeMetakocka()

    await metakocka_order_service.cancel_order(db, client, test_org.id, document, reason="Duplicate")

    db.refresh(document)
    assert document.status == OrderStatus.CANCELLED.value
    assert document.details["cancellation_reason"] == "Duplicate"
    assert client.calls == [("update_order_status", ("d-1", "cancelled"))]


@pytest.mark.asyncio
async def test_cancel_order_failure_leaves_order_untouched(db, test_org):
    document = _synced_order(db, test_org)
    client = FakeMetakocka(
        update_order_status=MetakockaError("Order is locked", MetakockaErrorType.VALIDATION, "2")
    )

    with pytest.raises(MetakockaError):
        await metakocka_order_service.cancel_order(db, client, test_org.id, document, reason="Late")

    db.refresh(document)
    assert document.status == OrderStatus.DRAFT.value
    assert "cancellation_reason" not in document.details


# =============================================================================
# Routes
# =============================================================================


@pytest.fixture
def fake_client(monkeypatch):
    client = FakeMetakocka()
    monkeypatch.setattr(
        metakocka_credentials_service, "get_client_for_org", lambda db, org_id: client
    )
    return client


@pytest.mark.asyncio
async def test_order_route_maps_shortage_to_400(authed_client, db, test_org, fake_client):
    product = _product(db, test_org, name="Local only", quantity_available=10)
    document = _order(db, test_org, product, quantity=1)

    response = await authed_client.post(f"{BASE}/orders/{document.id}")

    assert response.status_code == 400
    assert response.json() == {"error": "Insufficient inventory for: Local only"}
    log = db.query(MetakockaIntegrationLog).one()
    assert log.category == "mapping"


@pytest.mark.asyncio
async def test_order_status_route_rejects_unknown_status(authed_client, db, test_org, fake_client):
    document = _synced_order(db, test_org)

    response = await authed_client.put(
        f"{BASE}/orders/{document.id}/status", json={"status": "shipped"}
    )

    assert response.status_code == 400
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_cancel_route_updates_order(authed_client, db, test_org, fake_client):
    document = _synced_order(db, test_org)

    response = await authed_client.post(
        f"{BASE}/orders/{document.id}/cancel", json={"reason": "Customer changed mind"}
    )

    assert response.status_code == 200
    assert response.json()["status"] == OrderStatus.CANCELLED.value
    db.refresh(document)
    assert document.details["cancellation_reason"] == "Customer changed mind"


@pytest.mark.asyncio
async def test_unmapped_inventory_route_returns_404(authed_client, db, test_org, fake_client):
    product = _product(db, test_org)

    response = await authed_client.get(f"{BASE}/inventory/{product.id}")

    assert response.status_code == 404
    assert response.json() == {"error": f"Product {product.id} is not mapped to Metakocka"}


@pytest.mark.asyncio
async def test_low_stock_route(authed_client, db, test_org):
    _product(
        db, test_org, name="Nearly out", quantity_available=2,
        inventory_synced_at=datetime.now(timezone.utc),
    )

    response = await authed_client.get(f"{BASE}/inventory/low-stock")

    assert response.status_code == 200
    assert [p["name"] for p in response.json()] == ["Nearly out"]
