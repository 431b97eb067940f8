"""Metakocka client: request envelope and error mapping."""

import json

import httpx
import pytest

from aris.services.metakocka_client import (
    MetakockaClient,
    MetakockaError,
    MetakockaErrorType,
    error_type_for_opr_code,
)


def _client(handler, **kwargs) -> MetakockaClient:
    return MetakockaClient(
        company_id="1234",
        secret_key="secret",
        base_url="https://mk.test/rest/eshop/v1/json",
        transport=httpx.MockTransport(handler),
        max_attempts=1,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_request_injects_credentials_and_posts_json():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"opr_code": "0", "mk_id": "55"})

    result = await _client(handler).add_product({"code": "SKU-1", "name": "Widget"})

    assert result["mk_id"] == "55"
    assert seen["url"] == "https://mk.test/rest/eshop/v1/json/product_add"
    assert seen["body"] == {
        "code": "SKU-1",
        "name": "Widget",
        "secret_key": "secret",
        "company_id": "1234",
    }


@pytest.mark.asyncio
async def test_opr_code_error_is_raised_from_200_response():
    def handler(request):
        return httpx.Response(200, json={"opr_code": "1", "opr_desc_app": "Wrong secret key"})

    with pytest.raises(MetakockaError) as exc_info:
        await _client(handler).list_products()

    assert exc_info.value.type == MetakockaErrorType.AUTHENTICATION
    assert exc_info.value.code == "1"
    assert exc_info.value.message == "Wrong secret key"


@pytest.mark.asyncio
async def test_numeric_opr_code_is_accepted():
    def handler(request):
        return httpx.Response(200, json={"opr_code": 0, "product_list": []})

    result = await _client(handler).list_products()

    assert result["product_list"] == []


@pytest.mark.parametrize(
    "code,expected",
    [
        ("1", MetakockaErrorType.AUTHENTICATION),
        ("2", MetakockaErrorType.VALIDATION),
        ("150", MetakockaErrorType.VALIDATION),
        ("7", MetakockaErrorType.UNKNOWN),
        (None, MetakockaErrorType.UNKNOWN),
        ("abc", MetakockaErrorType.UNKNOWN),
    ],
)
def test_error_type_for_opr_code(code, expected):
    assert error_type_for_opr_code(code) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,expected",
    [
        (401, MetakockaErrorType.AUTHENTICATION),
        (403, MetakockaErrorType.AUTHENTICATION),
        (404, MetakockaErrorType.NOT_FOUND),
        (503, MetakockaErrorType.SERVER),
        (418, MetakockaErrorType.UNKNOWN),
    ],
)
async def test_http_errors_are_mapped(status, expected):
    with pytest.raises(MetakockaError) as exc_info:
        await _client(lambda request: httpx.Response(status)).list_partners()

    assert exc_info.value.type == expected
    assert exc_info.value.code == f"HTTP_{status}"


@pytest.mark.asyncio
async def test_network_errors_are_mapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(MetakockaError) as exc_info:
        await _client(handler).list_products()

    assert exc_info.value.type == MetakockaErrorType.NETWORK


@pytest.mark.asyncio
async def test_invalid_json_is_reported():
    with pytest.raises(MetakockaError) as exc_info:
        await _client(lambda request: httpx.Response(200, text="<html>")).list_products()

    assert exc_info.value.code == "INVALID_JSON"


@pytest.mark.asyncio
async def test_updates_require_mk_id_without_calling_api():
    def handler(request):
        raise AssertionError("API should not be called")

    client = _client(handler)
    with pytest.raises(MetakockaError) as exc_info:
        await client.update_product({"code": "SKU-1"})
    assert exc_info.value.type == MetakockaErrorType.VALIDATION

    with pytest.raises(MetakockaError):
        await client.update_partner({})
    with pytest.raises(MetakockaError):
        await client.update_document("invoice", {})


@pytest.mark.asyncio
async def test_document_endpoints_by_type():
    endpoints = []

    def handler(request):
        endpoints.append(request.url.path.rsplit("/", 1)[-1])
        return httpx.Response(200, json={"opr_code": "0"})

    client = _client(handler)
    await client.put_document("invoice", {})
    await client.put_document("offer", {})
    await client.get_document("order", "9")
    await client.list_documents("proforma")
    await client.update_order_status("9", "shipped")

    assert endpoints == [
        "put_sales_bill",
        "put_sales_offer",
        "get_sales_order",
        "list_sales_bill_proforma",
        "update_sales_order",
    ]

    with pytest.raises(MetakockaError):
        await client.put_document("receipt", {})


@pytest.mark.asyncio
async def test_get_product_inventory_combines_product_and_stock():
    def handler(request):
        endpoint = request.url.path.rsplit("/", 1)[-1]
        if endpoint == "product_get":
            return httpx.Response(200, json={"opr_code": "0", "product_list": [{"code": "SKU-1"}]})
        body = json.loads(request.content)
        assert body["product_list"] == [{"code": "SKU-1"}]
        return httpx.Response(
            200,
            json={
                "opr_code": "0",
                "product_list": [
                    {
                        "amount_on_warehouse": "10",
                        "amount_reserved": "2",
                        "amount_available": "8",
                        "warehouse_name": "Main",
                    }
                ],
            },
        )

    inventory = await _client(handler).get_product_inventory("55")

    assert inventory["product_code"] == "SKU-1"
    assert inventory["quantity_on_hand"] == 10.0
    assert inventory["quantity_available"] == 8.0
    assert inventory["warehouse_name"] == "Main"


@pytest.mark.asyncio
async def test_get_product_inventory_unknown_product():
    def handler(request):
        return httpx.Response(200, json={"opr_code": "0", "product_list": []})

    with pytest.raises(MetakockaError) as exc_info:
        await _client(handler).get_product_inventory("missing")

    assert exc_info.value.type == MetakockaErrorType.NOT_FOUND


@pytest.mark.asyncio
async def test_get_product_inventory_accepts_single_row_objects():
    def handler(request):
        endpoint = request.url.path.rsplit("/", 1)[-1]
        if endpoint == "product_get":
            return httpx.Response(200, json={"opr_code": "0", "product_list": {"code": "SKU-2"}})
        return httpx.Response(
            200,
            json={"opr_code": "0", "product_list": {"amount_available": "3", "amount_reserved": None}},
        )

    inventory = await _client(handler).get_product_inventory("56")

    assert inventory["product_code"] == "SKU-2"
    assert inventory["quantity_available"] == 3.0
    assert inventory["quantity_reserved"] == 0.0
    assert inventory["quantity_on_hand"] == 0.0


@pytest.mark.asyncio
async def test_get_product_inventory_rejects_non_numeric_amounts():
    def handler(request):
        endpoint = request.url.path.rsplit("/", 1)[-1]
        if endpoint == "product_get":
            return httpx.Response(200, json={"opr_code": "0", "product_list": [{"code": "SKU-3"}]})
        return httpx.Response(
            200, json={"opr_code": "0", "product_list": [{"amount_available": "n/a"}]}
        )

    with pytest.raises(MetakockaError) as exc_info:
        await _client(handler).get_product_inventory("57")

    assert exc_info.value.type == MetakockaErrorType.VALIDATION
    assert "amount_available" in exc_info.value.message


@pytest.mark.asyncio
async def test_get_product_inventory_rejects_malformed_product_list():
    def handler(request):
        return httpx.Response(200, json={"opr_code": "0", "product_list": "SKU-4"})

    with pytest.raises(MetakockaError) as exc_info:
        await _client(handler).get_product_inventory("58")

    assert exc_info.value.type == MetakockaErrorType.VALIDATION
