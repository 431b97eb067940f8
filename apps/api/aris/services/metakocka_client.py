"""Metakocka ERP REST client.

Every call is a JSON POST to ``<base_url><endpoint>`` with ``secret_key`` and
``company_id`` injected into the body. Metakocka reports application errors
in-band via ``opr_code`` ("0" = ok), so a 200 response can still fail.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx

from aris.core.config import settings
from aris.services.http_service import request_with_retries

logger = logging.getLogger(__name__)


class MetakockaErrorType(str, Enum):
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    SERVER = "server"
    NETWORK = "network"
    UNKNOWN = "unknown"


class MetakockaError(Exception):
    """Error returned by (or while talking to) the Metakocka API."""

    def __init__(
        self,
        message: str,
        type: MetakockaErrorType = MetakockaErrorType.UNKNOWN,
        code: str | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.type = type
        self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "type": self.type.value, "code": self.code}


# CRM-facing document type -> Metakocka endpoint suffix
DOCUMENT_ENDPOINTS = {
    "invoice": "sales_bill",
    "offer": "sales_offer",
    "order": "sales_order",
    "proforma": "sales_bill_proforma",
}


def error_type_for_opr_code(code: str | None) -> MetakockaErrorType:
    if code == "1":
        return MetakockaErrorType.AUTHENTICATION
    if code == "2":
        return MetakockaErrorType.VALIDATION
    try:
        if code is not None and int(code) >= 100:
            return MetakockaErrorType.VALIDATION
    except ValueError:
        pass
    return MetakockaErrorType.UNKNOWN


def error_for_status(status: int) -> MetakockaError:
    if status in (401, 403):
        return MetakockaError(
            "Authentication failed with Metakocka API",
            MetakockaErrorType.AUTHENTICATION,
            f"HTTP_{status}",
        )
    if status == 404:
        return MetakockaError(
            "Requested resource not found in Metakocka API",
            MetakockaErrorType.NOT_FOUND,
            f"HTTP_{status}",
        )
    if status >= 500:
        return MetakockaError(
            "Metakocka API server error", MetakockaErrorType.SERVER, f"HTTP_{status}"
        )
    return MetakockaError(
        "Unknown error occurred", MetakockaErrorType.UNKNOWN, f"HTTP_{status}"
    )


def as_row_list(value: Any) -> list[dict[str, Any]]:
    """Metakocka returns a bare object instead of a one-element list for single rows."""
    if not value:
        return []
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return value
    raise MetakockaError(
        f"Unexpected list payload from Metakocka: {type(value).__name__}",
        MetakockaErrorType.VALIDATION,
    )


def _amount(row: dict[str, Any], field: str) -> float:
    value = row.get(field)
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        raise MetakockaError(
            f"Invalid {field} in Metakocka inventory: {value!r}", MetakockaErrorType.VALIDATION
        )


def _document_endpoint(action: str, doc_type: str) -> str:
    suffix = DOCUMENT_ENDPOINTS.get(doc_type)
    if not suffix:
        raise MetakockaError(
            f"Unsupported document type: {doc_type}", MetakockaErrorType.VALIDATION
        )
    return f"{action}_{suffix}"


class MetakockaClient:
    """Async client bound to one Metakocka company."""

    def __init__(
        self,
        company_id: str,
        secret_key: str,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_attempts: int = 3,
    ):
        self.company_id = company_id
        self.secret_key = secret_key
        base = base_url or settings.METAKOCKA_API_URL
        self.base_url = base if base.endswith("/") else f"{base}/"
        self.timeout = timeout or settings.METAKOCKA_TIMEOUT_SECONDS
        self.transport = transport
        self.max_attempts = max_attempts

    async def request(self, endpoint: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        body = {
            **(data or {}),
            "secret_key": self.secret_key,
            "company_id": self.company_id,
        }
        url = f"{self.base_url}{endpoint}"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await request_with_retries(
                    lambda: client.post(url, json=body),
                    max_attempts=self.max_attempts,
                    label=f"Metakocka {endpoint}",
                )
            except httpx.RequestError as exc:
                raise MetakockaError(
                    "Network error while connecting to Metakocka API",
                    MetakockaErrorType.NETWORK,
                    "NETWORK_ERROR",
                ) from exc

        if response.status_code >= 400:
            raise error_for_status(response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise MetakockaError(
                "Invalid JSON from Metakocka API", MetakockaErrorType.UNKNOWN, "INVALID_JSON"
            ) from exc

        opr_code = str(payload.get("opr_code")) if payload.get("opr_code") is not None else None
        if opr_code != "0":
            message = (
                payload.get("opr_desc_app")
                or payload.get("opr_desc")
                or "Unknown Metakocka API error"
            )
            raise MetakockaError(message, error_type_for_opr_code(opr_code), opr_code, payload)
        return payload

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    async def add_product(self, product: dict[str, Any]) -> dict[str, Any]:
        return await self.request("product_add", product)

    async def update_product(self, product: dict[str, Any]) -> dict[str, Any]:
        if not product.get("mk_id"):
            raise MetakockaError(
                "Product ID (mk_id) is required for updates", MetakockaErrorType.VALIDATION
            )
        return await self.request("product_update", product)

    async def delete_product(self, mk_id: str) -> dict[str, Any]:
        return await self.request("product_delete", {"mk_id": mk_id})

    async def list_products(self) -> dict[str, Any]:
        return await self.request("product_list")

    async def get_product(self, mk_id: str) -> dict[str, Any]:
        return await self.request("product_get", {"mk_id": mk_id})

    async def check_inventory(self, codes: str | list[str]) -> dict[str, Any]:
        if isinstance(codes, str):
            codes = [codes]
        return await self.request(
            "product_check_inventory", {"product_list": [{"code": c} for c in codes]}
        )

    async def get_product_inventory(self, mk_id: str) -> dict[str, Any]:
        """Stock levels for one product, looked up by Metakocka id."""
        details = await self.get_product(mk_id)
        products = as_row_list(details.get("product_list"))
        if not products:
            raise MetakockaError(
                f"Product not found with ID: {mk_id}", MetakockaErrorType.NOT_FOUND
            )
        code = products[0].get("code")

        inventory = await self.check_inventory(code)
        rows = as_row_list(inventory.get("product_list"))
        if not rows:
            raise MetakockaError(
                f"Inventory data not found for product: {code}", MetakockaErrorType.NOT_FOUND
            )
        row = rows[0]
        return {
            "product_id": mk_id,
            "product_code": code,
            "quantity_on_hand": _amount(row, "amount_on_warehouse"),
            "quantity_reserved": _amount(row, "amount_reserved"),
            "quantity_available": _amount(row, "amount_available"),
            "warehouse_id": row.get("warehouse_id"),
            "warehouse_name": row.get("warehouse_name"),
        }

    # -------------------------------------------------------------------------
    # Partners
    # -------------------------------------------------------------------------

    async def add_partner(self, partner: dict[str, Any]) -> dict[str, Any]:
        return await self.request("partner_add", partner)

    async def update_partner(self, partner: dict[str, Any]) -> dict[str, Any]:
        if not partner.get("mk_id"):
            raise MetakockaError(
                "Partner ID (mk_id) is required for updates", MetakockaErrorType.VALIDATION
            )
        return await self.request("partner_update", partner)

    async def delete_partner(self, mk_id: str) -> dict[str, Any]:
        return await self.request("partner_delete", {"mk_id": mk_id})

    async def list_partners(self) -> dict[str, Any]:
        return await self.request("partner_list")

    async def get_partner(self, id_or_code: str, is_code: bool = False) -> dict[str, Any]:
        params = {"count_code": id_or_code} if is_code else {"mk_id": id_or_code}
        return await self.request("partner_get", params)

    async def search_partners(self, query: str) -> dict[str, Any]:
        return await self.request("partner_search", {"query": query})

    # -------------------------------------------------------------------------
    # Sales documents
    # -------------------------------------------------------------------------

    async def put_document(self, doc_type: str, document: dict[str, Any]) -> dict[str, Any]:
        return await self.request(_document_endpoint("put", doc_type), document)

    async def update_document(self, doc_type: str, document: dict[str, Any]) -> dict[str, Any]:
        if not document.get("mk_id"):
            raise MetakockaError(
                "Document ID (mk_id) is required for updates", MetakockaErrorType.VALIDATION
            )
        return await self.request(_document_endpoint("update", doc_type), document)

    async def get_document(self, doc_type: str, mk_id: str) -> dict[str, Any]:
        return await self.request(_document_endpoint("get", doc_type), {"mk_id": mk_id})

    async def delete_document(self, doc_type: str, mk_id: str) -> dict[str, Any]:
        return await self.request(_document_endpoint("delete", doc_type), {"mk_id": mk_id})

    async def list_documents(
        self, doc_type: str, filters: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return await self.request(_document_endpoint("list", doc_type), filters or {})

    async def update_order_status(self, mk_id: str, status: str) -> dict[str, Any]:
        return await self.request("update_sales_order", {"mk_id": mk_id, "status": status})

    async def test_connection(self) -> bool:
        await self.list_products()
        return True
