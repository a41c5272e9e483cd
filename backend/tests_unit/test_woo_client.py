"""
WooCommerce Client Tests (Unit)
===============================

WHAT: Unit tests for WooClient request handling, error mapping and paging.
WHY: Every orchestrator relies on these semantics (404 on delete is success,
transport failures carry no status, paging stops on a short page).

REFERENCES:
- backend/catalog_sync/services/woo_client.py
"""

import asyncio
import base64
import json

import httpx
import pytest

from catalog_sync.models import PlatformEnum
from catalog_sync.services.platform_config import PlatformConfig
from catalog_sync.services.sync_errors import NotFoundError, RemoteApiError
from catalog_sync.services.woo_client import MAX_SLUG_LENGTH, WooClient, build_auth_header, slugify

CONFIG = PlatformConfig(
    platform=PlatformEnum.woo_moraleja,
    url="https://moraleja.test",
    consumer_key="ck_test",
    consumer_secret="cs_test",
)


def _client(handler) -> WooClient:
    return WooClient(CONFIG, transport=httpx.MockTransport(handler))


def test_auth_header_is_basic_key_secret() -> None:
    expected = base64.b64encode(b"ck_test:cs_test").decode()

    assert build_auth_header("ck_test", "cs_test") == f"Basic {expected}"


def test_slugify_is_ascii_and_capped() -> None:
    slug = slugify("Colección Barco de Vapor: serie roja para niños")

    assert slug.startswith("coleccion-barco-de-vapor")
    assert len(slug) <= MAX_SLUG_LENGTH
    assert not slug.endswith("-")
    assert slugify("  Editorial  Universitaria ") == "editorial-universitaria"


def test_request_sends_credentials_and_json_body() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": 10})

    result = asyncio.run(_client(handler).create_product({"name": "Rayuela"}))

    assert result == {"id": 10}
    assert seen["url"] == "https://moraleja.test/wp-json/wc/v3/products"
    assert seen["auth"] == build_auth_header("ck_test", "cs_test")
    assert seen["body"] == {"name": "Rayuela"}


def test_error_status_raises_with_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"code": "woocommerce_rest_product_invalid_sku"})

    with pytest.raises(RemoteApiError) as excinfo:
        asyncio.run(_client(handler).update_product(5, {"sku": "dup"}))

    assert not isinstance(excinfo.value, NotFoundError)
    assert excinfo.value.status == 400
    assert excinfo.value.endpoint == "products/5"
    assert excinfo.value.body == {"code": "woocommerce_rest_product_invalid_sku"}


def test_404_raises_not_found() -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(_client(lambda request: httpx.Response(404, text="gone")).get_order(9))


def test_transport_failure_has_no_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteApiError) as excinfo:
        asyncio.run(_client(handler).get_product(1))

    assert excinfo.value.status is None


def test_delete_is_forced_and_404_is_success() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        return httpx.Response(404)

    assert asyncio.run(_client(handler).delete_coupon(3)) is None
    assert seen == [{"force": "true"}]


def test_no_content_returns_none() -> None:
    assert asyncio.run(_client(lambda request: httpx.Response(204)).delete_order(3)) is None


def test_iter_pages_stops_on_short_page() -> None:
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        requested.append(page)
        return httpx.Response(200, json=[{"id": n} for n in range(3 if page < 3 else 1)])

    async def collect():
        return [page async for page in _client(handler).iter_pages("customers", per_page=3)]

    pages = asyncio.run(collect())

    assert [len(page) for page in pages] == [3, 3, 1]
    assert requested == [1, 2, 3]


def test_customer_exists() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/customers/1"):
            return httpx.Response(200, json={"id": 1})
        return httpx.Response(404)

    client = _client(handler)

    assert asyncio.run(client.customer_exists(1)) is True
    assert asyncio.run(client.customer_exists(2)) is False


def test_duplicate_remote_terms_use_the_first_match() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"id": 7, "name": "Autor Uno"}, {"id": 8, "name": "autor uno"}])

    client = _client(handler)
    term = asyncio.run(client.get_or_create_attribute_term(4, "Autor Uno"))

    assert term["id"] == 7
    assert client.cache.get_term(4, "autor uno") == term
