"""Order sync: line item resolution, product cascade and customer checks."""

import asyncio

import httpx
import pytest

from catalog_sync.models import EntityKindEnum
from catalog_sync.services.order_sync_service import is_channeled, sync_order
from catalog_sync.services.sync_errors import CascadeDepthExceeded, ValidationError


@pytest.fixture
def make_order(repo):
    def _make(items, **fields):
        data = {
            "number": "1001",
            "status": "processing",
            "total": 19980,
            "channels": ["woo_moraleja"],
            "billing": {"nombre": "Ana", "apellido": "Pérez", "correo_electronico": "ana@example.com"},
            "items": items,
        }
        data.update(fields)
        return repo.create(EntityKindEnum.order, data)

    return _make


def test_order_without_line_items_is_rejected(platforms_env, fake_store, sync_context, repo, make_order):
    order = make_order([])

    with pytest.raises(ValidationError):
        asyncio.run(sync_order(sync_context, repo, order, "woo_moraleja"))

    assert fake_store.calls("POST", "orders") == []
    assert repo.get(EntityKindEnum.order, order.id).sync_status == {"woo_moraleja": "sync_failed"}


def test_order_without_number_fails_before_any_request(platforms_env, fake_store, sync_context, repo, make_order):
    order = make_order([{"external_product_id": "55", "quantity": 1}], number=None)

    with pytest.raises(ValidationError):
        asyncio.run(sync_order(sync_context, repo, order, "woo_moraleja"))

    assert fake_store.requests == []


def test_explicit_external_product_id_wins(platforms_env, fake_store, sync_context, repo, make_order, make_product):
    product = make_product(external_ids={"woo_moraleja": "12"})
    order = make_order([{"product_id": product.id, "external_product_id": "55", "quantity": 2, "unit_price": 9990}])

    asyncio.run(sync_order(sync_context, repo, order, "woo_moraleja"))

    (create,) = fake_store.calls("POST", "orders")
    (line,) = create.body["line_items"]
    assert line["product_id"] == 55
    assert line["quantity"] == 2
    assert line["total"] == "19980"
    assert create.body["billing"]["first_name"] == "Ana"
    assert create.body["billing"]["email"] == "ana@example.com"
    assert create.body["billing"]["country"] == "CL"


def test_unsynced_channeled_product_is_synced_first(
    platforms_env, fake_store, sync_context, repo, make_order, make_product
):
    product = make_product()
    order = make_order([{"product_id": product.id, "quantity": 1}])

    result = asyncio.run(sync_order(sync_context, repo, order, "woo_moraleja"))

    product_id = int(repo.get(EntityKindEnum.product, product.id).external_ids["woo_moraleja"])
    methods = [(r.method, r.path) for r in fake_store.requests]
    assert methods.index(("POST", "products")) < methods.index(("POST", "orders"))
    (create,) = fake_store.calls("POST", "orders")
    assert create.body["line_items"][0]["product_id"] == product_id
    assert result.action == "created"


def test_cascade_that_yields_no_id_stops_at_depth_one(
    platforms_env, fake_store, sync_context, repo, make_order, make_product
):
    # Platform accepts the product but answers without an id
    fake_store.overrides[("POST", "products")] = lambda request: httpx.Response(201, json={"name": "?"})
    product = make_product()
    order = make_order([{"product_id": product.id, "quantity": 1}])

    with pytest.raises(CascadeDepthExceeded):
        asyncio.run(sync_order(sync_context, repo, order, "woo_moraleja"))

    assert len(fake_store.calls("POST", "products")) == 1
    assert fake_store.calls("POST", "orders") == []


def test_failed_cascade_falls_back_to_platform_sku(
    platforms_env, fake_store, sync_context, repo, make_order, make_product
):
    fake_store.overrides[("POST", "products")] = lambda request: httpx.Response(500)
    remote = fake_store.add("products", sku="9789561234567", name="El Principito")
    product = make_product()
    order = make_order([{"product_id": product.id, "quantity": 1}])

    asyncio.run(sync_order(sync_context, repo, order, "woo_moraleja"))

    (create,) = fake_store.calls("POST", "orders")
    assert create.body["line_items"][0]["product_id"] == remote["id"]
    # The platform's product is adopted by the canonical book
    assert repo.get(EntityKindEnum.product, product.id).external_ids == {"woo_moraleja": str(remote["id"])}


def test_sku_line_resolves_through_canonical_product(
    platforms_env, fake_store, sync_context, repo, make_order, make_product
):
    make_product(isbn="9789560000009", external_ids={"woo_moraleja": "321"})
    order = make_order([{"sku": "9789560000009", "name": "Libro", "quantity": 3}])

    asyncio.run(sync_order(sync_context, repo, order, "woo_moraleja"))

    (create,) = fake_store.calls("POST", "orders")
    assert create.body["line_items"][0]["product_id"] == 321
    assert create.body["line_items"][0]["quantity"] == 3
    assert fake_store.calls("GET", "products") == []


def test_unresolvable_lines_are_dropped(platforms_env, fake_store, sync_context, repo, make_order):
    order = make_order([
        {"sku": "0000000000000", "name": "Desconocido", "quantity": 1},
        {"external_product_id": "44", "name": "Conocido", "quantity": 1},
    ])

    asyncio.run(sync_order(sync_context, repo, order, "woo_moraleja"))

    (create,) = fake_store.calls("POST", "orders")
    assert [line["product_id"] for line in create.body["line_items"]] == [44]


def test_customer_id_sent_only_when_platform_knows_it(platforms_env, fake_store, sync_context, repo, make_order):
    known = repo.create(
        EntityKindEnum.customer,
        {"email": "ana@example.com", "external_ids": {"woo_moraleja": "900"}},
    )
    fake_store.add("customers", id=900, email="ana@example.com")
    stale = repo.create(
        EntityKindEnum.customer,
        {"email": "old@example.com", "external_ids": {"woo_moraleja": "901"}},
    )

    known_order = make_order([{"external_product_id": "44"}], number="2001", customer_id=known.id)
    stale_order = make_order([{"external_product_id": "44"}], number="2002", customer_id=stale.id)

    asyncio.run(sync_order(sync_context, repo, known_order, "woo_moraleja"))
    asyncio.run(sync_order(sync_context, repo, stale_order, "woo_moraleja"))

    first, second = fake_store.calls("POST", "orders")
    assert first.body["customer_id"] == 900
    assert "customer_id" not in second.body


def test_status_is_normalized(platforms_env, fake_store, sync_context, repo, make_order):
    order = make_order([{"external_product_id": "44"}], status="Canceled")

    asyncio.run(sync_order(sync_context, repo, order, "woo_moraleja"))

    (create,) = fake_store.calls("POST", "orders")
    assert create.body["status"] == "cancelled"


def test_is_channeled_accepts_enum_and_string_channels():
    from catalog_sync.models import PlatformEnum

    assert is_channeled({"channels": ["woo_moraleja"]}, PlatformEnum.woo_moraleja)
    assert not is_channeled({"channels": ["woo_escolar"]}, "woo_moraleja")
    assert not is_channeled({"channels": None}, "woo_moraleja")
