"""
Entity Mapper Tests (Unit)
==========================

WHAT: Unit tests for the pure canonical <-> platform mapping functions.
WHY: Status/discount normalization, price selection and the protected-field
policy decide what the stores show; none of it needs a database or HTTP.

NOTE:
These tests live outside `backend/catalog_sync/tests/` to avoid loading the
integration-test `conftest.py`, which configures a database and platform
credentials not required here.

REFERENCES:
- backend/catalog_sync/services/mappers/
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from catalog_sync.models import PlatformEnum, utcnow
from catalog_sync.services.mappers import (
    address_mapper,
    coupon_mapper,
    customer_mapper,
    find_active_price,
    line_item_mapper,
    normalize_discount_type,
    normalize_order_status,
    order_mapper,
    product_mapper,
    protected_merge,
)
from catalog_sync.services.mappers.common import format_number, merge_external_ids, parse_datetime
from catalog_sync.services.mappers.protected import casefold

NOW = datetime(2025, 6, 15, 12, 0)


# =============================================================================
# Normalization tables
# =============================================================================

def test_discount_types_normalize_to_platform_values() -> None:
    assert normalize_discount_type("Porcentaje") == "percent"
    assert normalize_discount_type("percentage") == "percent"
    assert normalize_discount_type("producto_fijo") == "fixed_product"
    assert normalize_discount_type("fijo") == "fixed_cart"
    assert normalize_discount_type(None) == "fixed_cart"


def test_order_statuses_normalize_through_finite_table() -> None:
    assert normalize_order_status("Completed") == "completed"
    assert normalize_order_status("draft") == "auto-draft"
    assert normalize_order_status("canceled") == "cancelled"
    assert normalize_order_status("refund") == "refunded"
    assert normalize_order_status("error") == "failed"
    assert normalize_order_status("enviado") == "pending"
    assert normalize_order_status("") == "pending"
    assert normalize_order_status(None) == "pending"


def test_format_number_renders_plain_strings() -> None:
    assert format_number(9990) == "9990"
    assert format_number(Decimal("12.50")) == "12.5"
    assert format_number("7") == "7"
    assert format_number(None) is None
    assert format_number("n/a") is None


def test_parse_datetime_returns_naive_utc() -> None:
    assert parse_datetime("2025-06-15T10:00:00-04:00") == datetime(2025, 6, 15, 14, 0)
    assert parse_datetime("2025-06-15T10:00:00Z") == datetime(2025, 6, 15, 10, 0)
    assert parse_datetime("not a date") is None


def test_utcnow_is_naive_utc() -> None:
    now = utcnow()

    assert now.tzinfo is None
    assert abs(now - datetime.now(timezone.utc).replace(tzinfo=None)) < timedelta(seconds=5)


def test_merge_external_ids_keeps_other_platforms() -> None:
    merged = merge_external_ids({"woo_escolar": 9}, PlatformEnum.woo_moraleja, 501)

    assert merged == {"woo_escolar": "9", "woo_moraleja": "501"}


# =============================================================================
# Prices
# =============================================================================

def test_active_price_prefers_latest_started_window() -> None:
    prices = [
        {"amount": 9990, "starts_at": "2025-01-01T00:00:00"},
        {"amount": 7990, "starts_at": "2025-06-01T00:00:00", "ends_at": "2025-06-30T23:59:59"},
        {"amount": 5990, "starts_at": "2025-06-10T00:00:00", "active": False},
    ]

    assert find_active_price(prices, now=NOW)["amount"] == 7990


def test_active_price_falls_back_to_most_recent_enabled_entry() -> None:
    prices = [
        {"amount": 9990, "starts_at": "2024-01-01T00:00:00", "ends_at": "2024-12-31T00:00:00"},
        {"amount": 8990, "starts_at": "2025-07-01T00:00:00"},
    ]

    assert find_active_price(prices, now=NOW)["amount"] == 8990


def test_active_price_none_when_nothing_enabled() -> None:
    assert find_active_price(None) is None
    assert find_active_price([]) is None
    assert find_active_price([{"amount": 1, "active": False}], now=NOW) is None


# =============================================================================
# Products
# =============================================================================

def test_product_payload() -> None:
    product = {
        "name": "Papelucho",
        "isbn": " 9789561111111 ",
        "regular_price": 8990,
        "sale_price": Decimal("7990.00"),
        "stock_quantity": 0,
        "publication_status": "pending",
        "subtitle": "Diario de un niño",
        "edition_year": 2020,
        "cover_image": {"data": {"formats": {"medium": {"url": "https://cdn.test/m.jpg"}}}},
        "interior_images": ["https://cdn.test/1.jpg"],
        "description": [
            {"type": "heading", "level": 2, "children": [{"text": "Sinopsis"}]},
            {"type": "paragraph", "children": [{"text": "Un clásico."}]},
        ],
        "length": 21,
    }

    payload = product_mapper.to_external(product, PlatformEnum.woo_moraleja)

    assert payload["sku"] == "9789561111111"
    assert payload["status"] == "pending"
    assert payload["regular_price"] == "8990"
    assert payload["sale_price"] == "7990"
    assert payload["manage_stock"] is True
    assert payload["stock_status"] == "outofstock"
    assert payload["images"][0] == {"src": "https://cdn.test/m.jpg", "alt": "Papelucho"}
    assert payload["images"][1]["src"] == "https://cdn.test/1.jpg"
    assert payload["description"] == "<h2>Sinopsis</h2>\n<p>Un clásico.</p>"
    assert payload["dimensions"] == {"length": "21"}
    meta = {entry["key"]: entry["value"] for entry in payload["meta_data"]}
    assert meta["isbn"] == "9789561111111"
    assert meta["subtitulo_libro"] == "Diario de un niño"
    assert meta["agno_edicion"] == "2020"


def test_product_price_list_overrides_flat_price() -> None:
    product = {"name": "x", "regular_price": 9990, "prices": [{"amount": 4990}]}

    assert product_mapper.to_external(product, "woo_escolar")["regular_price"] == "4990"


def test_reverse_product_protects_isbn() -> None:
    existing = {"isbn": "9789561111111", "external_ids": {"woo_escolar": "3"}}
    external = {"id": 12, "name": "Papelucho", "sku": "0000000000000", "status": "private", "regular_price": ""}

    result = product_mapper.to_canonical(external, PlatformEnum.woo_moraleja, existing)

    assert "isbn" not in result.payload
    assert result.has_conflicts
    assert result.conflicts[0].field == "isbn"
    assert result.payload["publication_status"] == "pending"
    assert result.payload["regular_price"] == 0.0
    assert result.payload["external_ids"] == {"woo_escolar": "3", "woo_moraleja": "12"}


def test_reverse_product_reads_isbn_from_meta_when_no_sku() -> None:
    external = {"id": 1, "name": "x", "meta_data": [{"key": "isbn", "value": "9789562222222"}]}

    assert product_mapper.to_canonical(external, "woo_moraleja").payload["isbn"] == "9789562222222"


# =============================================================================
# Protected merge
# =============================================================================

def test_protected_merge_fills_empty_canonical_value() -> None:
    result = protected_merge({"email": None}, {"email": "a@b.cl", "phone": "1"}, ["email"])

    assert result.payload == {"email": "a@b.cl", "phone": "1"}
    assert result.conflicts == []


def test_protected_merge_equal_under_comparator_is_not_a_conflict() -> None:
    result = protected_merge(
        {"email": "Ana@Example.com"},
        {"email": "ana@example.com"},
        ["email"],
        comparators={"email": casefold},
    )

    assert result.payload == {}
    assert result.conflicts == []


def test_protected_merge_blank_incoming_is_dropped() -> None:
    assert protected_merge(None, {"code": "  "}, ["code"]).payload == {}
    assert protected_merge({"code": "X"}, {"code": ""}, ["code"]).conflicts == []


# =============================================================================
# Addresses, customers, coupons, orders
# =============================================================================

def test_address_aliases_and_default_country() -> None:
    billing = address_mapper.to_billing({"nombre": "Ana", "direccion": "Av. Siempre Viva 1", "telefono": "123"})
    shipping = address_mapper.to_shipping({"ciudad": "Valparaíso", "pais": "AR", "email": "x@y.cl"})

    assert billing["first_name"] == "Ana"
    assert billing["address_1"] == "Av. Siempre Viva 1"
    assert billing["phone"] == "123"
    assert billing["country"] == "CL"
    assert shipping["city"] == "Valparaíso"
    assert shipping["country"] == "AR"
    assert "email" not in shipping


def test_customer_full_name_is_split() -> None:
    payload = customer_mapper.to_external(
        {"email": "ana@example.com", "first_name": "Ana María Pérez", "city": "Santiago"},
        "woo_moraleja",
    )

    assert (payload["first_name"], payload["last_name"]) == ("Ana", "María Pérez")
    assert payload["billing"]["first_name"] == "Ana"
    assert payload["billing"]["city"] == "Santiago"
    assert payload["billing"]["email"] == "ana@example.com"


def test_reverse_customer_computes_average_order_value() -> None:
    external = {"id": 5, "email": "ana@example.com", "orders_count": 4, "total_spent": "100000"}

    payload = customer_mapper.to_canonical(external, "woo_moraleja").payload

    assert payload["orders_count"] == 4
    assert payload["average_order_value"] == 25000.0


def test_coupon_payload() -> None:
    payload = coupon_mapper.to_external(
        {"code": "VERANO", "discount_type": "porcentaje", "amount": Decimal("15.00"), "product_ids": ["12", "x"]},
        PlatformEnum.woo_escolar,
    )

    assert payload["discount_type"] == "percent"
    assert payload["amount"] == "15"
    assert payload["product_ids"] == [12]
    assert {"key": "origin_platform", "value": "woo_escolar"} in payload["meta_data"]


def test_reverse_coupon_code_compares_case_insensitively() -> None:
    result = coupon_mapper.to_canonical({"id": 3, "code": "verano"}, "woo_moraleja", {"code": "VERANO"})

    assert "code" not in result.payload
    assert result.conflicts == []


def test_order_payload_totals_and_defaults() -> None:
    order = {"number": "1001", "status": "cancel", "total": Decimal("19980.00"), "tax_total": 3190}

    payload = order_mapper.to_external(order, "woo_moraleja", line_items=[{"product_id": 1, "quantity": 2}])

    assert payload["status"] == "cancelled"
    assert payload["created_via"] == "web"
    assert payload["total"] == "19980"
    assert payload["total_tax"] == "3190"
    assert "customer_id" not in payload


def test_reverse_order_protects_number_and_maps_items() -> None:
    external = {
        "id": 77,
        "number": "77",
        "status": "on-hold",
        "line_items": [{"id": 1, "product_id": 501, "sku": "978", "quantity": 2, "total": "2000"}],
    }

    result = order_mapper.to_canonical(external, PlatformEnum.woo_escolar, {"number": "A-77"})

    assert "number" not in result.payload
    assert result.conflicts[0].field == "number"
    assert result.payload["origin_platform"] == "woo_escolar"
    (item,) = result.payload["items"]
    assert item["external_product_id"] == "501"
    assert item["unit_price"] == 1000.0


def test_line_item_explicit_id_must_be_positive() -> None:
    assert line_item_mapper.explicit_product_id({"external_product_id": "0"}) is None
    assert line_item_mapper.explicit_product_id({"external_product_id": "abc"}) is None
    assert line_item_mapper.explicit_product_id({"external_product_id": "15"}) == 15
    assert line_item_mapper.item_sku({"product": {"isbn": " 978 "}}) == "978"
