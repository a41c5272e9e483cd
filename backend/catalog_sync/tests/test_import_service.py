"""Bulk import from a platform."""

import asyncio

import pytest

from catalog_sync.models import Coupon, EntityKindEnum, Product
from catalog_sync.services.import_service import import_entities
from catalog_sync.services.sync_errors import ValidationError


@pytest.fixture
def remote_products(fake_store):
    return [
        fake_store.add("products", name=f"Libro {n}", sku=f"97895600000{n:02d}", regular_price="9990", status="publish")
        for n in range(1, 6)
    ]


def test_import_creates_every_product(platforms_env, fake_store, sync_context, repo, test_db_session, remote_products):
    report = asyncio.run(import_entities(sync_context, repo, "woo_moraleja", page_size=2))

    assert report.imported == 5
    assert report.errors == 0
    assert test_db_session.query(Product).count() == 5
    pages = [r.params["page"] for r in fake_store.calls("GET", "products")]
    assert pages == ["1", "2", "3"]

    product = repo.find_by_external_id(EntityKindEnum.product, "woo_moraleja", remote_products[0]["id"])
    assert product.isbn == "9789560000001"
    assert product.channels == ["woo_moraleja"]


def test_dry_run_writes_nothing(platforms_env, fake_store, sync_context, repo, test_db_session, remote_products):
    report = asyncio.run(import_entities(sync_context, repo, "woo_moraleja", dry_run=True))

    assert report.dry_run is True
    assert report.imported == 5
    assert test_db_session.query(Product).count() == 0


def test_limit_stops_paging(platforms_env, fake_store, sync_context, repo, test_db_session, remote_products):
    report = asyncio.run(import_entities(sync_context, repo, "woo_moraleja", limit=3, page_size=2))

    assert report.imported == 3
    assert test_db_session.query(Product).count() == 3
    assert len(fake_store.calls("GET", "products")) == 2


def test_known_products_are_skipped_unless_update_requested(
    platforms_env, fake_store, sync_context, repo, make_product, remote_products
):
    existing = make_product(isbn="9789560000001", name="Nombre local")

    skipped = asyncio.run(import_entities(sync_context, repo, "woo_moraleja"))
    assert (skipped.imported, skipped.skipped) == (4, 1)
    assert repo.get(EntityKindEnum.product, existing.id).name == "Nombre local"

    merged = asyncio.run(import_entities(sync_context, repo, "woo_moraleja", update_existing=True))
    assert (merged.imported, merged.updated) == (0, 5)
    refreshed = repo.get(EntityKindEnum.product, existing.id)
    assert refreshed.name == "Libro 1"
    assert refreshed.external_ids == {"woo_moraleja": str(remote_products[0]["id"])}


def test_bad_rows_are_counted_and_skipped(platforms_env, fake_store, sync_context, repo, remote_products):
    fake_store.add("products", status="draft")

    report = asyncio.run(import_entities(sync_context, repo, "woo_moraleja"))

    assert report.imported == 5
    assert report.errors == 1
    assert "neither name nor sku" in report.error_messages[0]


def test_coupons_are_matched_by_code_case_insensitively(
    platforms_env, fake_store, sync_context, repo, test_db_session, make_coupon
):
    make_coupon(code="LIBROS10")
    fake_store.add("coupons", code="libros10", discount_type="percent", amount="10.00")
    fake_store.add("coupons", code="verano", discount_type="fixed_cart", amount="2000")

    report = asyncio.run(import_entities(sync_context, repo, "woo_moraleja", kind=EntityKindEnum.coupon))

    assert (report.imported, report.skipped) == (1, 1)
    assert sorted(c.code for c in test_db_session.query(Coupon).all()) == ["LIBROS10", "verano"]


def test_terms_cannot_be_imported(platforms_env, sync_context, repo):
    with pytest.raises(ValidationError):
        asyncio.run(import_entities(sync_context, repo, "woo_moraleja", kind=EntityKindEnum.term))


def test_dry_run_counts_repeated_rows_like_a_real_run(platforms_env, fake_store, sync_context, repo, test_db_session):
    fake_store.add("products", name="Rayuela", sku="9789500000501")
    fake_store.add("products", name="Rayuela (reimpresión)", sku="9789500000501")
    fake_store.add("customers", email="Ana@Example.com", first_name="Ana")
    fake_store.add("customers", email="ana@example.com", first_name="Ana María")

    dry_products = asyncio.run(import_entities(sync_context, repo, "woo_moraleja", dry_run=True))
    dry_customers = asyncio.run(
        import_entities(sync_context, repo, "woo_moraleja", kind=EntityKindEnum.customer, dry_run=True)
    )
    real_products = asyncio.run(import_entities(sync_context, repo, "woo_moraleja"))

    assert (dry_products.imported, dry_products.skipped) == (1, 1)
    assert (dry_customers.imported, dry_customers.skipped) == (1, 1)
    assert (real_products.imported, real_products.skipped) == (1, 1)
    assert test_db_session.query(Product).count() == 1
