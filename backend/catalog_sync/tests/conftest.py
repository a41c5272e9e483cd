"""Pytest configuration for catalog_sync integration tests

WHAT: Shared fixtures for service and HTTP endpoint tests
WHY: Every test gets an isolated in-memory database, platform credentials
     pointing at a fake store, and a SyncContext whose HTTP calls never
     leave the process
REFERENCES:
    - catalog_sync/main.py: FastAPI application
    - catalog_sync/database.py: Database configuration
    - catalog_sync/services/sync_context.py: SyncContext
"""

import asyncio
import json
import os
from types import SimpleNamespace
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before catalog_sync.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("IMPORT_API_TOKEN", "test-import-token")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379")

MORALEJA_URL = "https://moraleja.test"
ESCOLAR_URL = "https://escolar.test"


# ============================================================================
# Fake WooCommerce store
# ============================================================================

class FakeWooSite:
    """State of one fake store; each platform host gets its own."""

    def __init__(self, resources: Tuple[str, ...]) -> None:
        self.objects: Dict[str, Dict[int, Dict[str, Any]]] = {name: {} for name in resources}
        self.attributes: Dict[int, Dict[str, Any]] = {}
        self.terms: Dict[int, Dict[int, Dict[str, Any]]] = {}


class FakeWooStore:
    """In-process WooCommerce REST API behind an httpx.MockTransport.

    Keeps products/orders/customers/coupons/attributes/terms per host, so
    moraleja.test and escolar.test never see each other's objects, and
    records every request so tests can assert on what was sent. The
    objects/attributes/terms shortcuts and the add helpers default to the
    woo_moraleja host.
    """

    RESOURCES = ("products", "orders", "customers", "coupons")
    DEFAULT_HOST = "moraleja.test"

    def __init__(self) -> None:
        self.requests: List[SimpleNamespace] = []
        self.sites: Dict[str, FakeWooSite] = {}
        self.overrides: Dict[Tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self._next_id = 100
        self.transport = httpx.MockTransport(self.handle)

    # -- helpers for tests --------------------------------------------------

    def site(self, host: str = DEFAULT_HOST) -> FakeWooSite:
        if host not in self.sites:
            self.sites[host] = FakeWooSite(self.RESOURCES)
        return self.sites[host]

    @property
    def objects(self) -> Dict[str, Dict[int, Dict[str, Any]]]:
        return self.site().objects

    @property
    def attributes(self) -> Dict[int, Dict[str, Any]]:
        return self.site().attributes

    @property
    def terms(self) -> Dict[int, Dict[int, Dict[str, Any]]]:
        return self.site().terms

    def new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def add(self, resource: str, host: str = DEFAULT_HOST, **fields: Any) -> Dict[str, Any]:
        obj = {"id": fields.pop("id", None) or self.new_id(), **fields}
        self.site(host).objects[resource][obj["id"]] = obj
        return obj

    def add_attribute(
        self,
        name: str,
        slug: str,
        terms: Optional[List[Dict[str, Any]]] = None,
        host: str = DEFAULT_HOST,
    ) -> Dict[str, Any]:
        site = self.site(host)
        attribute = {"id": self.new_id(), "name": name, "slug": f"pa_{slug}"}
        site.attributes[attribute["id"]] = attribute
        site.terms[attribute["id"]] = {}
        for term in terms or []:
            term = {"id": self.new_id(), "description": "", **term}
            site.terms[attribute["id"]][term["id"]] = term
        return attribute

    def calls(self, method: str, path: str) -> List[SimpleNamespace]:
        """Recorded requests with exactly this method and path."""
        return [r for r in self.requests if r.method == method and r.path == path]

    # -- transport ----------------------------------------------------------

    async def handle(self, request: httpx.Request) -> httpx.Response:
        # Yield so concurrent callers really interleave
        await asyncio.sleep(0)
        await request.aread()

        path = request.url.path.split("/wp-json/wc/v3/", 1)[1]
        body = json.loads(request.content) if request.content else None
        params = dict(request.url.params)
        self.requests.append(
            SimpleNamespace(method=request.method, path=path, params=params, body=body, host=request.url.host)
        )

        override = self.overrides.get((request.method, path))
        if override is not None:
            return override(request)

        site = self.site(request.url.host)
        parts = path.split("/")
        if parts[:2] == ["products", "attributes"]:
            return self._attributes(site, request.method, parts[2:], params, body)
        return self._resource(site, request.method, parts[0], parts[1] if len(parts) > 1 else None, params, body)

    def _resource(self, site, method, resource, object_id, params, body) -> httpx.Response:
        store = site.objects.get(resource)
        if store is None:
            return httpx.Response(404, json={"code": "rest_no_route"})

        if object_id is None:
            if method == "POST":
                obj = {**body, "id": self.new_id()}
                store[obj["id"]] = obj
                return httpx.Response(201, json=obj)
            items = list(store.values())
            if "sku" in params:
                items = [item for item in items if item.get("sku") == params["sku"]]
            page = int(params.get("page", 1))
            per_page = int(params.get("per_page", 10))
            return httpx.Response(200, json=items[(page - 1) * per_page: page * per_page])

        obj = store.get(int(object_id))
        if obj is None:
            return httpx.Response(404, json={"code": "woocommerce_rest_invalid_id"})
        if method == "GET":
            return httpx.Response(200, json=obj)
        if method == "PUT":
            obj.update(body or {})
            return httpx.Response(200, json=obj)
        if method == "DELETE":
            return httpx.Response(200, json=store.pop(int(object_id)))
        return httpx.Response(405)

    def _attributes(self, site, method, rest, params, body) -> httpx.Response:
        if not rest:
            if method == "POST":
                attribute = {**body, "id": self.new_id()}
                site.attributes[attribute["id"]] = attribute
                site.terms[attribute["id"]] = {}
                return httpx.Response(201, json=attribute)
            search = (params.get("search") or "").lower()
            return httpx.Response(
                200,
                json=[a for a in site.attributes.values() if search in a["name"].lower()],
            )

        attribute_id = int(rest[0])
        terms = site.terms.get(attribute_id)
        if terms is None:
            return httpx.Response(404, json={"code": "woocommerce_rest_taxonomy_invalid"})

        if len(rest) == 2:
            if method == "POST":
                term = {"description": "", **body, "id": self.new_id()}
                terms[term["id"]] = term
                return httpx.Response(201, json=term)
            page = int(params.get("page", 1))
            per_page = int(params.get("per_page", 10))
            items = list(terms.values())
            return httpx.Response(200, json=items[(page - 1) * per_page: page * per_page])

        term = terms.get(int(rest[2]))
        if term is None:
            return httpx.Response(404)
        if method == "PUT":
            term.update(body or {})
        return httpx.Response(200, json=term)


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture
def platforms_env(monkeypatch):
    """Complete credentials for both platforms."""
    monkeypatch.setenv("WOO_MORALEJA_URL", MORALEJA_URL + "/")
    monkeypatch.setenv("WOO_MORALEJA_CONSUMER_KEY", "ck_moraleja")
    monkeypatch.setenv("WOO_MORALEJA_CONSUMER_SECRET", "cs_moraleja")
    monkeypatch.setenv("WOO_ESCOLAR_URL", ESCOLAR_URL)
    monkeypatch.setenv("WOO_ESCOLAR_CONSUMER_KEY", "ck_escolar")
    monkeypatch.setenv("WOO_ESCOLAR_CONSUMER_SECRET", "cs_escolar")
    for name in ("WOO_MORALEJA_WEBHOOK_SECRET", "WOO_ESCOLAR_WEBHOOK_SECRET"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_store() -> FakeWooStore:
    return FakeWooStore()


@pytest.fixture
def sync_context(fake_store):
    from catalog_sync.services.sync_context import SyncContext

    return SyncContext(max_concurrency=3, transport=fake_store.transport)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """Create in-memory test database engine shared across threads."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from catalog_sync.database import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(test_db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)


@pytest.fixture
def test_db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def repo(test_db_session):
    from catalog_sync.services.repository import SqlAlchemyCanonicalRepository

    return SqlAlchemyCanonicalRepository(test_db_session)


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(test_db_session, sync_context):
    """FastAPI app using the test session and the fake-store SyncContext."""
    from catalog_sync.database import get_db
    from catalog_sync.main import create_app

    test_app = create_app()
    test_app.state.sync_context = sync_context

    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {os.environ['IMPORT_API_TOKEN']}"}


# ============================================================================
# Model Fixtures
# ============================================================================

@pytest.fixture
def make_product(repo):
    """Factory for canonical books (published, channeled to moraleja)."""
    from catalog_sync.models import EntityKindEnum

    def _make(**fields: Any):
        data = {
            "name": "El Principito",
            "isbn": "9789561234567",
            "regular_price": 9990,
            "publication_status": "published",
            "channels": ["woo_moraleja"],
        }
        data.update(fields)
        return repo.create(EntityKindEnum.product, data)

    return _make


@pytest.fixture
def make_term(repo):
    from catalog_sync.models import EntityKindEnum

    def _make(kind: str = "author", name: str = "Antoine de Saint-Exupéry", **fields: Any):
        return repo.create(EntityKindEnum.term, {"kind": kind, "name": name, **fields})

    return _make


@pytest.fixture
def make_coupon(repo):
    from catalog_sync.models import EntityKindEnum

    def _make(**fields: Any):
        data = {
            "code": "LIBROS10",
            "discount_type": "porcentaje",
            "amount": 10,
            "channels": ["woo_moraleja"],
        }
        data.update(fields)
        return repo.create(EntityKindEnum.coupon, data)

    return _make
