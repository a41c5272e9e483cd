"""WooCommerce REST API client.

WHAT:
    Wrapper for the WooCommerce REST API (wp-json/wc/v3) with:
    - Basic authentication from consumer key/secret
    - Typed helpers for products, orders, customers and coupons
    - Page-based pagination
    - Attribute/term lookup-or-create backed by AttributeTermCache

WHY:
    Encapsulates all platform interaction for the sync orchestrators.
    No retries here: a failed call raises RemoteApiError and the caller
    (scheduler, sweep, webhook redelivery) decides what happens next.

REFERENCES:
    - WooCommerce REST API: https://woocommerce.github.io/woocommerce-rest-api-docs/
    - Attributes: https://woocommerce.github.io/woocommerce-rest-api-docs/#product-attributes
    - Attribute terms: https://woocommerce.github.io/woocommerce-rest-api-docs/#product-attribute-terms
"""

import base64
import logging
import re
import unicodedata
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx

from catalog_sync.services.platform_config import PlatformConfig
from catalog_sync.services.sync_errors import NotFoundError, RemoteApiError
from catalog_sync.services.term_cache import AttributeTermCache

logger = logging.getLogger(__name__)

API_ROOT = "wp-json/wc/v3"
DEFAULT_TIMEOUT = 30.0
TERMS_PAGE_SIZE = 100
# WooCommerce truncates attribute term slugs beyond this length
MAX_SLUG_LENGTH = 28

ExternalId = Union[int, str]


def build_auth_header(consumer_key: str, consumer_secret: str) -> str:
    """Return the Basic auth header value for a key/secret pair."""
    token = base64.b64encode(f"{consumer_key}:{consumer_secret}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def slugify(value: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """ASCII, lowercase, dash-separated slug capped at max_length."""
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug[:max_length].rstrip("-")


class WooClient:
    """REST client for one WooCommerce store.

    WHAT: Handles all communication with one platform
    WHY: Centralized auth, error mapping and taxonomy caching per platform

    Usage:
        client = WooClient(config)
        product = await client.create_product({"name": "Libro", "sku": "978..."})
        await client.update_product(product["id"], {"regular_price": "9990"})
    """

    def __init__(
        self,
        config: PlatformConfig,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[AttributeTermCache] = None,
    ):
        """Initialize the client.

        Args:
            config: Resolved platform credentials
            timeout: Seconds before an outbound call is abandoned
            transport: Optional httpx transport (tests pass httpx.MockTransport)
            cache: Attribute/term cache; a fresh one is created when omitted
        """
        self.config = config
        self.platform = config.platform.value
        self.base_url = f"{config.url}/{API_ROOT}"
        self.timeout = timeout
        self.cache = cache or AttributeTermCache()
        self._transport = transport
        self._headers = {
            "Authorization": build_auth_header(config.consumer_key, config.consumer_secret),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        logger.info(f"[WOO_CLIENT] Initialized for {self.platform} ({config.url})")

    # =========================================================================
    # CORE REQUEST
    # =========================================================================

    async def request(
        self,
        method: str,
        endpoint: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send one request and decode the JSON response.

        Args:
            method: HTTP verb
            endpoint: Resource path relative to the API root (e.g. "products/12")
            body: JSON body
            params: Query parameters

        Returns:
            Decoded JSON, or None for 204/empty responses

        Raises:
            NotFoundError: 404 response
            RemoteApiError: Any other non-2xx response or a transport failure
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    url,
                    json=body,
                    params=params,
                    headers=self._headers,
                )
        except httpx.RequestError as e:
            logger.warning(f"[WOO_CLIENT] {self.platform} {method} {endpoint} failed: {e}")
            raise RemoteApiError(
                f"{method} {endpoint} failed: {e}",
                status=None,
                endpoint=endpoint,
            ) from e

        if response.status_code == 204:
            return None

        if not response.is_success:
            error_body = _decode_body(response)
            logger.warning(
                f"[WOO_CLIENT] {self.platform} {method} {endpoint} -> HTTP {response.status_code}"
            )
            error_cls = NotFoundError if response.status_code == 404 else RemoteApiError
            raise error_cls(
                f"{method} {endpoint} returned HTTP {response.status_code}",
                status=response.status_code,
                endpoint=endpoint,
                body=error_body,
            )

        if not response.content:
            return None
        return response.json()

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, body: Dict[str, Any]) -> Any:
        return await self.request("POST", endpoint, body=body)

    async def put(self, endpoint: str, body: Dict[str, Any]) -> Any:
        return await self.request("PUT", endpoint, body=body)

    async def delete(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Forced delete. A 404 means the object is already gone and returns None."""
        query = {"force": True}
        if params:
            query.update(params)
        try:
            return await self.request("DELETE", endpoint, params=query)
        except NotFoundError:
            logger.info(f"[WOO_CLIENT] {self.platform} DELETE {endpoint}: already gone (404)")
            return None

    # =========================================================================
    # PAGINATION
    # =========================================================================

    async def list_page(
        self,
        resource: str,
        page: int = 1,
        per_page: int = 50,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch one page of a listing endpoint."""
        query = {"page": page, "per_page": per_page}
        if params:
            query.update(params)
        data = await self.get(resource, params=query)
        return data if isinstance(data, list) else []

    async def iter_pages(
        self,
        resource: str,
        per_page: int = 50,
        params: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """Yield pages until an empty or short page."""
        page = 1
        while True:
            items = await self.list_page(resource, page=page, per_page=per_page, params=params)
            if not items:
                return
            yield items
            if len(items) < per_page:
                return
            page += 1

    # =========================================================================
    # PRODUCTS
    # =========================================================================

    async def get_product(self, product_id: ExternalId) -> Dict[str, Any]:
        return await self.get(f"products/{product_id}")

    async def create_product(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("products", payload)

    async def update_product(self, product_id: ExternalId, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.put(f"products/{product_id}", payload)

    async def delete_product(self, product_id: ExternalId) -> Optional[Dict[str, Any]]:
        return await self.delete(f"products/{product_id}")

    async def find_product_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        """Return the first product with this SKU, or None."""
        products = await self.get("products", params={"sku": sku})
        if isinstance(products, list) and products:
            return products[0]
        return None

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def get_order(self, order_id: ExternalId) -> Dict[str, Any]:
        return await self.get(f"orders/{order_id}")

    async def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("orders", payload)

    async def update_order(self, order_id: ExternalId, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.put(f"orders/{order_id}", payload)

    async def delete_order(self, order_id: ExternalId) -> Optional[Dict[str, Any]]:
        return await self.delete(f"orders/{order_id}")

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    async def get_customer(self, customer_id: ExternalId) -> Dict[str, Any]:
        return await self.get(f"customers/{customer_id}")

    async def create_customer(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("customers", payload)

    async def update_customer(self, customer_id: ExternalId, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.put(f"customers/{customer_id}", payload)

    async def delete_customer(self, customer_id: ExternalId) -> Optional[Dict[str, Any]]:
        return await self.delete(f"customers/{customer_id}")

    async def customer_exists(self, customer_id: ExternalId) -> bool:
        """True when the platform still knows this customer id."""
        try:
            await self.get_customer(customer_id)
            return True
        except NotFoundError:
            return False

    # =========================================================================
    # COUPONS
    # =========================================================================

    async def create_coupon(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post("coupons", payload)

    async def update_coupon(self, coupon_id: ExternalId, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.put(f"coupons/{coupon_id}", payload)

    async def delete_coupon(self, coupon_id: ExternalId) -> Optional[Dict[str, Any]]:
        return await self.delete(f"coupons/{coupon_id}")

    # =========================================================================
    # ATTRIBUTES & TERMS
    # =========================================================================

    async def find_attribute(self, name: str, slug: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Look up an attribute by name (case-insensitive) or slug, no create."""
        attributes = await self.get("products/attributes", params={"search": name})
        if not isinstance(attributes, list):
            return None
        wanted_name = name.strip().lower()
        for attribute in attributes:
            if str(attribute.get("name", "")).strip().lower() == wanted_name:
                return attribute
            if slug and attribute.get("slug") in (slug, f"pa_{slug}"):
                return attribute
        return None

    async def get_or_create_attribute(self, name: str, slug: str) -> Dict[str, Any]:
        """Return the attribute for name/slug, creating it when missing.

        WHAT: Cache, then remote search, then create
        WHY: Product sync and term sync need attribute ids on every call

        Concurrent callers for the same slug serialize on a per-key lock and
        re-check the cache before creating, so one create happens at most.
        """
        cached = self.cache.get_attribute(slug)
        if cached:
            return cached

        async with self.cache.lock_for(f"attribute:{slug}"):
            cached = self.cache.get_attribute(slug)
            if cached:
                return cached

            existing = await self.find_attribute(name, slug)
            if existing:
                self.cache.set_attribute(slug, existing)
                return existing

            created = await self.post(
                "products/attributes",
                {
                    "name": name,
                    "slug": slug,
                    "type": "select",
                    "order_by": "name",
                    "has_archives": False,
                },
            )
            logger.info(f"[WOO_CLIENT] {self.platform} created attribute '{name}' (id={created.get('id')})")
            self.cache.set_attribute(slug, created)
            return created

    async def list_attribute_terms(self, attribute_id: int) -> List[Dict[str, Any]]:
        """Every term of an attribute, following pagination."""
        terms: List[Dict[str, Any]] = []
        async for page in self.iter_pages(
            f"products/attributes/{attribute_id}/terms", per_page=TERMS_PAGE_SIZE
        ):
            terms.extend(page)
        return terms

    async def get_or_create_attribute_term(
        self,
        attribute_id: int,
        name: str,
        description: Optional[str] = None,
        slug: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Return the term named `name` within an attribute, creating it when missing.

        WHAT:
            Cache (by slug when given, else lowercased name), then remote scan
            matching slug or trimmed name case-insensitively, then create.
            An existing term whose description differs gets updated.

        Args:
            attribute_id: Platform attribute id
            name: Term name
            description: Optional plain-text description
            slug: Optional stable slug (truncated to 28 characters)

        Returns:
            Platform term object
        """
        slug = slug[:MAX_SLUG_LENGTH] if slug else None
        cache_key = slug or name.strip().lower()

        async with self.cache.lock_for(f"term:{attribute_id}:{cache_key}"):
            cached = self.cache.get_term(attribute_id, cache_key)
            if cached:
                return await self._refresh_term_description(attribute_id, cache_key, cached, description)

            terms = await self.list_attribute_terms(attribute_id)
            wanted = name.strip().lower()
            matches = [
                term for term in terms
                if (slug and term.get("slug") == slug)
                or str(term.get("name", "")).strip().lower() == wanted
            ]

            if matches:
                existing = matches[0]
                if len(matches) > 1:
                    logger.warning(
                        f"[WOO_CLIENT] {self.platform} found {len(matches)} terms named '{name}' "
                        f"in attribute {attribute_id}; using id {existing.get('id')}"
                    )
                self.cache.set_term(attribute_id, cache_key, existing)
                return await self._refresh_term_description(attribute_id, cache_key, existing, description)

            payload: Dict[str, Any] = {"name": name}
            if description:
                payload["description"] = description
            if slug:
                payload["slug"] = slug

            created = await self.post(f"products/attributes/{attribute_id}/terms", payload)
            logger.info(
                f"[WOO_CLIENT] {self.platform} created term '{name}' in attribute {attribute_id} "
                f"(id={created.get('id')})"
            )
            self.cache.set_term(attribute_id, cache_key, created)
            return created

    async def _refresh_term_description(
        self,
        attribute_id: int,
        cache_key: str,
        term: Dict[str, Any],
        description: Optional[str],
    ) -> Dict[str, Any]:
        if description is None or term.get("description") == description:
            return term
        updated = await self.put(
            f"products/attributes/{attribute_id}/terms/{term['id']}",
            {"description": description},
        )
        self.cache.set_term(attribute_id, cache_key, updated)
        return updated


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
