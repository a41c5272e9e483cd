"""Book <-> platform product mapping.

WHAT:
    - to_external: canonical book -> WooCommerce product payload
    - to_canonical: WooCommerce product -> partial canonical payload,
      with isbn protected
    - find_active_price: pick the price-list entry in force right now
    - image and rich-text helpers shared with term sync

WHY:
    Pure functions: the orchestrator resolves taxonomy attributes (network)
    and passes them in, so everything here is testable without HTTP.

META KEYS:
    Fields with no native product equivalent travel in meta_data under the
    keys the stores already use (isbn, subtitulo_libro, numero_edicion,
    agno_edicion, idioma, tipo_libro, estado_edicion, id_autor, id_obra,
    id_editorial, id_sello, id_coleccion).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from catalog_sync.models import PublicationStatusEnum, utcnow
from catalog_sync.services.mappers.common import (
    format_number,
    get_field,
    is_blank,
    merge_external_ids,
    meta_entry,
    parse_float,
    parse_int,
    parse_datetime,
    platform_key,
    read_meta,
)
from catalog_sync.services.mappers.protected import MergeResult, protected_merge

PROTECTED_FIELDS = ("isbn",)

STATUS_TO_EXTERNAL = {
    PublicationStatusEnum.published.value: "publish",
    PublicationStatusEnum.pending.value: "pending",
    PublicationStatusEnum.draft.value: "draft",
}
DEFAULT_EXTERNAL_STATUS = "publish"

STATUS_TO_CANONICAL = {
    "publish": PublicationStatusEnum.published.value,
    "pending": PublicationStatusEnum.pending.value,
    "draft": PublicationStatusEnum.draft.value,
}
DEFAULT_CANONICAL_STATUS = PublicationStatusEnum.pending.value

# (canonical field, meta key, parser for the way back)
META_FIELDS = (
    ("subtitle", "subtitulo_libro", str),
    ("edition_number", "numero_edicion", str),
    ("edition_year", "agno_edicion", parse_int),
    ("language", "idioma", str),
    ("book_type", "tipo_libro", str),
    ("edition_status", "estado_edicion", str),
)

RELATION_META_KEYS = (
    ("author_id", "id_autor"),
    ("work_id", "id_obra"),
    ("publisher_id", "id_editorial"),
    ("imprint_id", "id_sello"),
    ("collection_id", "id_coleccion"),
)

IMAGE_FORMATS = ("large", "medium", "small")


# =============================================================================
# HELPERS
# =============================================================================

def get_image_url(image: Any) -> Optional[str]:
    """Resolve an image given as URL string, upload object or {data: upload}."""
    if not image:
        return None
    if isinstance(image, str):
        return image
    if not isinstance(image, dict):
        return None
    if image.get("url"):
        return image["url"]
    data = image.get("data")
    if isinstance(data, dict):
        resolved = get_image_url(data)
        if resolved:
            return resolved
    formats = image.get("formats") or {}
    for size in IMAGE_FORMATS:
        url = (formats.get(size) or {}).get("url")
        if url:
            return url
    return None


def _children_text(block: Dict[str, Any]) -> str:
    return "".join(str(child.get("text") or "") for child in block.get("children") or [])


def blocks_to_html(blocks: Any) -> Optional[str]:
    """Rich-text blocks -> HTML. Strings pass through unchanged."""
    if blocks is None:
        return None
    if isinstance(blocks, str):
        return blocks
    if not isinstance(blocks, list):
        return None

    parts: List[str] = []
    for block in blocks:
        block_type = block.get("type")
        if block_type == "paragraph":
            parts.append(f"<p>{_children_text(block)}</p>")
        elif block_type == "heading":
            level = block.get("level") or 1
            parts.append(f"<h{level}>{_children_text(block)}</h{level}>")
        elif block_type == "list":
            tag = "ol" if block.get("format") == "ordered" else "ul"
            items = "".join(f"<li>{_children_text(item)}</li>" for item in block.get("children") or [])
            parts.append(f"<{tag}>{items}</{tag}>")
    return "\n".join(parts)


def blocks_to_text(blocks: Any) -> Optional[str]:
    """Rich-text blocks -> plain text, paragraphs separated by blank lines."""
    if blocks is None:
        return None
    if isinstance(blocks, str):
        return blocks
    if not isinstance(blocks, list):
        return None
    paragraphs = [
        _children_text(block)
        for block in blocks
        if block.get("type") == "paragraph" and block.get("children")
    ]
    text = "\n\n".join(p for p in paragraphs if p)
    return text or None


def find_active_price(
    price_list: Optional[List[Dict[str, Any]]],
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """Pick the price-list entry in force at `now`.

    Entries with active=False never qualify. Among entries whose window
    covers now (open ends allowed) the latest start wins. Without any, the
    most recently started/created enabled entry is used. None when no
    entry is enabled at all.
    """
    if not price_list:
        return None
    now = now or utcnow()

    enabled = [entry for entry in price_list if entry and entry.get("active") is not False]
    if not enabled:
        return None

    def in_window(entry: Dict[str, Any]) -> bool:
        starts_at = parse_datetime(entry.get("starts_at"))
        ends_at = parse_datetime(entry.get("ends_at"))
        return (starts_at is None or starts_at <= now) and (ends_at is None or ends_at >= now)

    current = [entry for entry in enabled if in_window(entry)]
    if current:
        return max(current, key=lambda e: parse_datetime(e.get("starts_at")) or datetime.min)

    return max(
        enabled,
        key=lambda e: parse_datetime(e.get("starts_at")) or parse_datetime(e.get("created_at")) or datetime.min,
    )


def _status_value(status: Any) -> Optional[str]:
    if status is None:
        return None
    return status.value if isinstance(status, PublicationStatusEnum) else str(status).strip().lower()


# =============================================================================
# CANONICAL -> PLATFORM
# =============================================================================

def to_external(
    product: Any,
    platform: Any,
    attributes: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Build the product payload for `platform`.

    Args:
        product: Canonical book (ORM instance or dict)
        platform: Target platform (only used for symmetry with other mappers)
        attributes: Pre-resolved taxonomy attributes [{id, name, options}]

    Returns:
        WooCommerce product payload
    """
    payload: Dict[str, Any] = {
        "name": get_field(product, "name", ""),
        "type": "simple",
        "status": STATUS_TO_EXTERNAL.get(
            _status_value(get_field(product, "publication_status")), DEFAULT_EXTERNAL_STATUS
        ),
    }

    isbn = get_field(product, "isbn")
    if not is_blank(isbn):
        payload["sku"] = str(isbn).strip()

    # Prices: an active price-list entry overrides the flat fields
    active_price = find_active_price(get_field(product, "prices"))
    regular = (
        active_price.get("amount") if active_price
        else get_field(product, "regular_price", get_field(product, "price"))
    )
    if format_number(regular) is not None:
        payload["regular_price"] = format_number(regular)
    sale = get_field(product, "sale_price")
    if format_number(sale) is not None:
        payload["sale_price"] = format_number(sale)

    # Stock: a known quantity always means managed stock
    stock_quantity = get_field(product, "stock_quantity")
    if stock_quantity is not None:
        quantity = int(stock_quantity)
        payload["manage_stock"] = True
        payload["stock_quantity"] = quantity
        payload["stock_status"] = "instock" if quantity > 0 else "outofstock"
    else:
        if get_field(product, "manage_stock") is not None:
            payload["manage_stock"] = bool(get_field(product, "manage_stock"))
        if get_field(product, "stock_status"):
            payload["stock_status"] = get_field(product, "stock_status")

    description = blocks_to_html(get_field(product, "description"))
    if description is not None:
        payload["description"] = description
    short_description = blocks_to_html(get_field(product, "short_description"))
    if short_description is not None:
        payload["short_description"] = short_description

    # Physical
    weight = format_number(get_field(product, "weight"))
    if weight is not None:
        payload["weight"] = weight
    dimensions = {
        key: format_number(get_field(product, key))
        for key in ("length", "width", "height")
        if format_number(get_field(product, key)) is not None
    }
    if dimensions:
        payload["dimensions"] = dimensions

    # Images: cover first
    images = []
    cover_url = get_image_url(get_field(product, "cover_image"))
    if cover_url:
        images.append({"src": cover_url, "alt": payload["name"] or "Portada del libro"})
    for image in get_field(product, "interior_images") or []:
        url = get_image_url(image)
        if url:
            images.append({"src": url, "alt": payload["name"]})
    if images:
        payload["images"] = images

    for key in ("featured", "catalog_visibility", "tax_status", "tax_class"):
        value = get_field(product, key)
        if value is not None:
            payload[key] = value

    # meta_data
    meta_data = []
    if not is_blank(isbn):
        meta_data.append(meta_entry("isbn", str(isbn).strip()))
    for field, meta_key, _ in META_FIELDS:
        value = get_field(product, field)
        if not is_blank(value):
            meta_data.append(meta_entry(meta_key, value))
    for field, meta_key in RELATION_META_KEYS:
        value = get_field(product, field)
        if not is_blank(value):
            meta_data.append(meta_entry(meta_key, value))
    payload["meta_data"] = meta_data

    if attributes:
        payload["attributes"] = [
            {
                "id": attribute["id"],
                "name": attribute.get("name"),
                "options": list(attribute.get("options") or []),
                "visible": True,
                "variation": False,
            }
            for attribute in attributes
        ]

    return payload


# =============================================================================
# PLATFORM -> CANONICAL
# =============================================================================

def to_canonical(
    external: Dict[str, Any],
    platform: Any,
    existing: Any = None,
) -> MergeResult:
    """Reverse-map a platform product, protecting the canonical isbn.

    Args:
        external: WooCommerce product object
        platform: Source platform
        existing: Current canonical book, if any

    Returns:
        MergeResult with the partial canonical payload
    """
    meta_data = external.get("meta_data") or []
    payload: Dict[str, Any] = {}

    if external.get("name"):
        payload["name"] = external["name"]
    if "description" in external:
        payload["description"] = external.get("description") or None
    if "short_description" in external:
        payload["short_description"] = external.get("short_description") or None

    sku = external.get("sku") or read_meta(meta_data, "isbn")
    if not is_blank(sku):
        payload["isbn"] = str(sku).strip()

    if "regular_price" in external:
        regular = parse_float(external.get("regular_price")) or 0.0
        payload["price"] = regular
        payload["regular_price"] = regular
    if "sale_price" in external:
        payload["sale_price"] = parse_float(external.get("sale_price")) or None

    if "manage_stock" in external:
        payload["manage_stock"] = bool(external.get("manage_stock"))
    if external.get("stock_quantity") is not None:
        payload["stock_quantity"] = parse_int(external.get("stock_quantity"))
    if external.get("stock_status"):
        payload["stock_status"] = external["stock_status"]

    if not is_blank(external.get("weight")):
        payload["weight"] = parse_float(external.get("weight"))
    for key in ("length", "width", "height"):
        value = (external.get("dimensions") or {}).get(key)
        if not is_blank(value):
            payload[key] = parse_float(value)

    if external.get("status"):
        payload["publication_status"] = STATUS_TO_CANONICAL.get(
            str(external["status"]).lower(), DEFAULT_CANONICAL_STATUS
        )

    for key in ("featured", "catalog_visibility", "tax_status", "tax_class"):
        if key in external and external[key] is not None:
            payload[key] = external[key]

    images = external.get("images") or []
    if images and images[0].get("src"):
        payload["cover_image"] = images[0]["src"]
        if len(images) > 1:
            payload["interior_images"] = [image["src"] for image in images[1:] if image.get("src")]

    for field, meta_key, parser in META_FIELDS:
        value = read_meta(meta_data, meta_key)
        if value is not None:
            payload[field] = parser(value)

    if external.get("id") is not None:
        payload["external_ids"] = merge_external_ids(
            get_field(existing, "external_ids"), platform, external["id"]
        )
    payload["raw_external_snapshot"] = external

    return protected_merge(
        existing,
        payload,
        PROTECTED_FIELDS,
        context=f"product {external.get('id')} from {platform_key(platform)}",
    )
