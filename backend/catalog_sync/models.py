"""SQLAlchemy ORM models and enums.

This module defines the canonical catalog: books (products), orders with
their line items, customers, coupons and the taxonomy terms books reference.
Every synced entity carries a per-platform external id map, the last raw
payload received from a platform and a per-platform sync state.
"""

import uuid
from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Enum,
    Integer,
    ForeignKey,
    Numeric,
    JSON,
    Text,
    Boolean,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()


def utcnow() -> datetime:
    """Current time as naive UTC, the convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Enums ---------------------------------------------------------

class PlatformEnum(str, enum.Enum):
    woo_moraleja = "woo_moraleja"
    woo_escolar = "woo_escolar"


class EntityKindEnum(str, enum.Enum):
    product = "product"
    order = "order"
    customer = "customer"
    coupon = "coupon"
    term = "term"


class TermKindEnum(str, enum.Enum):
    """Taxonomy kinds; each one is a product attribute on the platforms."""
    author = "author"
    work = "work"
    publisher = "publisher"
    imprint = "imprint"
    collection = "collection"


class SyncStateEnum(str, enum.Enum):
    unsynced = "unsynced"
    syncing = "syncing"
    synced = "synced"
    sync_failed = "sync_failed"


class PublicationStatusEnum(str, enum.Enum):
    published = "published"
    pending = "pending"
    draft = "draft"


# Shared columns ------------------------------------------------

class SyncTrackedMixin:
    """Columns every synced canonical entity carries.

    external_ids values are always strings: {"woo_moraleja": "123"}.
    JSON columns are replaced, never mutated in place.
    """

    external_ids = Column(JSON, nullable=False, default=dict)
    raw_external_snapshot = Column(JSON, nullable=True)
    sync_status = Column(JSON, nullable=False, default=dict)
    channels = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# Taxonomy ------------------------------------------------------

class TaxonomyTerm(SyncTrackedMixin, Base):
    """Author, work, publisher, imprint or collection.

    WHAT: Canonical taxonomy entries referenced by books
    WHY: Pushed to the platforms as product attribute terms (Autor, Obra,
         Editorial, Sello, Colección) so storefront filters stay in sync
    """
    __tablename__ = "taxonomy_terms"
    __table_args__ = (UniqueConstraint("kind", "name", name="uq_taxonomy_term"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kind = Column(Enum(TermKindEnum), nullable=False)
    name = Column(String, nullable=False)
    # Plain text or rich-text blocks
    description = Column(JSON, nullable=True)

    def __str__(self):
        return f"{self.kind.value if self.kind else '?'}:{self.name}"


# Products ------------------------------------------------------

class Product(SyncTrackedMixin, Base):
    """A book in the canonical catalog.

    WHAT: System-of-record book data pushed to every channeled platform
    WHY: Platforms only hold copies; isbn is the natural key and is never
         overwritten by inbound data once set
    """
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    name = Column(String, nullable=False)
    subtitle = Column(String, nullable=True)
    isbn = Column(String, nullable=True, index=True)

    # Rich-text blocks (list) or HTML (str)
    description = Column(JSON, nullable=True)
    short_description = Column(JSON, nullable=True)

    # Pricing
    price = Column(Numeric(18, 2), nullable=True)
    regular_price = Column(Numeric(18, 2), nullable=True)
    sale_price = Column(Numeric(18, 2), nullable=True)
    # Price list entries: {amount, active, starts_at, ends_at, created_at}
    prices = Column(JSON, nullable=True)

    # Inventory
    stock_quantity = Column(Integer, nullable=True)
    manage_stock = Column(Boolean, nullable=True)
    stock_status = Column(String, nullable=True)

    # Physical
    weight = Column(Numeric(10, 3), nullable=True)
    length = Column(Numeric(10, 2), nullable=True)
    width = Column(Numeric(10, 2), nullable=True)
    height = Column(Numeric(10, 2), nullable=True)

    # Media (url string or upload object with url/formats)
    cover_image = Column(JSON, nullable=True)
    interior_images = Column(JSON, nullable=True)

    # Publication
    publication_status = Column(
        Enum(PublicationStatusEnum),
        nullable=False,
        default=PublicationStatusEnum.draft,
    )
    featured = Column(Boolean, nullable=True)
    catalog_visibility = Column(String, nullable=True)
    tax_status = Column(String, nullable=True)
    tax_class = Column(String, nullable=True)

    # Edition
    edition_number = Column(String, nullable=True)
    edition_year = Column(Integer, nullable=True)
    language = Column(String, nullable=True)
    book_type = Column(String, nullable=True)
    edition_status = Column(String, nullable=True)

    # Taxonomy relations
    author_id = Column(Uuid, ForeignKey("taxonomy_terms.id"), nullable=True)
    work_id = Column(Uuid, ForeignKey("taxonomy_terms.id"), nullable=True)
    publisher_id = Column(Uuid, ForeignKey("taxonomy_terms.id"), nullable=True)
    imprint_id = Column(Uuid, ForeignKey("taxonomy_terms.id"), nullable=True)
    collection_id = Column(Uuid, ForeignKey("taxonomy_terms.id"), nullable=True)

    author = relationship("TaxonomyTerm", foreign_keys=[author_id])
    work = relationship("TaxonomyTerm", foreign_keys=[work_id])
    publisher = relationship("TaxonomyTerm", foreign_keys=[publisher_id])
    imprint = relationship("TaxonomyTerm", foreign_keys=[imprint_id])
    collection = relationship("TaxonomyTerm", foreign_keys=[collection_id])

    line_items = relationship("OrderLineItem", back_populates="product")

    def __str__(self):
        return f"{self.name} ({self.isbn or 'no isbn'})"


# Customers -----------------------------------------------------

class Customer(SyncTrackedMixin, Base):
    """Shop customer; email is the natural key (case-insensitive)."""
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    email = Column(String, nullable=True, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    city = Column(String, nullable=True)
    region = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    country = Column(String, nullable=True)

    billing = Column(JSON, nullable=True)
    shipping = Column(JSON, nullable=True)

    # Aggregates reported by the platforms
    orders_count = Column(Integer, nullable=True)
    total_spent = Column(Numeric(18, 2), nullable=True)
    average_order_value = Column(Numeric(18, 2), nullable=True)
    registered_at = Column(DateTime, nullable=True)
    last_active_at = Column(DateTime, nullable=True)

    orders = relationship("Order", back_populates="customer")

    def __str__(self):
        return self.email or str(self.id)


# Orders --------------------------------------------------------

class Order(SyncTrackedMixin, Base):
    """Customer order; number is the natural key."""
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    number = Column(String, nullable=True, index=True)
    status = Column(String, nullable=True)
    currency = Column(String, nullable=True)

    subtotal = Column(Numeric(18, 2), nullable=True)
    tax_total = Column(Numeric(18, 2), nullable=True)
    shipping_total = Column(Numeric(18, 2), nullable=True)
    discount_total = Column(Numeric(18, 2), nullable=True)
    total = Column(Numeric(18, 2), nullable=True)

    payment_method = Column(String, nullable=True)
    payment_method_title = Column(String, nullable=True)
    origin = Column(String, nullable=True)  # created_via on the platform
    customer_note = Column(Text, nullable=True)
    placed_at = Column(DateTime, nullable=True)

    billing = Column(JSON, nullable=True)
    shipping = Column(JSON, nullable=True)

    # Platform the order was placed on; used as channel when channels is empty
    origin_platform = Column(Enum(PlatformEnum), nullable=True)

    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=True)
    customer = relationship("Customer", back_populates="orders")

    items = relationship(
        "OrderLineItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLineItem.position",
    )

    def __str__(self):
        return f"#{self.number or self.id}"


class OrderLineItem(Base):
    """One product line within an order."""
    __tablename__ = "order_line_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    product_id = Column(Uuid, ForeignKey("products.id"), nullable=True)
    # Explicit platform product id, wins over the related product's mapping
    external_product_id = Column(String, nullable=True)
    external_item_id = Column(String, nullable=True)

    sku = Column(String, nullable=True)
    name = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(18, 2), nullable=True)
    total = Column(Numeric(18, 2), nullable=True)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="line_items")

    def __str__(self):
        return f"{self.quantity} x {self.name or self.sku}"


# Coupons -------------------------------------------------------

class Coupon(SyncTrackedMixin, Base):
    """Discount coupon; code is the natural key."""
    __tablename__ = "coupons"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    code = Column(String, nullable=True, index=True)
    discount_type = Column(String, nullable=True)
    amount = Column(Numeric(18, 2), nullable=True)
    description = Column(Text, nullable=True)
    # Platform product ids the coupon applies to
    product_ids = Column(JSON, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    def __str__(self):
        return self.code or str(self.id)
