"""Canonical repository boundary.

WHAT:
    CanonicalRepository is the only storage interface the sync core uses:
    lookups by external id and natural key, create/update/delete, plus the
    narrow writes the orchestrators need (external id merge, sync state).
    SqlAlchemyCanonicalRepository implements it on the ORM models.

WHY:
    The storage engine is a collaborator, not part of the sync engine.
    Orchestrators, webhook ingestion and import only see this interface,
    so tests can run them against SQLite and production against PostgreSQL.

REFERENCES:
    - catalog_sync/models.py
    - catalog_sync/services/product_sync_service.py (external id write-back)
"""

import abc
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Type
from uuid import UUID

from sqlalchemy import Uuid, func
from sqlalchemy.orm import Session

from catalog_sync.models import (
    Coupon,
    Customer,
    EntityKindEnum,
    Order,
    OrderLineItem,
    Product,
    SyncStateEnum,
    TaxonomyTerm,
    TermKindEnum,
)
from catalog_sync.services.mappers.common import merge_external_ids, platform_key

logger = logging.getLogger(__name__)

KIND_MODELS: Dict[EntityKindEnum, Type[Any]] = {
    EntityKindEnum.product: Product,
    EntityKindEnum.order: Order,
    EntityKindEnum.customer: Customer,
    EntityKindEnum.coupon: Coupon,
    EntityKindEnum.term: TaxonomyTerm,
}

# kind -> (natural key column, case-insensitive)
NATURAL_KEYS = {
    EntityKindEnum.product: ("isbn", False),
    EntityKindEnum.order: ("number", False),
    EntityKindEnum.customer: ("email", True),
    EntityKindEnum.coupon: ("code", True),
}


def _as_uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


class CanonicalRepository(abc.ABC):
    """Storage operations consumed by the sync core."""

    @abc.abstractmethod
    def get(self, kind: EntityKindEnum, entity_id: Any) -> Optional[Any]:
        ...

    @abc.abstractmethod
    def find_by_external_id(self, kind: EntityKindEnum, platform: Any, external_id: Any) -> Optional[Any]:
        ...

    @abc.abstractmethod
    def find_by_natural_key(self, kind: EntityKindEnum, key: Any) -> Optional[Any]:
        ...

    @abc.abstractmethod
    def create(self, kind: EntityKindEnum, data: Dict[str, Any]) -> Any:
        ...

    @abc.abstractmethod
    def update(self, kind: EntityKindEnum, entity_id: Any, data: Dict[str, Any]) -> Any:
        ...

    @abc.abstractmethod
    def delete(self, kind: EntityKindEnum, entity_id: Any) -> bool:
        ...

    @abc.abstractmethod
    def set_external_id(self, kind: EntityKindEnum, entity_id: Any, platform: Any, external_id: Any) -> Any:
        ...

    @abc.abstractmethod
    def set_sync_state(self, kind: EntityKindEnum, entity_id: Any, platform: Any, state: SyncStateEnum) -> None:
        ...

    @abc.abstractmethod
    def count_sharing_external_id(
        self,
        kind: EntityKindEnum,
        platform: Any,
        external_id: Any,
        exclude_id: Any = None,
    ) -> int:
        ...

    @abc.abstractmethod
    def find_term(self, kind: TermKindEnum, name: str) -> Optional[TaxonomyTerm]:
        ...

    @abc.abstractmethod
    def list_terms_modified_since(
        self,
        since: datetime,
        kinds: Optional[Iterable[TermKindEnum]] = None,
    ) -> List[TaxonomyTerm]:
        ...

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Group several writes so they commit or roll back together."""
        yield

    def find_existing(self, kind: EntityKindEnum, platform: Any, external_id: Any, natural_key: Any) -> Optional[Any]:
        """External id first, natural key second."""
        entity = None
        if external_id is not None:
            entity = self.find_by_external_id(kind, platform, external_id)
        if entity is None and natural_key:
            entity = self.find_by_natural_key(kind, natural_key)
        return entity


class SqlAlchemyCanonicalRepository(CanonicalRepository):
    """CanonicalRepository backed by a SQLAlchemy session.

    Every write commits on its own unless it runs inside atomic(), where
    writes are only flushed and the outermost block commits once. A failed
    write rolls the session back before the error propagates.
    """

    def __init__(self, db: Session):
        self.db = db
        self._atomic_depth = 0

    @contextmanager
    def atomic(self) -> Iterator[None]:
        self._atomic_depth += 1
        try:
            yield
        except Exception:
            self._atomic_depth -= 1
            if self._atomic_depth == 0:
                self.db.rollback()
            raise
        self._atomic_depth -= 1
        if self._atomic_depth == 0:
            self._commit()

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, kind: EntityKindEnum, entity_id: Any) -> Optional[Any]:
        if entity_id is None:
            return None
        return self.db.get(KIND_MODELS[EntityKindEnum(kind)], _as_uuid(entity_id))

    def find_by_external_id(self, kind: EntityKindEnum, platform: Any, external_id: Any) -> Optional[Any]:
        if external_id is None or str(external_id) == "":
            return None
        model = KIND_MODELS[EntityKindEnum(kind)]
        return (
            self.db.query(model)
            .filter(model.external_ids[platform_key(platform)].as_string() == str(external_id))
            .order_by(model.created_at)
            .first()
        )

    def find_by_natural_key(self, kind: EntityKindEnum, key: Any) -> Optional[Any]:
        kind = EntityKindEnum(kind)
        if kind not in NATURAL_KEYS or key is None or not str(key).strip():
            return None
        model = KIND_MODELS[kind]
        column_name, case_insensitive = NATURAL_KEYS[kind]
        column = getattr(model, column_name)
        value = str(key).strip()
        if case_insensitive:
            condition = func.lower(column) == value.lower()
        else:
            condition = column == value
        return self.db.query(model).filter(condition).order_by(model.created_at).first()

    def count_sharing_external_id(
        self,
        kind: EntityKindEnum,
        platform: Any,
        external_id: Any,
        exclude_id: Any = None,
    ) -> int:
        model = KIND_MODELS[EntityKindEnum(kind)]
        query = self.db.query(model).filter(
            model.external_ids[platform_key(platform)].as_string() == str(external_id)
        )
        if exclude_id is not None:
            query = query.filter(model.id != _as_uuid(exclude_id))
        return query.count()

    def find_term(self, kind: TermKindEnum, name: str) -> Optional[TaxonomyTerm]:
        return (
            self.db.query(TaxonomyTerm)
            .filter(
                TaxonomyTerm.kind == TermKindEnum(kind),
                func.lower(TaxonomyTerm.name) == name.strip().lower(),
            )
            .first()
        )

    def list_terms_modified_since(
        self,
        since: datetime,
        kinds: Optional[Iterable[TermKindEnum]] = None,
    ) -> List[TaxonomyTerm]:
        query = self.db.query(TaxonomyTerm).filter(TaxonomyTerm.updated_at >= since)
        if kinds is not None:
            query = query.filter(TaxonomyTerm.kind.in_([TermKindEnum(k) for k in kinds]))
        return query.order_by(TaxonomyTerm.kind, TaxonomyTerm.name).all()

    # =========================================================================
    # WRITES
    # =========================================================================

    def create(self, kind: EntityKindEnum, data: Dict[str, Any]) -> Any:
        model = KIND_MODELS[EntityKindEnum(kind)]
        entity = model()
        self._apply(entity, data)
        self.db.add(entity)
        self._commit()
        self.db.refresh(entity)
        logger.debug(f"[REPOSITORY] Created {EntityKindEnum(kind).value} {entity.id}")
        return entity

    def update(self, kind: EntityKindEnum, entity_id: Any, data: Dict[str, Any]) -> Any:
        entity = self.get(kind, entity_id)
        if entity is None:
            raise LookupError(f"{EntityKindEnum(kind).value} {entity_id} not found")
        self._apply(entity, data)
        self._commit()
        self.db.refresh(entity)
        return entity

    def delete(self, kind: EntityKindEnum, entity_id: Any) -> bool:
        entity = self.get(kind, entity_id)
        if entity is None:
            return False
        self.db.delete(entity)
        self._commit()
        return True

    def set_external_id(self, kind: EntityKindEnum, entity_id: Any, platform: Any, external_id: Any) -> Any:
        """Merge one platform id into external_ids, keeping every other key."""
        entity = self.get(kind, entity_id)
        if entity is None:
            raise LookupError(f"{EntityKindEnum(kind).value} {entity_id} not found")
        self.db.refresh(entity)
        entity.external_ids = merge_external_ids(entity.external_ids, platform, external_id)
        self._commit()
        return entity

    def set_sync_state(self, kind: EntityKindEnum, entity_id: Any, platform: Any, state: SyncStateEnum) -> None:
        entity = self.get(kind, entity_id)
        if entity is None:
            return
        status = dict(entity.sync_status or {})
        status[platform_key(platform)] = SyncStateEnum(state).value
        entity.sync_status = status
        self._commit()

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _apply(self, entity: Any, data: Dict[str, Any]) -> None:
        for key, value in data.items():
            if key == "items" and isinstance(entity, Order):
                entity.items = [
                    OrderLineItem(position=position, **self._line_item_fields(item))
                    for position, item in enumerate(value or [])
                ]
            elif key in ("id", "created_at", "updated_at"):
                continue
            elif hasattr(type(entity), key):
                column = type(entity).__table__.columns.get(key)
                if column is not None and isinstance(column.type, Uuid) and value is not None:
                    value = _as_uuid(value)
                setattr(entity, key, value)
            else:
                logger.debug(f"[REPOSITORY] Ignoring unknown field {key} for {type(entity).__name__}")

    @staticmethod
    def _line_item_fields(item: Dict[str, Any]) -> Dict[str, Any]:
        allowed = {
            "product_id", "external_product_id", "external_item_id",
            "sku", "name", "quantity", "unit_price", "total",
        }
        fields = {key: value for key, value in item.items() if key in allowed}
        if fields.get("product_id") is not None:
            fields["product_id"] = _as_uuid(fields["product_id"])
        return fields

    def _commit(self) -> None:
        if self._atomic_depth:
            self.db.flush()
            return
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
