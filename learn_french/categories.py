"""Word categories: a fixed set of defaults plus user-created ones."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from .db import CATEGORIES, DocumentStore
from .exceptions import StoreUnavailable
from .models import Category

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = (
    Category(id="general", name="General", color_tag="gray"),
    Category(id="vocabulary", name="Vocabulary", color_tag="purple"),
)
DEFAULT_IDS = frozenset(c.id for c in DEFAULT_CATEGORIES)


def _defaults() -> List[Category]:
    return [Category(id=c.id, name=c.name, color_tag=c.color_tag) for c in DEFAULT_CATEGORIES]


def _from_doc(doc: Mapping[str, Any]) -> Optional[Category]:
    item_id = doc.get("id")
    name = doc.get("name")
    if not isinstance(item_id, str) or not item_id or not isinstance(name, str) or not name.strip():
        return None
    return Category(id=item_id, name=name.strip(), color_tag=doc.get("colorTag") or "gray")


class CategoryService:
    """Category collection backed by the document store.

    Default categories are seeded on ``initialize`` and can be neither
    updated nor deleted. When the store is unavailable the defaults are
    still served and every write returns False.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self._available = False

    def initialize(self) -> bool:
        try:
            self.store.initialize()
            for category in DEFAULT_CATEGORIES:
                if self.store.get_by_id(CATEGORIES, category.id) is None:
                    self.store.add(CATEGORIES, category.to_dict())
        except StoreUnavailable as exc:
            logger.warning("Category store unavailable, using defaults: %s", exc)
            self._available = False
            return False
        self._available = True
        return True

    def get_all(self) -> List[Category]:
        if not self._available:
            return _defaults()
        try:
            docs = self.store.get_all(CATEGORIES)
        except StoreUnavailable as exc:
            logger.warning("Could not read categories: %s", exc)
            return _defaults()
        categories = [c for c in (_from_doc(d) for d in docs) if c is not None]
        present = {c.id for c in categories}
        missing = [c for c in _defaults() if c.id not in present]
        return missing + categories

    def get_by_id(self, category_id: str) -> Optional[Category]:
        return next((c for c in self.get_all() if c.id == category_id), None)

    def add(self, category: Any) -> bool:
        if isinstance(category, Category):
            category = category.to_dict()
        item = _from_doc(category)
        if item is None:
            logger.debug("Category needs an id and a name: %r", category)
            return False
        if not self._available:
            return False
        try:
            return self.store.add(CATEGORIES, item.to_dict())
        except StoreUnavailable as exc:
            logger.warning("Could not add category %s: %s", item.id, exc)
            return False

    def update(self, category: Any) -> bool:
        if isinstance(category, Category):
            category = category.to_dict()
        item = _from_doc(category)
        if item is None or item.id in DEFAULT_IDS:
            return False
        if not self._available:
            return False
        try:
            return self.store.update(CATEGORIES, item.to_dict())
        except StoreUnavailable as exc:
            logger.warning("Could not update category %s: %s", item.id, exc)
            return False

    def delete(self, category_id: str) -> bool:
        if category_id in DEFAULT_IDS or not self._available:
            return False
        try:
            return self.store.delete(CATEGORIES, category_id)
        except StoreUnavailable as exc:
            logger.warning("Could not delete category %s: %s", category_id, exc)
            return False
