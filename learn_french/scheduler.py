import logging
import random
from typing import Any, Callable, Dict, Iterable, Optional, Union

from .db import SEEN_STATE, DocumentStore
from .exceptions import StoreUnavailable
from .models import EntityKind
from .normalize import utc_now_iso

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"


def _item_id(item: Any) -> Optional[str]:
    if isinstance(item, dict):
        return item.get("id")
    return getattr(item, "id", None)


class SeenTracker:
    """Per-user, per-kind record of which items have been shown.

    Seen-state lives in its own store collection, one document per
    (user, kind) pair with a ``{item_id: last_seen}`` mapping. It grows as
    items are marked and is only cleared by an explicit ``reset``.
    """

    def __init__(
        self,
        store: DocumentStore,
        rng: Optional[random.Random] = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self.store = store
        self.rng = rng or random.Random()
        self.clock = clock

    @staticmethod
    def _key(kind: EntityKind, user_id: Optional[str]) -> str:
        return f"{user_id or ANONYMOUS_USER}:{kind.value}"

    def get_seen(self, kind: Union[EntityKind, str], user_id: Optional[str] = None) -> Dict[str, str]:
        """Mapping of seen item id to its last-seen timestamp."""
        kind = EntityKind.parse(kind)
        self.store.initialize()
        doc = self.store.get_by_id(SEEN_STATE, self._key(kind, user_id))
        if doc is None:
            return {}
        return dict(doc.get("seen") or {})

    def mark_seen(self, kind: Union[EntityKind, str], item_id: str, user_id: Optional[str] = None) -> bool:
        """Add ``item_id`` to the seen-set and stamp it with the current time.

        Marking an already-seen item only refreshes its last-seen time.
        Returns False if the seen-state could not be persisted.
        """
        kind = EntityKind.parse(kind)
        key = self._key(kind, user_id)
        try:
            seen = self.get_seen(kind, user_id)
            seen[item_id] = self.clock()
            doc = {"id": key, "userId": user_id or ANONYMOUS_USER, "kind": kind.value, "seen": seen}
            if not self.store.update(SEEN_STATE, doc):
                return self.store.add(SEEN_STATE, doc)
        except StoreUnavailable as exc:
            logger.warning("Could not record %s %s as seen: %s", kind.value, item_id, exc)
            return False
        return True

    def get_next(
        self,
        kind: Union[EntityKind, str],
        user_id: Optional[str],
        candidate_pool: Iterable[Any],
    ) -> Optional[Any]:
        """
        Pick the next item to show from ``candidate_pool``.

        Selection:
          1. Items whose id is not in the seen-set; if any, one of them is
             chosen uniformly at random.
          2. Otherwise every item has been seen: the one with the oldest
             last-seen time wins, ties broken by pool order.
          3. An empty pool returns None.

        Every item is therefore shown once before any item repeats. If the
        seen-state cannot be read, all items count as unseen.
        """
        kind = EntityKind.parse(kind)
        pool = list(candidate_pool)
        if not pool:
            return None

        try:
            seen = self.get_seen(kind, user_id)
        except StoreUnavailable as exc:
            logger.warning("Seen-state for %s unreadable, choosing at random: %s", kind.value, exc)
            seen = {}

        unseen = [item for item in pool if _item_id(item) not in seen]
        if unseen:
            return self.rng.choice(unseen)

        # All seen: least recently seen first
        _, oldest = min(enumerate(pool), key=lambda pair: (seen.get(_item_id(pair[1])) or "", pair[0]))
        return oldest

    def reset(self, kind: Union[EntityKind, str], user_id: Optional[str] = None) -> bool:
        """Forget every seen item for one user and kind."""
        kind = EntityKind.parse(kind)
        self.store.initialize()
        return self.store.delete(SEEN_STATE, self._key(kind, user_id))
