"""Content cache and merge engine.

``ContentCache`` owns one in-memory snapshot per entity kind. A load merges
the bundled reference dataset (predefined records, first) with the user's
records from the store (second), passing every record through the
normalizer and dropping the ones it rejects. Bundled verbs are never loaded;
the verb snapshot holds user-authored verbs only.

Writes go to the store first and then reload the whole kind from scratch.
A kind whose load fails is served from the fallback dataset and marked
``DEGRADED`` until the next successful ``force_refresh``.
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from .bundled import BUNDLED_TIMESTAMP, load_all_bundled
from .db import DocumentStore
from .exceptions import ContentError, DuplicateId, InvalidRecord, NotFound, StoreUnavailable
from .fallback import get_fallback
from .models import (
    CacheState,
    CacheStatus,
    Entity,
    EntityKind,
    Verb,
    VerbRepairReport,
    Word,
    WriteResult,
    is_reserved_id,
)
from .normalize import normalize, utc_now_iso
from .verbs import KNOWN_CONJUGATIONS

logger = logging.getLogger(__name__)

KindLike = Union[EntityKind, str]
BundledData = Mapping[Any, Sequence[Mapping[str, Any]]]


def new_user_id(kind: EntityKind) -> str:
    return f"user-{kind.value}-{uuid.uuid4().hex[:12]}"


def _as_dict(data: Any) -> Dict[str, Any]:
    if hasattr(data, "to_dict"):
        return data.to_dict()
    if isinstance(data, Mapping):
        return dict(data)
    raise InvalidRecord(f"Expected a mapping, got {type(data).__name__}")


class ContentCache:
    """Merged, normalized view of every content kind.

    Args:
        store: The document store holding user-authored records.
        bundled: Raw bundled records per kind. Defaults to the datasets
            shipped in ``learn_french/data``.
        fallback: Supplier of the minimal dataset for degraded kinds.
        clock: Returns the ISO-8601 timestamp stamped on writes.
        id_factory: Generates ids for user records added without one.
    """

    def __init__(
        self,
        store: DocumentStore,
        bundled: Optional[BundledData] = None,
        fallback: Callable[[EntityKind], List[Entity]] = get_fallback,
        clock: Callable[[], str] = utc_now_iso,
        id_factory: Callable[[EntityKind], str] = new_user_id,
    ) -> None:
        self.store = store
        self._bundled_source = bundled
        self._bundled: Optional[Dict[EntityKind, List[Mapping[str, Any]]]] = None
        self._fallback = fallback
        self._clock = clock
        self._id_factory = id_factory
        self.user_id: Optional[str] = None
        self._initialized = False
        self._snapshots: Dict[EntityKind, List[Entity]] = {}
        self._states: Dict[EntityKind, CacheState] = {}
        self._errors: Dict[EntityKind, List[str]] = {}
        self._reset()

    def _reset(self) -> None:
        for kind in EntityKind:
            self._snapshots[kind] = []
            self._states[kind] = CacheState.UNINITIALIZED
            self._errors[kind] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(self, user_id: Optional[str] = None) -> None:
        """Load every kind. A repeat call for the same user is a no-op."""
        if self._initialized:
            if user_id == self.user_id:
                return
            logger.info("User changed from %s to %s; reloading content", self.user_id, user_id)
            self.teardown()
        self.user_id = user_id
        self._load_all()
        self._initialized = True

    def teardown(self) -> None:
        self._reset()
        self._initialized = False
        self.user_id = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            self.initialize(self.user_id)

    def force_refresh(self) -> None:
        """Reload every kind, retrying the store if it was unavailable."""
        logger.info("Refreshing all content")
        self._load_all()
        self._initialized = True

    def reload(self, kind: KindLike) -> CacheState:
        """Rebuild one kind's snapshot from the store and return its state."""
        kind = EntityKind.parse(kind)
        self._load_kind(kind)
        return self._states[kind]

    def _load_all(self) -> None:
        try:
            self.store.initialize()
        except StoreUnavailable as exc:
            logger.warning("Content store unavailable, serving fallback content: %s", exc)
            for kind in EntityKind:
                self._degrade(kind, exc)
            return
        for kind in EntityKind:
            self._load_kind(kind)
        if all(state is CacheState.DEGRADED for state in self._states.values()):
            logger.warning("Every content kind failed to load; serving fallback content")

    def _load_kind(self, kind: EntityKind) -> None:
        self._states[kind] = CacheState.LOADING
        try:
            snapshot = self._build_snapshot(kind)
        except StoreUnavailable as exc:
            logger.warning("Loading %s failed: %s", kind.collection, exc)
            self._degrade(kind, exc)
            return
        except Exception as exc:
            logger.exception("Unexpected error loading %s", kind.collection)
            self._degrade(kind, exc)
            return
        self._snapshots[kind] = snapshot
        self._states[kind] = CacheState.READY
        self._errors[kind] = []
        logger.info("Loaded %d %s", len(snapshot), kind.collection)

    def _degrade(self, kind: EntityKind, exc: Exception) -> None:
        self._snapshots[kind] = list(self._fallback(kind))
        self._states[kind] = CacheState.DEGRADED
        self._errors[kind] = [str(exc)]

    # ------------------------------------------------------------------
    # Load pipeline
    # ------------------------------------------------------------------
    def _bundled_records(self, kind: EntityKind) -> List[Mapping[str, Any]]:
        if self._bundled is None:
            source = self._bundled_source if self._bundled_source is not None else load_all_bundled()
            self._bundled = {EntityKind.parse(k): list(v) for k, v in source.items()}
        return self._bundled.get(kind, [])

    def _admit(self, kind: EntityKind, raw: Any, index: int, now: Optional[str] = None) -> Optional[Entity]:
        try:
            entity = normalize(kind, raw, now=now)
        except InvalidRecord as exc:
            logger.debug("Dropping invalid %s #%d: %s", kind.value, index, exc)
            return None
        if not entity.id:
            entity.id = f"{kind.value}-{index}"
        return entity

    def _build_snapshot(self, kind: EntityKind) -> List[Entity]:
        merged: List[Entity] = []
        ids = set()

        # Bundled verbs stay out of the verb snapshot.
        bundled = [] if kind is EntityKind.VERB else self._bundled_records(kind)
        for index, raw in enumerate(bundled):
            entity = self._admit(kind, raw, index, now=BUNDLED_TIMESTAMP)
            if entity is None:
                continue
            entity.is_predefined = True
            if entity.id in ids:
                logger.debug("Skipping duplicate bundled %s id %s", kind.value, entity.id)
                continue
            ids.add(entity.id)
            merged.append(entity)

        for index, raw in enumerate(self.store.get_all(kind.collection)):
            entity = self._admit(kind, raw, index)
            if entity is None:
                continue
            if entity.is_predefined:
                logger.debug("Filtering stored predefined %s %s", kind.value, entity.id)
                continue
            if entity.id in ids:
                logger.debug("Skipping duplicate %s id %s", kind.value, entity.id)
                continue
            ids.add(entity.id)
            merged.append(entity)
        return merged

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_all(self, kind: KindLike) -> List[Entity]:
        kind = EntityKind.parse(kind)
        self._ensure_initialized()
        return copy.deepcopy(self._snapshots[kind])

    def get_by_id(self, kind: KindLike, item_id: str) -> Optional[Entity]:
        kind = EntityKind.parse(kind)
        self._ensure_initialized()
        for entity in self._snapshots[kind]:
            if entity.id == item_id:
                return copy.deepcopy(entity)
        return None

    def get_words(
        self,
        categories: Optional[Iterable[str]] = None,
        exclude_numbers: bool = False,
    ) -> List[Word]:
        """Words filtered by category; ``exclude_numbers`` drops the "number" category."""
        wanted = set(categories) if categories else None
        words = []
        for word in self.get_all(EntityKind.WORD):
            if exclude_numbers and word.category == "number":
                continue
            if wanted is not None and word.category not in wanted:
                continue
            words.append(word)
        return words

    def get_verbs(self, groups: Optional[Iterable[str]] = None) -> List[Verb]:
        wanted = {str(g) for g in groups} if groups else None
        return [v for v in self.get_all(EntityKind.VERB) if wanted is None or v.group in wanted]

    def state(self, kind: KindLike) -> CacheState:
        return self._states[EntityKind.parse(kind)]

    def get_debug_cache_status(self) -> Dict[EntityKind, CacheStatus]:
        return {
            kind: CacheStatus(
                kind=kind,
                state=self._states[kind],
                count=len(self._snapshots[kind]),
                errors=list(self._errors[kind]),
            )
            for kind in EntityKind
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def add(self, kind: KindLike, data: Any) -> WriteResult:
        """Normalize and persist a new user record, then reload ``kind``."""
        kind = EntityKind.parse(kind)
        self._ensure_initialized()
        try:
            entity = normalize(kind, _as_dict(data))
            # Checked after normalizing, which strips whitespace from the id.
            if entity.id and is_reserved_id(entity.id):
                raise InvalidRecord(f"Id {entity.id!r} uses a reserved prefix")
            now = self._clock()
            entity.id = entity.id or self._id_factory(kind)
            entity.is_predefined = False
            entity.created_at = now
            entity.updated_at = now
            if not self.store.add(kind.collection, entity.to_dict()):
                raise DuplicateId(f"A {kind.value} with id {entity.id!r} already exists")
        except ContentError as exc:
            logger.warning("Could not add %s: %s", kind.value, exc)
            return WriteResult(success=False, error=exc)
        self._load_kind(kind)
        return WriteResult(success=True, record=self.get_by_id(kind, entity.id) or entity)

    def update(self, kind: KindLike, item_id: str, data: Any) -> WriteResult:
        """Merge ``data`` into the stored record ``item_id``, then reload ``kind``."""
        kind = EntityKind.parse(kind)
        self._ensure_initialized()
        try:
            existing = self.store.get_by_id(kind.collection, item_id)
            # Stored predefined copies are shadowed by the bundled record.
            if existing is None or existing.get("isPredefined") or is_reserved_id(item_id):
                raise NotFound(f"No user {kind.value} with id {item_id!r}")
            merged = {**existing, **_as_dict(data), "id": item_id}
            entity = normalize(kind, merged)
            entity.is_predefined = False
            entity.created_at = existing.get("createdAt") or entity.created_at
            entity.updated_at = self._clock()
            if not self.store.update(kind.collection, entity.to_dict()):
                raise NotFound(f"No user {kind.value} with id {item_id!r}")
        except ContentError as exc:
            logger.warning("Could not update %s %s: %s", kind.value, item_id, exc)
            return WriteResult(success=False, error=exc)
        self._load_kind(kind)
        return WriteResult(success=True, record=self.get_by_id(kind, item_id) or entity)

    def delete(self, kind: KindLike, item_id: str) -> WriteResult:
        kind = EntityKind.parse(kind)
        self._ensure_initialized()
        try:
            if not self.store.delete(kind.collection, item_id):
                raise NotFound(f"No user {kind.value} with id {item_id!r}")
        except ContentError as exc:
            logger.warning("Could not delete %s %s: %s", kind.value, item_id, exc)
            return WriteResult(success=False, error=exc)
        self._load_kind(kind)
        return WriteResult(success=True)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def purge_predefined(self, kinds: Optional[Iterable[KindLike]] = None) -> Dict[EntityKind, int]:
        """Delete stored records flagged ``isPredefined`` and reload.

        Older releases copied bundled records into the user collections;
        those copies are removed here. Returns the number deleted per kind.
        """
        targets = [EntityKind.parse(k) for k in kinds] if kinds else list(EntityKind)
        self.store.initialize()
        removed: Dict[EntityKind, int] = {}
        for kind in targets:
            count = 0
            for record in self.store.get_all(kind.collection):
                if record.get("isPredefined") and self.store.delete(kind.collection, record.get("id")):
                    count += 1
            removed[kind] = count
            logger.info("Purged %d predefined %s", count, kind.collection)
            self._load_kind(kind)
        return removed

    def repair_verbs(self) -> VerbRepairReport:
        """Repair persisted verbs in place and reload the verb snapshot.

        Verbs without an infinitive are deleted. Known irregular verbs get
        their correct present-tense table; every other verb is rewritten
        only if normalizing it changes the stored document.
        """
        collection = EntityKind.VERB.collection
        self.store.initialize()
        records = self.store.get_all(collection)
        report = VerbRepairReport(total_before=len(records))

        for raw in records:
            item_id = raw.get("id")
            try:
                verb = normalize(EntityKind.VERB, raw)
            except InvalidRecord as exc:
                logger.info("Deleting unrepairable verb %s: %s", item_id, exc)
                self.store.delete(collection, item_id)
                report.deleted += 1
                continue

            known = KNOWN_CONJUGATIONS.get(verb.infinitive.lower())
            if known is not None:
                verb.conjugations = copy.deepcopy(known)

            # Keys the model doesn't know about are kept.
            repaired = {**raw, **verb.to_dict()}
            if repaired == raw:
                report.already_valid += 1
                continue
            repaired["updatedAt"] = self._clock()
            if self.store.update(collection, repaired):
                logger.debug("Repaired verb %s (%s)", item_id, verb.infinitive)
                report.fixed += 1

        report.total_after = self.store.count(collection)
        self._load_kind(EntityKind.VERB)
        logger.info(
            "Verb repair: %d fixed, %d deleted, %d already valid",
            report.fixed, report.deleted, report.already_valid,
        )
        return report
