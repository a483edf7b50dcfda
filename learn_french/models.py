"""Entity dataclasses and enums shared across the content data layer."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union

from .exceptions import ContentError


class EntityKind(str, Enum):
    """The four kinds of learning content."""

    WORD = "word"
    VERB = "verb"
    SENTENCE = "sentence"
    NUMBER = "number"

    @property
    def collection(self) -> str:
        """Name of the store collection holding this kind."""
        return f"{self.value}s"

    @classmethod
    def parse(cls, value: Union[str, "EntityKind"]) -> "EntityKind":
        """Accept a kind, its singular value or its collection name."""
        if isinstance(value, EntityKind):
            return value
        text = str(value).strip().lower()
        for kind in cls:
            if text in (kind.value, kind.collection):
                return kind
        raise ValueError(f"Unknown entity kind: {value!r}")


class CacheState(str, Enum):
    """Lifecycle of one kind's in-memory snapshot."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    DEGRADED = "degraded"


# Ids with these prefixes are issued only by bundled and fallback datasets.
RESERVED_ID_PREFIXES = ("word-", "verb-", "sentence-", "number-", "fallback-")

_KEY_ALIASES = {
    "is_predefined": "isPredefined",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "color_tag": "colorTag",
}


def is_reserved_id(item_id: Optional[str]) -> bool:
    return isinstance(item_id, str) and item_id.startswith(RESERVED_ID_PREFIXES)


class _Document:
    """Mixin turning a dataclass into the camelCase document stored on disk."""

    def to_dict(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if value is None and f.name != "id":
                continue
            if isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = {k: list(v) for k, v in value.items()}
            doc[_KEY_ALIASES.get(f.name, f.name)] = value
        return doc


@dataclass
class Word(_Document):
    id: Optional[str]
    english: str
    french: List[str]
    category: str = "general"
    hint: Optional[str] = None
    explanation: Optional[str] = None
    is_predefined: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    kind: ClassVar[EntityKind] = EntityKind.WORD


@dataclass
class Sentence(_Document):
    id: Optional[str]
    english: str
    french: List[str]
    hint: Optional[str] = None
    explanation: Optional[str] = None
    is_predefined: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    kind: ClassVar[EntityKind] = EntityKind.SENTENCE


@dataclass
class Number(_Document):
    id: Optional[str]
    english: str
    french: List[str]
    is_predefined: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    kind: ClassVar[EntityKind] = EntityKind.NUMBER


@dataclass
class Verb(_Document):
    id: Optional[str]
    infinitive: str
    conjugations: Dict[str, List[str]]
    group: str = "4"
    english: str = ""
    tense: str = "present"
    is_predefined: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    kind: ClassVar[EntityKind] = EntityKind.VERB


Entity = Union[Word, Verb, Sentence, Number]


@dataclass
class Category(_Document):
    id: str
    name: str
    color_tag: str = "gray"


@dataclass
class WriteResult:
    """Outcome of a write accessor; UI callers branch on ``success``."""

    success: bool
    error: Optional[ContentError] = None
    record: Optional[Entity] = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def message(self) -> str:
        return str(self.error) if self.error is not None else ""


@dataclass
class VerbRepairReport:
    total_before: int = 0
    total_after: int = 0
    fixed: int = 0
    deleted: int = 0
    already_valid: int = 0


@dataclass
class CacheStatus:
    """Debug view of one kind's snapshot."""

    kind: EntityKind
    state: CacheState
    count: int
    errors: List[str] = field(default_factory=list)
