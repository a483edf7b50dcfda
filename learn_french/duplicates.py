"""Exact-match duplicate detection over content records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence


@dataclass
class DuplicateGroup:
    field: str
    key: str
    items: List[Any]

    @property
    def ids(self) -> List[Optional[str]]:
        return [_get(item, "id") for item in self.items]


def _get(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _french_key(item: Any) -> Optional[str]:
    french = _get(item, "french")
    if isinstance(french, str):
        french = [french]
    if not isinstance(french, (list, tuple)):
        return None
    key = "|".join(sorted(str(f).lower() for f in french))
    return key if key.strip() else None


def _text_key(name: str) -> Callable[[Any], Optional[str]]:
    def key(item: Any) -> Optional[str]:
        value = _get(item, name)
        if not isinstance(value, str) or not value.strip():
            return None
        return value.lower()
    return key


def _display_key(field_name: str, item: Any) -> str:
    value = _get(item, field_name)
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _group_by(
    records: Sequence[Any],
    field_name: str,
    key: Callable[[Any], Optional[str]],
    claimed: set,
) -> List[DuplicateGroup]:
    buckets: Dict[str, List[Any]] = {}
    for item in records:
        k = key(item)
        if k is not None:
            buckets.setdefault(k, []).append(item)

    groups = []
    for items in buckets.values():
        # An item belongs to at most one group.
        fresh = [item for item in items if id(item) not in claimed]
        if len(fresh) < 2:
            continue
        claimed.update(id(item) for item in fresh)
        groups.append(DuplicateGroup(field=field_name, key=_display_key(field_name, fresh[0]), items=fresh))
    return groups


def find_duplicates(
    records: Iterable[Any],
    check_french: bool = True,
    check_english: bool = True,
) -> List[DuplicateGroup]:
    """Group records sharing French translations or English text.

    French keys are the case-insensitive, order-independent set of
    translations. French groups come first; an item already placed in a
    French group is not repeated in an English one.
    """
    records = list(records)
    claimed: set = set()
    groups: List[DuplicateGroup] = []
    if check_french:
        groups += _group_by(records, "french", _french_key, claimed)
    if check_english:
        groups += _group_by(records, "english", _text_key("english"), claimed)
    return groups


def find_duplicate_verbs(verbs: Iterable[Any]) -> List[DuplicateGroup]:
    """Verbs sharing an English meaning or an infinitive."""
    verbs = list(verbs)
    claimed: set = set()
    groups = _group_by(verbs, "english", _text_key("english"), claimed)
    groups += _group_by(verbs, "infinitive", _text_key("infinitive"), claimed)
    return groups
