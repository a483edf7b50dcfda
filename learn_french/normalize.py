"""Entity normalizer: the single admission gate for every record.

``normalize`` takes a loosely-shaped record (a dict read from the store, a
bundled dataset entry, user form input or an already-built entity) and
returns a structurally valid entity, repairing what can be repaired:

- ``french`` authored as a bare string becomes a one-element list;
- a verb without ``group`` gets one derived from its infinitive;
- a verb without ``conjugations`` gets all six subjects mapped to ``[""]``,
  and a verb missing some subjects gets only those filled;
- missing ``createdAt``/``updatedAt`` timestamps are stamped.

Records that cannot be repaired raise ``InvalidRecord``. Normalizing an
already-normalized record returns an equal record.
"""

from __future__ import annotations

import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from .exceptions import InvalidRecord
from .models import Entity, EntityKind, Number, Sentence, Verb, Word
from .verbs import PLACEHOLDER_FORMS, SUBJECTS, VERB_GROUPS, derive_group


def utc_now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _as_mapping(raw: Any) -> Mapping[str, Any]:
    if hasattr(raw, "to_dict"):
        return raw.to_dict()
    if isinstance(raw, Mapping):
        return raw
    raise InvalidRecord(f"Expected a mapping, got {type(raw).__name__}")


def _text(value: Any) -> Optional[str]:
    """Stripped text for strings and numbers, None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return None


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _pick(raw: Mapping[str, Any], camel: str, snake: str) -> Any:
    if camel in raw:
        return raw[camel]
    return raw.get(snake)


def _record_id(raw: Mapping[str, Any]) -> Optional[str]:
    return _optional_text(raw.get("id"))


def _translations(raw: Mapping[str, Any], kind: EntityKind) -> List[str]:
    value = raw.get("french")
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise InvalidRecord(f"{kind.value} is missing its french translations")
    translations = [t for t in (_text(v) for v in value) if t]
    if not translations:
        raise InvalidRecord(f"{kind.value} has an empty french translation list")
    return translations


def _timestamps(raw: Mapping[str, Any], now: Optional[str]) -> tuple[str, str]:
    created = _optional_text(_pick(raw, "createdAt", "created_at"))
    updated = _optional_text(_pick(raw, "updatedAt", "updated_at"))
    if created is None:
        created = now or utc_now_iso()
    return created, updated or created


def _english(raw: Mapping[str, Any], kind: EntityKind) -> str:
    english = _text(raw.get("english"))
    if not english:
        raise InvalidRecord(f"{kind.value} requires non-empty english text")
    return english


def _conjugations(value: Any) -> Dict[str, List[str]]:
    if not value:
        return {subject: list(PLACEHOLDER_FORMS) for subject in SUBJECTS}
    if not isinstance(value, Mapping):
        raise InvalidRecord("verb conjugations must be a mapping of subject to forms")
    table: Dict[str, List[str]] = {}
    for subject in SUBJECTS:
        forms = value.get(subject)
        if isinstance(forms, str):
            forms = [forms]
        if isinstance(forms, (list, tuple)) and forms:
            table[subject] = [_text(f) or "" for f in forms]
        else:
            table[subject] = list(PLACEHOLDER_FORMS)
    return table


def _normalize_verb(raw: Mapping[str, Any], now: Optional[str]) -> Verb:
    infinitive = _text(raw.get("infinitive"))
    if not infinitive:
        raise InvalidRecord("verb requires a non-empty infinitive")
    group = _text(raw.get("group"))
    if group not in VERB_GROUPS:
        group = derive_group(infinitive)
    created, updated = _timestamps(raw, now)
    return Verb(
        id=_record_id(raw),
        infinitive=infinitive,
        conjugations=_conjugations(raw.get("conjugations")),
        group=group,
        english=_text(raw.get("english")) or "",
        tense=_optional_text(raw.get("tense")) or "present",
        is_predefined=bool(_pick(raw, "isPredefined", "is_predefined")),
        created_at=created,
        updated_at=updated,
    )


def _word_category(raw: Mapping[str, Any]) -> str:
    category = _optional_text(raw.get("category"))
    if category is None:
        # Older records carried a list of categories instead.
        legacy = raw.get("categories")
        if isinstance(legacy, (list, tuple)):
            category = next((c for c in (_optional_text(v) for v in legacy) if c), None)
    return category or "general"


def normalize(kind: Union[EntityKind, str], raw: Any, now: Optional[str] = None) -> Entity:
    """Validate and repair ``raw`` into the canonical entity for ``kind``.

    Raises:
        InvalidRecord: if the record cannot be repaired.
    """
    kind = EntityKind.parse(kind)
    record = _as_mapping(raw)

    if kind is EntityKind.VERB:
        return _normalize_verb(record, now)

    english = _english(record, kind)
    french = _translations(record, kind)
    created, updated = _timestamps(record, now)
    is_predefined = bool(_pick(record, "isPredefined", "is_predefined"))

    if kind is EntityKind.WORD:
        return Word(
            id=_record_id(record),
            english=english,
            french=french,
            category=_word_category(record),
            hint=_optional_text(record.get("hint")),
            explanation=_optional_text(record.get("explanation")),
            is_predefined=is_predefined,
            created_at=created,
            updated_at=updated,
        )
    if kind is EntityKind.SENTENCE:
        return Sentence(
            id=_record_id(record),
            english=english,
            french=french,
            hint=_optional_text(record.get("hint")),
            explanation=_optional_text(record.get("explanation")),
            is_predefined=is_predefined,
            created_at=created,
            updated_at=updated,
        )
    return Number(
        id=_record_id(record),
        english=english,
        french=french,
        is_predefined=is_predefined,
        created_at=created,
        updated_at=updated,
    )


def is_valid(kind: Union[EntityKind, str], raw: Any) -> bool:
    try:
        normalize(kind, raw)
    except InvalidRecord:
        return False
    return True
