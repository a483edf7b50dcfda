"""Minimal built-in content served when the store or a load fails."""

from __future__ import annotations

from typing import Any, Dict, List, Union

from .models import Entity, EntityKind
from .normalize import normalize

# Fixed so repeated calls return equal records.
FALLBACK_TIMESTAMP = "2024-01-01T00:00:00+00:00"

_FALLBACK: Dict[EntityKind, List[Dict[str, Any]]] = {
    EntityKind.WORD: [
        {"id": "fallback-w1", "english": "hello", "french": ["bonjour", "salut"], "category": "general"},
        {"id": "fallback-w2", "english": "thank you", "french": ["merci"], "category": "general"},
        {"id": "fallback-w3", "english": "goodbye", "french": ["au revoir"], "category": "general"},
    ],
    EntityKind.SENTENCE: [
        {"id": "fallback-s1", "english": "How are you?", "french": ["Comment allez-vous?", "Comment vas-tu?"]},
        {"id": "fallback-s2", "english": "My name is Marie.", "french": ["Je m'appelle Marie."]},
    ],
    EntityKind.NUMBER: [
        {"id": "fallback-n1", "english": "1", "french": ["un"]},
        {"id": "fallback-n2", "english": "2", "french": ["deux"]},
        {"id": "fallback-n3", "english": "3", "french": ["trois"]},
    ],
    EntityKind.VERB: [
        {
            "id": "fallback-v1",
            "infinitive": "manger",
            "english": "to eat",
            "conjugations": {
                "je": ["mange"], "tu": ["manges"], "il": ["mange"],
                "nous": ["mangeons"], "vous": ["mangez"], "ils": ["mangent"],
            },
        },
        {
            "id": "fallback-v2",
            "infinitive": "parler",
            "english": "to speak",
            "conjugations": {
                "je": ["parle"], "tu": ["parles"], "il": ["parle"],
                "nous": ["parlons"], "vous": ["parlez"], "ils": ["parlent"],
            },
        },
        {
            "id": "fallback-v3",
            "infinitive": "lire",
            "english": "to read",
            "conjugations": {
                "je": ["lis"], "tu": ["lis"], "il": ["lit"],
                "nous": ["lisons"], "vous": ["lisez"], "ils": ["lisent"],
            },
        },
    ],
}


def get_fallback(kind: Union[EntityKind, str]) -> List[Entity]:
    """Fresh, normalized fallback records for ``kind``."""
    kind = EntityKind.parse(kind)
    records = []
    for raw in _FALLBACK[kind]:
        entity = normalize(kind, raw, now=FALLBACK_TIMESTAMP)
        entity.is_predefined = True
        records.append(entity)
    return records
