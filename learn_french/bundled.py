"""Bundled reference datasets shipped with the package.

Each ``data/<collection>.json`` file holds a list of loosely-shaped records.
They are normalized by the content cache at load time, never here.
"""

from __future__ import annotations

import json
import logging
from importlib import resources
from typing import Any, Dict, List, Union

from .models import EntityKind

logger = logging.getLogger(__name__)

# Bundled records carry no timestamps; this keeps them stable across reloads.
BUNDLED_TIMESTAMP = "2024-01-01T00:00:00+00:00"


def load_bundled(kind: Union[EntityKind, str]) -> List[Dict[str, Any]]:
    """Raw bundled records for ``kind`` (empty if no dataset ships for it)."""
    kind = EntityKind.parse(kind)
    path = resources.files(__package__).joinpath("data", f"{kind.collection}.json")
    if not path.is_file():
        return []
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"Bundled {kind.collection} dataset must be a JSON list")
    logger.debug("Loaded %d bundled %s", len(data), kind.collection)
    return data


def load_all_bundled() -> Dict[EntityKind, List[Dict[str, Any]]]:
    return {kind: load_bundled(kind) for kind in EntityKind}
