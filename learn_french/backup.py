"""Local JSON backup and restore of content collections."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from .db import DocumentStore
from .exceptions import BackupFormatError
from .models import EntityKind
from .normalize import utc_now_iso

if TYPE_CHECKING:
    from .content import ContentCache

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.1"
SUPPORTED_VERSIONS = ("1.0", "1.1")


@dataclass
class ImportStats:
    total_imported: int = 0
    imported: Dict[str, int] = field(default_factory=dict)
    skipped_predefined: int = 0
    failed: int = 0
    version: str = "1.0"
    timestamp: Optional[str] = None


def _kinds(kinds: Optional[Iterable[Union[EntityKind, str]]]) -> List[EntityKind]:
    return [EntityKind.parse(k) for k in kinds] if kinds else list(EntityKind)


def export_content(
    cache: "ContentCache",
    include_predefined: bool = True,
    include_user: bool = True,
    kinds: Optional[Iterable[Union[EntityKind, str]]] = None,
    clock: Callable[[], str] = utc_now_iso,
) -> Dict[str, Any]:
    """Snapshot the cache's content as a versioned backup dict."""
    data: Dict[str, List[Dict[str, Any]]] = {}
    totals: Dict[str, int] = {}
    user: Dict[str, int] = {}
    predefined: Dict[str, int] = {}

    selected = _kinds(kinds)
    for kind in selected:
        records = [
            entity.to_dict()
            for entity in cache.get_all(kind)
            if (include_predefined if entity.is_predefined else include_user)
        ]
        data[kind.collection] = records
        totals[kind.collection] = len(records)
        predefined[kind.collection] = sum(1 for r in records if r.get("isPredefined"))
        user[kind.collection] = totals[kind.collection] - predefined[kind.collection]

    backup = {
        "version": BACKUP_VERSION,
        "timestamp": clock(),
        "data": data,
        "stats": {
            "total": totals,
            "user": user,
            "predefined": predefined,
            "totalItems": sum(totals.values()),
        },
        "exportOptions": {
            "includePredefined": include_predefined,
            "includeUserContent": include_user,
            "contentTypes": [k.collection for k in selected],
        },
    }
    logger.info("Exported %d items", backup["stats"]["totalItems"])
    return backup


def _unwrap(backup: Any) -> Mapping[str, Any]:
    if not isinstance(backup, Mapping):
        raise BackupFormatError("Backup must be a JSON object")
    # Downloaded backups wrap the payload as {"metadata": ..., "data": <backup>}.
    inner = backup.get("data")
    if "metadata" in backup and isinstance(inner, Mapping) and isinstance(inner.get("data"), Mapping):
        return inner
    return backup


def validate_backup(backup: Any) -> Mapping[str, Any]:
    """Return the backup payload, raising BackupFormatError if it is unusable."""
    payload = _unwrap(backup)
    data = payload.get("data")
    if not isinstance(data, Mapping):
        raise BackupFormatError("Invalid backup data: missing data property")
    version = str(payload.get("version") or "1.0")
    if version not in SUPPORTED_VERSIONS:
        raise BackupFormatError(f"Unsupported backup version {version}")
    for kind in EntityKind:
        records = data.get(kind.collection)
        if records is not None and not isinstance(records, list):
            raise BackupFormatError(f"Backup {kind.collection} must be a list")
    return payload


def import_content(
    store: DocumentStore,
    cache: "ContentCache",
    backup: Any,
    clear_existing: bool = True,
    skip_predefined: bool = False,
) -> ImportStats:
    """Restore a backup into the store, then refresh the cache.

    Each collection present in the backup is optionally cleared and then
    bulk-added. Collections are imported one after another; a failure in
    one does not undo the ones already written.
    """
    payload = validate_backup(backup)
    data = payload["data"]
    stats = ImportStats(version=str(payload.get("version") or "1.0"), timestamp=payload.get("timestamp"))
    store.initialize()

    for kind in EntityKind:
        records = data.get(kind.collection)
        if not records:
            continue
        if skip_predefined:
            kept = [r for r in records if not (isinstance(r, Mapping) and r.get("isPredefined"))]
            stats.skipped_predefined += len(records) - len(kept)
            records = kept
        if not records:
            continue
        if clear_existing:
            store.clear(kind.collection)
        store.bulk_add(kind.collection, records)
        result = store.last_bulk_result
        stats.imported[kind.collection] = result.added
        stats.total_imported += result.added
        stats.failed += len(result.failed)
        logger.info("Imported %d %s", result.added, kind.collection)

    cache.force_refresh()
    return stats


def write_backup(path: Union[str, Path], backup: Mapping[str, Any]) -> Path:
    path = Path(path)
    with path.open("w", encoding="utf-8") as f:
        json.dump(backup, f, ensure_ascii=False, indent=2)
    return path


def read_backup(path: Union[str, Path]) -> Mapping[str, Any]:
    try:
        with Path(path).open("r", encoding="utf-8") as f:
            backup = json.load(f)
    except json.JSONDecodeError as exc:
        raise BackupFormatError(f"{path} is not valid JSON: {exc}") from exc
    return validate_backup(backup)
