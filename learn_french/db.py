"""Persistent store adapter: named document collections over SQLAlchemy.

Each collection is a table of JSON documents keyed by ``id``. The schema is
versioned with alembic; ``DocumentStore.initialize`` upgrades the database
to the latest revision, creating it on first run.

``bulk_add`` is NOT transactional as a whole: every record is committed on
its own, so a failure part-way leaves the records that succeeded in place
and is reported through ``last_bulk_result`` instead of rolling back.
Timestamps inside documents are the caller's responsibility.
"""

from __future__ import annotations

import copy
import datetime
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import JSON, DateTime, String, create_engine, func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from .exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

DB_PATH: str = os.environ.get("LEARN_FRENCH_DB", "french_learning.db")
MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"
SCHEMA_REVISION = "7c3f9e2a5b14"

WORDS = "words"
VERBS = "verbs"
SENTENCES = "sentences"
NUMBERS = "numbers"
CATEGORIES = "categories"
SEEN_STATE = "seen_state"


def database_url(path: Optional[str] = None) -> str:
    return f"sqlite:///{path or DB_PATH}"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


class DocumentMixin:
    id: Mapped[str] = mapped_column(String, primary_key=True)
    body: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    # Insertion time; get_all returns documents in this order.
    stored_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)


class WordDocument(DocumentMixin, Base):
    __tablename__ = WORDS


class VerbDocument(DocumentMixin, Base):
    __tablename__ = VERBS


class SentenceDocument(DocumentMixin, Base):
    __tablename__ = SENTENCES


class NumberDocument(DocumentMixin, Base):
    __tablename__ = NUMBERS


class CategoryDocument(DocumentMixin, Base):
    __tablename__ = CATEGORIES


class SeenDocument(DocumentMixin, Base):
    """Seen-state for one (user, kind) pair, keyed ``"<user>:<kind>"``."""
    __tablename__ = SEEN_STATE


COLLECTIONS: Dict[str, type] = {
    WORDS: WordDocument,
    VERBS: VerbDocument,
    SENTENCES: SentenceDocument,
    NUMBERS: NumberDocument,
    CATEGORIES: CategoryDocument,
    SEEN_STATE: SeenDocument,
}


@dataclass
class BulkAddResult:
    added: int = 0
    failed: List[Tuple[Optional[str], str]] = field(default_factory=list)


def _create_engine(url: str) -> Engine:
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:"):
        # One shared connection, otherwise every session sees its own empty DB.
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url)


def _alembic_config(url: str) -> Any:
    from alembic.config import Config

    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return config


def run_migrations(connection: Connection, revision: str = "head") -> None:
    """Upgrade the database behind ``connection`` to ``revision``."""
    from alembic import command

    config = _alembic_config(str(connection.engine.url))
    config.attributes["connection"] = connection
    command.upgrade(config, revision)


def upgrade_schema(url: Optional[str] = None, revision: str = "head") -> None:
    """Run the bundled migrations against the database at ``url``."""
    engine = _create_engine(url or database_url())
    try:
        with engine.begin() as connection:
            run_migrations(connection, revision)
    finally:
        engine.dispose()


def current_revision(connection: Connection) -> Optional[str]:
    from alembic.runtime.migration import MigrationContext

    return MigrationContext.configure(connection).get_current_revision()


class DocumentStore:
    """Local document store with one collection per content kind."""

    def __init__(self, url: Optional[str] = None) -> None:
        self.url = url or database_url()
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self.last_bulk_result = BulkAddResult()

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    def initialize(self) -> None:
        """Open the store, creating or upgrading its schema. Idempotent."""
        if self.engine is not None:
            return
        engine = None
        try:
            engine = _create_engine(self.url)
            with engine.begin() as connection:
                run_migrations(connection)
        except SQLAlchemyError as exc:
            if engine is not None:
                engine.dispose()
            raise StoreUnavailable(f"Cannot open content store at {self.url}: {exc}") from exc
        self.engine = engine
        # Prevent attribute expiration on commit so returned objects remain accessible
        self.SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
        logger.info("Opened content store at %s", self.url)

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.SessionLocal = None

    def get_session(self) -> Session:
        if self.SessionLocal is None:
            raise StoreUnavailable("Content store is not initialized")
        return self.SessionLocal()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.get_session()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreUnavailable(f"Content store operation failed: {exc}") from exc
        finally:
            session.close()

    @staticmethod
    def _model(collection: str) -> Any:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection!r}") from None

    def get_all(self, collection: str) -> List[Dict[str, Any]]:
        model = self._model(collection)
        with self._session() as session:
            rows = session.scalars(select(model).order_by(model.stored_at, model.id)).all()
            return [copy.deepcopy(row.body) for row in rows]

    def get_by_id(self, collection: str, item_id: str) -> Optional[Dict[str, Any]]:
        model = self._model(collection)
        with self._session() as session:
            row = session.get(model, item_id)
            return copy.deepcopy(row.body) if row is not None else None

    def add(self, collection: str, record: Mapping[str, Any]) -> bool:
        """Insert ``record``; False if it has no id or the id is taken."""
        model = self._model(collection)
        item_id = record.get("id")
        if not isinstance(item_id, str) or not item_id:
            logger.debug("Refusing to add %s record without an id", collection)
            return False
        with self._session() as session:
            if session.get(model, item_id) is not None:
                logger.debug("Duplicate id %s in %s", item_id, collection)
                return False
            session.add(model(id=item_id, body=copy.deepcopy(dict(record))))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.debug("Duplicate id %s in %s", item_id, collection)
                return False
        return True

    def update(self, collection: str, record: Mapping[str, Any]) -> bool:
        """Replace the document with ``record``'s id; False if it doesn't exist."""
        model = self._model(collection)
        item_id = record.get("id")
        if not isinstance(item_id, str) or not item_id:
            return False
        with self._session() as session:
            row = session.get(model, item_id)
            if row is None:
                return False
            row.body = copy.deepcopy(dict(record))
            session.commit()
        return True

    def delete(self, collection: str, item_id: str) -> bool:
        model = self._model(collection)
        if not item_id:
            return False
        with self._session() as session:
            row = session.get(model, item_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
        return True

    def bulk_add(self, collection: str, records: Sequence[Mapping[str, Any]]) -> bool:
        """Insert many records, committing each one independently.

        Returns True if at least one record was added. Per-record failures
        are collected in ``last_bulk_result`` and never roll back records
        that were already committed.
        """
        self._model(collection)
        result = BulkAddResult()
        for record in records:
            item_id = record.get("id") if isinstance(record, Mapping) else None
            try:
                if not isinstance(record, Mapping):
                    raise TypeError(f"Expected a mapping, got {type(record).__name__}")
                if self.add(collection, record):
                    result.added += 1
                else:
                    result.failed.append((item_id, "missing or duplicate id"))
            except (StoreUnavailable, TypeError) as exc:
                logger.warning("bulk_add(%s) failed for %s: %s", collection, item_id, exc)
                result.failed.append((item_id, str(exc)))
        self.last_bulk_result = result
        logger.info("bulk_add(%s): %d added, %d failed", collection, result.added, len(result.failed))
        return result.added > 0

    def clear(self, collection: str) -> bool:
        model = self._model(collection)
        with self._session() as session:
            session.query(model).delete()
            session.commit()
        return True

    def count(self, collection: str) -> int:
        model = self._model(collection)
        with self._session() as session:
            return int(session.scalar(select(func.count()).select_from(model)) or 0)

    def status(self) -> Dict[str, Any]:
        if self.engine is None:
            return {"connected": False, "revision": None, "collections": []}
        try:
            with self.engine.connect() as connection:
                revision = current_revision(connection)
        except SQLAlchemyError as exc:
            return {"connected": False, "revision": None, "collections": [], "error": str(exc)}
        return {
            "connected": True,
            "url": self.url,
            "revision": revision,
            "collections": sorted(COLLECTIONS),
        }


def init_db(url: Optional[str] = None) -> DocumentStore:
    """Open (and create if needed) the store at ``url``."""
    store = DocumentStore(url)
    store.initialize()
    return store
