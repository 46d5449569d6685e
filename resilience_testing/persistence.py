"""
Resilience Testing - Persistence.

============================================================
RESPONSIBILITY
============================================================
Read and write named records, and append the run journal.

Records are opaque JSON-able blobs addressed by name
(summary, ux-impact, anomalies, cascade-map, recovery-paths,
history). Every store supports:

- read(name)  -> data, or None when the record is absent
- write(name, data)

A record that exists but cannot be decoded raises
RecordCorruptError. Loaders go through ``load_record``, which
logs it and falls back to the empty default so a run proceeds
with degraded context instead of aborting.

============================================================
BACKENDS
============================================================
- JsonFileRecordStore: one <name>.json file per record
- SqlRecordStore: one row per record (SQLAlchemy)
- InMemoryRecordStore: dict backed, for tests and dry runs

============================================================
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Union

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .exceptions import RecordCorruptError


logger = logging.getLogger(__name__)


# ============================================================
# RECORD NAMES
# ============================================================

SUMMARY_RECORD = "summary"
UX_IMPACT_RECORD = "ux-impact"
ANOMALIES_RECORD = "anomalies"
CASCADE_MAP_RECORD = "cascade-map"
RECOVERY_PATHS_RECORD = "recovery-paths"
HISTORY_RECORD = "history"

JOURNAL_FILENAME = "run-journal.jsonl"


# ============================================================
# STORE INTERFACE
# ============================================================

class RecordStore(ABC):
    """Read-if-exists / write-on-update store of named records."""

    @abstractmethod
    def read(self, name: str) -> Optional[Any]:
        """
        Read a record.

        Returns None when the record does not exist.

        Raises:
            RecordCorruptError: the record exists but cannot be decoded
        """
        pass

    @abstractmethod
    def write(self, name: str, data: Any) -> None:
        """Create or replace a record."""
        pass

    def exists(self, name: str) -> bool:
        try:
            return self.read(name) is not None
        except RecordCorruptError:
            return True


def load_record(store: RecordStore, name: str, default: Any = None) -> Any:
    """
    Read a record, treating absent or corrupt data as ``default``.

    Never raises for missing or malformed records.
    """
    try:
        data = store.read(name)
    except RecordCorruptError as e:
        logger.warning(f"{e.message}; using empty default")
        return default

    if data is None:
        logger.info(f"Record '{name}' not found; using empty default")
        return default

    return data


def _decode(name: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise RecordCorruptError(name, str(e), cause=e) from e


# ============================================================
# JSON FILE STORE
# ============================================================

class JsonFileRecordStore(RecordStore):
    """One pretty-printed JSON file per record under a directory."""

    def __init__(self, directory: Union[str, Path]):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, name: str) -> Path:
        return self._directory / f"{name}.json"

    def read(self, name: str) -> Optional[Any]:
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise RecordCorruptError(name, f"unreadable: {e}", cause=e) from e
        return _decode(name, raw)

    def write(self, name: str, data: Any) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(name)
        tmp_path = path.with_suffix(".json.tmp")

        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp_path, path)

        logger.info(f"Wrote record '{name}' to {path}")


# ============================================================
# SQL STORE
# ============================================================

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecordRow(Base):
    """One named record."""

    __tablename__ = "resilience_records"

    name = Column(String(100), primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class SqlRecordStore(RecordStore):
    """Records stored as JSON text in the ``resilience_records`` table."""

    def __init__(self, database_url: str, echo: bool = False):
        logger.info(f"Creating record store engine for: {database_url.split('@')[-1]}")

        self._engine = create_engine(database_url, echo=echo, future=True)
        self._session_factory = sessionmaker(
            bind=self._engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
        Base.metadata.create_all(self._engine)

    @contextmanager
    def transaction_scope(self) -> Generator[Session, None, None]:
        """Commit on success, roll back on any exception."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error, rolling back: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def read(self, name: str) -> Optional[Any]:
        with self.transaction_scope() as session:
            row = session.get(RecordRow, name)
            if row is None:
                return None
            payload = row.payload
        return _decode(name, payload)

    def write(self, name: str, data: Any) -> None:
        payload = json.dumps(data)
        with self.transaction_scope() as session:
            session.merge(RecordRow(name=name, payload=payload, updated_at=utc_now()))

        logger.info(f"Wrote record '{name}' ({len(payload)} bytes) to database")

    def dispose(self) -> None:
        self._engine.dispose()


# ============================================================
# IN-MEMORY STORE
# ============================================================

class InMemoryRecordStore(RecordStore):
    """
    Dict-backed store.

    Records are kept as JSON text so corruption behaves the
    same as on disk.
    """

    def __init__(self, records: Optional[Dict[str, Any]] = None):
        self._records: Dict[str, str] = {}
        for name, data in (records or {}).items():
            self.write(name, data)

    def read(self, name: str) -> Optional[Any]:
        raw = self._records.get(name)
        if raw is None:
            return None
        return _decode(name, raw)

    def write(self, name: str, data: Any) -> None:
        self._records[name] = json.dumps(data)

    def write_raw(self, name: str, raw: str) -> None:
        """Store undecoded text as-is."""
        self._records[name] = raw

    def names(self) -> List[str]:
        return sorted(self._records)


# ============================================================
# RUN JOURNAL
# ============================================================

class RunJournal:
    """
    Append-only log of raw test outcomes.

    One JSON object per line. Safe to append from concurrent
    producers.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path) if path else None
        self._entries: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

        if self._path:
            self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._entries)

    def append(self, entry: Dict[str, Any]) -> None:
        line = json.dumps(entry)
        with self._lock:
            self._entries.append(entry)
            if self._path:
                with self._path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
