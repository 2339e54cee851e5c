"""
Durable backings for the cover cache.

Every store exposes the same small key/value surface so the cache does not
care whether entries live in a JSON file, an embedded database or memory.
Reads never fail the caller: unreadable or malformed content is logged and
treated as missing.
"""
import json
import os
import pathlib
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import ValidationError
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from shelfguide.internal.env_settings import Settings
from shelfguide.internal.models import CoverCacheEntry, CoverCacheRecord
from shelfguide.util.db import create_cover_engine
from shelfguide.util.exceptions import handle_cache_error, handle_database_error
from shelfguide.util.log import logger


class KeyValueStore(Protocol):
    def get(self, key: str) -> CoverCacheEntry | None: ...

    def set(self, key: str, entry: CoverCacheEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def load_all(self) -> dict[str, CoverCacheEntry]: ...


def _parse_entries(raw: Any, source: str) -> dict[str, CoverCacheEntry]:
    if not isinstance(raw, dict):
        logger.warning("Ignoring cover cache with unexpected shape", source=source)
        return {}
    entries: dict[str, CoverCacheEntry] = {}
    for key, value in raw.items():
        try:
            entries[str(key)] = CoverCacheEntry.model_validate(value)
        except ValidationError as e:
            handle_cache_error(e, "parse entry", str(key), source=source)
    return entries


class MemoryStore:
    """Process-local store, mostly for tests and ephemeral deployments."""

    def __init__(self, initial: dict[str, CoverCacheEntry] | None = None):
        self._data: dict[str, CoverCacheEntry] = dict(initial or {})

    def get(self, key: str) -> CoverCacheEntry | None:
        return self._data.get(key)

    def set(self, key: str, entry: CoverCacheEntry) -> None:
        self._data[key] = entry

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def load_all(self) -> dict[str, CoverCacheEntry]:
        return dict(self._data)


class JsonFileStore:
    """
    One JSON object mapping cache key to `{"url", "failedAt"}`.

    The file is read once and rewritten in full after every change. Writes go
    through a temporary file and an atomic rename so a crash never leaves a
    truncated cache behind.
    """

    path: pathlib.Path
    _data: dict[str, CoverCacheEntry] | None

    def __init__(self, path: str | pathlib.Path):
        self.path = pathlib.Path(path)
        self._data = None

    def _read(self) -> dict[str, CoverCacheEntry]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            handle_cache_error(e, "load", "*", path=str(self.path))
            return {}
        return _parse_entries(raw, str(self.path))

    def _entries(self) -> dict[str, CoverCacheEntry]:
        if self._data is None:
            self._data = self._read()
        return self._data

    def _flush(self, key: str):
        payload = {
            k: v.model_dump(mode="json", by_alias=True) for k, v in self._entries().items()
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            handle_cache_error(e, "write", key, path=str(self.path))

    def get(self, key: str) -> CoverCacheEntry | None:
        return self._entries().get(key)

    def set(self, key: str, entry: CoverCacheEntry) -> None:
        self._entries()[key] = entry
        self._flush(key)

    def delete(self, key: str) -> None:
        if self._entries().pop(key, None) is not None:
            self._flush(key)

    def load_all(self) -> dict[str, CoverCacheEntry]:
        return dict(self._entries())


class SqlCoverStore:
    """Cover entries kept as rows of an embedded (sqlite) database."""

    def __init__(self, engine: Engine):
        self.engine = engine
        SQLModel.metadata.create_all(engine, tables=[CoverCacheRecord.__table__])  # pyright: ignore[reportAttributeAccessIssue]

    def get(self, key: str) -> CoverCacheEntry | None:
        try:
            with Session(self.engine) as session:
                row = session.get(CoverCacheRecord, key)
                if row is None:
                    return None
                return CoverCacheEntry(url=row.url, failed_at=row.failed_at)
        except SQLAlchemyError as e:
            handle_database_error(e, "read cover entry", cache_key=key)
            return None

    def set(self, key: str, entry: CoverCacheEntry) -> None:
        with Session(self.engine) as session:
            try:
                row = session.get(CoverCacheRecord, key)
                if row is None:
                    row = CoverCacheRecord(key=key)
                row.url = entry.url
                row.failed_at = entry.failed_at
                row.updated_at = datetime.now(timezone.utc)
                session.add(row)
                session.commit()
            except SQLAlchemyError as e:
                handle_database_error(e, "store cover entry", rollback_session=session, cache_key=key)

    def delete(self, key: str) -> None:
        with Session(self.engine) as session:
            try:
                row = session.get(CoverCacheRecord, key)
                if row is not None:
                    session.delete(row)
                    session.commit()
            except SQLAlchemyError as e:
                handle_database_error(e, "delete cover entry", rollback_session=session, cache_key=key)

    def load_all(self) -> dict[str, CoverCacheEntry]:
        try:
            with Session(self.engine) as session:
                rows = session.exec(select(CoverCacheRecord)).all()
        except SQLAlchemyError as e:
            handle_database_error(e, "load cover cache")
            return {}
        return {
            row.key: CoverCacheEntry(url=row.url, failed_at=row.failed_at) for row in rows
        }


def build_store(settings: Settings) -> KeyValueStore:
    backend = settings.covers.cache_backend
    if backend == "memory":
        return MemoryStore()
    if backend == "sqlite":
        return SqlCoverStore(create_cover_engine(settings.get_sqlite_path()))
    return JsonFileStore(settings.get_cache_file_path())
