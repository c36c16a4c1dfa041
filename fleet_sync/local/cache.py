"""
Durable local key/value cache.

The cache survives process restarts and never raises on access failures:
a blocked or broken storage location degrades to a no-op with a warning,
so callers always get a usable (possibly empty) answer.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import aiosqlite

from ..config import FleetConfig, LocalBackend
from ..exceptions import ErrorKind, LocalCacheError
from .file_ops import read_text, write_text_atomic

logger = logging.getLogger(__name__)

VEHICLES_KEY = "metro_vehicles"
HISTORY_KEY = "metro_history"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def _check_key(key: str) -> None:
    if not _KEY_PATTERN.match(key):
        raise ValueError(f"Invalid cache key: {key!r}")


class LocalCache(ABC):
    """Abstract durable key/value store for serialized collections.

    Subclasses implement `_read` and `_write`, which may raise. The public
    `get` and `set` swallow every storage failure.
    """

    @abstractmethod
    async def _read(self, key: str) -> str | None: ...

    @abstractmethod
    async def _write(self, key: str, text: str) -> None: ...

    async def close(self) -> None:
        """Release any held resources."""

    async def get(self, key: str) -> str | None:
        """Return the stored text for `key`, or None if absent or unreadable."""
        _check_key(key)
        try:
            return await self._read(key)
        except LocalCacheError as e:
            if e.operation == "decode":
                logger.warning(
                    f"Local cache entry {key} is corrupt, treating as empty: {e}",
                    extra={"key": key},
                )
                return None
            self._warn_read_denied(key, e)
            return None
        except (OSError, sqlite3.Error) as e:
            self._warn_read_denied(key, e)
            return None

    def _warn_read_denied(self, key: str, error: Exception) -> None:
        logger.warning(
            f"Local cache read denied for {key}, treating as empty: {error}",
            extra={"key": key, "error_kind": ErrorKind.STORAGE_ACCESS_DENIED.value},
        )

    async def set(self, key: str, text: str) -> None:
        """Store `text` under `key`; failures are logged and ignored."""
        _check_key(key)
        try:
            await self._write(key, text)
        except (LocalCacheError, OSError, sqlite3.Error) as e:
            logger.warning(
                f"Local cache write denied for {key}, change kept in memory only: {e}",
                extra={"key": key, "error_kind": ErrorKind.STORAGE_ACCESS_DENIED.value},
            )

    async def read_collection(self, key: str) -> list[dict[str, Any]] | None:
        """Read a serialized collection.

        Returns:
            The list of items, or None when nothing is stored. Malformed
            content is logged and read as an empty collection.
        """
        text = await self.get(key)
        if text is None:
            return None
        try:
            items = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(
                f"Local collection {key} is corrupt, treating as empty: {e}",
                extra={"key": key},
            )
            return []
        if not isinstance(items, list):
            logger.warning(
                f"Local collection {key} is not a list, treating as empty",
                extra={"key": key},
            )
            return []
        return [item for item in items if isinstance(item, dict)]

    async def write_collection(self, key: str, items: list[dict[str, Any]]) -> None:
        """Overwrite a collection wholesale."""
        await self.set(key, json.dumps(items, ensure_ascii=False))


class FileLocalCache(LocalCache):
    """One JSON file per key under a base directory.

    Directory structure:
    {base_path}/
      metro_vehicles.json
      metro_history.json
    """

    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path

    def _path(self, key: str) -> Path:
        return self.base_path / f"{key}.json"

    async def _read(self, key: str) -> str | None:
        return await read_text(self._path(key))

    async def _write(self, key: str, text: str) -> None:
        await write_text_atomic(self._path(key), text)


class SqliteLocalCache(LocalCache):
    """Key/value rows in a single SQLite table.

    The connection is opened lazily on first use.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn: aiosqlite.Connection | None = None

    async def _connect(self) -> aiosqlite.Connection:
        if self.conn is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise LocalCacheError("create_directory", str(self.db_path.parent), e) from e
            conn = await aiosqlite.connect(str(self.db_path))
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.commit()
            self.conn = conn
        return self.conn

    async def _read(self, key: str) -> str | None:
        conn = await self._connect()
        async with conn.execute("SELECT value FROM cache_entries WHERE key = ?", (key,)) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def _write(self, key: str, text: str) -> None:
        conn = await self._connect()
        await conn.execute(
            """
            INSERT INTO cache_entries (key, value, updated) VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated = excluded.updated
            """,
            (key, text),
        )
        await conn.commit()

    async def close(self) -> None:
        if self.conn is not None:
            await self.conn.close()
            self.conn = None


def create_local_cache(config: FleetConfig) -> LocalCache:
    """Build the local cache selected by the configuration."""
    if config.local_backend == LocalBackend.SQLITE:
        return SqliteLocalCache(config.local_dir / "fleet_cache.db")
    return FileLocalCache(config.local_dir)
