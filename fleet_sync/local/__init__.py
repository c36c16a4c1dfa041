"""
Durable local cache backends.

Provides:
- FileLocalCache: one atomically written JSON file per collection
- SqliteLocalCache: collections as rows of a single SQLite table
"""

from .cache import (
    HISTORY_KEY,
    VEHICLES_KEY,
    FileLocalCache,
    LocalCache,
    SqliteLocalCache,
    create_local_cache,
)

__all__ = [
    "LocalCache",
    "FileLocalCache",
    "SqliteLocalCache",
    "create_local_cache",
    "VEHICLES_KEY",
    "HISTORY_KEY",
]
