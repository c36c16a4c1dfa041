"""
Text file operations for the local cache.

Provides atomic writes using temp file + rename so a crash mid-write
never leaves a half-written collection behind.
"""

import os
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os

from ..exceptions import LocalCacheError


async def ensure_directory(path: Path) -> None:
    """Ensure directory exists, creating if necessary."""
    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise LocalCacheError("create_directory", str(path), e) from e


async def read_text(path: Path) -> str | None:
    """Read a text file.

    Returns:
        File content or None if the file doesn't exist

    Raises:
        LocalCacheError: If the file cannot be read or is not valid UTF-8
    """
    try:
        if not await aiofiles.os.path.exists(path):
            return None
        async with aiofiles.open(path, encoding="utf-8") as f:
            return await f.read()
    except UnicodeDecodeError as e:
        raise LocalCacheError("decode", str(path), e) from e
    except OSError as e:
        raise LocalCacheError("read", str(path), e) from e


async def write_text_atomic(path: Path, content: str) -> None:
    """Write a text file atomically using temp file + rename."""
    await ensure_directory(path.parent)

    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=".tmp_",
        suffix=path.suffix,
    )
    try:
        os.close(fd)
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(content)
            await f.flush()
            os.fsync(f.fileno())

        await aiofiles.os.replace(temp_path, path)
    except Exception as e:
        # Clean up temp file on error
        try:
            await aiofiles.os.remove(temp_path)
        except OSError:
            pass
        raise LocalCacheError("write", str(path), e) from e
