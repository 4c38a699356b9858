"""
JSON File Storage Implementation

Keeps every key in one JSON object on local disk.

TRADEOFFS:
- The whole document is rewritten on every write (fine for a balance,
  a few hundred transactions and 50 history entries)
- Writes replace the file atomically (temp file + os.replace), so a
  crash leaves either the old or the new document, never half of one
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Optional

import structlog

from getanswer.config import get_settings
from getanswer.services.storage.interface import (
    KeyValueStorageInterface,
    StorageUnavailableError,
)

logger = structlog.get_logger(__name__)


class JsonFileStorage(KeyValueStorageInterface):
    """
    Durable key-value storage backed by a single JSON file.

    The document is read once and cached; writes go through to disk
    before the call returns.
    """

    def __init__(self, path: Optional[str] = None):
        self._path = Path(path or get_settings().storage.data_path).expanduser()
        self._document: Optional[dict[str, str]] = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self) -> dict[str, str]:
        """Load the JSON document from disk (empty if the file is missing)."""
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageUnavailableError(f"Cannot read {self._path}: {e}")
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageUnavailableError(f"Corrupt storage file {self._path}: {e}")
        if not isinstance(data, dict):
            raise StorageUnavailableError(f"Storage file {self._path} is not a JSON object")
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_document(self, document: dict[str, str]) -> None:
        """Atomically replace the JSON document on disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                dir=str(self._path.parent),
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, ensure_ascii=False)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StorageUnavailableError(f"Cannot write {self._path}: {e}")

    async def _load(self) -> dict[str, str]:
        if self._document is None:
            self._document = await asyncio.to_thread(self._read_document)
        return self._document

    async def _commit(self, updated: dict[str, str]) -> None:
        """Write the updated document, then make it the cached copy."""
        await asyncio.to_thread(self._write_document, updated)
        self._document = updated

    async def get_item(self, key: str) -> Optional[str]:
        async with self._lock:
            document = await self._load()
            return document.get(key)

    async def set_item(self, key: str, value: str) -> None:
        await self.set_items({key: value})

    async def set_items(self, items: dict[str, str]) -> None:
        async with self._lock:
            document = await self._load()
            updated = {**document, **items}
            await self._commit(updated)
            logger.debug("storage_written", path=str(self._path), keys=sorted(items))

    async def remove_item(self, key: str) -> None:
        async with self._lock:
            document = await self._load()
            if key not in document:
                return
            updated = {k: v for k, v in document.items() if k != key}
            await self._commit(updated)
