"""
History Store

Bounded, newest-first log of completed queries, persisted under the
`queryHistory` key.

DEGRADED MODE: The store keeps an in-memory copy of the log. If storage
cannot be written, the entry still goes into that copy (so the current
session shows it) and StorageUnavailableError is raised for the caller
to report. If storage cannot be read, the in-memory copy is returned;
append and remove refuse to write until one read has succeeded.
"""

import asyncio
import json
from typing import Optional

import structlog
from pydantic import ValidationError

from getanswer.config import get_settings
from getanswer.models.history import HistoryEntry
from getanswer.services.storage import (
    KeyValueStorageInterface,
    StorageError,
    StorageUnavailableError,
)

logger = structlog.get_logger(__name__)

HISTORY_KEY = "queryHistory"
MAX_HISTORY_ITEMS = 50


class HistoryStore:
    """
    Newest-first log of HistoryEntry records, capped at max_items.

    Appending to a full log drops the oldest entry.
    """

    def __init__(
        self,
        storage: KeyValueStorageInterface,
        max_items: Optional[int] = None,
    ):
        self._storage = storage
        self._max_items = max_items or get_settings().storage.max_history_items
        self._cache: Optional[list[HistoryEntry]] = None
        # True while the cache holds changes storage has not accepted
        self._unsaved = False
        self._lock = asyncio.Lock()

    @property
    def max_items(self) -> int:
        return self._max_items

    def _decode(self, raw: Optional[str]) -> list[HistoryEntry]:
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageUnavailableError(f"Unreadable {HISTORY_KEY}: {e}")
        if not isinstance(items, list):
            raise StorageUnavailableError(f"{HISTORY_KEY} is not a list")

        entries = []
        for item in items:
            try:
                entries.append(HistoryEntry.model_validate(item))
            except ValidationError:
                # Skip malformed entries
                logger.warning("history_entry_skipped", item=str(item)[:200])
        return entries

    async def _read(self, for_update: bool = False) -> list[HistoryEntry]:
        """
        Read from storage, falling back to the in-memory copy.

        Raises:
            StorageUnavailableError: If for_update is set, storage cannot be
                read and nothing has been read yet (writing would
                overwrite entries this store has never seen)
        """
        if self._unsaved and self._cache is not None:
            return list(self._cache)
        try:
            raw = await self._storage.get_item(HISTORY_KEY)
        except StorageError as e:
            logger.warning("history_read_failed", error=str(e))
            if for_update and self._cache is None:
                raise StorageUnavailableError(f"{HISTORY_KEY} could not be read: {e}")
            return list(self._cache or [])
        try:
            entries = self._decode(raw)
        except StorageError as e:
            # Unparsable log: start over
            logger.warning("history_corrupt", error=str(e))
            return list(self._cache or [])
        self._cache = entries
        return list(entries)

    async def _write(self, entries: list[HistoryEntry]) -> None:
        """Update the in-memory copy, then persist it."""
        self._cache = entries
        self._unsaved = True
        if entries:
            await self._storage.set_item(
                HISTORY_KEY,
                json.dumps([entry.to_storage_dict() for entry in entries]),
            )
        else:
            await self._storage.remove_item(HISTORY_KEY)
        self._unsaved = False

    async def append(self, entry: HistoryEntry) -> None:
        """
        Insert an entry at the front and trim to max_items.

        Raises:
            StorageUnavailableError: If the log could not be persisted
                (the entry is still kept in memory), or could not be
                read before any earlier read succeeded (nothing is kept)
        """
        async with self._lock:
            entries = await self._read(for_update=True)
            entries.insert(0, entry)
            await self._write(entries[:self._max_items])

    async def record(
        self,
        image_reference: Optional[str],
        extracted_text: str,
        answer_text: str,
    ) -> HistoryEntry:
        """Build a HistoryEntry for a completed query and append it."""
        entry = HistoryEntry(
            image_reference=image_reference,
            extracted_text=extracted_text,
            answer_text=answer_text,
        )
        await self.append(entry)
        return entry

    async def list(self) -> list[HistoryEntry]:
        """All entries, newest first."""
        async with self._lock:
            return await self._read()

    async def get(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in await self.list():
            if entry.id == entry_id:
                return entry
        return None

    async def remove(self, entry_id: str) -> bool:
        """
        Delete one entry.

        Returns:
            True if an entry was removed
        """
        async with self._lock:
            entries = await self._read(for_update=True)
            remaining = [entry for entry in entries if entry.id != entry_id]
            if len(remaining) == len(entries):
                return False
            await self._write(remaining)
            return True

    async def clear(self) -> None:
        """Delete every entry."""
        async with self._lock:
            await self._write([])
