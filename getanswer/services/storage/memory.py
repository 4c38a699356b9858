"""
In-Memory Storage Implementation

Used in tests and as the fallback when the data file cannot be opened.
Nothing survives the process.
"""

from typing import Optional

from getanswer.services.storage.interface import KeyValueStorageInterface


class InMemoryStorage(KeyValueStorageInterface):
    """Dictionary-backed key-value storage."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def snapshot(self) -> dict[str, str]:
        """Copy of everything currently stored."""
        return dict(self._data)

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def set_items(self, items: dict[str, str]) -> None:
        self._data.update(items)

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)
