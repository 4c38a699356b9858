"""
Abstract Storage Interface

DESIGN DECISION: Persistence goes through a small async key-value
interface with string values (the same contract as a mobile
AsyncStorage). This allows us to:
1. Use a JSON file on the device as the durable store
2. Use in-memory storage for testing and degraded mode
3. Keep ledger and history logic decoupled from the backend

Values are opaque strings; callers own their serialization.
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStorageInterface(ABC):
    """
    Abstract interface for key-value storage.

    Any storage implementation must implement these methods.
    Every method raises StorageUnavailableError when the backend
    cannot be read or written.
    """

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """
        Read one value.

        Args:
            key: The key to read

        Returns:
            The stored string, or None if the key is absent
        """
        pass

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """
        Write one value durably.

        Args:
            key: The key to write
            value: The string to store
        """
        pass

    @abstractmethod
    async def set_items(self, items: dict[str, str]) -> None:
        """
        Write several values as one atomic step.

        Either every key is written or none is.

        Args:
            items: Mapping of keys to string values
        """
        pass

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """
        Delete a key. Removing an absent key is not an error.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageUnavailableError(StorageError):
    """Storage backend could not be read or written."""
    pass
