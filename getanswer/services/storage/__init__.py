"""
Storage Services Package

Provides the abstract key-value interface and its implementations.
The JSON file backend is the durable store; the in-memory backend is
for tests and degraded mode.
"""

from getanswer.services.storage.interface import (
    KeyValueStorageInterface,
    StorageError,
    StorageUnavailableError,
)
from getanswer.services.storage.json_file import JsonFileStorage
from getanswer.services.storage.memory import InMemoryStorage

__all__ = [
    # Interfaces
    "KeyValueStorageInterface",
    # Exceptions
    "StorageError",
    "StorageUnavailableError",
    # Implementations
    "InMemoryStorage",
    "JsonFileStorage",
]
