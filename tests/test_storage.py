"""Tests for the key-value storage backends."""

import asyncio
import json

import pytest

from getanswer.services.storage import (
    InMemoryStorage,
    JsonFileStorage,
    StorageUnavailableError,
)


class TestJsonFileStorage:
    """Tests for JsonFileStorage."""

    def test_missing_file_reads_as_empty(self, tmp_path):
        """Test that a fresh install has no stored keys."""
        storage = JsonFileStorage(str(tmp_path / "data.json"))
        assert asyncio.run(storage.get_item("userCredits")) is None

    def test_set_items_is_durable(self, tmp_path):
        """Test that written values survive a new storage instance."""
        path = tmp_path / "nested" / "data.json"

        async def scenario():
            await JsonFileStorage(str(path)).set_items({"userCredits": "8", "creditOpeningBalance": "10"})
            reopened = JsonFileStorage(str(path))
            return await reopened.get_item("userCredits"), await reopened.get_item("creditOpeningBalance")

        assert asyncio.run(scenario()) == ("8", "10")
        assert json.loads(path.read_text()) == {"userCredits": "8", "creditOpeningBalance": "10"}

    def test_remove_item(self, tmp_path):
        """Test that removed keys are gone from disk."""
        path = tmp_path / "data.json"
        storage = JsonFileStorage(str(path))

        async def scenario():
            await storage.set_item("queryHistory", "[]")
            await storage.remove_item("queryHistory")
            await storage.remove_item("never-set")
            return await JsonFileStorage(str(path)).get_item("queryHistory")

        assert asyncio.run(scenario()) is None

    def test_no_temp_files_left_behind(self, tmp_path):
        """Test that atomic replace cleans up after itself."""
        storage = JsonFileStorage(str(tmp_path / "data.json"))
        asyncio.run(storage.set_item("userCredits", "10"))
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]

    def test_corrupt_file_is_unavailable(self, tmp_path):
        """Test that a corrupt document raises instead of being overwritten."""
        path = tmp_path / "data.json"
        path.write_text("{not json")
        storage = JsonFileStorage(str(path))

        with pytest.raises(StorageUnavailableError):
            asyncio.run(storage.get_item("userCredits"))
        assert path.read_text() == "{not json"

    def test_non_object_document_is_unavailable(self, tmp_path):
        """Test that a JSON list is not accepted as a document."""
        path = tmp_path / "data.json"
        path.write_text("[1, 2]")

        with pytest.raises(StorageUnavailableError):
            asyncio.run(JsonFileStorage(str(path)).get_item("userCredits"))

    def test_unwritable_location_is_unavailable(self, tmp_path):
        """Test that a path under a regular file cannot be written."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        storage = JsonFileStorage(str(blocker / "data.json"))

        with pytest.raises(StorageUnavailableError):
            asyncio.run(storage.set_item("userCredits", "10"))


class TestInMemoryStorage:
    """Tests for InMemoryStorage."""

    def test_round_trip_and_snapshot(self):
        """Test basic reads, writes and removal."""
        storage = InMemoryStorage({"a": "1"})

        async def scenario():
            await storage.set_items({"b": "2", "c": "3"})
            await storage.remove_item("a")
            return await storage.get_item("b")

        assert asyncio.run(scenario()) == "2"
        assert storage.snapshot() == {"b": "2", "c": "3"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
