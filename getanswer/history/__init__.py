"""Query history package."""

from getanswer.history.store import HISTORY_KEY, MAX_HISTORY_ITEMS, HistoryStore

__all__ = ["HISTORY_KEY", "MAX_HISTORY_ITEMS", "HistoryStore"]
