"""
Monotonic record identifiers.

Transaction and history ids are milliseconds since the epoch, as
decimal strings. Two ids issued in the same millisecond (or after the
clock stepped backwards) are bumped so ids stay strictly increasing
within a process.
"""

import threading
import time

_lock = threading.Lock()
_last_issued = 0


def new_monotonic_id() -> str:
    """Return a unique, strictly increasing, time-derived id."""
    global _last_issued
    with _lock:
        candidate = time.time_ns() // 1_000_000
        if candidate <= _last_issued:
            candidate = _last_issued + 1
        _last_issued = candidate
        return str(candidate)


def advance_id_floor(existing_id: str) -> None:
    """
    Make sure future ids sort after an id loaded from storage.

    Non-numeric ids (written by other tools) are ignored.
    """
    global _last_issued
    try:
        value = int(existing_id)
    except (TypeError, ValueError):
        return
    with _lock:
        if value > _last_issued:
            _last_issued = value
