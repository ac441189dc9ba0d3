"""
===============================================================================
OVERFLOW BUFFER
===============================================================================
Unordered, append-only holding area for entries inserted since the last
retrain. The index scans it linearly on lookup and drains it into the sorted
dataset on retrain. Crossing `max_size` is what triggers a retrain.
===============================================================================
"""

from typing import Any, List, NamedTuple, Optional


class Entry(NamedTuple):
    key: Any
    value: Any


class OverflowBuffer:
    """Write-ahead delta of (key, value) entries, in insertion order."""

    def __init__(self, max_size: int = 10000):
        self.max_size = int(max_size)
        self._entries: List[Entry] = []
        self.size = 0  # inserts since last clear

    def append(self, key, value) -> None:
        self._entries.append(Entry(key, value))
        self.size += 1

    def find(self, key) -> Optional[Entry]:
        """Earliest inserted entry with a matching key, or None."""
        for entry in self._entries:
            if entry.key == key:
                return entry
        return None

    def is_over_capacity(self) -> bool:
        return self.size > self.max_size

    def snapshot(self) -> List[Entry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self.size = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)
