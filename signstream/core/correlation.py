"""
Correlation table pairing asynchronously submitted images with detector results.

A frame is submitted now and its landmarks arrive later, keyed by timestamp.
The table keeps `timestamp -> image` until the result shows up. Memory stays
bounded without an LRU: each submission purges every entry older than the
new timestamp. Submission timestamps are assumed non-decreasing, so a result
that arrives after a newer frame has been submitted can no longer be paired
and `resolve` returns None for it. That drop is accepted behavior.
"""
import threading
from typing import Any, Dict, Optional


class CorrelationTable:
    """Thread-safe timestamp -> source image map with purge-on-submit."""

    def __init__(self):
        self._entries: Dict[int, Any] = {}
        self._lock = threading.Lock()

    def submit(self, timestamp: int, image: Any) -> int:
        """
        Retain `image` until the result for `timestamp` arrives.

        Returns:
            Number of stale entries purged.
        """
        with self._lock:
            stale = [ts for ts in self._entries if ts < timestamp]
            for ts in stale:
                del self._entries[ts]
            self._entries[timestamp] = image
            return len(stale)

    def resolve(self, timestamp: int) -> Optional[Any]:
        """Pop and return the image submitted at `timestamp`, or None if it is gone."""
        with self._lock:
            return self._entries.pop(timestamp, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, timestamp: int) -> bool:
        with self._lock:
            return timestamp in self._entries
