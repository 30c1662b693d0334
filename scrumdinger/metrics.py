"""Counters the application tracks for monitoring."""

from __future__ import annotations

import threading


class Metrics:
    """Thread-safe service counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts = {"goroutines": 0, "requests": 0, "errors": 0, "panics": 0}

    def _increment(self, name: str) -> int:
        with self._lock:
            self._counts[name] += 1
            return self._counts[name]

    def add_goroutines(self) -> int:
        """Refresh the live thread count and return it."""
        count = threading.active_count()
        with self._lock:
            self._counts["goroutines"] = count
        return count

    def add_requests(self) -> int:
        """Count one more request and return the total."""
        return self._increment("requests")

    def add_errors(self) -> int:
        """Count one more error and return the total."""
        return self._increment("errors")

    def add_panics(self) -> int:
        """Count one more panic and return the total."""
        return self._increment("panics")

    def snapshot(self) -> dict[str, int]:
        """Return a copy of all counters."""
        with self._lock:
            return dict(self._counts)


METRICS = Metrics()