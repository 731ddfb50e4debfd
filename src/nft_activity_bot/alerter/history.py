"""Dispatch history tracking and deduplication.

This module provides the in-memory ledger of correlation keys that have
already been committed to a dispatch queue, so that re-delivered event
batches never produce a second post for the same transaction.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import UTC, datetime, timedelta

logger = logging.getLogger(__name__)


class DedupLedger:
    """Tracks dispatched keys for the lifetime of the process.

    Keys are kept in insertion order, which is also timestamp order, so
    retention pruning only ever inspects the oldest entries.

    Example:
        ```python
        ledger = DedupLedger()
        if ledger.claim(group.dedup_key):
            queue.enqueue(channel_id, message)
        ```
    """

    def __init__(self, *, retention: timedelta | None = None) -> None:
        """Initialize the ledger.

        Args:
            retention: How long a key suppresses duplicates. None keeps
                keys for the remaining process lifetime.
        """
        if retention is not None and retention <= timedelta(0):
            raise ValueError("retention must be positive")
        self.retention = retention
        self._entries: OrderedDict[str, datetime] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            self._prune()
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and not self.should_dispatch(key)

    def _prune(self) -> None:
        """Drop keys older than the retention window. Caller holds the lock."""
        if self.retention is None:
            return
        cutoff = datetime.now(UTC) - self.retention
        expired = 0
        while self._entries:
            oldest_key, dispatched_at = next(iter(self._entries.items()))
            if dispatched_at > cutoff:
                break
            del self._entries[oldest_key]
            expired += 1
        if expired:
            logger.debug(f"Pruned {expired} expired dedup keys")

    def should_dispatch(self, key: str) -> bool:
        """Check whether a key has not been dispatched yet.

        Args:
            key: Dedup key of an event group.

        Returns:
            True if the key is new, False if it was already dispatched.
        """
        with self._lock:
            self._prune()
            if key in self._entries:
                logger.debug(f"Duplicate dispatch suppressed for {key}")
                return False
            return True

    def mark_dispatched(self, key: str) -> None:
        """Record a key as dispatched. Re-marking keeps the original time."""
        with self._lock:
            self._entries.setdefault(key, datetime.now(UTC))

    def claim(self, key: str) -> bool:
        """Atomically check and mark a key.

        Returns:
            True for the first caller only.
        """
        with self._lock:
            self._prune()
            if key in self._entries:
                return False
            self._entries[key] = datetime.now(UTC)
            return True

    def dispatched_at(self, key: str) -> datetime | None:
        """When a key was dispatched, or None if it never was."""
        with self._lock:
            self._prune()
            return self._entries.get(key)

    def clear(self) -> None:
        """Forget every dispatched key."""
        with self._lock:
            self._entries.clear()
