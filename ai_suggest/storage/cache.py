"""
Persistent suggestion cache.

Maps normalized input to a previously obtained suggestion with expiry.
"""

import logging
import time
from typing import Callable, Dict, Optional

from .models import CacheEntry
from .store import PersistentStore

logger = logging.getLogger(__name__)


def normalize_key(user_input: str) -> str:
    """Cache key for an input: surrounding whitespace trimmed, case-folded."""
    return user_input.strip().casefold()


class SuggestionCache:
    """Bounded, write-through cache of suggestions.

    Capacity is enforced by evicting the entry that was inserted earliest,
    not the least recently read one. Entries that expire while the process
    runs are ignored on lookup but stay in memory until overwritten; only a
    restart prunes them.
    """

    def __init__(
        self,
        store: PersistentStore,
        ttl_seconds: float = 3600.0,
        max_entries: int = 1000,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
        on_hit: Optional[Callable[[], None]] = None,
    ):
        """Initialize the cache and load non-expired entries from ``store``.

        Args:
            store: Backing JSON store
            ttl_seconds: Lifetime of an entry
            max_entries: Maximum number of entries held
            enabled: When False, every lookup misses and nothing is stored
            clock: Returns the current time in seconds
            on_hit: Called once for every cache hit
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")

        self.store = store
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.enabled = enabled
        self.clock = clock
        self.on_hit = on_hit
        self._entries: Dict[str, CacheEntry] = {}

        if self.enabled:
            self._load()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_input: str) -> bool:
        return normalize_key(user_input) in self._entries

    def _load(self) -> None:
        data = self.store.load()
        if data is None:
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring cache file with unexpected shape: %s", type(data).__name__)
            return

        now = self.clock()
        skipped = 0
        for key, value in data.items():
            entry = CacheEntry.from_dict(key, value)
            if entry is None:
                skipped += 1
                continue
            if not entry.is_fresh(now, self.ttl_seconds):
                continue
            self._entries[entry.key] = entry

        # A shrunken max_entries keeps the most recently inserted entries.
        while len(self._entries) > self.max_entries:
            del self._entries[next(iter(self._entries))]

        if skipped:
            logger.debug("Skipped %d malformed cache entries", skipped)
        logger.debug("Loaded %d cache entries from %s", len(self._entries), self.store.path)

    def _persist(self) -> None:
        self.store.save({key: entry.to_dict() for key, entry in self._entries.items()})

    def get(self, user_input: str) -> Optional[str]:
        """Return the cached suggestion for ``user_input`` if still fresh."""
        if not self.enabled:
            return None

        entry = self._entries.get(normalize_key(user_input))
        if entry is None or not entry.is_fresh(self.clock(), self.ttl_seconds):
            return None

        if self.on_hit is not None:
            self.on_hit()
        return entry.suggestion

    def set(self, user_input: str, suggestion: str) -> None:
        """Store ``suggestion`` for ``user_input`` and persist the cache.

        When full, exactly one entry, the earliest inserted, is evicted first.
        Overwriting an existing key keeps its original insertion position.
        """
        if not self.enabled:
            return

        key = normalize_key(user_input)
        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            logger.debug("Evicted oldest cache entry %r", oldest_key)

        self._entries[key] = CacheEntry(key=key, suggestion=suggestion, created_at=self.clock())
        self._persist()

    def clear(self) -> None:
        """Remove every entry and persist the empty cache."""
        self._entries.clear()
        if self.enabled:
            self._persist()
