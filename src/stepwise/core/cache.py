"""
Keyed store for deferred tool results.

Large results are parked here under generated keys so that only the key (plus a short summary) has
to round-trip through the orchestrating model.  A key is single-use: reading it through
:meth:`ResultCache.take` removes the entry in the same critical section.
"""

import logging
import random
import string
import threading
import time
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    List,
    Optional,
)

from cachetools import TTLCache

from stepwise.config import (
    Settings,
    settings as default_settings,
)
from stepwise.core.schema import CacheEntry

logger = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 9


class KeyedStore(ABC):
    """Minimal key/value contract the dispatcher relies on."""

    @abstractmethod
    def put(self, key: str, value: CacheEntry) -> None:
        """Create or replace *key*."""

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for *key* or ``None``."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove *key*; return whether it existed."""

    @abstractmethod
    def take(self, key: str) -> Optional[CacheEntry]:
        """Atomically return and remove the entry for *key*."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Return the keys currently held."""

    @abstractmethod
    def clear(self) -> None:
        """Drop every entry."""


class ResultCache(KeyedStore):
    """
    In-memory :class:`KeyedStore` with TTL expiry, backed by :class:`cachetools.TTLCache`.

    Parameters
    ----------
    config:
        Settings providing ``CACHE_PREFIX``, ``CACHE_TTL_SECONDS`` and ``CACHE_MAX_ENTRIES``.
        Defaults to the module-level settings.
    clock:
        Callable returning the current time in seconds.  Injectable for tests.
    """

    def __init__(
        self,
        config: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or default_settings
        self._clock = clock
        # TTLCache is not thread-safe on its own.
        self._entries: TTLCache = TTLCache(
            maxsize=self._config.CACHE_MAX_ENTRIES,
            ttl=self._config.CACHE_TTL_SECONDS,
            timer=clock,
        )
        self._lock = threading.Lock()

    @property
    def prefix(self) -> str:
        """Prefix shared by every generated key."""
        return self._config.CACHE_PREFIX

    # ------------------------------------------------------------------ #
    # KeyedStore
    # ------------------------------------------------------------------ #
    def put(self, key: str, value: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = value

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            logger.debug("Function result cache miss for key: %s", key)
        return entry

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = self._entries.pop(key, None) is not None
        if existed:
            logger.debug("Cleared function result cache for key: %s", key)
        return existed

    def take(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None:
            logger.warning("Function result cache miss or expired entry for key: %s", key)
        return entry

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # ------------------------------------------------------------------ #
    # Result helpers
    # ------------------------------------------------------------------ #
    def is_key(self, value: Any) -> bool:
        """Return True when *value* looks like a key generated by this cache."""
        return isinstance(value, str) and value.startswith(self.prefix)

    def generate_key(self) -> str:
        """Return ``prefix + epoch-millis + '_' + random suffix``."""
        suffix = "".join(random.choices(_SUFFIX_ALPHABET, k=_SUFFIX_LENGTH))
        return f"{self.prefix}{int(self._clock() * 1000)}_{suffix}"

    def store(self, producer_name: str, data: Any) -> str:
        """Park *data* under a fresh key and return the key."""
        key = self.generate_key()
        # Setting an item purges expired entries first.
        self.put(
            key,
            CacheEntry(key=key, data=data, timestamp=self._clock(), producer_name=producer_name),
        )
        logger.info("Stored large function result for %s with key: %s", producer_name, key)
        return key

    def clear_expired(self) -> int:
        """Remove expired entries and return how many were dropped."""
        with self._lock:
            expired = self._entries.expire()
        if expired:
            logger.info("Cleared %d expired function result cache entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
