"""
Aggregation Cache
In-process cache for read-side summaries, invalidated by entity tags
"""
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, Iterable, Optional, Set, Tuple

from .config import settings
from .logging import get_logger

logger = get_logger("cache")

# (entity_type, entity_id), e.g. ("product", 12) or ("client", 3)
Tag = Tuple[str, Any]


class _Entry:
    __slots__ = ("value", "tags", "expires_at")

    def __init__(self, value: Any, tags: Set[Tag], expires_at: float):
        self.value = value
        self.tags = tags
        self.expires_at = expires_at


class TaggedCache:
    """
    TTL cache whose entries are invalidated by (entity_type, entity_id) tags.

    Keys are arbitrary hashables, normally a tuple naming the aggregation and
    its arguments. Invalidating ("product", 12) drops every entry tagged with
    that product; invalidating ("product", None) drops every product entry.
    """

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 1024, enabled: bool = True):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.enabled = enabled
        self._entries: "OrderedDict[Hashable, _Entry]" = OrderedDict()
        self._tag_index: Dict[Tag, Set[Hashable]] = {}
        self._lock = threading.RLock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= time.monotonic():
                self._drop(key)
                return None
            return entry.value

    def set(self, key: Hashable, value: Any, tags: Iterable[Tag] = ()) -> None:
        if not self.enabled:
            return
        tag_set = set(tags)
        with self._lock:
            if key in self._entries:
                self._drop(key)
            self._entries[key] = _Entry(value, tag_set, time.monotonic() + self.ttl_seconds)
            for tag in tag_set:
                self._tag_index.setdefault(tag, set()).add(key)
            while len(self._entries) > self.max_entries:
                oldest = next(iter(self._entries))
                self._drop(oldest)

    def get_or_set(self, key: Hashable, factory: Callable[[], Any], tags: Iterable[Tag] = ()) -> Any:
        """Return the cached value for key, computing and storing it on a miss"""
        if not self.enabled:
            return factory()
        cached = self.get(key)
        if cached is not None:
            return cached
        value = factory()
        self.set(key, value, tags)
        return value

    def invalidate(self, entity_type: str, entity_id: Any = None) -> int:
        """Drop entries tagged with the entity; entity_id=None drops the whole type"""
        with self._lock:
            if entity_id is None:
                tags = [tag for tag in self._tag_index if tag[0] == entity_type]
            else:
                tags = [(entity_type, entity_id)]
            keys: Set[Hashable] = set()
            for tag in tags:
                keys.update(self._tag_index.get(tag, ()))
            for key in keys:
                self._drop(key)
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries for {entity_type}:{entity_id}")
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._tag_index.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _drop(self, key: Hashable) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tag_index[tag]


aggregation_cache = TaggedCache(
    ttl_seconds=settings.CACHE_TTL_SECONDS,
    max_entries=settings.CACHE_MAX_ENTRIES,
    enabled=settings.CACHE_ENABLED,
)
