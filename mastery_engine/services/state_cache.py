"""
Learner state cache

LRU with time-to-live keyed by (tenant_id, learner_id). The engine only puts
freshly persisted states and never mutates a cached state in place.
"""
from collections import OrderedDict
from typing import Callable, Optional, Tuple
import logging
import time

from mastery_engine.core.metrics import increment_counter
from mastery_engine.schemas.mastery import MasteryState

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


class TTLStateCache:
    def __init__(
        self,
        max_entries: int = 10_000,
        ttl_seconds: float = 300.0,
        time_func: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._time = time_func
        self._entries: "OrderedDict[CacheKey, Tuple[float, MasteryState]]" = OrderedDict()

    def get(self, key: CacheKey) -> Optional[MasteryState]:
        entry = self._entries.get(key)
        if entry is None:
            increment_counter("state_cache_misses")
            return None

        stored_at, state = entry
        if self._time() - stored_at > self.ttl_seconds:
            del self._entries[key]
            increment_counter("state_cache_misses")
            return None

        self._entries.move_to_end(key)
        increment_counter("state_cache_hits")
        return state

    def put(self, key: CacheKey, state: MasteryState):
        self._entries[key] = (self._time(), state)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cached state {evicted}")

    def invalidate(self, key: CacheKey):
        self._entries.pop(key, None)

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries
