"""
In-process state the bot keeps between messages.

Nothing here survives a restart. Both containers are created by the caller
and injected into the pipeline, so tests own and inspect them directly.
"""

import time
from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class RecentMessages:
    """Bounded set of recently seen message keys; the oldest is pruned first."""

    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        self._keys: OrderedDict[str, None] = OrderedDict()

    def seen(self, key: str) -> bool:
        """Return True if key was already seen; otherwise remember it."""
        if key in self._keys:
            return True
        self._keys[key] = None
        while len(self._keys) > self.capacity:
            self._keys.popitem(last=False)
        return False

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


class ExpiringStore(Generic[K, V]):
    """
    Dict-like store whose entries expire after a time-to-live.

    Expired entries are dropped lazily on access and by purge_expired().
    The clock is injectable so tests can move time forward.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._items: dict[K, tuple[V, float]] = {}

    def set(self, key: K, value: V, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._items[key] = (value, self._clock() + ttl)

    def get(self, key: K) -> V | None:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._items[key]
            return None
        return value

    def expire_in(self, key: K, ttl_seconds: float) -> None:
        """Shorten (or extend) the life of an existing entry."""
        value = self.get(key)
        if value is not None:
            self.set(key, value, ttl_seconds)

    def pop(self, key: K) -> V | None:
        value = self.get(key)
        self._items.pop(key, None)
        return value

    def values(self) -> list[V]:
        self.purge_expired()
        return [value for value, _ in self._items.values()]

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._items.items() if now >= expires_at]
        for key in expired:
            del self._items[key]
        return len(expired)

    def __contains__(self, key: K) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._items)


@dataclass
class ConversationStats:
    """Counters shown by /debug."""
    total_messages: int = 0
    intents: Counter = field(default_factory=Counter)
    llm_replies: int = 0
    direct_replies: int = 0

    def record(self, intent_type: str) -> None:
        self.intents[intent_type] += 1
        if intent_type == "general_chat":
            self.llm_replies += 1
        else:
            self.direct_replies += 1
