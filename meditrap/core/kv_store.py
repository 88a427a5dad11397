"""Key-value store with per-key expiry.

Backs the logout token blacklist and the per-request approval locks. The
store is always passed in explicitly (FastAPI dependency or constructor
argument); nothing in the package keeps process-wide key state.

Two backends:
- RedisKeyValueStore: shared across workers, used in deployments
- MemoryKeyValueStore: single-process store for development and tests
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import redis

from meditrap.core.config import get_settings


class KeyValueStore(ABC):
    """String key-value store where every write may carry a TTL in seconds."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None if missing or expired."""

    @abstractmethod
    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store value under key, replacing any existing value."""

    @abstractmethod
    def add(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Store value only if key is absent. Returns True if stored."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key. Returns True if it existed."""

    @abstractmethod
    def delete_if_equals(self, key: str, value: str) -> bool:
        """Remove key only while it still holds value. Returns True if removed."""

    def exists(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryKeyValueStore(KeyValueStore):
    """Thread-safe in-process store.

    Expired keys are dropped when read, and writes sweep out every expired key
    at most once per ``sweep_interval`` seconds so keys that are never read
    again (revoked tokens) do not pile up.
    """

    def __init__(self, sweep_interval: float = 60.0):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()
        self.sweep_interval = sweep_interval
        self._next_sweep = time.monotonic() + sweep_interval

    def size(self) -> int:
        """Number of stored keys, including expired ones not yet dropped."""
        with self._lock:
            return len(self._data)

    def _live(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._data[key]
            return None
        return value

    def _sweep(self) -> None:
        now = time.monotonic()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self.sweep_interval
        expired = [k for k, (_, exp) in self._data.items() if exp is not None and now >= exp]
        for key in expired:
            del self._data[key]

    @staticmethod
    def _expiry(ttl: Optional[int]) -> Optional[float]:
        return time.monotonic() + ttl if ttl else None

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        with self._lock:
            self._sweep()
            self._data[key] = (value, self._expiry(ttl))

    def add(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        with self._lock:
            self._sweep()
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._expiry(ttl))
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def delete_if_equals(self, key: str, value: str) -> bool:
        with self._lock:
            if self._live(key) != value:
                return False
            del self._data[key]
            return True

    def clear(self) -> None:
        """Drop every key (mainly for testing)."""
        with self._lock:
            self._data.clear()


# Compare-and-delete has to run server-side to stay atomic.
_DELETE_IF_EQUALS = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store shared by every API worker."""

    def __init__(self, client: redis.Redis):
        self._redis = client
        self._delete_if_equals = client.register_script(_DELETE_IF_EQUALS)

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        return cls(client)

    def get(self, key: str) -> Optional[str]:
        return self._redis.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._redis.set(key, value, ex=ttl or None)

    def add(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        return bool(self._redis.set(key, value, ex=ttl or None, nx=True))

    def delete(self, key: str) -> bool:
        return self._redis.delete(key) > 0

    def delete_if_equals(self, key: str, value: str) -> bool:
        return bool(self._delete_if_equals(keys=[key], args=[value]))


def create_store(backend: Optional[str] = None, redis_url: Optional[str] = None) -> KeyValueStore:
    """Build the store selected by settings (``kv_backend``)."""
    settings = get_settings()
    backend = (backend or settings.kv_backend).lower()
    if backend == "memory":
        return MemoryKeyValueStore()
    if backend == "redis":
        return RedisKeyValueStore.from_url(redis_url or settings.redis_url)
    raise ValueError(f"Unknown key-value backend: {backend}")
