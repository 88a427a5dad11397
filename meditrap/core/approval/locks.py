"""Per-request mutual exclusion through the key-value store."""

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from meditrap.core.errors import ConcurrencyConflictError
from meditrap.core.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

LOCK_PREFIX = "lock:approval_request:"


class RequestLockManager:
    """
    Hands out short-lived exclusive locks keyed by request id.

    A lock is a ``SET NX`` with a TTL holding a random owner token, so an
    abandoned lock frees itself and a holder can only release its own lock.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        timeout: float = 5.0,
        ttl: int = 30,
        poll_interval: float = 0.02,
    ):
        self.store = store
        self.timeout = timeout
        self.ttl = ttl
        self.poll_interval = poll_interval

    def acquire(self, key: str) -> Optional[str]:
        """Try to take the lock until ``timeout`` elapses. Returns the owner token or None."""
        owner = uuid.uuid4().hex
        deadline = time.monotonic() + self.timeout
        while True:
            if self.store.add(LOCK_PREFIX + key, owner, ttl=self.ttl):
                return owner
            if time.monotonic() >= deadline:
                return None
            time.sleep(self.poll_interval)

    def release(self, key: str, owner: str) -> None:
        if not self.store.delete_if_equals(LOCK_PREFIX + key, owner):
            logger.warning(f"Lock for request {key} expired before release")

    @contextmanager
    def hold(self, request_id) -> Iterator[None]:
        """
        Hold the lock for one request for the duration of the block.

        Raises:
            ConcurrencyConflictError: If the lock is still busy after ``timeout``
        """
        key = str(request_id)
        owner = self.acquire(key)
        if owner is None:
            raise ConcurrencyConflictError(
                "Request is being modified by another caller; retry shortly.",
                details={"request_id": key},
            )
        try:
            yield
        finally:
            self.release(key, owner)
