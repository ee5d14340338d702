"""
Process-wide, best-effort shared state: response cache and rate limiting.

Both sit on a KeyValueStore so tests can swap in a store driven by a fake
clock. Neither is consistent across multiple processes.
"""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal key-value store with optional per-key expiry."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryStore(KeyValueStore):
    """
    Dictionary-backed store.

    Expiry is checked on read. A write also sweeps out every expired entry
    once sweep_interval seconds have passed since the previous sweep.
    """

    def __init__(self, clock: Callable[[], float] = time.time, sweep_interval: float = 60):
        self.clock = clock
        self.sweep_interval = sweep_interval
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        now = self.clock()
        if now - self._last_sweep >= self.sweep_interval:
            self.sweep(now)
        expires_at = now + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = (value, expires_at)

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self.clock() if now is None else now
        expired = [
            key for key, (_, expires_at) in self._data.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._data[key]
        self._last_sweep = now
        if expired:
            logger.debug(f"Swept {len(expired)} expired entries")
        return len(expired)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


class ResponseCache:
    """Time-bound cache of answers keyed by request signature."""

    def __init__(self, store: KeyValueStore, ttl_seconds: float = 3600):
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def signature(question: str, conversation: Optional[List[Dict[str, str]]] = None) -> str:
        """Create cache key from the question and conversation."""
        key_data = {
            "question": question.strip().lower(),
            "conversation": conversation or [],
        }
        key_str = json.dumps(key_data, sort_keys=True)
        return "response:" + hashlib.sha256(key_str.encode()).hexdigest()

    def get(self, question: str, conversation=None) -> Optional[str]:
        answer = self.store.get(self.signature(question, conversation))
        if answer is not None:
            logger.info("Cache hit for question")
        return answer

    def set(self, question: str, conversation, answer: str) -> None:
        self.store.set(self.signature(question, conversation), answer, self.ttl_seconds)


class RateLimiter:
    """Rolling-window call counter keyed by client address."""

    def __init__(
        self,
        store: KeyValueStore,
        limit: int = 10,
        window_seconds: float = 3600,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock

    def allow(self, client_address: Optional[str]) -> bool:
        """
        Record a call and report whether it is within the limit.

        Rejected calls are not recorded.
        """
        key = f"ratelimit:{client_address or 'anonymous'}"
        now = self.clock()
        recent = [
            stamp for stamp in (self.store.get(key) or [])
            if now - stamp < self.window_seconds
        ]

        if len(recent) >= self.limit:
            logger.warning(f"Rate limit exceeded for {client_address or 'anonymous'}")
            self.store.set(key, recent, self.window_seconds)
            return False

        recent.append(now)
        self.store.set(key, recent, self.window_seconds)
        return True
