"""
Session-scoped permission sets.

A profile's permission set is resolved once per session and then reused for
every check in that session. Role edits are only observed after the session
refreshes (or the entry expires).
"""

import hashlib
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from opsportal.config.settings import settings
from opsportal.core.permissions import PermissionSet


def session_key(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class PermissionSetCache:
    def __init__(self, ttl_seconds: int, max_size: int, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[str, Tuple[PermissionSet, float]] = {}
        self._lock = threading.Lock()

    def get(self, token: str) -> Optional[PermissionSet]:
        key = session_key(token)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            permission_set, expiry = entry
            if self._clock() >= expiry:
                del self._entries[key]
                return None
            return permission_set

    def put(self, token: str, permission_set: PermissionSet) -> None:
        now = self._clock()
        with self._lock:
            if len(self._entries) >= self.max_size:
                self._evict_expired(now)
            if len(self._entries) >= self.max_size:
                # Drop the entry closest to expiry
                oldest = min(self._entries, key=lambda k: self._entries[k][1])
                del self._entries[oldest]
            self._entries[session_key(token)] = (permission_set, now + self.ttl_seconds)

    def get_or_load(self, token: str, loader: Callable[[], PermissionSet]) -> PermissionSet:
        cached = self.get(token)
        if cached is not None:
            return cached
        permission_set = loader()
        self.put(token, permission_set)
        return permission_set

    def invalidate(self, token: str) -> None:
        with self._lock:
            self._entries.pop(session_key(token), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict_expired(self, now: float) -> None:
        for key in [k for k, (_, expiry) in self._entries.items() if now >= expiry]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


permission_cache = PermissionSetCache(
    ttl_seconds=settings.permission_cache_ttl_seconds,
    max_size=settings.permission_cache_max_size,
)
