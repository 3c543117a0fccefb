"""
Time-bounded cache of KMS public keys, keyed by key identifier.

One cache per ContextSigner; nothing is shared at module level.
A TTL of zero disables caching so every verification fetches the key.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Tuple


class PublicKeyCache:
    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative")

        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, bytes]] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key_id: str) -> Optional[bytes]:
        cached = self._entries.get(key_id)
        if cached is None:
            return None

        stored_at, der = cached
        if (self._clock() - stored_at) >= self.ttl_seconds:
            self._entries.pop(key_id, None)
            return None
        return der

    def put(self, key_id: str, der: bytes) -> None:
        if not self.enabled:
            return
        self._entries[key_id] = (self._clock(), der)

    def invalidate(self, key_id: Optional[str] = None) -> None:
        """Drop one key (e.g. on a rotation signal) or, with no argument, all."""
        if key_id is None:
            self._entries.clear()
        else:
            self._entries.pop(key_id, None)

    def __len__(self) -> int:
        return len(self._entries)
