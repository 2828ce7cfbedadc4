"""Single-use latches guarding the redirect transition."""
from __future__ import annotations

from collections import OrderedDict
from typing import Any, Protocol


class RedirectLatch(Protocol):
    async def acquire(self, key: str) -> bool:
        """Return True for the first caller with ``key``, False for every later one."""
        ...


class MemoryLatch:
    """Per-process latch. Remembers the most recent ``window`` keys."""

    def __init__(self, window: int = 10_000) -> None:
        self._window = window
        self._keys: "OrderedDict[str, None]" = OrderedDict()

    async def acquire(self, key: str) -> bool:
        if key in self._keys:
            return False
        self._keys[key] = None
        while len(self._keys) > self._window:
            self._keys.popitem(last=False)
        return True

    def __contains__(self, key: str) -> bool:
        return key in self._keys


class RedisLatch:
    """Latch shared by every worker through ``SET key NX EX``."""

    def __init__(self, client: Any, *, prefix: str = "shield:latch:", ttl_seconds: int = 86400) -> None:
        self._client = client
        self._prefix = prefix
        self._ttl = ttl_seconds

    async def acquire(self, key: str) -> bool:
        acquired = await self._client.set(f"{self._prefix}{key}", "1", nx=True, ex=self._ttl)
        return bool(acquired)


__all__ = ["MemoryLatch", "RedirectLatch", "RedisLatch"]
