"""Per-address request limiting for the costly endpoints."""

from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from .clock import Clock, SystemClock


@dataclass
class RateLimitEntry:
    """Window state for one client address."""

    window_start: datetime
    count: int = 0


class RateLimiter:
    """Fixed-window counter per client address.

    A window opens on the first request and resets once it is older than
    ``window_seconds``. Entries untouched for ``sweep_multiple`` windows are
    dropped by ``sweep``.
    """

    def __init__(
        self,
        max_requests: int = 20,
        window_seconds: int = 60,
        sweep_multiple: int = 5,
        clock: Clock | None = None,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.sweep_multiple = sweep_multiple
        self.clock = clock or SystemClock()
        self._entries: dict[str, RateLimitEntry] = {}
        logger.info(f"Rate limiter initialized: {max_requests} requests per {window_seconds}s")

    def __len__(self) -> int:
        return len(self._entries)

    def allow(self, key: str) -> bool:
        """Count one request for ``key``; False once the window is exhausted."""
        now = self.clock.now()
        entry = self._entries.get(key)
        if entry is None or (now - entry.window_start).total_seconds() > self.window_seconds:
            entry = RateLimitEntry(window_start=now)
            self._entries[key] = entry

        entry.count += 1
        if entry.count > self.max_requests:
            logger.warning(f"Rate limit exceeded for {key}: {entry.count}/{self.max_requests}")
            return False
        return True

    def remaining(self, key: str) -> int:
        entry = self._entries.get(key)
        if entry is None:
            return self.max_requests
        if (self.clock.now() - entry.window_start).total_seconds() > self.window_seconds:
            return self.max_requests
        return max(0, self.max_requests - entry.count)

    def reset(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self) -> int:
        """Remove stale entries; return how many were dropped."""
        now = self.clock.now()
        horizon = self.window_seconds * self.sweep_multiple
        stale = [
            key
            for key, entry in self._entries.items()
            if (now - entry.window_start).total_seconds() > horizon
        ]
        for key in stale:
            del self._entries[key]

        if stale:
            logger.debug(f"Rate limiter swept {len(stale)} stale addresses")
        return len(stale)
