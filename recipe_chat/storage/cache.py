"""Read-through cache with time-to-live refresh and stale fallback."""

from collections.abc import Awaitable, Callable, Sized
from datetime import datetime
from typing import Generic, TypeVar

from loguru import logger

from ..clock import Clock, SystemClock
from ..exceptions import UpstreamError

T = TypeVar("T", bound=Sized)


class TTLCache(Generic[T]):
    """Holds one collection fetched from an external source.

    A fresh, non-empty value is served without touching the source. Otherwise
    ``get`` refreshes once; if that fails the previous value is kept and the
    refresh timestamp is left alone, so the next read retries right away.
    """

    def __init__(
        self,
        name: str,
        source: Callable[[], Awaitable[T]],
        ttl_seconds: int,
        empty: Callable[[], T],
        clock: Clock | None = None,
    ) -> None:
        self.name = name
        self.source = source
        self.ttl_seconds = ttl_seconds
        self.clock = clock or SystemClock()
        self._items: T = empty()
        self._refreshed_at: datetime | None = None

    @property
    def items(self) -> T:
        """Current value without triggering a refresh."""
        return self._items

    @property
    def refreshed_at(self) -> datetime | None:
        return self._refreshed_at

    def age_seconds(self) -> int | None:
        """Seconds since the last successful refresh, None if never refreshed."""
        if self._refreshed_at is None:
            return None
        return int((self.clock.now() - self._refreshed_at).total_seconds())

    def is_fresh(self) -> bool:
        if not self._items or self._refreshed_at is None:
            return False
        return (self.clock.now() - self._refreshed_at).total_seconds() < self.ttl_seconds

    async def get(self) -> T:
        """Return cached items, refreshing first when empty or expired."""
        if self.is_fresh():
            return self._items

        await self.refresh()
        return self._items

    async def refresh(self) -> bool:
        """Fetch from the source; return True when the value was replaced."""
        started = self.clock.now()
        try:
            items = await self.source()
        except UpstreamError as e:
            logger.error(f"[{self.name}] refresh failed, keeping {len(self._items)} cached: {e}")
            return False

        self._items = items
        self._refreshed_at = started
        logger.info(f"[{self.name}] {len(items)} items loaded")
        return True
