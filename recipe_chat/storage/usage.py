"""Per-channel daily usage counters."""

from datetime import date, datetime, timedelta

from ..clock import Clock, SystemClock
from ..types import ChannelUsage

RETENTION_DAYS = 60


class UsageStats:
    """Daily counts for one channel, capped to the most recent dates."""

    def __init__(self) -> None:
        self.daily_counts: dict[date, int] = {}
        self.last_active_at: datetime | None = None


class UsageTracker:
    """Counts successful units of work per channel for reporting."""

    def __init__(self, clock: Clock | None = None, retention_days: int = RETENTION_DAYS) -> None:
        self.clock = clock or SystemClock()
        self.retention_days = retention_days
        self._channels: dict[str, UsageStats] = {}

    @property
    def channels(self) -> list[str]:
        return sorted(self._channels)

    def record(self, channel: str, count: int = 1) -> None:
        now = self.clock.now()
        stats = self._channels.setdefault(channel, UsageStats())
        today = now.date()
        stats.daily_counts[today] = stats.daily_counts.get(today, 0) + count
        stats.last_active_at = now

        while len(stats.daily_counts) > self.retention_days:
            del stats.daily_counts[min(stats.daily_counts)]

    def range_total(self, channel: str, days: int) -> int:
        """Sum the trailing ``days`` calendar days, today included."""
        stats = self._channels.get(channel)
        if stats is None:
            return 0
        today = self.clock.now().date()
        return sum(stats.daily_counts.get(today - timedelta(days=offset), 0) for offset in range(days))

    def summary(self, channel: str) -> ChannelUsage:
        stats = self._channels.get(channel)
        return {
            "today": self.range_total(channel, 1),
            "week": self.range_total(channel, 7),
            "month": self.range_total(channel, 30),
            "last_active": stats.last_active_at.isoformat()
            if stats and stats.last_active_at
            else None,
        }
