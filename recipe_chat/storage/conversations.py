"""In-memory conversation store keyed by session id or phone number."""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from loguru import logger

from ..clock import Clock, SystemClock
from ..types import ChatTurn, Role


@dataclass
class ConversationRecord:
    """Conversation state for one identity."""

    last_activity_at: datetime
    daily_count_date: date
    history: list[ChatTurn] = field(default_factory=list)
    detected_language: str | None = None
    display_name: str | None = None
    daily_message_count: int = 0


class ConversationStore:
    """Bounded per-identity histories with TTL eviction and daily counters.

    Every mutation is synchronous, so under an asyncio event loop each call is
    atomic with respect to other handlers. Callers that await between a quota
    check and an external call use the increment-first ``append_user`` and
    undo it with ``discard_last_user`` on failure.
    """

    def __init__(self, name: str, max_history: int, ttl_seconds: int, clock: Clock | None = None):
        self.name = name
        self.max_history = max_history
        self.ttl_seconds = ttl_seconds
        self.clock = clock or SystemClock()
        self._records: dict[str, ConversationRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity: object) -> bool:
        return identity in self._records

    def get(self, identity: str) -> ConversationRecord | None:
        return self._records.get(identity)

    def get_or_create(self, identity: str) -> ConversationRecord:
        """Return the record for ``identity``, creating an empty one if unseen."""
        record = self._records.get(identity)
        if record is None:
            now = self.clock.now()
            record = ConversationRecord(last_activity_at=now, daily_count_date=now.date())
            self._records[identity] = record
        return record

    def append_user(self, identity: str, text: str) -> int:
        """Append a user turn and return the updated daily message count."""
        record = self.get_or_create(identity)
        self._roll_daily_counter(record)
        record.daily_message_count += 1
        self._append(record, "user", text)
        return record.daily_message_count

    def append_assistant(self, identity: str, text: str) -> None:
        self._append(self.get_or_create(identity), "assistant", text)

    def discard_last_user(self, identity: str, refund: bool = True) -> None:
        """Drop a trailing user turn, optionally giving its quota unit back."""
        record = self._records.get(identity)
        if record is None:
            return
        if record.history and record.history[-1]["role"] == "user":
            record.history.pop()
        if refund and record.daily_message_count > 0:
            record.daily_message_count -= 1

    def set_language(self, identity: str, language: str) -> None:
        """Persist a content-detected language; the first one sticks."""
        record = self.get_or_create(identity)
        if record.detected_language is None:
            record.detected_language = language

    def set_display_name(self, identity: str, name: str) -> None:
        record = self.get_or_create(identity)
        if record.display_name is None and name:
            record.display_name = name

    def sweep(self, ttl_seconds: int | None = None) -> int:
        """Evict records idle longer than ``ttl_seconds``; return how many."""
        ttl = timedelta(seconds=self.ttl_seconds if ttl_seconds is None else ttl_seconds)
        cutoff = self.clock.now() - ttl
        expired = [key for key, record in self._records.items() if record.last_activity_at < cutoff]
        for key in expired:
            del self._records[key]

        if expired:
            logger.info(f"[{self.name}] swept {len(expired)} idle conversations, {len(self)} left")
        return len(expired)

    def _roll_daily_counter(self, record: ConversationRecord) -> None:
        today = self.clock.now().date()
        if record.daily_count_date != today:
            record.daily_count_date = today
            record.daily_message_count = 0

    def _append(self, record: ConversationRecord, role: Role, text: str) -> None:
        record.history.append({"role": role, "content": text})
        if len(record.history) > self.max_history:
            del record.history[: len(record.history) - self.max_history]
        record.last_activity_at = self.clock.now()
