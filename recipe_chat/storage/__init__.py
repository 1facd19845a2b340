"""In-process state: content cache, conversation stores and usage counters."""

from .cache import TTLCache
from .conversations import ConversationRecord, ConversationStore
from .usage import UsageTracker

__all__ = [
    "ConversationRecord",
    "ConversationStore",
    "TTLCache",
    "UsageTracker",
]
