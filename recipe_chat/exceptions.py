"""Domain-specific exceptions for the recipe chat service."""


class ChatAPIError(Exception):
    """Base exception for all recipe chat errors."""


class ValidationError(ChatAPIError):
    """Error related to input validation (not Pydantic)."""


class ConfigurationError(ChatAPIError):
    """Error related to configuration issues."""


class UpstreamError(ChatAPIError):
    """An external collaborator failed, timed out or returned garbage."""

    def __init__(self, message: str, service: str, status: int | None = None, body: str | None = None):
        self.service = service
        self.status = status
        self.body = body
        super().__init__(message)


class QuotaExceededError(ChatAPIError):
    """An identity is over its daily message quota."""

    def __init__(self, identity: str, limit: int):
        self.identity = identity
        self.limit = limit
        super().__init__(f"Quota of {limit} exceeded for {identity}")


class RateLimitExceededError(QuotaExceededError):
    """A client address sent too many requests within the window."""


class DuplicateBroadcastError(ChatAPIError):
    """A broadcast of the same type ran too recently."""

    def __init__(self, broadcast_type: str, retry_after: int):
        self.broadcast_type = broadcast_type
        self.retry_after = retry_after
        super().__init__(f"Broadcast '{broadcast_type}' is locked for another {retry_after}s")
