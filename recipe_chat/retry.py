"""Retry logic for messaging-platform sends using tenacity."""

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .exceptions import UpstreamError

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def with_send_retry(
    service: str,
    max_attempts: int = 3,
    max_wait: float = 4.0,
) -> Callable[[F], F]:
    """Decorator retrying transport failures (connect errors, timeouts).

    HTTP error responses are not retried. Once attempts are exhausted the
    transport error is converted to UpstreamError, as is any other httpx
    failure (redirect loops, undecodable bodies) without retrying.

    Args:
        service: Name of the upstream service for error messages
        max_attempts: Total number of attempts including the first one
        max_wait: Upper bound of the exponential backoff in seconds

    """

    def decorator(func: F) -> F:
        retrying = retry(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(max(1, max_attempts)),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=max_wait),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"{service} attempt {retry_state.attempt_number}: {retry_state.outcome.exception() if retry_state.outcome else 'Unknown error'}",
            ),
        )(func)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await retrying(*args, **kwargs)
            except httpx.TransportError as e:
                logger.error(f"{service} unreachable after {max_attempts} attempts: {e}")
                raise UpstreamError(f"{service} unreachable: {e}", service=service) from e
            except httpx.HTTPError as e:
                logger.error(f"{service} request failed: {e}")
                raise UpstreamError(f"{service} request failed: {e}", service=service) from e

        return wrapper  # type: ignore[return-value]

    return decorator
