"""Completion gateway to the hosted language model."""

import os
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import litellm
from loguru import logger

from .exceptions import ConfigurationError, UpstreamError
from .types import ChatTurn


def setup_litellm() -> None:
    """Setup litellm configuration."""
    litellm.set_verbose = False
    litellm.drop_params = True
    litellm.suppress_debug_info = True

    os.environ["LITELLM_LOG"] = "INFO"


@dataclass
class LLMConfig:
    """Configuration for the completion gateway."""

    model: str
    api_key: str | None = None
    timeout: int = 30
    temperature: float = 0.5


class CompletionGateway(Protocol):
    """Protocol for text-in/text-out model access."""

    async def complete(self, system: str, turns: Sequence[ChatTurn], max_tokens: int) -> str: ...
    async def health_check(self) -> bool: ...


class LiteLLMGateway:
    """Sends a system instruction plus trimmed turns to the model.

    There is deliberately no retry here: a flaky upstream should cost one
    call per user message, not several.
    """

    def __init__(self, config: LLMConfig) -> None:
        self.config = config
        setup_litellm()

    async def complete(self, system: str, turns: Sequence[ChatTurn], max_tokens: int) -> str:
        """Generate a reply; raises UpstreamError on any model failure."""
        if not self.config.api_key:
            raise ConfigurationError("LLM API key is not configured")

        messages: list[dict[str, str]] = [{"role": "system", "content": system}]
        messages += [{"role": turn["role"], "content": turn["content"]} for turn in turns]

        try:
            response = await litellm.acompletion(
                model=self.config.model,
                messages=messages,
                timeout=self.config.timeout,
                api_key=self.config.api_key,
                temperature=self.config.temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            status = getattr(e, "status_code", None)
            logger.error(f"{self.config.model} completion failed (status={status}): {e}")
            raise UpstreamError(
                f"Completion failed: {e}", service="llm", status=status, body=str(e)[:500]
            ) from e

        text = self._extract_text(response)
        if response.usage:
            logger.info(
                "Token usage",
                extra={"model": response.model, **response.usage.model_dump()},
            )
        return text

    def _extract_text(self, response: Any) -> str:
        try:
            text = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise UpstreamError("Completion returned no choices", service="llm") from e
        if not text or not text.strip():
            raise UpstreamError("Completion returned empty text", service="llm")
        return str(text).strip()

    async def health_check(self) -> bool:
        """Check if gateway is configured."""
        return bool(self.config.api_key)


def create_gateway(settings: Any) -> LiteLLMGateway:
    """Factory function to create the completion gateway from settings."""
    logger.info(f"Using model {settings.llm_model}")
    return LiteLLMGateway(
        LLMConfig(
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            timeout=settings.llm_timeout,
            temperature=settings.llm_temperature,
        )
    )
