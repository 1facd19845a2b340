"""Text-to-speech clients returning MPEG audio."""

import httpx
from loguru import logger

from .exceptions import ConfigurationError, UpstreamError, ValidationError
from .formatting import strip_tags

OPENAI_SPEECH_URL = "https://api.openai.com/v1/audio/speech"
ELEVENLABS_SPEECH_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"


class SpeechSynthesizer:
    """Dispatches synthesis to OpenAI or ElevenLabs."""

    PROVIDERS = ("openai", "elevenlabs")

    def __init__(
        self,
        http: httpx.AsyncClient,
        default_provider: str = "openai",
        openai_api_key: str | None = None,
        openai_model: str = "tts-1",
        openai_voice: str = "nova",
        elevenlabs_api_key: str | None = None,
        elevenlabs_voice_id: str | None = None,
        timeout: float = 20.0,
        max_chars: int = 1500,
    ) -> None:
        self.http = http
        self.default_provider = default_provider
        self.openai_api_key = openai_api_key
        self.openai_model = openai_model
        self.openai_voice = openai_voice
        self.elevenlabs_api_key = elevenlabs_api_key
        self.elevenlabs_voice_id = elevenlabs_voice_id
        self.timeout = timeout
        self.max_chars = max_chars

    def is_configured(self, provider: str | None = None) -> bool:
        match provider or self.default_provider:
            case "openai":
                return bool(self.openai_api_key)
            case "elevenlabs":
                return bool(self.elevenlabs_api_key and self.elevenlabs_voice_id)
            case _:
                return False

    @property
    def any_configured(self) -> bool:
        return any(self.is_configured(provider) for provider in self.PROVIDERS)

    async def synthesize(self, text: str, provider: str | None = None) -> bytes:
        """Return MPEG audio for ``text``.

        Raises:
            ConfigurationError: If the provider is unknown or has no credentials.
            ValidationError: If no speakable text remains.
            UpstreamError: If the provider call fails.
        """
        provider = provider or self.default_provider
        if not self.is_configured(provider):
            raise ConfigurationError(f"Speech provider '{provider}' is not configured")

        spoken = strip_tags(text, with_links=False)[: self.max_chars]
        if not spoken.strip():
            raise ValidationError("Nothing to speak after removing markup")
        if provider == "openai":
            url = OPENAI_SPEECH_URL
            headers = {"Authorization": f"Bearer {self.openai_api_key}"}
            body = {
                "model": self.openai_model,
                "voice": self.openai_voice,
                "input": spoken,
                "response_format": "mp3",
            }
        else:
            url = ELEVENLABS_SPEECH_URL.format(voice_id=self.elevenlabs_voice_id)
            headers = {"xi-api-key": self.elevenlabs_api_key or "", "Accept": "audio/mpeg"}
            body = {"text": spoken, "model_id": "eleven_multilingual_v2"}

        try:
            response = await self.http.post(url, json=body, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"{provider} speech request failed: {e}")
            raise UpstreamError(f"{provider} speech request failed: {e}", service=provider) from e

        if response.is_error:
            logger.error(f"{provider} speech returned {response.status_code}: {response.text[:200]}")
            raise UpstreamError(
                f"{provider} speech returned {response.status_code}",
                service=provider,
                status=response.status_code,
                body=response.text[:500],
            )
        return response.content
