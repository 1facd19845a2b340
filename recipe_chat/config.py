"""Configuration using pydantic-settings."""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with validation and constants."""

    host: str = "0.0.0.0"  # nosec B104 - Required for container deployment
    port: int = 8000
    log_level: str = "INFO"
    log_file: str | None = None
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Model settings
    llm_model: str = "deepseek/deepseek-chat"
    llm_api_key: str | None = None
    llm_timeout: int = 30
    llm_temperature: float = 0.5
    web_max_tokens: int = 800
    whatsapp_max_tokens: int = 500
    broadcast_max_tokens: int = 400
    web_history_turns: int = 10
    whatsapp_history_turns: int = 8

    # Content source
    site_url: str = "https://mydishrecipes.com"
    recipes_api_url: str | None = None
    products_api_url: str | None = None
    branding_api_url: str | None = None
    subscribers_api_url: str | None = None
    content_timeout: float = 8.0
    recipes_ttl_seconds: int = 300
    products_ttl_seconds: int = 300
    branding_ttl_seconds: int = 3600

    # Prompt composition
    bot_name: str = "Lily"
    default_language: str = "en"
    recipe_display_cap: int = 60
    recipe_recent_count: int = 20
    pinned_recipe_ids: list[str] = Field(default_factory=list)
    enable_products: bool = True

    # Web sessions
    web_session_ttl_seconds: int = 3600
    web_history_limit: int = 20
    web_daily_limit: int = 50
    web_sweep_interval_seconds: int = 600

    # WhatsApp
    whatsapp_token: str | None = None
    whatsapp_phone_number_id: str | None = None
    whatsapp_verify_token: str | None = None
    whatsapp_api_version: str = "v21.0"
    whatsapp_conversation_ttl_seconds: int = 86400
    whatsapp_history_limit: int = 20
    whatsapp_daily_limit: int = 30
    whatsapp_sweep_interval_seconds: int = 1800
    whatsapp_send_attempts: int = 3

    # Rate limiting
    rate_limit_max: int = 20
    rate_limit_window_seconds: int = 60
    rate_limit_sweep_multiple: int = 5
    rate_limit_sweep_interval_seconds: int = 300

    # Speech synthesis
    tts_default_provider: str = "openai"
    openai_api_key: str | None = None
    openai_tts_model: str = "tts-1"
    openai_tts_voice: str = "nova"
    elevenlabs_api_key: str | None = None
    elevenlabs_voice_id: str | None = None
    tts_timeout: float = 20.0
    tts_max_chars: int = 1500

    # Broadcasts
    broadcast_lock_seconds: int = 1800
    broadcast_send_delay_seconds: float = 1.0
    delivery_window_start_hour: int = 9
    delivery_window_end_hour: int = 21
    default_timezone: str = "Europe/Berlin"

    @property
    def whatsapp_configured(self) -> bool:
        """Check if the messaging platform credentials are present."""
        return bool(self.whatsapp_token and self.whatsapp_phone_number_id)

    @model_validator(mode="after")
    def derive_recipes_url(self) -> "Settings":
        """Default the recipes endpoint to the site's REST route."""
        if not self.recipes_api_url:
            self.recipes_api_url = f"{self.site_url.rstrip('/')}/wp-json/mdr-chatbot/v1/recipes"
        return self

    @model_validator(mode="after")
    def validate_delivery_window(self) -> "Settings":
        """Validate that the broadcast delivery window is a non-empty hour range."""
        start, end = self.delivery_window_start_hour, self.delivery_window_end_hour
        if not (0 <= start < end <= 24):
            raise ValueError(
                f"Invalid delivery window {start}-{end}. "
                "Expected 0 <= CHAT_DELIVERY_WINDOW_START_HOUR < CHAT_DELIVERY_WINDOW_END_HOUR <= 24."
            )
        return self

    class Config:
        """Pydantic config."""

        env_prefix = "CHAT_"
        env_file = ".env"
        extra = "ignore"


settings = Settings()


def get_settings() -> Settings:
    """Get settings instance (for dependency injection)."""
    return settings
