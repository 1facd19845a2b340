"""Tests for configuration."""

import pytest
from pydantic import ValidationError

from recipe_chat.config import Settings


class TestSettings:
    """Test settings defaults and validation."""

    def test_defaults(self):
        """Defaults match the documented values."""
        settings = Settings(_env_file=None)

        assert settings.llm_model == "deepseek/deepseek-chat"
        assert settings.llm_temperature == 0.5
        assert settings.web_max_tokens == 800
        assert settings.web_history_turns == 10
        assert settings.recipes_ttl_seconds == 300
        assert settings.recipe_display_cap == 60

    def test_recipes_url_should_derive_from_site(self):
        """The recipes endpoint defaults to the site's REST route."""
        settings = Settings(_env_file=None, site_url="https://example.com/")

        assert settings.recipes_api_url == "https://example.com/wp-json/mdr-chatbot/v1/recipes"

    def test_explicit_recipes_url_should_be_kept(self):
        """An explicit endpoint is not overwritten."""
        settings = Settings(_env_file=None, recipes_api_url="https://cms.example.com/recipes")

        assert settings.recipes_api_url == "https://cms.example.com/recipes"

    def test_env_prefix(self, monkeypatch):
        """Environment variables use the CHAT_ prefix."""
        monkeypatch.setenv("CHAT_BOT_NAME", "Mia")
        monkeypatch.setenv("CHAT_WEB_DAILY_LIMIT", "5")

        settings = Settings(_env_file=None)

        assert settings.bot_name == "Mia"
        assert settings.web_daily_limit == 5

    @pytest.mark.parametrize(("start", "end"), [(21, 9), (9, 9), (-1, 10), (9, 25)])
    def test_invalid_delivery_window_should_fail(self, start, end):
        """The delivery window must be a non-empty hour range."""
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                delivery_window_start_hour=start,
                delivery_window_end_hour=end,
            )

    def test_whatsapp_configured(self):
        """Both token and phone number id are required."""
        assert Settings(_env_file=None, whatsapp_token="t").whatsapp_configured is False
        assert (
            Settings(
                _env_file=None, whatsapp_token="t", whatsapp_phone_number_id="1"
            ).whatsapp_configured
            is True
        )
