"""Unit tests for language detection and phone lookups."""

from unittest.mock import Mock, patch

import pytest

from recipe_chat.language import (
    detect_language,
    mask_phone,
    message,
    normalize_phone,
    region_for_phone,
    resolve_language,
    subscription_intent,
)


class TestDetectLanguage:
    """Test content-based detection."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("What can I make with chicken and rice?", "en"),
            ("Ich möchte heute etwas mit Nudeln kochen", "de"),
            ("Bugün ne pişirebilirim?", "tr"),
            ("ما هي وصفة اليوم؟", "ar"),
            ("¿Qué puedo cocinar hoy?", "es"),
            ("Bonjour, je veux une recette avec des pâtes", "fr"),
            ("Tavuklu pilav tarifi önerir misin", "tr"),
            ("Über Nacht möchte ich Brot backen", "de"),
        ],
    )
    def test_should_detect_supported_languages(self, text, expected):
        """Characteristic letters and stopwords identify the language."""
        assert detect_language(text) == expected

    @pytest.mark.parametrize("text", ["", "   ", "12345", "👍"])
    def test_should_return_none_when_inconclusive(self, text):
        """Nothing to go on means no guess."""
        assert detect_language(text) is None

    def test_shared_letters_should_not_decide_alone(self):
        """Short text with only ö/ü is ambiguous between German and Turkish."""
        with patch("recipe_chat.language.detect_langs") as detect_langs:
            assert detect_language("Brötchen") is None
        detect_langs.assert_not_called()

    def test_long_inconclusive_text_should_use_statistical_guess(self):
        """Sentences without stopwords fall back to langdetect within supported languages."""
        with patch(
            "recipe_chat.language.detect_langs",
            return_value=[Mock(lang="it", prob=0.95), Mock(lang="fr", prob=0.92)],
        ):
            assert detect_language("Poulet aux herbes ce soir") == "fr"

    def test_low_confidence_guess_should_be_ignored(self):
        """An uncertain statistical guess is treated as no guess."""
        with patch(
            "recipe_chat.language.detect_langs", return_value=[Mock(lang="es", prob=0.6)]
        ):
            assert detect_language("Arroz caldoso marinero esta semana") is None


class TestPhone:
    """Test phone normalization and prefix lookup."""

    def test_normalize_should_strip_formatting(self):
        """Plus signs, spaces and a leading 00 are removed."""
        assert normalize_phone("+49 151 234-5678") == "491512345678"
        assert normalize_phone("0049151") == "49151"

    def test_longest_prefix_should_win(self):
        """966 resolves to Saudi Arabia, not a shorter prefix."""
        region = region_for_phone("966501234567")

        assert region.language == "ar"
        assert region.timezone == "Asia/Riyadh"

    def test_should_resolve_us_numbers(self):
        """Country code 1 maps to New York time."""
        assert region_for_phone("+1 212 555 0100").timezone == "America/New_York"

    def test_unknown_prefix_should_return_none(self):
        """Unmapped prefixes have no region."""
        assert region_for_phone("999123456") is None

    def test_mask_should_keep_last_four_digits(self):
        """Logs only ever see the tail of a number."""
        assert mask_phone("+49 151 2345 6789") == "***6789"
        assert mask_phone("123") == "***"


class TestResolveLanguage:
    """Test the precedence of language sources."""

    def test_sticky_should_win_over_everything(self):
        """A content-detected language beats the page and the phone."""
        assert resolve_language("en", sticky="de", phone="33612345678") == "de"

    def test_requested_should_win_over_phone(self):
        """An explicit page language beats the phone prefix."""
        assert resolve_language("fr", phone="491512345678") == "fr"

    def test_phone_should_win_over_default(self):
        """Without other hints the phone prefix decides."""
        assert resolve_language(None, phone="905321234567") == "tr"

    def test_should_normalize_locale_codes(self):
        """Region suffixes are ignored."""
        assert resolve_language("de-DE") == "de"

    def test_unsupported_should_fall_back_to_default(self):
        """Unknown codes fall through to the default."""
        assert resolve_language("ja", default="de") == "de"


class TestMessages:
    """Test canned texts and keywords."""

    def test_message_should_fall_back_to_english(self):
        """Unknown languages get the English text."""
        assert message("apology", "xx") == message("apology", "en")

    def test_message_should_be_localized(self):
        """Each supported language has its own text."""
        assert message("apology", "de") != message("apology", "en")

    @pytest.mark.parametrize(
        ("text", "expected"),
        [("STOP", False), ("stop!", False), ("Abmelden", False), ("start", True), ("Subscribe", True)],
    )
    def test_subscription_keywords(self, text, expected):
        """Keywords are matched case-insensitively as the whole message."""
        assert subscription_intent(text) is expected

    def test_regular_text_should_not_be_a_keyword(self):
        """A sentence containing a keyword is not a command."""
        assert subscription_intent("please stop adding onions") is None
