"""Unit tests for system prompt composition."""

import random

from recipe_chat.prompts import (
    Channel,
    build_prompt_config,
    find_recipe_by_title,
    render_affiliate_broadcast_prompt,
    render_recipe_broadcast_prompt,
    render_system_prompt,
    select_recipes,
)


def make_recipes(count: int) -> list[dict]:
    return [
        {
            "id": str(i),
            "title": f"Recipe {i}",
            "url": f"/recipe-{i}",
            "excerpt": f"Excerpt {i}",
            "published_at": f"2026-01-01T00:00:{i:02d}" if i < 60 else f"2025-{(i % 12) + 1:02d}-01",
        }
        for i in range(count)
    ]


def config_for(channel: Channel, **kwargs):
    defaults = {
        "language": "en",
        "channel": channel,
        "recipes": make_recipes(3),
        "site_url": "https://mydishrecipes.com",
        "bot_name": "Lily",
    }
    defaults.update(kwargs)
    return build_prompt_config(**defaults)


class TestSelectRecipes:
    """Test the display-cap selection policy."""

    def test_should_return_all_under_cap(self):
        """Small collections are passed through unchanged."""
        recipes = make_recipes(10)

        assert select_recipes(recipes, cap=60) == recipes

    def test_should_cap_and_include_most_recent(self):
        """The newest recipes are always part of the selection."""
        recipes = make_recipes(100)

        selected = select_recipes(recipes, cap=30, recent_count=10, rng=random.Random(1))

        assert len(selected) == 30
        newest = sorted(recipes, key=lambda r: r["published_at"], reverse=True)[:10]
        assert selected[:10] == newest
        assert len({r["id"] for r in selected}) == 30

    def test_should_put_pinned_first(self):
        """Pinned recipes lead the list regardless of date."""
        recipes = make_recipes(100)

        selected = select_recipes(recipes, cap=20, recent_count=5, pinned_ids=["99", "98"])

        assert [r["id"] for r in selected[:2]] == ["98", "99"]
        assert len(selected) == 20

    def test_sample_should_change_between_calls(self):
        """The random portion is drawn anew on every call."""
        recipes = make_recipes(200)
        rng = random.Random(7)

        first = select_recipes(recipes, cap=30, recent_count=5, rng=rng)
        second = select_recipes(recipes, cap=30, recent_count=5, rng=rng)

        assert first[:5] == second[:5]
        assert first[5:] != second[5:]


class TestBuildPromptConfig:
    """Test config assembly."""

    def test_branding_should_override_names(self):
        """Bot and site names from the content source win."""
        config = config_for(
            Channel.WEB, branding={"bot_name": "Mia", "site_name": "Mia Kocht", "tagline": "Yum"}
        )

        assert config.bot_name == "Mia"
        assert config.site_name == "Mia Kocht"
        assert config.tagline == "Yum"

    def test_page_recipe_should_be_resolved_case_insensitively(self):
        """The current page's recipe is looked up by title."""
        config = config_for(Channel.WEB, page_title="recipe 2", is_recipe_page=True)

        assert config.page_recipe["url"] == "/recipe-2"

    def test_page_title_should_be_ignored_off_recipe_pages(self):
        """Non-recipe pages add no page context."""
        config = config_for(Channel.WEB, page_title="Recipe 2", is_recipe_page=False)

        assert config.page_title is None
        assert config.page_recipe is None

    def test_page_recipe_should_be_added_when_not_selected(self):
        """A page recipe outside the displayed sample is still listed."""
        recipes = make_recipes(100)
        config = config_for(
            Channel.WEB,
            recipes=recipes,
            page_title="Recipe 99",
            is_recipe_page=True,
            display_cap=5,
            recent_count=5,
        )

        assert config.recipes[0]["title"] == "Recipe 99"

    def test_products_without_review_url_should_be_dropped(self):
        """Only products with an on-site review page are offered."""
        config = config_for(
            Channel.WEB,
            products=[{"name": "Pan", "review_url": "/pan-review"}, {"name": "Knife"}],
        )

        assert [p["name"] for p in config.products] == ["Pan"]

    def test_products_can_be_disabled(self):
        """include_products=False removes the product section."""
        config = config_for(
            Channel.WEB, products=[{"name": "Pan", "review_url": "/pan"}], include_products=False
        )

        assert config.products == []


class TestRenderSystemPrompt:
    """Test rendered prompt content."""

    def test_web_prompt_should_describe_tags_and_list_urls(self):
        """The web channel gets the tag syntax and the exact recipe URLs."""
        prompt = render_system_prompt(config_for(Channel.WEB))

        assert "[RECIPE]" in prompt
        assert '"Recipe 1" | URL: /recipe-1' in prompt
        assert "NEVER invent a recipe URL" in prompt

    def test_whatsapp_prompt_should_forbid_tags(self):
        """The messaging channel is plain text and greets the user by name."""
        prompt = render_system_prompt(config_for(Channel.WHATSAPP, user_name="Anna"))

        assert "Plain text only" in prompt
        assert "[RECIPE]{" not in prompt
        assert "Anna" in prompt

    def test_voice_mode_should_request_spoken_answers(self):
        """Voice mode drops the tag format."""
        prompt = render_system_prompt(config_for(Channel.WEB, voice_mode=True))

        assert "VOICE MODE" in prompt
        assert "[SHOPLIST]{" not in prompt

    def test_language_instruction_should_follow_language(self):
        """The starting language is stated explicitly."""
        prompt = render_system_prompt(config_for(Channel.WEB, language="de"))

        assert "Antworte immer auf Deutsch." in prompt

    def test_page_context_should_be_included(self):
        """Recipe pages add a context section."""
        prompt = render_system_prompt(
            config_for(Channel.WEB, page_title="Recipe 1", is_recipe_page=True)
        )

        assert 'recipe page: "Recipe 1"' in prompt
        assert "URL: /recipe-1" in prompt

    def test_products_should_show_review_urls(self):
        """Products are listed with their review URL only."""
        prompt = render_system_prompt(
            config_for(Channel.WEB, products=[{"name": "Cast Iron Pan", "review_url": "/pan"}])
        )

        assert "Cast Iron Pan" in prompt
        assert "REVIEW URL: /pan" in prompt
        assert "[PRODUCT]" in prompt


class TestBroadcastPrompts:
    """Test broadcast prompt rendering."""

    def test_recipe_broadcast_should_personalize(self):
        """The recipe prompt names the subscriber and lists the recipes."""
        prompt = render_recipe_broadcast_prompt(
            "fr", make_recipes(2), "Lily", "https://mydishrecipes.com", user_name="Marie"
        )

        assert "Marie" in prompt
        assert "Réponds toujours en français." in prompt
        assert "/recipe-1" in prompt

    def test_affiliate_broadcast_should_not_personalize(self):
        """The shared per-language message carries no name."""
        prompt = render_affiliate_broadcast_prompt(
            "en", [{"name": "Pan", "review_url": "/pan"}], "Lily", "https://mydishrecipes.com"
        )

        assert "no personal greeting" in prompt
        assert "REVIEW URL: /pan" in prompt


def test_find_recipe_by_title_should_return_none_for_missing():
    """Unknown or empty titles find nothing."""
    recipes = make_recipes(3)

    assert find_recipe_by_title(recipes, "Unknown") is None
    assert find_recipe_by_title(recipes, None) is None
