"""System prompt composition.

A :class:`PromptConfig` captures everything a prompt depends on; the render
functions turn it into text. Nothing here does I/O.
"""

import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from .language import LANGUAGE_INSTRUCTIONS
from .types import Branding, ProductRecord, RecipeRecord


class Channel(str, Enum):
    """Where the reply is delivered; decides whether tag syntax is allowed."""

    WEB = "web"
    WHATSAPP = "whatsapp"


RECIPE_TAG = "RECIPE"
SHOPLIST_TAG = "SHOPLIST"
PRODUCT_TAG = "PRODUCT"


@dataclass
class PromptConfig:
    """Inputs of one composed system prompt."""

    language: str
    channel: Channel
    recipes: list[RecipeRecord]
    site_url: str
    bot_name: str = "Lily"
    site_name: str = "My Dish Recipes"
    tagline: str | None = None
    products: list[ProductRecord] = field(default_factory=list)
    page_title: str | None = None
    page_recipe: RecipeRecord | None = None
    voice_mode: bool = False
    user_name: str | None = None

    @property
    def uses_tags(self) -> bool:
        return self.channel is Channel.WEB and not self.voice_mode


def select_recipes(
    recipes: Sequence[RecipeRecord],
    cap: int = 60,
    recent_count: int = 20,
    pinned_ids: Iterable[str] = (),
    rng: random.Random | None = None,
) -> list[RecipeRecord]:
    """Choose at most ``cap`` recipes to show the model.

    Pinned recipes come first. Remaining slots go to the most recent
    ``recent_count`` recipes plus a random sample of the rest, drawn anew on
    every call so the model does not always cite the head of the list.
    """
    if len(recipes) <= cap:
        return list(recipes)

    pinned_set = set(pinned_ids)
    pinned = [recipe for recipe in recipes if recipe["id"] in pinned_set][:cap]
    rest = [recipe for recipe in recipes if recipe["id"] not in pinned_set]
    slots = cap - len(pinned)
    if slots <= 0:
        return pinned

    newest_first = sorted(rest, key=lambda recipe: recipe["published_at"], reverse=True)
    recent = newest_first[: min(recent_count, slots)]
    remainder = newest_first[len(recent) :]
    sample_size = min(slots - len(recent), len(remainder))
    sampled = (rng or random).sample(remainder, sample_size) if sample_size > 0 else []
    return pinned + recent + sampled


def find_recipe_by_title(recipes: Iterable[RecipeRecord], title: str | None) -> RecipeRecord | None:
    """Case-insensitive exact title lookup."""
    if not title:
        return None
    wanted = title.strip().lower()
    return next((recipe for recipe in recipes if recipe["title"].strip().lower() == wanted), None)


def build_prompt_config(
    *,
    language: str,
    channel: Channel,
    recipes: Sequence[RecipeRecord],
    site_url: str,
    bot_name: str,
    branding: Branding | None = None,
    products: Sequence[ProductRecord] = (),
    page_title: str | None = None,
    is_recipe_page: bool = False,
    voice_mode: bool = False,
    user_name: str | None = None,
    display_cap: int = 60,
    recent_count: int = 20,
    pinned_ids: Iterable[str] = (),
    include_products: bool = True,
    rng: random.Random | None = None,
) -> PromptConfig:
    """Apply the selection policy and page lookup to produce a PromptConfig."""
    branding = branding or {}
    page_recipe = find_recipe_by_title(recipes, page_title) if is_recipe_page else None
    selected = select_recipes(recipes, display_cap, recent_count, pinned_ids, rng)
    if page_recipe is not None and page_recipe not in selected:
        selected.insert(0, page_recipe)

    return PromptConfig(
        language=language,
        channel=channel,
        recipes=selected,
        site_url=site_url,
        bot_name=branding.get("bot_name") or bot_name,
        site_name=branding.get("site_name") or "My Dish Recipes",
        tagline=branding.get("tagline"),
        products=[product for product in products if product.get("review_url")]
        if include_products
        else [],
        page_title=page_title if is_recipe_page else None,
        page_recipe=page_recipe,
        voice_mode=voice_mode,
        user_name=user_name,
    )


def _recipe_lines(recipes: Sequence[RecipeRecord]) -> str:
    return "\n".join(
        f'• "{recipe["title"]}" | URL: {recipe["url"]} | {recipe["excerpt"]}' for recipe in recipes
    )


def _product_lines(products: Sequence[ProductRecord]) -> str:
    return "\n".join(
        f"• {product['name']} (category: {product.get('category') or 'general'}, "
        f"use: {product.get('context') or '-'}) | REVIEW URL: {product['review_url']}"
        for product in products
    )


def _format_section(config: PromptConfig) -> str:
    if config.voice_mode:
        return (
            "VOICE MODE:\n"
            "- Your answer is read aloud. Use 2-3 short, natural spoken sentences.\n"
            "- No tags, no lists, no emojis, no URLs. Mention recipes by their exact title only."
        )

    if not config.uses_tags:
        return (
            "MESSAGE FORMAT (WhatsApp):\n"
            "- Plain text only. Never use [RECIPE], [SHOPLIST] or [PRODUCT] tags.\n"
            "- To share a recipe write its exact title, then its exact URL on the next line.\n"
            "- Shopping lists are short lines starting with •.\n"
            "- Keep it under 120 words."
        )

    lines = [
        "RECIPE FORMAT (ONLY for real recipes from the list):",
        f'[{RECIPE_TAG}]{{"title":"EXACT title from list","emoji":"🍝","desc":"short description",'
        f'"time":"30 min","difficulty":"easy","url":"EXACT URL from list"}}[/{RECIPE_TAG}]',
        "",
        "SHOPPING LIST FORMAT:",
        f'[{SHOPLIST_TAG}]{{"title":"Shopping list for X","items":["200g spaghetti","4 eggs"]}}[/{SHOPLIST_TAG}]',
    ]
    if config.products:
        lines += [
            "",
            "PRODUCT FORMAT (only when it truly fits the recipe, NOT in every answer):",
            f'[{PRODUCT_TAG}]{{"name":"product name","emoji":"🍳","reason":"why it fits",'
            f'"url":"EXACT REVIEW URL from list"}}[/{PRODUCT_TAG}]',
        ]
    return "\n".join(lines)


def _page_section(config: PromptConfig) -> str:
    if not config.page_title:
        return ""

    lines = [
        "CURRENT CONTEXT:",
        f'The user is currently on the recipe page: "{config.page_title}"',
    ]
    if config.page_recipe:
        lines += [
            f"URL: {config.page_recipe['url']}",
            f"Description: {config.page_recipe['excerpt']}",
        ]
    lines += [
        "",
        "ON RECIPE PAGES:",
        "- You know which recipe the user is looking at; never ask 'which recipe?'",
        "- Answer questions about THIS recipe directly and specifically",
        "- 'Shopping list' means a shopping list for THIS recipe",
        "- 'Alternatives' means ingredient substitutes for THIS recipe",
        "- 'Similar recipes' means related recipes from the list",
    ]
    return "\n".join(lines)


def render_system_prompt(config: PromptConfig) -> str:
    """Render the chat system prompt for the web or messaging channel."""
    language_rule = LANGUAGE_INSTRUCTIONS.get(config.language, LANGUAGE_INSTRUCTIONS["en"])
    recipe_list = _recipe_lines(config.recipes) or "No recipes available."
    tagline = f" {config.tagline}" if config.tagline else ""
    greeting = f"\nThe user's name is {config.user_name}." if config.user_name else ""

    sections = [
        f'You are "{config.bot_name}" 👩‍🍳, the friendly recipe assistant of '
        f'"{config.site_name}" ({config.site_url}).{tagline}{greeting}',
        "LANGUAGE:\n"
        f"- The user's starting language: {language_rule}\n"
        "- If the user writes in a DIFFERENT language, switch to the user's language immediately.\n"
        "- Always follow the language of the user's latest message.",
        "PERSONALITY:\n"
        "- Warm, enthusiastic, helpful home cook who loves matching people with the right recipe\n"
        "- Keep answers SHORT (2-3 sentences plus recipe cards)\n"
        "- Ask what they want to cook or which ingredients they have",
        "RECIPES - THE MOST IMPORTANT RULES:\n"
        "1. A recipe from the list below: recommend it with its EXACT title and EXACT URL.\n"
        "2. A recipe from the list the user wants explained inline: give ingredients and steps, "
        "then the EXACT URL. Do not invent details beyond what you know about that dish.\n"
        "3. A dish that is NOT in the list: you may answer from general cooking knowledge and "
        "write a complete recipe in your answer, but NEVER cite, link or invent any website, "
        "domain or URL for it.\n"
        "- NEVER invent a recipe URL. Only URLs from the list below exist.\n"
        "- NEVER link to other recipe websites.",
        _format_section(config),
        "YOUR RECIPES (recommend ONLY from this list, copy URLs EXACTLY):\n" + recipe_list,
    ]

    if config.products:
        sections.append(
            "PRODUCTS (optional recommendations; link ONLY the review URL, never a shop or "
            "marketplace link):\n" + _product_lines(config.products)
        )

    sections.append(
        "BEHAVIOUR:\n"
        "- At most 3 recipes per answer\n"
        "- Stay on the topic of cooking and recipes\n"
        "- When the user lists ingredients, find the best matching recipe from the list\n"
        "- When nothing matches, suggest the closest option from the list"
    )

    page = _page_section(config)
    if page:
        sections.append(page)

    return "\n\n".join(sections)


def render_recipe_broadcast_prompt(
    language: str,
    recipes: Sequence[RecipeRecord],
    bot_name: str,
    site_url: str,
    user_name: str | None = None,
) -> str:
    """Prompt for one personalized weekly-recipes WhatsApp message."""
    language_rule = LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS["en"])
    greeting = f"Greet {user_name} by first name." if user_name else "Greet the reader warmly."
    return (
        f"You are {bot_name} 👩‍🍳 from {site_url}. Write a short WhatsApp message presenting "
        f"this week's recipes. {language_rule} {greeting}\n"
        "- Plain text only, no tags, at most 90 words.\n"
        "- For each recipe write its exact title and its exact URL on its own line.\n"
        "- Do not mention any other website or URL.\n\n"
        "THIS WEEK'S RECIPES:\n" + _recipe_lines(recipes)
    )


def render_affiliate_broadcast_prompt(
    language: str,
    products: Sequence[ProductRecord],
    bot_name: str,
    site_url: str,
) -> str:
    """Prompt for the weekly product tip, generated once per language."""
    language_rule = LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS["en"])
    return (
        f"You are {bot_name} 👩‍🍳 from {site_url}. Write a short WhatsApp message recommending "
        f"ONE kitchen product from the list below as this week's tip. {language_rule}\n"
        "- Plain text only, no tags, at most 70 words, no personal greeting by name.\n"
        "- Link ONLY the product's review URL exactly as given, never a shop link.\n\n"
        "PRODUCTS:\n" + _product_lines(products)
    )
