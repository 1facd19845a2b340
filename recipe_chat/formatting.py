"""Parsing and rewriting of the tagged micro-format in model replies."""

import json
import re
from collections.abc import Iterable
from typing import Any

from loguru import logger

from .prompts import PRODUCT_TAG, RECIPE_TAG, SHOPLIST_TAG
from .types import ProductRecord, RecipeRecord

TAG_PATTERN = re.compile(r"\[(RECIPE|SHOPLIST|PRODUCT)\](.*?)\[/\1\]", re.DOTALL)


def _load(body: str) -> dict[str, Any] | None:
    try:
        data = json.loads(body)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def extract_recipe_refs(text: str) -> list[dict[str, Any]]:
    """Return the parsed bodies of all well-formed [RECIPE] tags."""
    refs = []
    for match in TAG_PATTERN.finditer(text):
        if match.group(1) == RECIPE_TAG:
            data = _load(match.group(2))
            if data is not None:
                refs.append(data)
    return refs


def enforce_card_urls(
    text: str,
    recipes: Iterable[RecipeRecord],
    products: Iterable[ProductRecord] = (),
) -> str:
    """Make every [RECIPE] and [PRODUCT] card point at a cached on-site URL.

    Cards with a known URL pass through. A card with a known recipe title or
    product name but a wrong URL gets the cached URL. Anything else is
    removed, so marketplace links never reach the reply.
    """
    recipes = list(recipes)
    products = list(products)
    known = {
        RECIPE_TAG: (
            {recipe["url"] for recipe in recipes},
            {recipe["title"].strip().lower(): (recipe["title"], recipe["url"]) for recipe in recipes},
            "title",
        ),
        PRODUCT_TAG: (
            {product["review_url"] for product in products if product.get("review_url")},
            {
                product["name"].strip().lower(): (product["name"], product["review_url"])
                for product in products
                if product.get("name") and product.get("review_url")
            },
            "name",
        ),
    }

    def rewrite(match: re.Match[str]) -> str:
        tag = match.group(1)
        if tag not in known:
            return match.group(0)

        data = _load(match.group(2))
        if data is None:
            logger.warning(f"Dropping malformed {tag.lower()} card from reply")
            return ""

        urls, by_label, label = known[tag]
        url = data.get("url")
        if isinstance(url, str) and url in urls:
            return match.group(0)

        cached = by_label.get(str(data.get(label, "")).strip().lower())
        if cached is None:
            logger.warning(f"Dropping {tag.lower()} card with unknown url: {url}")
            return ""

        data[label], data["url"] = cached
        return f"[{tag}]{json.dumps(data, ensure_ascii=False)}[/{tag}]"

    return _tidy(TAG_PATTERN.sub(rewrite, text))


def strip_tags(text: str, with_links: bool = True) -> str:
    """Turn tagged blocks into plain text for channels that cannot render them."""

    def plain(match: re.Match[str]) -> str:
        tag, data = match.group(1), _load(match.group(2))
        if data is None:
            return ""

        if tag == RECIPE_TAG:
            title = f"{data.get('emoji', '🍽️')} {data.get('title', '')}".strip()
            url = data.get("url")
            return f"{title}\n{url}" if with_links and url else title

        if tag == SHOPLIST_TAG:
            items = data.get("items") or []
            lines = [f"🛒 {data.get('title', '')}".rstrip()]
            lines += [f"• {item}" for item in items if isinstance(item, str)]
            return "\n".join(lines)

        if tag == PRODUCT_TAG:
            line = f"{data.get('emoji', '⭐')} {data.get('name', '')}".strip()
            if data.get("reason"):
                line += f" - {data['reason']}"
            url = data.get("url")
            return f"{line}\n{url}" if with_links and url else line

        return ""

    return _tidy(TAG_PATTERN.sub(plain, text))


def _tidy(text: str) -> str:
    return re.sub(r"\n{3,}", "\n\n", text).strip()
