"""Client for the recipe site's REST endpoints."""

from typing import Any

import httpx
from loguru import logger

from .exceptions import UpstreamError
from .types import Branding, ProductRecord, RecipeRecord

EXCERPT_LENGTH = 150


def parse_recipes(payload: Any) -> list[RecipeRecord]:
    """Normalize the recipes payload; entries without a title or url are skipped."""
    items = payload.get("recipes") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise UpstreamError("Recipes payload is not a list", service="content")

    recipes: list[RecipeRecord] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        url = str(item.get("url") or "").strip()
        if not title or not url:
            continue
        recipes.append(
            {
                "id": str(item.get("id") or url),
                "title": title,
                "url": url,
                "excerpt": str(item.get("excerpt") or "").strip()[:EXCERPT_LENGTH],
                "published_at": str(item.get("date") or item.get("published_at") or ""),
            }
        )
    return recipes


def parse_products(payload: Any, site_url: str) -> list[ProductRecord]:
    """Normalize products, keeping only those with an on-site review page."""
    items = payload.get("products") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise UpstreamError("Products payload is not a list", service="content")

    site = site_url.rstrip("/")
    products: list[ProductRecord] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        review_url = str(item.get("review_url") or item.get("url") or "").strip()
        if not (review_url.startswith("/") or review_url.startswith(site)):
            logger.debug(f"Skipping product without review page: {item.get('name')}")
            continue
        products.append(
            {
                "id": str(item.get("id") or item["name"]),
                "name": str(item["name"]),
                "category": str(item.get("category") or ""),
                "context": str(item.get("context") or ""),
                "review_url": review_url,
            }
        )
    return products


def parse_branding(payload: Any) -> Branding:
    if not isinstance(payload, dict):
        raise UpstreamError("Branding payload is not an object", service="content")

    branding: Branding = {}
    for key, source in (
        ("site_name", "name"),
        ("bot_name", "bot_name"),
        ("tagline", "tagline"),
        ("logo_url", "logo"),
    ):
        value = payload.get(key) or payload.get(source)
        if value:
            branding[key] = str(value)  # type: ignore[literal-required]
    return branding


class ContentClient:
    """Fetches recipes, products and branding; all failures raise UpstreamError."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        recipes_url: str,
        site_url: str,
        products_url: str | None = None,
        branding_url: str | None = None,
        subscribers_url: str | None = None,
        timeout: float = 8.0,
    ) -> None:
        self.http = http
        self.recipes_url = recipes_url
        self.site_url = site_url
        self.products_url = products_url
        self.branding_url = branding_url
        self.subscribers_url = subscribers_url
        self.timeout = timeout

    async def fetch_recipes(self) -> list[RecipeRecord]:
        return parse_recipes(await self._get_json(self.recipes_url))

    async def fetch_products(self) -> list[ProductRecord]:
        if not self.products_url:
            return []
        return parse_products(await self._get_json(self.products_url), self.site_url)

    async def fetch_branding(self) -> Branding:
        if not self.branding_url:
            return {}
        return parse_branding(await self._get_json(self.branding_url))

    async def update_subscription(
        self, phone: str, subscribed: bool, name: str | None = None, language: str | None = None
    ) -> bool:
        """Forward a subscribe/unsubscribe to the site; False when not configured."""
        if not self.subscribers_url:
            logger.warning("Subscription change ignored: no subscribers endpoint configured")
            return False

        body = {"phone": phone, "subscribed": subscribed, "name": name, "lang": language}
        try:
            response = await self.http.post(self.subscribers_url, json=body, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Subscriber update failed: {e}", service="content") from e
        if response.is_error:
            raise UpstreamError(
                f"Subscriber update returned {response.status_code}",
                service="content",
                status=response.status_code,
                body=response.text[:500],
            )
        return True

    async def _get_json(self, url: str) -> Any:
        try:
            response = await self.http.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise UpstreamError(f"GET {url} failed: {e}", service="content") from e

        if response.is_error:
            raise UpstreamError(
                f"GET {url} returned {response.status_code}",
                service="content",
                status=response.status_code,
                body=response.text[:500],
            )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"GET {url} returned invalid JSON", service="content") from e
