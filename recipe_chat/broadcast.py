"""Weekly WhatsApp broadcasts.

Each broadcast type has a cool-down lock: once started, the same type is
rejected until ``lock_seconds`` pass, whether or not the first run finished.
Sends are sequential with a fixed delay, and one failed recipient never
aborts the batch.
"""

import asyncio
import math
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from loguru import logger

from .clock import Clock, SystemClock
from .exceptions import ConfigurationError, DuplicateBroadcastError, UpstreamError
from .formatting import strip_tags
from .language import mask_phone, message, region_for_phone, resolve_language
from .models import BroadcastRequest, BroadcastResult, BroadcastType, PinnedProduct, Subscriber
from .prompts import render_affiliate_broadcast_prompt, render_recipe_broadcast_prompt
from .providers import CompletionGateway
from .storage import TTLCache, UsageTracker
from .types import ChatTurn, ProductRecord, RecipeRecord

if TYPE_CHECKING:
    from .config import Settings

FEATURED_RECIPES = 3
GENERATE_TURN: list[ChatTurn] = [{"role": "user", "content": "Write this week's message now."}]


class MessageSender(Protocol):
    async def send_text(self, to: str, body: str) -> None: ...


class BroadcastLocks:
    """Self-expiring locks keyed by broadcast type. There is no release."""

    def __init__(self, lock_seconds: int, clock: Clock | None = None) -> None:
        self.lock_seconds = lock_seconds
        self.clock = clock or SystemClock()
        self._acquired_at: dict[str, datetime] = {}

    def _elapsed(self, broadcast_type: str) -> float | None:
        acquired = self._acquired_at.get(broadcast_type)
        if acquired is None:
            return None
        return (self.clock.now() - acquired).total_seconds()

    def held(self, broadcast_type: str) -> bool:
        elapsed = self._elapsed(broadcast_type)
        return elapsed is not None and elapsed < self.lock_seconds

    def remaining(self, broadcast_type: str) -> int:
        """Whole seconds until the lock frees itself, rounded up."""
        elapsed = self._elapsed(broadcast_type)
        if elapsed is None or elapsed >= self.lock_seconds:
            return 0
        return math.ceil(self.lock_seconds - elapsed)

    def acquire(self, broadcast_type: str) -> None:
        """Take the lock or raise DuplicateBroadcastError if it is still held."""
        if self.held(broadcast_type):
            raise DuplicateBroadcastError(broadcast_type, self.remaining(broadcast_type))
        self._acquired_at[broadcast_type] = self.clock.now()


def local_hour(phone: str, now: datetime, default_timezone: str) -> int:
    """Hour of day at the subscriber's location, resolved from the phone prefix."""
    region = region_for_phone(phone)
    name = region.timezone if region else default_timezone
    try:
        zone = ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown timezone {name}, using {default_timezone}")
        zone = ZoneInfo(default_timezone)
    return now.astimezone(zone).hour


def format_pinned_product(product: PinnedProduct, language: str) -> str:
    """Deterministic message for an admin-pinned product."""
    lines = [f"{product.emoji} {message('weekly_pick', language)}", "", f"*{product.name}*"]
    if product.text:
        lines.append(product.text)
    lines += ["", f"👉 {product.url}"]
    return "\n".join(lines)


class BroadcastOrchestrator:
    """Runs weekly recipe and affiliate broadcasts."""

    def __init__(
        self,
        settings: "Settings",
        sender: MessageSender,
        gateway: CompletionGateway,
        recipes: TTLCache[list[RecipeRecord]],
        products: TTLCache[list[ProductRecord]],
        usage: UsageTracker,
        locks: BroadcastLocks,
        clock: Clock | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.sender = sender
        self.gateway = gateway
        self.recipes = recipes
        self.products = products
        self.usage = usage
        self.locks = locks
        self.clock = clock or SystemClock()
        self.sleep = sleep

    async def run(self, request: BroadcastRequest) -> BroadcastResult:
        total = len(request.subscribers)
        try:
            self.locks.acquire(request.type.value)
        except DuplicateBroadcastError as e:
            logger.warning(f"Broadcast blocked: {e}")
            return BroadcastResult(sent=0, total=total, duplicate=True)

        logger.info(f"Broadcast {request.type.value} started for {total} subscribers")
        if request.type is BroadcastType.WEEKLY_RECIPES:
            result = await self._weekly_recipes(request)
        else:
            result = await self._weekly_affiliate(request)

        logger.info(
            f"Broadcast {request.type.value} finished: {result.sent}/{total} sent, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    async def _weekly_recipes(self, request: BroadcastRequest) -> BroadcastResult:
        result = BroadcastResult(sent=0, total=len(request.subscribers))
        featured = await self._featured_recipes(request)
        if not featured:
            logger.warning("No recipes to broadcast")
            result.failed = result.total
            return result

        bot_name = request.bot_name or self.settings.bot_name
        now = self.clock.now()
        attempts = 0
        for subscriber in request.subscribers:
            hour = local_hour(subscriber.phone, now, self.settings.default_timezone)
            if not (
                self.settings.delivery_window_start_hour <= hour < self.settings.delivery_window_end_hour
            ):
                logger.debug(f"Skipping {mask_phone(subscriber.phone)}: local hour {hour}")
                result.skipped += 1
                continue

            language = self._language(subscriber)
            prompt = render_recipe_broadcast_prompt(
                language, featured, bot_name, self.settings.site_url, subscriber.name
            )
            try:
                text = await self.gateway.complete(prompt, GENERATE_TURN, self.settings.broadcast_max_tokens)
            except (UpstreamError, ConfigurationError) as e:
                logger.error(f"Recipe message for {mask_phone(subscriber.phone)} failed: {e}")
                result.failed += 1
                continue

            await self._deliver(
                subscriber, self._with_footer(strip_tags(text), language), result, pause=attempts > 0
            )
            attempts += 1
        return result

    async def _weekly_affiliate(self, request: BroadcastRequest) -> BroadcastResult:
        result = BroadcastResult(sent=0, total=len(request.subscribers))
        bot_name = request.bot_name or self.settings.bot_name
        by_language: dict[str, str | None] = {}
        attempts = 0

        for subscriber in request.subscribers:
            language = self._language(subscriber)
            if language not in by_language:
                by_language[language] = await self._affiliate_text(request.pinned_product, language, bot_name)

            text = by_language[language]
            if text is None:
                result.failed += 1
                continue
            await self._deliver(subscriber, self._with_footer(text, language), result, pause=attempts > 0)
            attempts += 1
        return result

    async def _affiliate_text(
        self, pinned: PinnedProduct | None, language: str, bot_name: str
    ) -> str | None:
        if pinned is not None:
            return format_pinned_product(pinned, language)

        products = await self.products.get()
        if not products:
            logger.warning("No products available for the affiliate broadcast")
            return None

        prompt = render_affiliate_broadcast_prompt(language, products, bot_name, self.settings.site_url)
        try:
            text = await self.gateway.complete(prompt, GENERATE_TURN, self.settings.broadcast_max_tokens)
        except (UpstreamError, ConfigurationError) as e:
            logger.error(f"Affiliate message for language {language} failed: {e}")
            return None
        return strip_tags(text)

    async def _featured_recipes(self, request: BroadcastRequest) -> list[RecipeRecord]:
        if request.recipes:
            return [
                {
                    "id": recipe.id or recipe.url,
                    "title": recipe.title,
                    "url": recipe.url,
                    "excerpt": recipe.excerpt,
                    "published_at": "",
                }
                for recipe in request.recipes
            ]
        cached = await self.recipes.get()
        newest = sorted(cached, key=lambda recipe: recipe["published_at"], reverse=True)
        return newest[:FEATURED_RECIPES]

    async def _deliver(
        self, subscriber: Subscriber, text: str, result: BroadcastResult, pause: bool
    ) -> None:
        if pause:
            await self.sleep(self.settings.broadcast_send_delay_seconds)
        try:
            await self.sender.send_text(subscriber.phone, text)
        except (UpstreamError, ConfigurationError, httpx.HTTPError) as e:
            logger.error(f"Broadcast send to {mask_phone(subscriber.phone)} failed: {e}")
            result.failed += 1
            return

        result.sent += 1
        self.usage.record("broadcast")

    def _language(self, subscriber: Subscriber) -> str:
        return resolve_language(
            subscriber.lang, phone=subscriber.phone, default=self.settings.default_language
        )

    def _with_footer(self, text: str, language: str) -> str:
        return f"{text}\n\n{message('unsubscribe_footer', language)}"
