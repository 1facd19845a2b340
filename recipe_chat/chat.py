"""Web chat pipeline: quota, prompt composition, completion, reply guard."""

import random
from typing import TYPE_CHECKING

from loguru import logger

from .exceptions import ConfigurationError, QuotaExceededError, UpstreamError
from .formatting import enforce_card_urls, strip_tags
from .language import detect_language, resolve_language
from .models import ChatRequest
from .prompts import Channel, build_prompt_config, render_system_prompt
from .providers import CompletionGateway
from .storage import ConversationStore, TTLCache, UsageTracker
from .types import Branding, ChatTurn, ProductRecord, RecipeRecord

if TYPE_CHECKING:
    from .config import Settings


class ChatService:
    """Answers web chat requests against the live recipe menu."""

    def __init__(
        self,
        settings: "Settings",
        recipes: TTLCache[list[RecipeRecord]],
        products: TTLCache[list[ProductRecord]],
        branding: TTLCache[Branding],
        gateway: CompletionGateway,
        sessions: ConversationStore,
        usage: UsageTracker,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize with injected dependencies."""
        self.settings = settings
        self.recipes = recipes
        self.products = products
        self.branding = branding
        self.gateway = gateway
        self.sessions = sessions
        self.usage = usage
        self.rng = rng

    async def compose_system_prompt(
        self,
        *,
        language: str,
        channel: Channel,
        page_title: str | None = None,
        is_recipe_page: bool = False,
        voice_mode: bool = False,
        user_name: str | None = None,
    ) -> str:
        """Build the system prompt from the current cache contents."""
        recipes = await self.recipes.get()
        products = await self.products.get() if self.settings.enable_products else []
        branding = await self.branding.get()

        config = build_prompt_config(
            language=language,
            channel=channel,
            recipes=recipes,
            site_url=self.settings.site_url,
            bot_name=self.settings.bot_name,
            branding=branding,
            products=products,
            page_title=page_title,
            is_recipe_page=is_recipe_page,
            voice_mode=voice_mode,
            user_name=user_name,
            display_cap=self.settings.recipe_display_cap,
            recent_count=self.settings.recipe_recent_count,
            pinned_ids=self.settings.pinned_recipe_ids,
            include_products=self.settings.enable_products,
            rng=self.rng,
        )
        return render_system_prompt(config)

    def request_language(self, request: ChatRequest) -> str:
        """Language for canned texts: sticky session language, then the page's."""
        sticky = None
        if request.session_id:
            record = self.sessions.get(request.session_id)
            sticky = record.detected_language if record else None
        return resolve_language(request.lang, sticky=sticky, default=self.settings.default_language)

    async def web_reply(self, request: ChatRequest) -> str:
        """Generate the reply for one web chat request.

        Raises:
            QuotaExceededError: If the session is over its daily limit.
            UpstreamError: If the model call fails.
        """
        session_id = request.session_id
        if session_id:
            self._track_user_message(session_id, request.last_user_message)

        language = self.request_language(request)
        turns: list[ChatTurn] = [
            {"role": turn.role, "content": turn.content}
            for turn in request.messages[-self.settings.web_history_turns :]
        ]

        try:
            system = await self.compose_system_prompt(
                language=language,
                channel=Channel.WEB,
                page_title=request.page_title,
                is_recipe_page=request.is_recipe,
                voice_mode=request.voice_mode,
            )
            reply = await self.gateway.complete(system, turns, self.settings.web_max_tokens)
        except (UpstreamError, ConfigurationError):
            if session_id:
                self.sessions.discard_last_user(session_id)
            raise

        reply = self.enforce_cards(reply)
        if request.voice_mode:
            reply = strip_tags(reply, with_links=False)

        if session_id:
            self.sessions.append_assistant(session_id, reply)
        self.usage.record("web")
        return reply

    def enforce_cards(self, reply: str) -> str:
        """Point recipe and product cards at cached on-site pages, dropping the rest."""
        products = self.products.items if self.settings.enable_products else []
        return enforce_card_urls(reply, self.recipes.items, products)

    def _track_user_message(self, session_id: str, text: str) -> None:
        detected = detect_language(text)
        if detected and detected != self.settings.default_language:
            self.sessions.set_language(session_id, detected)

        count = self.sessions.append_user(session_id, text)
        limit = self.settings.web_daily_limit
        if limit and count > limit:
            self.sessions.discard_last_user(session_id, refund=False)
            logger.info(f"Daily limit {limit} reached for session {session_id[:8]}...")
            raise QuotaExceededError(session_id, limit)
