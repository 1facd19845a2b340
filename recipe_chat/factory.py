"""Service factory for dependency injection - one container per process."""

import asyncio
from dataclasses import dataclass

import httpx
from loguru import logger

from .broadcast import BroadcastLocks, BroadcastOrchestrator
from .chat import ChatService
from .clock import Clock, SystemClock
from .config import Settings
from .content import ContentClient
from .providers import CompletionGateway, create_gateway
from .rate_limiter import RateLimiter
from .scheduler import Scheduler
from .speech import SpeechSynthesizer
from .storage import ConversationStore, TTLCache, UsageTracker
from .types import Branding, ProductRecord, RecipeRecord
from .whatsapp import WhatsAppClient, WhatsAppService

WARM_UP_INTERVAL_SECONDS = 3600


@dataclass
class Services:
    """Every process-wide component, built once and shared by all requests."""

    settings: Settings
    clock: Clock
    http: httpx.AsyncClient
    content: ContentClient
    recipes: TTLCache[list[RecipeRecord]]
    products: TTLCache[list[ProductRecord]]
    branding: TTLCache[Branding]
    web_sessions: ConversationStore
    whatsapp_conversations: ConversationStore
    rate_limiter: RateLimiter
    usage: UsageTracker
    gateway: CompletionGateway
    chat: ChatService
    whatsapp_client: WhatsAppClient
    whatsapp: WhatsAppService
    speech: SpeechSynthesizer
    broadcast_locks: BroadcastLocks
    broadcaster: BroadcastOrchestrator
    scheduler: Scheduler

    async def warm_up(self) -> None:
        """Refresh every cache concurrently; failures keep the previous value."""
        await asyncio.gather(self.recipes.refresh(), self.products.refresh(), self.branding.refresh())

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        await self.http.aclose()
        logger.info("Services shut down")


class ServiceFactory:
    """Factory for creating a fully wired Services container."""

    @staticmethod
    def create(
        settings: Settings,
        clock: Clock | None = None,
        gateway: CompletionGateway | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> Services:
        """Build all components from settings.

        Args:
            settings: Application settings.
            clock: Time source shared by caches, stores and locks.
            gateway: Completion gateway override (tests use a mock).
            http: Shared HTTP client override.
        """
        clock = clock or SystemClock()
        http = http or httpx.AsyncClient(follow_redirects=True)
        gateway = gateway or create_gateway(settings)

        content = ContentClient(
            http,
            recipes_url=settings.recipes_api_url or "",
            site_url=settings.site_url,
            products_url=settings.products_api_url,
            branding_url=settings.branding_api_url,
            subscribers_url=settings.subscribers_api_url,
            timeout=settings.content_timeout,
        )
        recipes: TTLCache[list[RecipeRecord]] = TTLCache(
            "recipes", content.fetch_recipes, settings.recipes_ttl_seconds, list, clock
        )
        products: TTLCache[list[ProductRecord]] = TTLCache(
            "products", content.fetch_products, settings.products_ttl_seconds, list, clock
        )
        branding: TTLCache[Branding] = TTLCache(
            "branding", content.fetch_branding, settings.branding_ttl_seconds, dict, clock
        )

        web_sessions = ConversationStore(
            "web", settings.web_history_limit, settings.web_session_ttl_seconds, clock
        )
        whatsapp_conversations = ConversationStore(
            "whatsapp",
            settings.whatsapp_history_limit,
            settings.whatsapp_conversation_ttl_seconds,
            clock,
        )
        rate_limiter = RateLimiter(
            settings.rate_limit_max,
            settings.rate_limit_window_seconds,
            settings.rate_limit_sweep_multiple,
            clock,
        )
        usage = UsageTracker(clock)

        chat = ChatService(settings, recipes, products, branding, gateway, web_sessions, usage)
        whatsapp_client = WhatsAppClient(
            http,
            settings.whatsapp_token,
            settings.whatsapp_phone_number_id,
            api_version=settings.whatsapp_api_version,
            send_attempts=settings.whatsapp_send_attempts,
        )
        whatsapp = WhatsAppService(
            settings, whatsapp_client, chat, gateway, whatsapp_conversations, content, usage
        )
        speech = SpeechSynthesizer(
            http,
            default_provider=settings.tts_default_provider,
            openai_api_key=settings.openai_api_key,
            openai_model=settings.openai_tts_model,
            openai_voice=settings.openai_tts_voice,
            elevenlabs_api_key=settings.elevenlabs_api_key,
            elevenlabs_voice_id=settings.elevenlabs_voice_id,
            timeout=settings.tts_timeout,
            max_chars=settings.tts_max_chars,
        )
        locks = BroadcastLocks(settings.broadcast_lock_seconds, clock)
        broadcaster = BroadcastOrchestrator(
            settings, whatsapp_client, gateway, recipes, products, usage, locks, clock
        )

        services = Services(
            settings=settings,
            clock=clock,
            http=http,
            content=content,
            recipes=recipes,
            products=products,
            branding=branding,
            web_sessions=web_sessions,
            whatsapp_conversations=whatsapp_conversations,
            rate_limiter=rate_limiter,
            usage=usage,
            gateway=gateway,
            chat=chat,
            whatsapp_client=whatsapp_client,
            whatsapp=whatsapp,
            speech=speech,
            broadcast_locks=locks,
            broadcaster=broadcaster,
            scheduler=Scheduler(),
        )
        ServiceFactory._register_jobs(services)
        logger.info("Services created")
        return services

    @staticmethod
    def _register_jobs(services: Services) -> None:
        settings = services.settings
        scheduler = services.scheduler
        scheduler.add_job("warm_up", WARM_UP_INTERVAL_SECONDS, services.warm_up, run_immediately=True)
        scheduler.add_job(
            "sweep_web_sessions", settings.web_sweep_interval_seconds, services.web_sessions.sweep
        )
        scheduler.add_job(
            "sweep_whatsapp_conversations",
            settings.whatsapp_sweep_interval_seconds,
            services.whatsapp_conversations.sweep,
        )
        scheduler.add_job(
            "sweep_rate_limits",
            settings.rate_limit_sweep_interval_seconds,
            services.rate_limiter.sweep,
        )
