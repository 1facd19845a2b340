"""FastAPI application and route handlers."""

import sys
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from loguru import logger

from . import __version__
from .config import Settings, settings as default_settings
from .exceptions import (
    ChatAPIError,
    ConfigurationError,
    QuotaExceededError,
    RateLimitExceededError,
    UpstreamError,
    ValidationError,
)
from .factory import Services, ServiceFactory
from .language import message, resolve_language
from .middleware import add_request_id, client_address
from .models import BroadcastRequest, BroadcastResult, ChatReply, ChatRequest, VoiceRequest
from .types import HealthStatus

USAGE_CHANNELS = ("web", "whatsapp", "voice", "broadcast")


def configure_logging(settings: Settings = default_settings) -> None:
    """Configure logging - should be called at startup, not import time."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.log_level,
        serialize=False,
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            level=settings.log_level,
        )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle validation errors with clean messages."""
    error_messages = []

    for error in exc.errors():
        field = error["loc"][-1] if error["loc"] else "field"
        text = error.get("msg", f"Invalid {field}")

        match error["type"]:
            case "missing":
                text = f"Required field '{field}' is missing"
            case "json_invalid":
                text = "Invalid JSON format"

        error_messages.append(text)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Validation failed",
            "message": "; ".join(error_messages),
            "details": error_messages,
        },
    )


async def chat_api_exception_handler(request: Request, exc: ChatAPIError) -> JSONResponse:
    """Handle domain-specific errors that escaped a route."""
    logger.error(f"Chat API error: {exc}")

    if isinstance(exc, ValidationError | ConfigurationError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, UpstreamError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "type": exc.__class__.__name__},
    )


def get_services(request: Request) -> Services:
    """Get the services container attached to the running app."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized")
    return services


ServicesDep = Annotated[Services, Depends(get_services)]


def enforce_rate_limit(request: Request, services: Services) -> None:
    """Count the request against the caller's window.

    Raises:
        RateLimitExceededError: If the caller's window is exhausted.
    """
    address = client_address(request)
    if not services.rate_limiter.allow(address):
        raise RateLimitExceededError(address, services.rate_limiter.max_requests)


async def chat_endpoint(request: Request, body: ChatRequest, services: ServicesDep) -> JSONResponse:
    """Answer one web chat message."""
    language = services.chat.request_language(body)
    try:
        enforce_rate_limit(request, services)
        reply = await services.chat.web_reply(body)
    except RateLimitExceededError:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"reply": message("rate_limited", language)},
        )
    except QuotaExceededError:
        return JSONResponse(content={"reply": message("limit_reached", language)})
    except ChatAPIError as e:
        logger.error(f"Chat failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"reply": message("apology", language)},
        )
    except Exception:
        logger.exception("Unexpected error in chat handler")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"reply": message("apology", language)},
        )

    return JSONResponse(content=ChatReply(reply=reply).model_dump())


async def voice_endpoint(request: Request, body: VoiceRequest, services: ServicesDep) -> Response:
    """Synthesize speech for a reply."""
    language = resolve_language(body.lang, default=services.settings.default_language)
    try:
        enforce_rate_limit(request, services)
        audio = await services.speech.synthesize(body.text, body.provider)
    except RateLimitExceededError:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": message("rate_limited", language)},
        )
    except (ConfigurationError, ValidationError) as e:
        logger.warning(f"Voice request rejected: {e}")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})
    except UpstreamError as e:
        logger.error(f"Speech synthesis failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": message("apology", language)},
        )
    except Exception:
        logger.exception("Unexpected error in voice handler")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": message("apology", language)},
        )

    services.usage.record("voice")
    return Response(content=audio, media_type="audio/mpeg")


async def verify_webhook_endpoint(
    services: ServicesDep,
    mode: Annotated[str | None, Query(alias="hub.mode")] = None,
    token: Annotated[str | None, Query(alias="hub.verify_token")] = None,
    challenge: Annotated[str | None, Query(alias="hub.challenge")] = None,
) -> Response:
    """Messaging platform subscription handshake."""
    answer = services.whatsapp.verify(mode, token, challenge)
    if answer is None:
        logger.warning("Webhook verification failed")
        return PlainTextResponse("Forbidden", status_code=status.HTTP_403_FORBIDDEN)
    logger.info("Webhook verified")
    return PlainTextResponse(answer)


async def receive_webhook_endpoint(
    request: Request, background: BackgroundTasks, services: ServicesDep
) -> dict[str, str]:
    """Acknowledge immediately; the envelope is processed after the response."""
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Ignoring webhook with invalid JSON")
        return {"status": "ignored"}

    background.add_task(services.whatsapp.handle_webhook, payload)
    return {"status": "received"}


async def broadcast_endpoint(body: BroadcastRequest, services: ServicesDep) -> BroadcastResult:
    """Send a weekly broadcast to the given subscribers."""
    return await services.broadcaster.run(body)


async def health_endpoint(services: ServicesDep) -> dict[str, Any]:
    """Cache sizes, cache age and configuration flags."""
    components: HealthStatus = {
        "recipes": len(services.recipes.items),
        "products": len(services.products.items),
        "branding": bool(services.branding.items),
        "cache_age_seconds": services.recipes.age_seconds(),
        "llm_configured": await services.gateway.health_check(),
        "whatsapp_configured": services.whatsapp_client.configured,
        "tts_configured": services.speech.any_configured,
    }
    return {"status": "healthy", "timestamp": datetime.now(UTC).isoformat(), **components}


async def stats_endpoint(services: ServicesDep) -> dict[str, Any]:
    """Per-channel usage aggregates and live session counts."""
    return {
        "usage": {channel: services.usage.summary(channel) for channel in USAGE_CHANNELS},
        "web_sessions": len(services.web_sessions),
        "whatsapp_conversations": len(services.whatsapp_conversations),
    }


async def recipes_endpoint(services: ServicesDep) -> dict[str, Any]:
    """Debug listing of the cached recipes."""
    recipes = await services.recipes.get()
    return {"count": len(recipes), "recipes": recipes[:10]}


async def root_endpoint(services: ServicesDep) -> dict[str, str]:
    """API information endpoint."""
    return {
        "name": "Recipe Chat API",
        "version": __version__,
        "status": "running",
        "bot": services.settings.bot_name,
        "docs": "/docs",
    }


def create_app(services: Services | None = None, settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Prebuilt services container. When omitted, one is built
            from settings at startup and torn down at shutdown.
        settings: Settings used when building services; defaults to the
            process-wide instance.
    """
    app_settings = services.settings if services else settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle."""
        configure_logging(app_settings)
        owned = app.state.services is None
        if owned:
            app.state.services = ServiceFactory.create(app_settings)
        app.state.services.scheduler.start()
        logger.info("Application started successfully")

        yield

        if owned:
            await app.state.services.shutdown()
            app.state.services = None
        else:
            await app.state.services.scheduler.stop()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Recipe Chat API",
        version=__version__,
        description="Recipe assistant for web chat, voice and WhatsApp",
        lifespan=lifespan,
    )
    app.state.services = services

    app.middleware("http")(add_request_id)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ChatAPIError, chat_api_exception_handler)  # type: ignore[arg-type]

    app.add_api_route("/chat", chat_endpoint, methods=["POST"], tags=["chat"])
    app.add_api_route("/voice", voice_endpoint, methods=["POST"], tags=["chat"])
    app.add_api_route("/whatsapp-webhook", verify_webhook_endpoint, methods=["GET"], tags=["whatsapp"])
    app.add_api_route("/whatsapp-webhook", receive_webhook_endpoint, methods=["POST"], tags=["whatsapp"])
    app.add_api_route(
        "/broadcast",
        broadcast_endpoint,
        methods=["POST"],
        response_model=BroadcastResult,
        tags=["whatsapp"],
    )
    app.add_api_route("/health", health_endpoint, methods=["GET"], tags=["health"])
    app.add_api_route("/stats", stats_endpoint, methods=["GET"], tags=["health"])
    app.add_api_route("/recipes", recipes_endpoint, methods=["GET"], tags=["health"])
    app.add_api_route("/", root_endpoint, methods=["GET"], tags=["health"])

    app.openapi_tags = [
        {"name": "chat", "description": "Web chat and voice"},
        {"name": "whatsapp", "description": "Messaging webhook and broadcasts"},
        {"name": "health", "description": "Health checks and statistics"},
    ]
    return app


app = create_app()
