"""WhatsApp Cloud API client and inbound message pipeline."""

from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from .exceptions import ChatAPIError, ConfigurationError, UpstreamError
from .formatting import strip_tags
from .language import (
    detect_language,
    mask_phone,
    message,
    normalize_phone,
    resolve_language,
    subscription_intent,
)
from .prompts import Channel
from .retry import with_send_retry

if TYPE_CHECKING:
    from .chat import ChatService
    from .config import Settings
    from .content import ContentClient
    from .providers import CompletionGateway
    from .storage import ConversationStore, UsageTracker

GRAPH_URL = "https://graph.facebook.com"
MAX_BODY_CHARS = 4096
SEEN_IDS_LIMIT = 1000


@dataclass
class InboundMessage:
    """One user message extracted from a webhook envelope."""

    message_id: str
    phone: str
    kind: str
    text: str | None = None
    name: str | None = None


def parse_inbound(payload: Any) -> list[InboundMessage]:
    """Extract user messages from the platform's nested event envelope.

    Status callbacks (delivered/read receipts) carry no ``messages`` and
    yield nothing.
    """
    inbound: list[InboundMessage] = []
    for entry in _dicts(payload, "entry"):
        for change in _dicts(entry, "changes"):
            value = change.get("value")
            if not isinstance(value, dict):
                continue
            names = {
                contact.get("wa_id"): _profile_name(contact)
                for contact in _dicts(value, "contacts")
            }
            for item in _dicts(value, "messages"):
                sender = item.get("from")
                if not sender or not isinstance(sender, str):
                    continue
                kind = item.get("type")
                if not isinstance(kind, str):
                    kind = "unknown"
                inbound.append(
                    InboundMessage(
                        message_id=str(item.get("id") or ""),
                        phone=normalize_phone(sender),
                        kind=kind,
                        text=_message_text(item, kind),
                        name=names.get(sender),
                    )
                )
    return inbound


def _dicts(container: Any, key: str) -> list[dict[str, Any]]:
    """Dict children under ``key``; malformed levels of the envelope yield nothing."""
    if not isinstance(container, dict):
        return []
    children = container.get(key)
    if not isinstance(children, list):
        return []
    return [child for child in children if isinstance(child, dict)]


def _profile_name(contact: dict[str, Any]) -> str | None:
    profile = contact.get("profile")
    name = profile.get("name") if isinstance(profile, dict) else None
    return name if isinstance(name, str) else None


def _field(container: Any, key: str) -> Any:
    return container.get(key) if isinstance(container, dict) else None


def _message_text(item: dict[str, Any], kind: str) -> str | None:
    match kind:
        case "text":
            text = _field(item.get("text"), "body")
        case "button":
            text = _field(item.get("button"), "text")
        case "interactive":
            interactive = item.get("interactive")
            reply = _field(interactive, "button_reply") or _field(interactive, "list_reply")
            text = _field(reply, "title")
        case _:
            text = None
    return text.strip() if isinstance(text, str) and text.strip() else None


class WhatsAppClient:
    """Sends text messages through the Cloud API."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        token: str | None,
        phone_number_id: str | None,
        api_version: str = "v21.0",
        timeout: float = 10.0,
        send_attempts: int = 3,
    ) -> None:
        self.http = http
        self.token = token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.timeout = timeout
        self.send_attempts = send_attempts

    @property
    def configured(self) -> bool:
        return bool(self.token and self.phone_number_id)

    @property
    def messages_url(self) -> str:
        return f"{GRAPH_URL}/{self.api_version}/{self.phone_number_id}/messages"

    async def send_text(self, to: str, body: str) -> None:
        """Send one text message; raises UpstreamError when the platform rejects it."""
        if not self.configured:
            raise ConfigurationError("WhatsApp credentials are not configured")

        payload = {
            "messaging_product": "whatsapp",
            "to": normalize_phone(to),
            "type": "text",
            "text": {"preview_url": True, "body": body[:MAX_BODY_CHARS]},
        }
        send = with_send_retry("WhatsApp", self.send_attempts)(self._post)
        response = await send(payload)
        if response.is_error:
            raise UpstreamError(
                f"WhatsApp send returned {response.status_code}",
                service="whatsapp",
                status=response.status_code,
                body=response.text[:500],
            )

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        return await self.http.post(
            self.messages_url,
            json=payload,
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=self.timeout,
        )


class WhatsAppService:
    """Handles inbound messages after the webhook has already answered 200."""

    def __init__(
        self,
        settings: "Settings",
        client: WhatsAppClient,
        chat: "ChatService",
        gateway: "CompletionGateway",
        conversations: "ConversationStore",
        content: "ContentClient",
        usage: "UsageTracker",
    ) -> None:
        self.settings = settings
        self.client = client
        self.chat = chat
        self.gateway = gateway
        self.conversations = conversations
        self.content = content
        self.usage = usage
        self._seen: OrderedDict[str, None] = OrderedDict()

    def verify(self, mode: str | None, token: str | None, challenge: str | None) -> str | None:
        """Return the challenge when the subscription handshake is valid."""
        expected = self.settings.whatsapp_verify_token
        if mode == "subscribe" and expected and token == expected and challenge is not None:
            return challenge
        return None

    async def handle_webhook(self, payload: Any) -> None:
        """Process every message in an envelope; failures are logged, never raised."""
        for inbound in parse_inbound(payload):
            try:
                await self.handle_message(inbound)
            except ChatAPIError as e:
                logger.error(f"WhatsApp message from {mask_phone(inbound.phone)} failed: {e}")
            except Exception:
                logger.exception(f"Unexpected error handling message from {mask_phone(inbound.phone)}")

    async def handle_message(self, inbound: InboundMessage) -> None:
        if self._already_seen(inbound.message_id):
            logger.debug(f"Skipping redelivered message {inbound.message_id}")
            return

        phone = inbound.phone
        record = self.conversations.get_or_create(phone)
        if inbound.name:
            self.conversations.set_display_name(phone, inbound.name)

        detected = detect_language(inbound.text or "")
        if detected and detected != self.settings.default_language:
            self.conversations.set_language(phone, detected)
        language = resolve_language(
            None,
            sticky=record.detected_language,
            phone=phone,
            default=self.settings.default_language,
        )

        if inbound.text is None:
            await self.client.send_text(phone, message("text_only", language))
            return

        intent = subscription_intent(inbound.text)
        if intent is not None:
            await self._change_subscription(phone, intent, record.display_name, language)
            return

        count = self.conversations.append_user(phone, inbound.text)
        limit = self.settings.whatsapp_daily_limit
        if limit and count > limit:
            self.conversations.discard_last_user(phone, refund=False)
            logger.info(f"Daily limit {limit} reached for {mask_phone(phone)}")
            await self.client.send_text(phone, message("limit_reached", language))
            return

        try:
            system = await self.chat.compose_system_prompt(
                language=language,
                channel=Channel.WHATSAPP,
                user_name=record.display_name,
            )
            turns = record.history[-self.settings.whatsapp_history_turns :]
            reply = await self.gateway.complete(system, turns, self.settings.whatsapp_max_tokens)
        except (UpstreamError, ConfigurationError):
            self.conversations.discard_last_user(phone)
            raise

        reply = strip_tags(self.chat.enforce_cards(reply))
        self.conversations.append_assistant(phone, reply)
        await self.client.send_text(phone, reply)
        self.usage.record("whatsapp")

    async def _change_subscription(
        self, phone: str, subscribed: bool, name: str | None, language: str
    ) -> None:
        await self.content.update_subscription(phone, subscribed, name=name, language=language)
        logger.info(f"{mask_phone(phone)} {'subscribed' if subscribed else 'unsubscribed'}")
        await self.client.send_text(phone, message("subscribed" if subscribed else "unsubscribed", language))

    def _already_seen(self, message_id: str) -> bool:
        if not message_id:
            return False
        if message_id in self._seen:
            return True
        self._seen[message_id] = None
        while len(self._seen) > SEEN_IDS_LIMIT:
            self._seen.popitem(last=False)
        return False
