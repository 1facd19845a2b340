"""
Integration tests for the HTTP API.
Tests full request/response flow with fake outbound collaborators.
"""

from datetime import UTC, datetime

import pytest
from httpx import ASGITransport, AsyncClient

from recipe_chat.api import create_app
from recipe_chat.exceptions import UpstreamError
from recipe_chat.formatting import extract_recipe_refs
from recipe_chat.language import message

PHONE = "491511234567"


def webhook_payload(text: str, message_id: str = "wamid.api1") -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "changes": [
                    {
                        "value": {
                            "contacts": [{"wa_id": PHONE, "profile": {"name": "Anna"}}],
                            "messages": [
                                {"from": PHONE, "id": message_id, "type": "text", "text": {"body": text}}
                            ],
                        }
                    }
                ]
            }
        ]
    }


class TestChatEndpoint:
    """Test POST /chat."""

    @pytest.mark.asyncio
    async def test_should_answer_with_cached_recipe_url(self, client, gateway):
        """A recipe card in the reply carries the exact cached URL."""
        gateway.set_response(
            'Lemon Chicken Rice is perfect for that!\n[RECIPE]{"title":"Lemon Chicken Rice",'
            '"emoji":"🍋","desc":"Zesty","url":"/lemon-chicken-rice"}[/RECIPE]'
        )

        response = await client.post(
            "/chat",
            json={
                "messages": [{"role": "user", "content": "What can I make with chicken and rice?"}],
                "lang": "en",
            },
        )

        assert response.status_code == 200
        reply = response.json()["reply"]
        assert reply
        for ref in extract_recipe_refs(reply):
            assert ref["url"] == "/lemon-chicken-rice"

    @pytest.mark.asyncio
    async def test_should_return_request_id_header(self, client):
        """Every response carries the request id."""
        response = await client.post(
            "/chat",
            json={"messages": [{"role": "user", "content": "hi"}]},
            headers={"X-Request-ID": "req-123"},
        )

        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"messages": "hello"},
            {"messages": []},
            {"messages": [{"role": "user", "content": "hi"}] * 51},
            {"messages": [{"role": "user", "content": "   "}]},
            {"messages": [{"role": "system", "content": "hi"}]},
        ],
    )
    async def test_should_reject_invalid_payloads(self, client, gateway, body):
        """Malformed or oversized payloads get 400 without a model call."""
        response = await client.post("/chat", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Validation failed"
        assert gateway.call_count == 0

    @pytest.mark.asyncio
    async def test_should_reject_invalid_json(self, client):
        """A body that is not JSON is a validation failure."""
        response = await client.post(
            "/chat", content="not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_upstream_failure_should_return_localized_apology(self, client, gateway):
        """Model failures become a 500 with the apology in the request language."""
        gateway.set_failure()

        response = await client.post(
            "/chat", json={"messages": [{"role": "user", "content": "hallo"}], "lang": "de"}
        )

        assert response.status_code == 500
        assert response.json() == {"reply": message("apology", "de")}

    @pytest.mark.asyncio
    async def test_daily_limit_should_return_notice(self, client, services):
        """Over quota the user gets the limit notice with status 200."""
        services.settings.web_daily_limit = 1
        body = {"messages": [{"role": "user", "content": "hi"}], "sessionId": "abc", "lang": "en"}

        await client.post("/chat", json=body)
        response = await client.post("/chat", json=body)

        assert response.status_code == 200
        assert response.json() == {"reply": message("limit_reached", "en")}

    @pytest.mark.asyncio
    async def test_rate_limit_should_return_429(self, client, services, gateway):
        """Too many requests from one address are rejected."""
        services.rate_limiter.max_requests = 2
        body = {"messages": [{"role": "user", "content": "hi"}]}

        statuses = [(await client.post("/chat", json=body)).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        assert gateway.call_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_should_key_on_forwarded_address(self, client, services):
        """The first X-Forwarded-For hop identifies the client."""
        services.rate_limiter.max_requests = 1
        body = {"messages": [{"role": "user", "content": "hi"}]}

        first = await client.post("/chat", json=body, headers={"X-Forwarded-For": "10.0.0.1, 172.16.0.1"})
        second = await client.post("/chat", json=body, headers={"X-Forwarded-For": "10.0.0.2"})
        third = await client.post("/chat", json=body, headers={"X-Forwarded-For": "10.0.0.1"})

        assert (first.status_code, second.status_code, third.status_code) == (200, 200, 429)


class TestVoiceEndpoint:
    """Test POST /voice."""

    @pytest.mark.asyncio
    async def test_unconfigured_provider_should_return_400(self, client):
        """Without TTS credentials the request is rejected."""
        response = await client.post("/voice", json={"text": "Hello"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_text_should_return_400(self, client):
        """Text is required."""
        response = await client.post("/voice", json={"lang": "en"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_should_return_audio(self, client, services):
        """Successful synthesis returns MPEG audio and counts usage."""

        async def fake_synthesize(text: str, provider: str | None = None) -> bytes:
            return b"ID3-fake-audio"

        services.speech.synthesize = fake_synthesize

        response = await client.post("/voice", json={"text": "Hello"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.content == b"ID3-fake-audio"
        assert services.usage.range_total("voice", 1) == 1


class TestWhatsAppWebhook:
    """Test the messaging webhook."""

    @pytest.mark.asyncio
    async def test_verification_should_echo_challenge(self, client):
        """A valid handshake returns the challenge as plain text."""
        response = await client.get(
            "/whatsapp-webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "42"},
        )

        assert response.status_code == 200
        assert response.text == "42"

    @pytest.mark.asyncio
    async def test_verification_with_wrong_token_should_return_403(self, client):
        """A wrong token is forbidden."""
        response = await client.get(
            "/whatsapp-webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "42"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_message_should_be_acknowledged_then_answered(self, client, sender):
        """The webhook answers 200 and the reply is sent in the background."""
        response = await client.post("/whatsapp-webhook", json=webhook_payload("Hallo, was kann ich kochen?"))

        assert response.status_code == 200
        assert sender.bodies_for(PHONE) == ["Happy cooking!"]

    @pytest.mark.asyncio
    async def test_failures_should_still_return_200(self, client, gateway, sender):
        """Processing failures never reach the platform."""
        gateway.set_failure()

        response = await client.post("/whatsapp-webhook", json=webhook_payload("Hallo"))

        assert response.status_code == 200
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_invalid_json_should_return_200(self, client):
        """Garbage bodies are acknowledged and ignored."""
        response = await client.post(
            "/whatsapp-webhook", content="{broken", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200


class TestBroadcastEndpoint:
    """Test POST /broadcast."""

    @pytest.mark.asyncio
    async def test_subscriber_at_3am_should_be_skipped(self, client, clock, sender):
        """A subscriber whose local time is 3 AM receives nothing."""
        clock.current = datetime(2026, 3, 2, 2, 0, tzinfo=UTC)

        response = await client.post(
            "/broadcast", json={"type": "weekly_recipes", "subscribers": [{"phone": PHONE}]}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["sent"] == 0
        assert data["total"] == 1
        assert data["skipped"] == 1
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_second_broadcast_should_be_blocked(self, client, sender):
        """Repeating a broadcast type within the lock reports a duplicate."""
        body = {"type": "weekly_recipes", "subscribers": [{"phone": PHONE, "name": "Anna"}]}

        first = await client.post("/broadcast", json=body)
        second = await client.post("/broadcast", json=body)

        assert first.json()["sent"] == 1
        assert second.json()["sent"] == 0
        assert second.json()["duplicate"] is True
        assert len(sender.sent) == 1

    @pytest.mark.asyncio
    async def test_invalid_type_should_return_400(self, client):
        """Unknown broadcast types are rejected."""
        response = await client.post("/broadcast", json={"type": "daily_spam", "subscribers": []})

        assert response.status_code == 400


class TestMonitoringEndpoints:
    """Test /health, /stats, /recipes and /."""

    @pytest.mark.asyncio
    async def test_health_should_report_cache_and_config(self, client, clock):
        """Health lists cache sizes, age and configuration flags."""
        clock.advance(30)

        data = (await client.get("/health")).json()

        assert data["recipes"] == 3
        assert data["products"] == 0
        assert data["cache_age_seconds"] == 30
        assert data["llm_configured"] is True
        assert data["whatsapp_configured"] is True
        assert data["tts_configured"] is False

    @pytest.mark.asyncio
    async def test_stats_should_aggregate_usage(self, client):
        """Stats count successful replies per channel and live sessions."""
        await client.post(
            "/chat", json={"messages": [{"role": "user", "content": "hi"}], "sessionId": "s1"}
        )

        data = (await client.get("/stats")).json()

        assert data["usage"]["web"]["today"] == 1
        assert data["usage"]["whatsapp"]["today"] == 0
        assert data["web_sessions"] == 1
        assert data["whatsapp_conversations"] == 0

    @pytest.mark.asyncio
    async def test_recipes_listing(self, client):
        """The debug listing shows cached recipes."""
        data = (await client.get("/recipes")).json()

        assert data["count"] == 3
        assert data["recipes"][0]["title"] == "Lemon Chicken Rice"

    @pytest.mark.asyncio
    async def test_root(self, client):
        """Root returns service information."""
        data = (await client.get("/")).json()

        assert data["status"] == "running"
        assert data["bot"] == "Lily"


class TestErrorHandlers:
    """Test the app-level domain error handler."""

    @pytest.mark.asyncio
    async def test_escaped_upstream_error_should_return_503(self, services):
        """Domain errors that escape a route are mapped to a status code."""
        app = create_app(services=services)

        @app.get("/boom")
        async def boom():
            raise UpstreamError("content source down", service="content")

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/boom")

        assert response.status_code == 503
        assert response.json()["type"] == "UpstreamError"
