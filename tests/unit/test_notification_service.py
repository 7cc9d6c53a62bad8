"""Tests for the WhatsApp notifier."""

import json
from unittest.mock import patch

import httpx
import pytest

from taskflow.config import Settings
from taskflow.services.notification_service import (
    clean_phone,
    notify_status_changed,
    notify_task_assigned,
    send_whatsapp_message,
)


def _settings(**overrides) -> Settings:
    values = {
        "whatsapp_enabled": True,
        "whatsapp_api_url": "https://wa.example.com/",
        "whatsapp_api_token": "secret-token",
        "whatsapp_instance": "main",
        "whatsapp_country_code": "55",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def enabled_settings():
    with patch(
        "taskflow.services.notification_service.get_settings", return_value=_settings()
    ):
        yield


class TestCleanPhone:
    def test_strips_formatting_and_adds_code(self):
        assert clean_phone("(11) 99999-0000", country_code="55") == "5511999990000"

    def test_keeps_existing_code(self):
        assert clean_phone("+55 11 99999-0000", country_code="55") == "5511999990000"


class TestSendWhatsappMessage:
    """Tests for send_whatsapp_message."""

    @pytest.mark.asyncio
    async def test_disabled_by_default(self):
        with patch(
            "taskflow.services.notification_service.get_settings",
            return_value=_settings(whatsapp_enabled=False),
        ):
            result = await send_whatsapp_message("11999990000", "hi")
        assert result.success is False
        assert "disabled" in result.error

    @pytest.mark.asyncio
    async def test_not_configured(self):
        with patch(
            "taskflow.services.notification_service.get_settings",
            return_value=_settings(whatsapp_api_url=""),
        ):
            result = await send_whatsapp_message("11999990000", "hi")
        assert result.success is False
        assert result.error == "WhatsApp not configured"

    @pytest.mark.asyncio
    async def test_posts_to_gateway(self, enabled_settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"status": "PENDING"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await send_whatsapp_message("(11) 99999-0000", "hello", client=client)

        assert result.success is True
        assert str(seen[0].url) == "https://wa.example.com/message/sendText/main"
        assert seen[0].headers["apikey"] == "secret-token"
        assert json.loads(seen[0].content) == {"number": "5511999990000", "text": "hello"}

    @pytest.mark.asyncio
    async def test_http_error_status_reported(self, enabled_settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        async with httpx.AsyncClient(transport=transport) as client:
            result = await send_whatsapp_message("11999990000", "hello", client=client)

        assert result.success is False
        assert result.error == "HTTP 500"

    @pytest.mark.asyncio
    async def test_transport_error_never_raises(self, enabled_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await send_whatsapp_message("11999990000", "hello", client=client)

        assert result.success is False
        assert "unreachable" in result.error


class TestMessages:
    @pytest.mark.asyncio
    async def test_assignment_message(self, enabled_settings):
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await notify_task_assigned(
                "11999990000", "Maya", "Ship report", "urgent", client=client
            )
            await notify_status_changed(
                "11999990000", "Maya", "Ship report", "completed", "Ada", client=client
            )

        assert "*Ship report*" in bodies[0]["text"]
        assert "Urgent" in bodies[0]["text"]
        assert "Completed" in bodies[1]["text"]
        assert "Changed by: Ada" in bodies[1]["text"]
