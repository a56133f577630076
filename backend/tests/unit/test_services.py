# backend/tests/unit/test_services.py
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from flowbot.models.messages import (
    AudioMessage,
    Button,
    ButtonsMessage,
    ImageMessage,
    PollMessage,
    TextMessage,
)
from flowbot.services.ai_service import AIService, FALLBACK_REPLY
from flowbot.services.http_service import HttpService
from flowbot.services.whatsapp_service import (
    MessageSendError,
    WhatsAppService,
    build_payload,
    jid_to_phone,
)
from flowbot.utils.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState


# --- WhatsAppService ---

@pytest.mark.parametrize("jid, phone", [
    ("5511999998888@s.whatsapp.net", "+5511999998888"),
    ("5511999998888:12@s.whatsapp.net", "+5511999998888"),
    ("+55 (11) 99999-8888", "+5511999998888"),
    ("", ""),
])
def test_jid_to_phone(jid, phone):
    assert jid_to_phone(jid) == phone


def test_build_payload_for_each_message_kind():
    text = build_payload("+1", TextMessage(text="oi"))
    assert text["type"] == "text" and text["text"] == {"body": "oi"}

    image = build_payload("+1", ImageMessage(url="https://i", caption=""))
    assert image["image"] == {"link": "https://i"}

    audio = build_payload("+1", AudioMessage(url="https://a"))
    assert audio["type"] == "audio" and audio["audio"] == {"link": "https://a"}

    poll = build_payload("+1", PollMessage(name="Qual?", values=["A", "B"]))
    assert poll["text"]["body"] == "Qual?\n1. A\n2. B"

    buttons = build_payload("+1", ButtonsMessage(
        text="Escolha",
        buttons=[Button(button_id=f"btn_{i}", display_text=f"Opção {i}") for i in range(4)],
    ))
    assert buttons["type"] == "interactive"
    assert [b["reply"]["id"] for b in buttons["interactive"]["action"]["buttons"]] == ["btn_0", "btn_1", "btn_2"]
    assert buttons["interactive"]["footer"] == {"text": "Bot Automation"}


@pytest.mark.asyncio
async def test_whatsapp_send_success(mocker):
    mock_response = AsyncMock(return_value=MagicMock(status_code=200, json=lambda: {"messages": [{"id": "wamid_123"}]}))
    mocker.patch('flowbot.services.whatsapp_service.WhatsAppService.resilient_api_call', mock_response)

    service = WhatsAppService("token", "123", "https://graph.example.com")
    await service.send("5511999998888@s.whatsapp.net", TextMessage(text="Hello World"))

    mock_response.assert_awaited_once()
    payload = mock_response.await_args.kwargs["json"]
    assert payload["to"] == "+5511999998888"
    assert payload["text"] == {"body": "Hello World"}


@pytest.mark.asyncio
async def test_whatsapp_send_failure_raises(mocker):
    mock_response = AsyncMock(return_value=MagicMock(
        status_code=400, json=lambda: {"error": {"message": "Invalid parameter"}}
    ))
    mocker.patch('flowbot.services.whatsapp_service.WhatsAppService.resilient_api_call', mock_response)

    service = WhatsAppService("token", "123", "https://graph.example.com")
    with pytest.raises(MessageSendError) as exc_info:
        await service.send("5511999998888", TextMessage(text="x"))
    assert exc_info.value.status_code == 400
    assert "Invalid parameter" in str(exc_info.value)


@pytest.mark.asyncio
async def test_whatsapp_send_without_credentials_raises():
    service = WhatsAppService(None, None, "https://graph.example.com")
    with pytest.raises(MessageSendError):
        await service.send("5511999998888", TextMessage(text="x"))


# --- HttpService ---

@pytest.mark.asyncio
async def test_http_service_returns_status_and_text():
    service = HttpService(timeout=5.0)
    with patch.object(service.http_client, "request", new=AsyncMock(
        return_value=MagicMock(status_code=201, text="created")
    )) as mock_request:
        response = await service.fetch("https://api.example.com", "POST", {"X-Key": "1"}, "payload")

    assert (response.status, response.body_text) == (201, "created")
    mock_request.assert_awaited_once_with(
        "POST", "https://api.example.com", headers={"X-Key": "1"}, content=b"payload"
    )


# --- AIService ---

@pytest.mark.asyncio
async def test_ai_service_fallback_response():
    """No providers configured: the fixed reply comes back."""
    service = AIService(None, None, "gemini-model", "openai-model")
    assert await service.respond("prompt", "hello") == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_ai_service_fails_over_to_openai(mocker):
    service = AIService(None, None, "gemini-model", "openai-model")
    service.gemini_client = MagicMock()
    service.openai_client = MagicMock()
    mocker.patch.object(service, "_generate_gemini_response", AsyncMock(side_effect=RuntimeError("quota")))
    mocker.patch.object(service, "_generate_openai_response", AsyncMock(return_value="Resposta"))

    assert await service.respond("Seja breve.", "oi") == "Resposta"
    service._generate_openai_response.assert_awaited_once_with("Seja breve.", "oi")


# --- CircuitBreaker ---

@pytest.mark.asyncio
async def test_circuit_breaker_opens_after_threshold():
    breaker = CircuitBreaker("test", failure_threshold=2, timeout=60)
    failing = AsyncMock(side_effect=ConnectionError("down"))
    failing.__name__ = "failing"

    for _ in range(2):
        with pytest.raises(ConnectionError):
            await breaker.call(failing)

    assert breaker.state == CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        await breaker.call(failing)
    assert failing.await_count == 2


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_recovers():
    breaker = CircuitBreaker("test", failure_threshold=1, timeout=0)
    failing = AsyncMock(side_effect=ConnectionError("down"))
    failing.__name__ = "failing"
    healthy = AsyncMock(return_value="ok")
    healthy.__name__ = "healthy"

    with pytest.raises(ConnectionError):
        await breaker.call(failing)
    assert breaker.state == CircuitState.OPEN

    breaker.last_failure_time -= 1
    assert await breaker.call(healthy) == "ok"
    assert breaker.state == CircuitState.CLOSED
