# /flowbot/services/whatsapp_service.py

import re
import logging
from typing import Any, Dict, Optional

import httpx
import tenacity

from flowbot.config.settings import settings
from flowbot.models.messages import (
    AudioMessage,
    ButtonsMessage,
    ImageMessage,
    OutboundMessage,
    PollMessage,
    TextMessage,
    VideoMessage,
)
from flowbot.utils.circuit_breaker import CircuitBreaker
from flowbot.utils.metrics import message_counter

logger = logging.getLogger(__name__)

# Cloud API limits
MAX_TEXT_LENGTH = 4096
MAX_CAPTION_LENGTH = 1024
MAX_REPLY_BUTTONS = 3
MAX_BUTTON_TITLE_LENGTH = 20


class MessageSendError(Exception):
    """The WhatsApp API refused or failed to deliver a message."""

    def __init__(self, to_phone: str, status_code: int, detail: str):
        super().__init__(f"WhatsApp send to {to_phone} failed: {status_code} - {detail}")
        self.to_phone = to_phone
        self.status_code = status_code
        self.detail = detail


def jid_to_phone(jid: str) -> str:
    """Reduces a jid ("5511999999999@s.whatsapp.net") or phone number to E.164 digits."""
    local_part = (jid or "").split("@", 1)[0].split(":", 1)[0]
    clean_phone = re.sub(r"[^\d]", "", local_part)
    return f"+{clean_phone}" if clean_phone else ""


def build_payload(to_phone: str, message: OutboundMessage) -> Dict[str, Any]:
    """
    Translates an outbound flow message into a Cloud API request body.

    The Cloud API has no native poll, so polls are sent as a numbered text;
    reply buttons are capped at the three the API accepts.
    """
    payload: Dict[str, Any] = {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to_phone,
    }

    if isinstance(message, TextMessage):
        payload["type"] = "text"
        payload["text"] = {"body": message.text[:MAX_TEXT_LENGTH]}
    elif isinstance(message, ImageMessage):
        payload["type"] = "image"
        payload["image"] = {"link": message.url}
        if message.caption:
            payload["image"]["caption"] = message.caption[:MAX_CAPTION_LENGTH]
    elif isinstance(message, AudioMessage):
        payload["type"] = "audio"
        payload["audio"] = {"link": message.url}
    elif isinstance(message, VideoMessage):
        payload["type"] = "video"
        payload["video"] = {"link": message.url}
        if message.caption:
            payload["video"]["caption"] = message.caption[:MAX_CAPTION_LENGTH]
    elif isinstance(message, PollMessage):
        lines = [message.name] + [f"{index}. {value}" for index, value in enumerate(message.values, start=1)]
        payload["type"] = "text"
        payload["text"] = {"body": "\n".join(lines)[:MAX_TEXT_LENGTH]}
    elif isinstance(message, ButtonsMessage):
        if len(message.buttons) > MAX_REPLY_BUTTONS:
            logger.warning(f"Only the first {MAX_REPLY_BUTTONS} of {len(message.buttons)} buttons can be sent.")
        payload["type"] = "interactive"
        payload["interactive"] = {
            "type": "button",
            "body": {"text": message.text[:MAX_CAPTION_LENGTH] or " "},
            "footer": {"text": message.footer},
            "action": {
                "buttons": [
                    {
                        "type": "reply",
                        "reply": {"id": button.button_id, "title": button.display_text[:MAX_BUTTON_TITLE_LENGTH]},
                    }
                    for button in message.buttons[:MAX_REPLY_BUTTONS]
                ]
            },
        }
    else:
        raise ValueError(f"Unsupported outbound message: {type(message).__name__}")

    return payload


class WhatsAppService:
    def __init__(self, access_token: Optional[str], phone_id: Optional[str], base_url: str):
        self.access_token = access_token
        self.phone_id = phone_id
        self.base_url = base_url
        self.http_client = httpx.AsyncClient(timeout=15.0)
        self.circuit_breaker = CircuitBreaker("whatsapp")

    @tenacity.retry(
        retry=tenacity.retry_if_exception_type((httpx.RequestError, httpx.TimeoutException)),
        stop=tenacity.stop_after_attempt(3),
        wait=tenacity.wait_exponential(multiplier=2, min=1, max=10),
        before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def resilient_api_call(self, func, *args, **kwargs):
        return await self.circuit_breaker.call(func, *args, **kwargs)

    async def send_whatsapp_request(self, payload: dict) -> Optional[str]:
        """
        Posts a request to the messages endpoint.

        Returns:
            The WhatsApp message id (wamid)

        Raises:
            MessageSendError: when the API answers with an error status
        """
        to_phone = payload.get("to")
        if not to_phone:
            raise MessageSendError(str(to_phone), 0, "missing recipient")
        if not self.access_token or not self.phone_id:
            raise MessageSendError(to_phone, 0, "WhatsApp credentials are not configured")

        url = f"{self.base_url}/{self.phone_id}/messages"
        headers = {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}
        response = await self.resilient_api_call(self.http_client.post, url, json=payload, headers=headers)

        if response.status_code == 200:
            message_id = response.json().get("messages", [{}])[0].get("id")
            logger.info(f"WhatsApp message sent to {to_phone}, wamid: {message_id}")
            message_counter.labels(status="sent", message_type=payload.get("type")).inc()
            return message_id

        try:
            error_message = (response.json().get("error") or {}).get("message", "Unknown error")
        except ValueError:
            error_message = response.text or "Unknown error"
        message_counter.labels(status="failed", message_type=payload.get("type")).inc()
        raise MessageSendError(to_phone, response.status_code, error_message)

    async def send(self, jid: str, message: OutboundMessage) -> None:
        """Sends one outbound flow message to `jid`."""
        await self.send_whatsapp_request(build_payload(jid_to_phone(jid), message))

    async def close(self):
        await self.http_client.aclose()


# Globally accessible instance
whatsapp_service = WhatsAppService(
    settings.whatsapp_access_token,
    settings.whatsapp_phone_id,
    settings.whatsapp_api_base_url
)
