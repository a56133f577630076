# /flowbot/routes/webhooks.py

import asyncio
import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from flowbot.config.settings import settings
from flowbot.services.message_handler import message_handler, parse_whatsapp_message
from flowbot.utils.metrics import response_time_histogram

# Inbound WhatsApp Cloud API webhook. Each message is handled in its own
# task so a slow flow never delays the webhook acknowledgement.

router = APIRouter(
    tags=["Webhooks"]
)

log = structlog.get_logger(__name__)

# Keeps references to in-flight handler tasks until they finish
_background_tasks: set = set()


def _schedule(coro) -> None:
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


@router.get("/whatsapp")
async def verify_whatsapp_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge")
):
    """WhatsApp webhook verification (GET request)."""
    if hub_mode == "subscribe" and settings.whatsapp_verify_token and hub_verify_token == settings.whatsapp_verify_token:
        log.info("WhatsApp webhook verification successful.")
        return PlainTextResponse(hub_challenge)
    log.error("WhatsApp webhook verification failed.")
    raise HTTPException(status_code=403, detail="Forbidden")


@router.post("/whatsapp")
async def handle_whatsapp_webhook(request: Request):
    """Accepts message events and hands each message to the message handler."""
    with response_time_histogram.labels(endpoint="whatsapp_webhook").time():
        data = await request.json()
        scheduled = 0

        for entry in data.get("entry", []):
            for change in entry.get("changes", []):
                if change.get("field") != "messages":
                    log.debug("Ignoring non-message change", change=change)
                    continue

                value = change.get("value", {})
                incoming_phone_id = (value.get("metadata") or {}).get("phone_number_id")
                if incoming_phone_id and settings.whatsapp_phone_id and incoming_phone_id != settings.whatsapp_phone_id:
                    log.info("Ignored event for different phone ID.", incoming_id=incoming_phone_id)
                    continue

                for message in value.get("messages", []):
                    inbound = parse_whatsapp_message(message)
                    if inbound is None:
                        continue
                    log.info("Processing incoming message", jid=inbound.jid, message_id=inbound.message_id)
                    _schedule(message_handler.handle_message(inbound))
                    scheduled += 1

        return JSONResponse({"status": "success", "scheduled": scheduled})
