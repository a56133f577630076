# /flowbot/services/message_handler.py

import logging
from typing import Any, Dict, Optional, Set

from flowbot.config.settings import Settings, settings
from flowbot.models.messages import InboundMessage, TextMessage
from flowbot.services.ai_service import ai_service
from flowbot.services.automation_service import AutomationService, automation_service
from flowbot.services.interfaces import MessageSink, TextResponder
from flowbot.services.whatsapp_service import whatsapp_service

# Routes each inbound message: an automation flow if one matches, otherwise
# the default AI reply.

logger = logging.getLogger(__name__)

MEDIA_TYPES = {"image", "video", "audio", "document", "sticker"}
IGNORED_JID_SUFFIXES = ("@newsletter", "@broadcast")
GROUP_JID_SUFFIX = "@g.us"
PERSONAL_JID_SUFFIX = "@s.whatsapp.net"


def normalize_contact(jid: str) -> str:
    """
    Reduces a contact id to one comparable form.

    "5511999@s.whatsapp.net", "5511999:3@s.whatsapp.net", "+5511999" and
    "5511999" all become "5511999"; group and other jids are kept as written.
    """
    jid = (jid or "").strip().lower()
    if jid.endswith(PERSONAL_JID_SUFFIX):
        jid = jid[: -len(PERSONAL_JID_SUFFIX)].split(":")[0]
    return jid.lstrip("+")


def split_contacts(raw: str) -> Set[str]:
    return {normalize_contact(part) for part in (raw or "").split(",") if part.strip()}


def parse_whatsapp_message(message: Dict[str, Any]) -> Optional[InboundMessage]:
    """
    Converts one Cloud API webhook message into an InboundMessage.

    The body is the text, a media caption, or the title of the tapped
    button / list row. Returns None when the message has no sender.
    """
    sender = message.get("from")
    if not sender:
        return None

    message_type = message.get("type", "text")
    body = ""
    if message_type == "text":
        body = (message.get("text") or {}).get("body", "")
    elif message_type in MEDIA_TYPES:
        body = (message.get(message_type) or {}).get("caption", "")
    elif message_type == "interactive":
        interactive = message.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        body = reply.get("title", "")
    elif message_type == "button":
        body = (message.get("button") or {}).get("text", "")

    return InboundMessage(
        jid=sender,
        body=body or "",
        has_media=message_type in MEDIA_TYPES,
        message_id=message.get("id"),
    )


class MessageHandler:
    def __init__(
        self,
        automation: AutomationService,
        responder: TextResponder,
        sink: MessageSink,
        config: Settings,
    ):
        self.automation = automation
        self.responder = responder
        self.sink = sink
        self.config = config
        self._seen_jids: Set[str] = set()
        self._blocked: Set[str] = split_contacts(config.blocked_contacts)
        self._allowed_groups: Set[str] = split_contacts(config.allowed_groups)

    @property
    def block_word(self) -> str:
        return (self.config.block_word or "").lower().strip()

    def is_blocked(self, jid: str) -> bool:
        return normalize_contact(jid) in self._blocked

    def block_contact(self, jid: str) -> None:
        contact = normalize_contact(jid)
        if contact not in self._blocked:
            self._blocked.add(contact)
            logger.info(f"Contact blocked: {contact}")

    def unblock_contact(self, jid: str) -> None:
        self._blocked.discard(normalize_contact(jid))

    def _should_ignore(self, message: InboundMessage) -> bool:
        """
        Screens a message before any flow or AI reply. Checks run in order;
        the block word may add the sender to the blocklist as a side effect.
        """
        jid = message.jid
        if not jid or jid.endswith(IGNORED_JID_SUFFIXES):
            return True
        if not self.config.auto_reply:
            return True

        is_group = message.is_group or jid.endswith(GROUP_JID_SUFFIX)
        if is_group and not self.config.respond_groups:
            return True
        if is_group and self._allowed_groups and normalize_contact(jid) not in self._allowed_groups:
            return True

        if self.is_blocked(jid):
            logger.info(f"Ignoring message from blocked contact {jid}")
            return True

        body = message.body.lower().strip()
        block_word = self.block_word
        # The owner typing the block word in a chat blocks that chat
        if message.from_me and block_word and body == block_word:
            self.block_contact(jid)
            return True
        if message.from_me:
            return True

        if block_word and block_word in body:
            logger.info(f"Block word '{block_word}' received from {jid}")
            self.block_contact(jid)
            return True
        return False

    def _is_first_message(self, jid: str) -> bool:
        if jid in self._seen_jids:
            return False
        self._seen_jids.add(jid)
        return True

    async def handle_message(self, message: InboundMessage) -> str:
        """
        Handles one inbound message.

        Returns:
            "flow" when an automation ran, "ai" when the default AI reply was
            sent, "ignored" otherwise
        """
        if self._should_ignore(message):
            return "ignored"

        logger.info(f"Received message from {message.jid}")
        is_first_message = self._is_first_message(message.jid)

        match = await self.automation.find_matching_flow(message.body, is_first_message, message.has_media)
        if match is not None:
            logger.info(f"Automation flow '{match.flow.name}' activated for {message.jid}")
            await self.automation.execute_flow(match.flow, message.jid, message.body, match.trigger_node_id)
            return "flow"

        if not message.body:
            return "ignored"

        reply = await self.responder.respond(self.config.agent_prompt, message.body)
        if not reply:
            return "ignored"
        try:
            await self.sink.send(message.jid, TextMessage(text=reply))
        except Exception as e:
            logger.error(f"Failed to send AI reply to {message.jid}: {e}")
            return "ignored"
        return "ai"


# Globally accessible instance
message_handler = MessageHandler(automation_service, ai_service, whatsapp_service, settings)
