# /flowbot/models/messages.py

from typing import List, Literal, Union
from pydantic import BaseModel, Field

# Transport-agnostic outbound messages produced by flow nodes.
# The WhatsApp service translates them into Cloud API payloads.


class TextMessage(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class ImageMessage(BaseModel):
    kind: Literal["image"] = "image"
    url: str
    caption: str = ""


class AudioMessage(BaseModel):
    kind: Literal["audio"] = "audio"
    url: str
    mimetype: str = "audio/mpeg"
    ptt: bool = True


class VideoMessage(BaseModel):
    kind: Literal["video"] = "video"
    url: str
    caption: str = ""


class PollMessage(BaseModel):
    kind: Literal["poll"] = "poll"
    name: str
    values: List[str] = Field(default_factory=list)
    selectable_count: int = 1  # 0 means any number of options


class Button(BaseModel):
    button_id: str
    display_text: str


class ButtonsMessage(BaseModel):
    kind: Literal["buttons"] = "buttons"
    text: str
    buttons: List[Button] = Field(default_factory=list)
    footer: str = "Bot Automation"


OutboundMessage = Union[TextMessage, ImageMessage, AudioMessage, VideoMessage, PollMessage, ButtonsMessage]


class InboundMessage(BaseModel):
    """An incoming chat message, reduced to what routing needs."""
    jid: str
    body: str = ""
    has_media: bool = False
    from_me: bool = False
    is_group: bool = False
    message_id: str | None = None
