# /flowbot/services/interfaces.py

import asyncio
from typing import Any, Dict, List, NamedTuple, Optional, Protocol

from flowbot.models.flow import AutomationFlow
from flowbot.models.messages import OutboundMessage

# Capabilities the flow engine consumes. Concrete implementations live in
# the sibling service modules; tests substitute fakes.


class HttpResponse(NamedTuple):
    status: int
    body_text: str


class FlowStore(Protocol):
    """Matching only needs `list_enabled_flows`; the rest backs the editor's CRUD."""

    async def list_enabled_flows(self) -> List[AutomationFlow]: ...

    async def list_flows(self) -> List[AutomationFlow]: ...

    async def get_flow(self, flow_id: str) -> Optional[AutomationFlow]: ...

    async def insert_flow(self, flow: AutomationFlow) -> AutomationFlow: ...

    async def update_flow(self, flow_id: str, changes: Dict[str, Any]) -> Optional[AutomationFlow]: ...

    async def delete_flow(self, flow_id: str) -> bool: ...

    async def set_flow_enabled(self, flow_id: str, enabled: bool) -> bool: ...


class MessageSink(Protocol):
    async def send(self, jid: str, message: OutboundMessage) -> None: ...


class TextResponder(Protocol):
    async def respond(self, prompt: str, user_message: str) -> str: ...


class HttpClient(Protocol):
    async def fetch(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        body: Optional[str],
    ) -> HttpResponse: ...


class Timer(Protocol):
    async def sleep(self, seconds: float) -> None: ...


class AsyncioTimer:
    """Default timer: a real suspension of the current task."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
