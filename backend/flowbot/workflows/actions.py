# /flowbot/workflows/actions.py

"""
Node actions.

One handler per node type, looked up in a table keyed by NodeType. Every
user-authored string is interpolated against the run's variables before use.
External effects go through the injected collaborators; handlers never talk
to WhatsApp, an AI provider or the network directly.

`execute` never raises: any handler error is returned as a failed
NodeResult for the traversal to log.
"""

import json
import math
import re
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypedDict

from flowbot.models.flow import (
    AiResponseData,
    ConditionData,
    DelayData,
    FlowNode,
    HttpRequestData,
    NodeData,
    NodeType,
    SendAudioData,
    SendButtonsData,
    SendImageData,
    SendPollData,
    SendTextData,
    SendVideoData,
    SetVariableData,
)
from flowbot.models.messages import (
    AudioMessage,
    Button,
    ButtonsMessage,
    ImageMessage,
    PollMessage,
    TextMessage,
    VideoMessage,
)
from flowbot.services.interfaces import AsyncioTimer, HttpClient, MessageSink, TextResponder, Timer
from flowbot.utils.metrics import node_executions_counter
from flowbot.workflows.context import (
    AI_RESPONSE_VAR,
    CONDITION_RESULT_VAR,
    HTTP_RESPONSE_VAR,
    HTTP_STATUS_VAR,
    JID_VAR,
    MESSAGE_VAR,
    interpolate,
)

logger = logging.getLogger(__name__)

DEFAULT_AI_PROMPT = "Responda à mensagem do usuário."
DEFAULT_VARIABLE_NAME = "var"

# Leading numeric prefix, the way a lenient float parse reads "12abc" as 12.
_NUMBER_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|[+-]?Infinity)")


class NodeResult(TypedDict):
    """Outcome of executing one node."""
    node_id: str
    node_type: str
    ok: bool
    error: Optional[str]


Handler = Callable[[FlowNode, Any, Dict[str, Any]], Awaitable[None]]


def parse_number(text: Any) -> float:
    """Parses the leading number of `text`; NaN when there is none."""
    match = _NUMBER_PREFIX.match(str(text))
    if not match:
        return math.nan
    return float(match.group(1).replace("Infinity", "inf"))


def evaluate_condition(left: str, operator: str, right: str) -> bool:
    """
    Evaluates a condition node's comparison on interpolated operands.

    `>` and `<` compare numerically; an operand that is not a number
    parses to NaN and the comparison is false. Unknown operators are false.
    """
    if operator == "==":
        return left == right
    if operator == "!=":
        return left != right
    if operator == "contains":
        return right in left
    if operator == "not_contains":
        return right not in left
    if operator == ">":
        return parse_number(left) > parse_number(right)
    if operator == "<":
        return parse_number(left) < parse_number(right)
    return False


def split_options(raw: Any) -> List[str]:
    """Turns a list or a newline-delimited string into trimmed, non-empty options."""
    if isinstance(raw, list):
        items = ["" if item is None else str(item) for item in raw]
    else:
        items = str(raw or "").split("\n")
    return [item.strip() for item in items if item.strip()]


def parse_delay_seconds(raw: Any, default: float) -> float:
    try:
        seconds = float(raw)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(seconds) or seconds <= 0:
        return default
    return seconds


class ActionDispatcher:
    """Executes the side effect of a single flow node."""

    def __init__(
        self,
        message_sink: MessageSink,
        text_responder: TextResponder,
        http_client: HttpClient,
        timer: Optional[Timer] = None,
        default_delay_seconds: float = 1.0,
    ):
        self.message_sink = message_sink
        self.text_responder = text_responder
        self.http_client = http_client
        self.timer = timer or AsyncioTimer()
        self.default_delay_seconds = default_delay_seconds
        self._handlers: Dict[NodeType, Handler] = {
            NodeType.TRIGGER: self._noop,
            NodeType.SEND_TEXT: self._send_text,
            NodeType.SEND_IMAGE: self._send_image,
            NodeType.SEND_AUDIO: self._send_audio,
            NodeType.SEND_VIDEO: self._send_video,
            NodeType.SEND_POLL: self._send_poll,
            NodeType.SEND_BUTTONS: self._send_buttons,
            NodeType.AI_RESPONSE: self._ai_response,
            NodeType.DELAY: self._delay,
            NodeType.CONDITION: self._condition,
            NodeType.SET_VARIABLE: self._set_variable,
            NodeType.HTTP_REQUEST: self._http_request,
        }

    async def execute(self, node: FlowNode, variables: Dict[str, Any]) -> NodeResult:
        """
        Runs the handler for `node`, mutating `variables` in place.

        Args:
            node: The node to execute
            variables: The run's variable context

        Returns:
            NodeResult with ok=False and the error message if the handler failed
        """
        node_type = node.node_type
        if node_type is None:
            logger.debug(f"Skipping node {node.id} with unknown type '{node.type}'")
            node_executions_counter.labels(node_type="unknown", status="skipped").inc()
            return {"node_id": node.id, "node_type": node.type, "ok": True, "error": None}

        try:
            payload = node.payload()
            await self._handlers[node_type](node, payload, variables)
        except Exception as e:
            node_executions_counter.labels(node_type=node_type.value, status="error").inc()
            return {
                "node_id": node.id,
                "node_type": node_type.value,
                "ok": False,
                "error": f"{type(e).__name__}: {e}",
            }

        node_executions_counter.labels(node_type=node_type.value, status="success").inc()
        return {"node_id": node.id, "node_type": node_type.value, "ok": True, "error": None}

    # --- Handlers ---

    async def _noop(self, node: FlowNode, payload: NodeData, variables: Dict[str, Any]) -> None:
        return None

    async def _send_text(self, node: FlowNode, payload: SendTextData, variables: Dict[str, Any]) -> None:
        message = TextMessage(text=interpolate(payload.text, variables))
        await self.message_sink.send(variables.get(JID_VAR, ""), message)

    async def _send_image(self, node: FlowNode, payload: SendImageData, variables: Dict[str, Any]) -> None:
        message = ImageMessage(
            url=interpolate(payload.url, variables),
            caption=interpolate(payload.caption, variables),
        )
        await self.message_sink.send(variables.get(JID_VAR, ""), message)

    async def _send_audio(self, node: FlowNode, payload: SendAudioData, variables: Dict[str, Any]) -> None:
        message = AudioMessage(url=interpolate(payload.url, variables), ptt=payload.ptt)
        await self.message_sink.send(variables.get(JID_VAR, ""), message)

    async def _send_video(self, node: FlowNode, payload: SendVideoData, variables: Dict[str, Any]) -> None:
        message = VideoMessage(
            url=interpolate(payload.url, variables),
            caption=interpolate(payload.caption, variables),
        )
        await self.message_sink.send(variables.get(JID_VAR, ""), message)

    async def _send_poll(self, node: FlowNode, payload: SendPollData, variables: Dict[str, Any]) -> None:
        message = PollMessage(
            name=interpolate(payload.question, variables),
            values=[interpolate(option, variables) for option in split_options(payload.options)],
            selectable_count=0 if payload.multiSelect else 1,
        )
        await self.message_sink.send(variables.get(JID_VAR, ""), message)

    async def _send_buttons(self, node: FlowNode, payload: SendButtonsData, variables: Dict[str, Any]) -> None:
        buttons = [
            Button(button_id=f"btn_{index}", display_text=interpolate(label, variables))
            for index, label in enumerate(split_options(payload.buttons))
        ]
        message = ButtonsMessage(text=interpolate(payload.text, variables), buttons=buttons)
        await self.message_sink.send(variables.get(JID_VAR, ""), message)

    async def _ai_response(self, node: FlowNode, payload: AiResponseData, variables: Dict[str, Any]) -> None:
        prompt = interpolate(payload.prompt or DEFAULT_AI_PROMPT, variables)
        user_message = str(variables.get(MESSAGE_VAR) or "")
        reply = await self.text_responder.respond(prompt, user_message)
        variables[AI_RESPONSE_VAR] = reply
        await self.message_sink.send(variables.get(JID_VAR, ""), TextMessage(text=reply))

    async def _delay(self, node: FlowNode, payload: DelayData, variables: Dict[str, Any]) -> None:
        await self.timer.sleep(parse_delay_seconds(payload.seconds, self.default_delay_seconds))

    async def _condition(self, node: FlowNode, payload: ConditionData, variables: Dict[str, Any]) -> None:
        left = interpolate(payload.left, variables)
        right = interpolate(payload.right, variables)
        variables[CONDITION_RESULT_VAR] = evaluate_condition(left, payload.operator or "==", right)

    async def _set_variable(self, node: FlowNode, payload: SetVariableData, variables: Dict[str, Any]) -> None:
        variables[payload.name or DEFAULT_VARIABLE_NAME] = interpolate(payload.value, variables)

    async def _http_request(self, node: FlowNode, payload: HttpRequestData, variables: Dict[str, Any]) -> None:
        url = interpolate(payload.url, variables)
        method = (payload.method or "GET").upper()
        headers = self._build_headers(payload.headers, variables)
        body = interpolate(payload.body, variables) if payload.body else None

        response = await self.http_client.fetch(url, method, headers, body)
        variables[HTTP_RESPONSE_VAR] = response.body_text
        variables[HTTP_STATUS_VAR] = response.status

    @staticmethod
    def _build_headers(raw: Any, variables: Dict[str, Any]) -> Dict[str, str]:
        """Headers come either as a JSON object template or as an object; malformed JSON raises."""
        if not raw:
            return {}
        if isinstance(raw, dict):
            return {str(key): interpolate(value, variables) for key, value in raw.items()}
        parsed = json.loads(interpolate(raw, variables))
        if not isinstance(parsed, dict):
            raise ValueError("http_request headers must be a JSON object")
        return {str(key): "" if value is None else str(value) for key, value in parsed.items()}
