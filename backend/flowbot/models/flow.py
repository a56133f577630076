# /flowbot/models/flow.py

from enum import Enum
from typing import Any, Dict, List, Optional, Type
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Pydantic models for automation flows as they are stored and edited.
# FlowNode.data stays a loose mapping so stored documents round-trip unchanged;
# FlowNode.payload() gives the typed view the engine works with.


class NodeType(str, Enum):
    TRIGGER = "trigger"
    SEND_TEXT = "send_text"
    SEND_IMAGE = "send_image"
    SEND_AUDIO = "send_audio"
    SEND_VIDEO = "send_video"
    SEND_POLL = "send_poll"
    SEND_BUTTONS = "send_buttons"
    AI_RESPONSE = "ai_response"
    DELAY = "delay"
    CONDITION = "condition"
    SET_VARIABLE = "set_variable"
    HTTP_REQUEST = "http_request"


class TriggerType(str, Enum):
    KEYWORD = "keyword"
    EXACT = "exact"
    STARTS_WITH = "starts_with"
    REGEX = "regex"
    ANY_MESSAGE = "any_message"
    FIRST_MESSAGE = "first_message"
    MEDIA = "media"


# --- Typed node payloads ---

class NodeData(BaseModel):
    """Base for node payloads. Editor-only keys are kept, never required."""
    model_config = ConfigDict(extra="allow")

    @field_validator("*", mode="before")
    @classmethod
    def none_to_default(cls, v, info):
        # The editor writes null for cleared inputs; treat it as "unset".
        if v is None:
            field = cls.model_fields.get(info.field_name)
            if field is not None and not field.is_required():
                return field.get_default(call_default_factory=True)
        return v


class TriggerData(NodeData):
    trigger_type: str = ""
    trigger_value: str = ""


class SendTextData(NodeData):
    text: str = ""


class SendImageData(NodeData):
    url: str = ""
    caption: str = ""


class SendAudioData(NodeData):
    url: str = ""
    ptt: bool = True


class SendVideoData(NodeData):
    url: str = ""
    caption: str = ""


class SendPollData(NodeData):
    question: str = ""
    options: str | List[Any] = ""
    multiSelect: bool = False


class SendButtonsData(NodeData):
    text: str = ""
    buttons: str | List[Any] = ""


class AiResponseData(NodeData):
    prompt: str = ""


class DelayData(NodeData):
    seconds: Any = None


class ConditionData(NodeData):
    left: str = ""
    operator: str = "=="
    right: str = ""


class SetVariableData(NodeData):
    name: str = ""
    value: str = ""


class HttpRequestData(NodeData):
    url: str = ""
    method: str = "GET"
    headers: str | Dict[str, Any] = ""
    body: str = ""


NODE_PAYLOADS: Dict[NodeType, Type[NodeData]] = {
    NodeType.TRIGGER: TriggerData,
    NodeType.SEND_TEXT: SendTextData,
    NodeType.SEND_IMAGE: SendImageData,
    NodeType.SEND_AUDIO: SendAudioData,
    NodeType.SEND_VIDEO: SendVideoData,
    NodeType.SEND_POLL: SendPollData,
    NodeType.SEND_BUTTONS: SendButtonsData,
    NodeType.AI_RESPONSE: AiResponseData,
    NodeType.DELAY: DelayData,
    NodeType.CONDITION: ConditionData,
    NodeType.SET_VARIABLE: SetVariableData,
    NodeType.HTTP_REQUEST: HttpRequestData,
}


def _scalars_to_str(data: Dict[str, Any], payload_cls: Type[NodeData]) -> Dict[str, Any]:
    """Numbers typed into text inputs arrive as JSON numbers; template fields want strings."""
    coerced = dict(data)
    for name, field in payload_cls.model_fields.items():
        value = coerced.get(name)
        if field.annotation is str and isinstance(value, (int, float)) and not isinstance(value, bool):
            coerced[name] = str(value)
    return coerced


# --- Graph ---

class FlowNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[Dict[str, Any]] = None

    @property
    def node_type(self) -> Optional[NodeType]:
        try:
            return NodeType(self.type)
        except ValueError:
            return None

    def payload(self) -> Optional[NodeData]:
        """
        Parses `data` into the typed payload for this node's type.

        Returns:
            The payload model, or None when the node type is not known
        """
        node_type = self.node_type
        if node_type is None:
            return None
        payload_cls = NODE_PAYLOADS[node_type]
        return payload_cls.model_validate(_scalars_to_str(self.data, payload_cls))


class FlowEdge(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    label: Optional[str] = None


class AutomationFlow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = "Novo Fluxo"
    description: str = ""
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    trigger_type: str = TriggerType.KEYWORD.value
    trigger_value: str = ""
    enabled: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("description", "trigger_value", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def trigger_nodes(self) -> List[FlowNode]:
        return [node for node in self.nodes if node.type == NodeType.TRIGGER.value]

    def outgoing_edges(self, node_id: str) -> List[FlowEdge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def to_document(self) -> Dict[str, Any]:
        """
        Serialises the flow for storage. Nodes and edges keep exactly the keys
        the editor sent (sourceHandle, not source_handle) so a save/load cycle
        does not alter them.
        """
        document = self.model_dump(exclude={"nodes", "edges"})
        document["nodes"] = [node.model_dump(by_alias=True, exclude_unset=True) for node in self.nodes]
        document["edges"] = [edge.model_dump(by_alias=True, exclude_unset=True) for edge in self.edges]
        return document


class AutomationFlowUpdate(BaseModel):
    """Partial flow as sent by the editor on save. Only `id` is mandatory."""
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    nodes: Optional[List[FlowNode]] = None
    edges: Optional[List[FlowEdge]] = None
    trigger_type: Optional[str] = None
    trigger_value: Optional[str] = None
    enabled: Optional[bool] = None
