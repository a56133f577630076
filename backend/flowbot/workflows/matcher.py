# /flowbot/workflows/matcher.py

"""
Trigger matching.

Decides whether an inbound message activates one of the enabled flows and,
if so, which trigger node fired. Matching is a pure function of the message
and the flows it is given: no I/O, no state.
"""

import re
import logging
from typing import Iterable, NamedTuple, Optional, Tuple

from flowbot.models.flow import AutomationFlow, FlowNode, TriggerType
from flowbot.utils.metrics import trigger_matches_counter

logger = logging.getLogger(__name__)


class TriggerMatch(NamedTuple):
    flow: AutomationFlow
    trigger_node_id: str


def resolve_trigger(node: FlowNode, flow: AutomationFlow) -> Tuple[str, str]:
    """
    Returns (match_type, match_value) for a trigger node.

    The node's own fields win; empty fields fall back to the flow-level
    trigger, and the type finally falls back to keyword.
    """
    data = node.data or {}
    match_type = data.get("trigger_type") or flow.trigger_type or TriggerType.KEYWORD.value
    match_value = data.get("trigger_value") or flow.trigger_value or ""
    return str(match_type), str(match_value)


def match_trigger(
    match_type: str,
    match_value: str,
    message_body: str,
    is_first_message: bool,
    has_media: bool,
) -> bool:
    """
    Evaluates one trigger rule against a message.

    Text rules compare the lower-cased, trimmed message with the lower-cased
    pattern. An invalid regex never matches. Unknown rule types never match.
    """
    message = (message_body or "").lower().strip()
    value = (match_value or "").lower()

    if match_type == TriggerType.KEYWORD:
        return value in message
    if match_type == TriggerType.EXACT:
        return message == value
    if match_type == TriggerType.STARTS_WITH:
        return message.startswith(value)
    if match_type == TriggerType.REGEX:
        try:
            return re.search(value, message, re.IGNORECASE) is not None
        except re.error as e:
            logger.debug(f"Ignoring invalid trigger regex {value!r}: {e}")
            return False
    if match_type == TriggerType.ANY_MESSAGE:
        return True
    if match_type == TriggerType.FIRST_MESSAGE:
        return bool(is_first_message)
    if match_type == TriggerType.MEDIA:
        return bool(has_media)
    return False


def find_matching_flow(
    flows: Iterable[AutomationFlow],
    message_body: str,
    is_first_message: bool,
    has_media: bool,
) -> Optional[TriggerMatch]:
    """
    Finds the first enabled flow with a trigger node that matches the message.

    Flows are scanned in the order given (the store lists newest first) and
    trigger nodes in node order; the first hit wins.

    Args:
        flows: Candidate flows; disabled ones are skipped
        message_body: Raw inbound text
        is_first_message: Whether this is the sender's first message
        has_media: Whether the message carries media

    Returns:
        TriggerMatch(flow, trigger_node_id), or None when nothing matched
    """
    for flow in flows:
        if not flow.enabled:
            continue

        for node in flow.trigger_nodes():
            match_type, match_value = resolve_trigger(node, flow)
            if match_trigger(match_type, match_value, message_body, is_first_message, has_media):
                logger.info(f"Flow '{flow.name}' ({flow.id}) matched via trigger node {node.id} [{match_type}]")
                trigger_matches_counter.labels(match_type=match_type).inc()
                return TriggerMatch(flow=flow, trigger_node_id=node.id)

    return None
