# /flowbot/workflows/context.py

"""
Per-run variable context and template interpolation.

A VariableContext is created for every triggered run, seeded with the
target jid, the inbound message and the start time, and handed by reference
to every node of that run. It is never shared between runs and never stored.
"""

import re
import time
from typing import Any, Mapping, Optional

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}", re.ASCII)

JID_VAR = "_jid"
MESSAGE_VAR = "_message"
TIMESTAMP_VAR = "_timestamp"
CONDITION_RESULT_VAR = "_conditionResult"
AI_RESPONSE_VAR = "_aiResponse"
HTTP_RESPONSE_VAR = "_httpResponse"
HTTP_STATUS_VAR = "_httpStatus"


class VariableContext(dict):
    """Mutable key/value bag for one flow run."""

    @classmethod
    def seed(
        cls,
        jid: str,
        message_body: str,
        initial_vars: Optional[Mapping[str, Any]] = None,
        timestamp_ms: Optional[int] = None,
    ) -> "VariableContext":
        """
        Builds the context for a new run.

        Caller-supplied variables go in first; the reserved `_jid`, `_message`
        and `_timestamp` keys are written last and always win.
        """
        context = cls(initial_vars or {})
        context[JID_VAR] = jid
        context[MESSAGE_VAR] = message_body
        context[TIMESTAMP_VAR] = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
        return context

    def interpolate(self, template: Any) -> str:
        return interpolate(template, self)


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def interpolate(template: Any, variables: Mapping[str, Any]) -> str:
    """
    Replaces every {{identifier}} in `template` with the matching variable.

    Unknown identifiers and None values render as the empty string. Anything
    that is not a string is rendered first, so this never raises.

    Args:
        template: The user-authored template
        variables: The run's variables

    Returns:
        The interpolated string
    """
    text = _render(template)
    if "{{" not in text:
        return text
    return PLACEHOLDER_PATTERN.sub(lambda match: _render(variables.get(match.group(1))), text)
