# /flowbot/workflows/validator.py

"""
Structural checks for automation flows.

These checks are advisory: the editor shows them as warnings on save and the
engine never depends on them (a flow with problems still runs, it just does
less than its author intended).

All functions are:
- Pure (no side effects)
- Deterministic (same input = same output)
- No database access
- No logging
"""

import re
from typing import List, Optional, Set, TypedDict

from flowbot.models.flow import AutomationFlow, NodeType, TriggerType
from flowbot.workflows.matcher import resolve_trigger


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[str]
    message: Optional[str]


def _problem(error_code: str, message: str) -> ValidationResult:
    return {"is_valid": False, "error_code": error_code, "message": message}


def validate_has_trigger(flow: AutomationFlow) -> List[ValidationResult]:
    if not flow.trigger_nodes():
        return [_problem("NO_TRIGGER", f"Flow '{flow.name}' has no trigger node and will never run")]
    return []


def validate_node_ids(flow: AutomationFlow) -> List[ValidationResult]:
    seen: Set[str] = set()
    problems = []
    for node in flow.nodes:
        if node.id in seen:
            problems.append(_problem("DUPLICATE_NODE_ID", f"Node id '{node.id}' is used more than once"))
        seen.add(node.id)
    return problems


def validate_node_types(flow: AutomationFlow) -> List[ValidationResult]:
    return [
        _problem("UNKNOWN_NODE_TYPE", f"Node '{node.id}' has unknown type '{node.type}' and will be skipped")
        for node in flow.nodes
        if node.node_type is None
    ]


def validate_edges(flow: AutomationFlow) -> List[ValidationResult]:
    """
    Checks that edges connect existing nodes and that condition nodes only
    branch through "true"/"false" handles.
    """
    node_ids = {node.id for node in flow.nodes}
    condition_ids = {node.id for node in flow.nodes if node.type == NodeType.CONDITION.value}
    problems = []

    for edge in flow.edges:
        for end in (edge.source, edge.target):
            if end not in node_ids:
                problems.append(_problem("DANGLING_EDGE", f"Edge '{edge.id}' references missing node '{end}'"))
        if edge.source in condition_ids and edge.source_handle not in ("true", "false"):
            problems.append(_problem(
                "INVALID_CONDITION_HANDLE",
                f"Edge '{edge.id}' leaves condition node '{edge.source}' without a true/false handle and is never followed"
            ))

    return problems


def validate_trigger_patterns(flow: AutomationFlow) -> List[ValidationResult]:
    problems = []
    for node in flow.trigger_nodes():
        match_type, match_value = resolve_trigger(node, flow)
        if match_type != TriggerType.REGEX:
            continue
        try:
            re.compile(match_value.lower(), re.IGNORECASE)
        except re.error as e:
            problems.append(_problem("INVALID_REGEX", f"Trigger node '{node.id}' has an invalid regex: {e}"))
    return problems


def validate_flow(flow: AutomationFlow) -> List[ValidationResult]:
    """
    Runs every structural check on a flow.

    Args:
        flow: The flow to check

    Returns:
        The problems found; an empty list means the flow is well formed
    """
    return (
        validate_has_trigger(flow)
        + validate_node_ids(flow)
        + validate_node_types(flow)
        + validate_edges(flow)
        + validate_trigger_patterns(flow)
    )
