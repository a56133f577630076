# /flowbot/workflows/executor.py

"""
Flow graph execution.

Walks a flow's node/edge graph depth-first from a trigger node:
- Each node executes at most once per run (the visited set is the only
  cycle guard, so a cycle runs once around and stops)
- Condition nodes follow only the edge whose handle matches the result
- Every other node follows all of its outgoing edges, in edge order
- Sibling branches run one after the other, never in parallel
- A failing node is logged and the walk carries on

The variable context and visited set are created per run and passed down
explicitly; nothing here is shared between runs.
"""

import time
import logging
from typing import Any, Dict, List, Optional, Set, TypedDict

from flowbot.models.flow import AutomationFlow, FlowEdge, FlowNode, NodeType
from flowbot.utils.metrics import flow_run_duration_histogram, flow_runs_counter
from flowbot.workflows.actions import ActionDispatcher, NodeResult
from flowbot.workflows.context import CONDITION_RESULT_VAR

logger = logging.getLogger(__name__)


class RunReport(TypedDict):
    """What happened during one run."""
    flow_id: str
    visited: List[str]
    failed: List[NodeResult]


def resolve_start_node(flow: AutomationFlow, start_node_id: Optional[str]) -> Optional[str]:
    """Returns `start_node_id`, or the flow's first trigger node when it is empty."""
    if start_node_id:
        return start_node_id
    triggers = flow.trigger_nodes()
    return triggers[0].id if triggers else None


def select_edges(node: FlowNode, edges: List[FlowEdge], variables: Dict[str, Any]) -> List[FlowEdge]:
    """
    Picks the outgoing edges to follow after `node` has executed.

    Condition nodes keep only the edges whose handle is "true" or "false"
    matching the stored result; an edge without a handle is not followed.
    """
    if node.type != NodeType.CONDITION.value:
        return list(edges)
    branch = "true" if variables.get(CONDITION_RESULT_VAR) else "false"
    return [edge for edge in edges if edge.source_handle == branch]


class FlowGraphExecutor:
    def __init__(self, dispatcher: ActionDispatcher):
        self.dispatcher = dispatcher

    async def execute(
        self,
        flow: AutomationFlow,
        start_node_id: Optional[str],
        variables: Dict[str, Any],
    ) -> RunReport:
        """
        Runs `flow` from `start_node_id` against `variables`.

        Args:
            flow: The flow to run; it is only read
            start_node_id: Entry node; defaults to the first trigger node
            variables: The run's variable context, mutated in place

        Returns:
            RunReport with the visit order and the nodes that failed
        """
        report: RunReport = {"flow_id": flow.id, "visited": [], "failed": []}

        start = resolve_start_node(flow, start_node_id)
        if start is None:
            logger.debug(f"Flow {flow.id} has no trigger node; nothing to run.")
            flow_runs_counter.labels(status="no_entry").inc()
            return report

        started = time.perf_counter()
        await self._walk(flow, start, variables, report)
        flow_run_duration_histogram.observe(time.perf_counter() - started)

        status = "partial" if report["failed"] else "success"
        flow_runs_counter.labels(status=status).inc()
        logger.info(
            f"Flow '{flow.name}' ({flow.id}) finished: {len(report['visited'])} nodes, "
            f"{len(report['failed'])} failed"
        )
        return report

    async def _walk(
        self,
        flow: AutomationFlow,
        start: str,
        variables: Dict[str, Any],
        report: RunReport,
    ) -> None:
        # Targets are pushed in reverse so the first edge is popped first,
        # which keeps the order of a recursive depth-first walk.
        visited: Set[str] = set()
        pending: List[str] = [start]
        while pending:
            node_id = pending.pop()
            if node_id in visited:
                continue
            visited.add(node_id)

            node = flow.get_node(node_id)
            if node is None:
                logger.debug(f"Flow {flow.id}: edge points at missing node {node_id}")
                continue

            report["visited"].append(node.id)
            result = await self.dispatcher.execute(node, variables)
            if not result["ok"]:
                report["failed"].append(result)
                logger.error(f"Flow {flow.id}: node {node.id} ({node.type}) failed: {result['error']}")

            edges = select_edges(node, flow.outgoing_edges(node_id), variables)
            pending.extend(edge.target for edge in reversed(edges))
