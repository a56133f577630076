# /flowbot/services/automation_service.py

import logging
from typing import Any, Dict, List, Mapping, Optional

from flowbot.config.settings import settings
from flowbot.models.flow import AutomationFlow, AutomationFlowUpdate
from flowbot.services.ai_service import ai_service
from flowbot.services.db_service import db_service
from flowbot.services.http_service import http_service
from flowbot.services.interfaces import FlowStore
from flowbot.services.whatsapp_service import whatsapp_service
from flowbot.workflows.actions import ActionDispatcher
from flowbot.workflows.context import VariableContext
from flowbot.workflows.executor import FlowGraphExecutor, RunReport
from flowbot.workflows.matcher import TriggerMatch, find_matching_flow

logger = logging.getLogger(__name__)


class AutomationService:
    """
    Entry point to the flow engine for the rest of the app: trigger matching,
    flow execution, and the CRUD operations the editor uses.
    """

    def __init__(self, flow_store: FlowStore, executor: FlowGraphExecutor):
        self.flow_store = flow_store
        self.executor = executor

    # --- Engine ---

    async def find_matching_flow(self, body: str, is_first_message: bool, has_media: bool) -> Optional[TriggerMatch]:
        """
        Returns the first enabled flow whose trigger matches the message.

        A store failure is logged and treated as "no match" so the caller
        falls back to its default reply.
        """
        try:
            flows = await self.flow_store.list_enabled_flows()
        except Exception as e:
            logger.error(f"Could not load enabled flows: {e}", exc_info=True)
            return None
        return find_matching_flow(flows, body, is_first_message, has_media)

    async def execute_flow(
        self,
        flow: AutomationFlow,
        jid: str,
        message_body: str,
        trigger_node_id: Optional[str] = None,
        initial_vars: Optional[Mapping[str, Any]] = None,
    ) -> Optional[RunReport]:
        """
        Runs `flow` for one inbound message.

        Args:
            flow: The flow to run
            jid: Who the flow talks to
            message_body: The inbound text, exposed as {{_message}}
            trigger_node_id: Entry node; defaults to the flow's first trigger
            initial_vars: Extra variables for this run

        Returns:
            The RunReport, or None if the run failed outside any node
        """
        variables = VariableContext.seed(jid, message_body, initial_vars)
        try:
            return await self.executor.execute(flow, trigger_node_id, variables)
        except Exception as e:
            logger.error(f"Flow {flow.id} aborted for {jid}: {e}", exc_info=True)
            return None

    # --- Flow CRUD ---

    async def get_all(self) -> List[AutomationFlow]:
        return await self.flow_store.list_flows()

    async def get_by_id(self, flow_id: str) -> Optional[AutomationFlow]:
        return await self.flow_store.get_flow(flow_id)

    async def save(self, update: AutomationFlowUpdate) -> Optional[AutomationFlow]:
        """
        Creates the flow or merges the given fields into the stored one.

        On update, fields left out keep their stored values, except `enabled`,
        which is always written (omitted means disabled).
        """
        existing = await self.flow_store.get_flow(update.id)
        if existing is None:
            flow = AutomationFlow(
                id=update.id,
                name=update.name or "Novo Fluxo",
                description=update.description or "",
                nodes=update.nodes or [],
                edges=update.edges or [],
                trigger_type=update.trigger_type or "keyword",
                trigger_value=update.trigger_value or "",
                enabled=bool(update.enabled),
            )
            logger.info(f"Creating flow '{flow.name}' ({flow.id})")
            return await self.flow_store.insert_flow(flow)

        merged = AutomationFlow(
            id=existing.id,
            name=update.name or existing.name,
            description=update.description if update.description is not None else existing.description,
            nodes=update.nodes or [],
            edges=update.edges or [],
            trigger_type=update.trigger_type or existing.trigger_type,
            trigger_value=update.trigger_value if update.trigger_value is not None else existing.trigger_value,
            enabled=bool(update.enabled),
            created_at=existing.created_at,
        )
        changes: Dict[str, Any] = merged.to_document()
        for key in ("id", "created_at", "updated_at"):
            changes.pop(key, None)
        logger.info(f"Updating flow '{merged.name}' ({merged.id})")
        return await self.flow_store.update_flow(existing.id, changes)

    async def remove(self, flow_id: str) -> bool:
        return await self.flow_store.delete_flow(flow_id)

    async def toggle(self, flow_id: str, enabled: bool) -> bool:
        logger.info(f"Flow {flow_id} {'enabled' if enabled else 'disabled'}")
        return await self.flow_store.set_flow_enabled(flow_id, enabled)


def build_automation_service(store: FlowStore = db_service) -> AutomationService:
    dispatcher = ActionDispatcher(
        message_sink=whatsapp_service,
        text_responder=ai_service,
        http_client=http_service,
        default_delay_seconds=settings.default_delay_seconds,
    )
    return AutomationService(store, FlowGraphExecutor(dispatcher))


# Globally accessible instance
automation_service = build_automation_service()
