# /flowbot/services/db_service.py

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import ValidationError
from pymongo import DESCENDING, ReturnDocument

from flowbot.config.settings import settings
from flowbot.models.flow import AutomationFlow

logger = logging.getLogger(__name__)

FLOWS_COLLECTION = "automation_flows"
DEFAULT_QUERY_LIMIT = 500


class DatabaseService:
    """
    MongoDB-backed store for automation flows.

    Flows are keyed by their editor-assigned string `id`, not by ObjectId, and
    are listed newest first, which is the order trigger matching relies on.
    """

    def __init__(self, mongo_uri: str, db_name: str):
        try:
            self.client = AsyncIOMotorClient(
                mongo_uri,
                maxPoolSize=settings.max_pool_size,
                minPoolSize=settings.min_pool_size,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000
            )
            self.db = self.client[db_name]
            logger.info("MongoDB client initialized successfully.")
        except Exception as e:
            logger.error(f"Error initializing MongoDB client: {e}")
            raise

    @property
    def flows(self):
        return self.db[FLOWS_COLLECTION]

    async def create_indexes(self):
        """Creates the indexes flow lookups depend on."""
        try:
            await self.flows.create_index("id", unique=True)
            await self.flows.create_index([("enabled", 1), ("created_at", DESCENDING)])
            logger.info("Flow indexes ensured.")
        except Exception as e:
            logger.error(f"Failed to create flow indexes: {e}", exc_info=True)

    # ==================== Helpers ====================

    def _to_flow(self, document: Optional[Dict[str, Any]]) -> Optional[AutomationFlow]:
        """
        Converts a stored document into a flow. A document that no longer
        validates is logged and skipped rather than breaking the listing.
        """
        if not document:
            return None
        document.pop("_id", None)
        try:
            return AutomationFlow.model_validate(document)
        except ValidationError as e:
            logger.error(f"Skipping unreadable flow document {document.get('id')}: {e}")
            return None

    async def _find_flows(self, query: Dict[str, Any]) -> List[AutomationFlow]:
        cursor = self.flows.find(query).sort("created_at", DESCENDING)
        documents = await cursor.to_list(length=DEFAULT_QUERY_LIMIT)
        return [flow for flow in (self._to_flow(doc) for doc in documents) if flow is not None]

    # ==================== Flow store ====================

    async def list_flows(self) -> List[AutomationFlow]:
        return await self._find_flows({})

    async def list_enabled_flows(self) -> List[AutomationFlow]:
        return await self._find_flows({"enabled": True})

    async def get_flow(self, flow_id: str) -> Optional[AutomationFlow]:
        return self._to_flow(await self.flows.find_one({"id": flow_id}))

    async def insert_flow(self, flow: AutomationFlow) -> AutomationFlow:
        await self.flows.insert_one(flow.to_document())
        return flow

    async def update_flow(self, flow_id: str, changes: Dict[str, Any]) -> Optional[AutomationFlow]:
        """
        Applies `changes` to a stored flow and bumps `updated_at`.

        Returns:
            The updated flow, or None if no flow has that id
        """
        changes = {**changes, "updated_at": datetime.utcnow()}
        document = await self.flows.find_one_and_update(
            {"id": flow_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER
        )
        return self._to_flow(document)

    async def delete_flow(self, flow_id: str) -> bool:
        result = await self.flows.delete_one({"id": flow_id})
        return result.deleted_count > 0

    async def set_flow_enabled(self, flow_id: str, enabled: bool) -> bool:
        result = await self.flows.update_one({"id": flow_id}, {"$set": {"enabled": enabled}})
        return result.matched_count > 0


# Globally accessible instance
db_service = DatabaseService(settings.mongo_uri, settings.mongo_db_name)
