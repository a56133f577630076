import os
import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from dotenv import load_dotenv

# Load the test environment FIRST, before any flowbot imports, so the
# settings object is built from it.
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), "..", ".env.test"))

from flowbot.models.flow import AutomationFlow  # noqa: E402
from flowbot.services.interfaces import HttpResponse  # noqa: E402
from flowbot.workflows.actions import ActionDispatcher  # noqa: E402
from flowbot.workflows.executor import FlowGraphExecutor  # noqa: E402


class RecordingSink:
    """Message sink that records what would have been sent."""

    def __init__(self):
        self.sent = []

    async def send(self, jid, message):
        self.sent.append((jid, message))

    @property
    def texts(self):
        return [message.text for _, message in self.sent if message.kind == "text"]


class FakeTimer:
    def __init__(self):
        self.sleeps = []

    async def sleep(self, seconds):
        self.sleeps.append(seconds)


class InMemoryFlowStore:
    """Flow store backed by a list, newest first like the real one."""

    def __init__(self, flows=None):
        self.flows = list(flows or [])

    async def list_enabled_flows(self):
        return [flow for flow in self.flows if flow.enabled]

    async def list_flows(self):
        return list(self.flows)

    async def get_flow(self, flow_id):
        return next((flow for flow in self.flows if flow.id == flow_id), None)

    async def insert_flow(self, flow):
        self.flows.insert(0, flow)
        return flow

    async def update_flow(self, flow_id, changes):
        for index, flow in enumerate(self.flows):
            if flow.id == flow_id:
                updated = AutomationFlow.model_validate({**flow.to_document(), **changes})
                self.flows[index] = updated
                return updated
        return None

    async def delete_flow(self, flow_id):
        before = len(self.flows)
        self.flows = [flow for flow in self.flows if flow.id != flow_id]
        return len(self.flows) < before

    async def set_flow_enabled(self, flow_id, enabled):
        for flow in self.flows:
            if flow.id == flow_id:
                flow.enabled = enabled
                return True
        return False


def build_flow(nodes, edges=(), **fields):
    """
    Builds a flow from compact tuples:
    nodes as (id, type, data) and edges as (source, target) or (source, target, handle).
    """
    edge_docs = []
    for index, edge in enumerate(edges):
        doc = {"id": f"e{index}", "source": edge[0], "target": edge[1]}
        if len(edge) > 2:
            doc["sourceHandle"] = edge[2]
        edge_docs.append(doc)
    document = {
        "id": fields.pop("id", "flow-1"),
        "name": fields.pop("name", "Test flow"),
        "enabled": fields.pop("enabled", True),
        "nodes": [{"id": node_id, "type": node_type, "data": data} for node_id, node_type, data in nodes],
        "edges": edge_docs,
        **fields,
    }
    return AutomationFlow.model_validate(document)


@pytest.fixture
def make_flow():
    return build_flow


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def responder():
    return AsyncMock(respond=AsyncMock(return_value="AI says hi"))


@pytest.fixture
def http_client():
    return AsyncMock(fetch=AsyncMock(return_value=HttpResponse(status=200, body_text='{"ok": true}')))


@pytest.fixture
def dispatcher(sink, responder, http_client, timer):
    return ActionDispatcher(sink, responder, http_client, timer)


@pytest.fixture
def executor(dispatcher):
    return FlowGraphExecutor(dispatcher)


@pytest.fixture
def flow_store():
    return InMemoryFlowStore()


@pytest.fixture(scope="function")
def test_client(mocker):
    """
    Provides a TestClient for API tests without touching MongoDB on startup.
    """
    mocker.patch("flowbot.utils.lifecycle.db_service.create_indexes", new_callable=AsyncMock)
    mocker.patch("flowbot.utils.lifecycle.whatsapp_service.close", new_callable=AsyncMock)
    mocker.patch("flowbot.utils.lifecycle.http_service.close", new_callable=AsyncMock)

    from flowbot.main import app
    with TestClient(app) as client:
        yield client
