# backend/tests/integration/test_api.py
from unittest.mock import AsyncMock

from flowbot.config.settings import settings
from flowbot.models.flow import AutomationFlow

API_PREFIX = f"/api/{settings.api_version}"


def sample_flow(**fields):
    return AutomationFlow.model_validate({
        "id": "flow-1",
        "name": "Boas-vindas",
        "enabled": True,
        "nodes": [
            {"id": "t", "type": "trigger", "data": {"trigger_type": "keyword", "trigger_value": "oi"},
             "position": {"x": 10, "y": 20}},
            {"id": "c", "type": "condition", "data": {"left": "{{_message}}", "operator": "contains", "right": "x"}},
        ],
        "edges": [
            {"id": "e1", "source": "t", "target": "c"},
            {"id": "e2", "source": "c", "target": "t", "sourceHandle": "true", "label": "loop"},
        ],
        **fields,
    })


def test_health(test_client):
    response = test_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_metrics_exposes_flow_counters(test_client):
    response = test_client.get("/metrics")
    assert response.status_code == 200
    assert "flow_runs_total" in response.text


def test_webhook_verification_success(test_client):
    params = {
        "hub.mode": "subscribe", "hub.challenge": "12345",
        "hub.verify_token": settings.whatsapp_verify_token
    }
    response = test_client.get(f"{API_PREFIX}/webhooks/whatsapp", params=params)
    assert response.status_code == 200
    assert response.text == "12345"


def test_webhook_verification_failure(test_client):
    params = {"hub.mode": "subscribe", "hub.challenge": "12345", "hub.verify_token": "wrong_token"}
    response = test_client.get(f"{API_PREFIX}/webhooks/whatsapp", params=params)
    assert response.status_code == 403


def test_webhook_schedules_each_message(test_client, mocker):
    mock_handle = mocker.patch("flowbot.routes.webhooks.message_handler.handle_message", new_callable=AsyncMock)

    payload = {"entry": [{"changes": [
        {"field": "statuses", "value": {}},
        {"field": "messages", "value": {
            "metadata": {"phone_number_id": settings.whatsapp_phone_id},
            "messages": [
                {"from": "5511999998888", "id": "wamid.1", "type": "text", "text": {"body": "qual o preço?"}},
                {"id": "wamid.2", "type": "text", "text": {"body": "no sender"}},
            ],
        }},
    ]}]}
    response = test_client.post(f"{API_PREFIX}/webhooks/whatsapp", json=payload)

    assert response.status_code == 200
    assert response.json() == {"status": "success", "scheduled": 1}
    mock_handle.assert_called_once()
    inbound = mock_handle.call_args.args[0]
    assert (inbound.jid, inbound.body) == ("5511999998888", "qual o preço?")


def test_webhook_ignores_other_phone_ids(test_client, mocker):
    mock_handle = mocker.patch("flowbot.routes.webhooks.message_handler.handle_message", new_callable=AsyncMock)
    payload = {"entry": [{"changes": [{"field": "messages", "value": {
        "metadata": {"phone_number_id": "999"},
        "messages": [{"from": "1", "type": "text", "text": {"body": "oi"}}],
    }}]}]}

    response = test_client.post(f"{API_PREFIX}/webhooks/whatsapp", json=payload)
    assert response.json()["scheduled"] == 0
    mock_handle.assert_not_called()


def test_list_flows_preserves_editor_json(test_client, mocker):
    mocker.patch("flowbot.routes.automation.automation_service.get_all",
                 new_callable=AsyncMock, return_value=[sample_flow()])

    response = test_client.get(f"{API_PREFIX}/automation")
    assert response.status_code == 200
    flow = response.json()["data"]["flows"][0]
    assert flow["edges"] == [
        {"id": "e1", "source": "t", "target": "c"},
        {"id": "e2", "source": "c", "target": "t", "sourceHandle": "true", "label": "loop"},
    ]
    assert flow["nodes"][0]["position"] == {"x": 10, "y": 20}
    assert "position" not in flow["nodes"][1]


def test_get_unknown_flow_is_404(test_client, mocker):
    mocker.patch("flowbot.routes.automation.automation_service.get_by_id", new_callable=AsyncMock, return_value=None)
    response = test_client.get(f"{API_PREFIX}/automation/missing")
    assert response.status_code == 404


def test_save_flow_returns_warnings(test_client, mocker):
    saved = sample_flow()
    mock_save = mocker.patch("flowbot.routes.automation.automation_service.save",
                             new_callable=AsyncMock, return_value=saved)

    response = test_client.post(f"{API_PREFIX}/automation", json=saved.model_dump(mode="json", by_alias=True, exclude={"created_at", "updated_at"}))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["warnings"] == []
    assert mock_save.await_args.args[0].id == "flow-1"


def test_toggle_and_delete(test_client, mocker):
    mocker.patch("flowbot.routes.automation.automation_service.toggle", new_callable=AsyncMock, return_value=True)
    mocker.patch("flowbot.routes.automation.automation_service.remove", new_callable=AsyncMock, return_value=False)

    response = test_client.patch(f"{API_PREFIX}/automation/flow-1/toggle", json={"enabled": False})
    assert response.status_code == 200
    assert response.json()["data"] == {"id": "flow-1", "enabled": False}

    response = test_client.delete(f"{API_PREFIX}/automation/flow-1")
    assert response.status_code == 404
