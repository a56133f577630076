# /flowbot/routes/automation.py

import structlog
from fastapi import APIRouter, HTTPException, status

from flowbot.config.settings import settings
from flowbot.models.api import APIResponse, ToggleRequest
from flowbot.models.flow import AutomationFlowUpdate
from flowbot.services.automation_service import automation_service
from flowbot.workflows.validator import validate_flow

# CRUD endpoints used by the flow editor.

router = APIRouter(
    prefix="/automation",
    tags=["Automation"]
)

log = structlog.get_logger(__name__)


@router.get("", response_model=APIResponse)
async def list_flows():
    """List every flow, newest first."""
    flows = await automation_service.get_all()
    return APIResponse(
        success=True,
        message="Flows retrieved successfully",
        data={"flows": [flow.to_document() for flow in flows]},
        version=settings.api_version
    )


@router.get("/{flow_id}", response_model=APIResponse)
async def get_flow(flow_id: str):
    flow = await automation_service.get_by_id(flow_id)
    if flow is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flow not found")
    return APIResponse(
        success=True,
        message="Flow retrieved successfully",
        data={"flow": flow.to_document()},
        version=settings.api_version
    )


@router.post("", response_model=APIResponse)
async def save_flow(update: AutomationFlowUpdate):
    """Create or update a flow. Structural problems come back as warnings; the flow is saved regardless."""
    flow = await automation_service.save(update)
    if flow is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flow not found")
    warnings = validate_flow(flow)
    log.info("Flow saved", flow_id=flow.id, warnings=len(warnings))
    return APIResponse(
        success=True,
        message="Flow saved successfully",
        data={"flow": flow.to_document(), "warnings": warnings},
        version=settings.api_version
    )


@router.delete("/{flow_id}", response_model=APIResponse)
async def delete_flow(flow_id: str):
    if not await automation_service.remove(flow_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flow not found")
    log.info("Flow deleted", flow_id=flow_id)
    return APIResponse(success=True, message="Flow deleted successfully", version=settings.api_version)


@router.patch("/{flow_id}/toggle", response_model=APIResponse)
async def toggle_flow(flow_id: str, request: ToggleRequest):
    if not await automation_service.toggle(flow_id, request.enabled):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flow not found")
    return APIResponse(
        success=True,
        message="Flow enabled" if request.enabled else "Flow disabled",
        data={"id": flow_id, "enabled": request.enabled},
        version=settings.api_version
    )
