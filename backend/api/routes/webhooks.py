"""Inbound workflow webhooks.

Mounted without version prefix at /api/webhooks so the URLs handed to
third parties stay stable. Authentication is per workflow (HMAC secret
and/or IP allow-list), not by bearer token.
"""

import logging

from fastapi import APIRouter, Depends, Request, status

from api.schemas.run import WebhookAcceptedResponse, WebhookInfoResponse
from app.config import get_settings
from app.dependencies import get_trigger_manager
from core.constants import SIGNATURE_HEADERS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/workflow/{workflow_id}",
    response_model=WebhookAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def receive_workflow_webhook(
    workflow_id: str,
    request: Request,
    trigger_manager=Depends(get_trigger_manager),
) -> WebhookAcceptedResponse:
    """
    Trigger a webhook workflow. The run starts in the background.

    The signature (if the workflow has a secret) is checked against the
    raw body before it is parsed.
    """
    body = await request.body()
    workflow, event = await trigger_manager.fire_webhook(
        workflow_id, body, dict(request.headers)
    )
    return WebhookAcceptedResponse(
        workflow_id=workflow.id,
        workflow_name=workflow.name,
        triggered_at=event.timestamp,
    )


@router.get("/workflow/{workflow_id}", response_model=WebhookInfoResponse)
async def get_workflow_webhook_info(
    workflow_id: str,
    request: Request,
    trigger_manager=Depends(get_trigger_manager),
) -> WebhookInfoResponse:
    """
    Describe how to call a workflow's webhook. No side effects.
    """
    workflow = await trigger_manager.webhooks.load_workflow(workflow_id)
    config = workflow.trigger_config or {}
    signature_required = bool(config.get("secret"))

    base_url = get_settings().WEBHOOK_BASE_URL or str(request.base_url).rstrip("/")
    headers = {"Content-Type": "application/json"}
    if signature_required:
        headers[SIGNATURE_HEADERS[0]] = "<hex HMAC-SHA256 of the raw body>"

    return WebhookInfoResponse(
        workflow_id=workflow.id,
        name=workflow.name,
        is_active=workflow.is_active,
        trigger_type=workflow.trigger_type,
        endpoint=f"{base_url}/api/webhooks/workflow/{workflow.id}",
        signature_required=signature_required,
        headers=headers,
    )
