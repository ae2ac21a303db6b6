"""Webhook trigger resolver.

External systems POST to /api/webhooks/workflow/<workflow_id> to start a
run. The resolver authenticates the call against the workflow's
``trigger_config`` and builds the run's trigger data.

Checks, in order:
    1. workflow id is a UUID                       -> 400
    2. workflow exists and is a webhook workflow   -> 404
    3. workflow is active                          -> 400
    4. signature present when a secret is set      -> 401
    5. signature matches the raw body              -> 401
    6. caller IP on the allow-list, if one is set  -> 401
"""

import json
from datetime import datetime
from typing import Any, Mapping, Optional

import structlog

from core.constants import TriggerType
from core.exceptions import BadRequestError, NotFoundError, UnauthorizedError
from core.utils import get_client_ip, normalize_uuid, sanitize_headers, utc_now
from core.webhook_signing import get_signature_header, verify_signature
from triggers.base import BaseTriggerResolver, TriggerEvent
from workflow.store import WorkflowDefinition, WorkflowStore

logger = structlog.get_logger(__name__)


def parse_body(body: bytes) -> Any:
    """Parse a webhook body as JSON, falling back to ``{"raw": text}``."""
    if not body:
        return {}
    text = body.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return {"raw": text}


class WebhookTriggerResolver(BaseTriggerResolver):
    """Resolver for webhook-triggered workflows.

    Config schema:
        {
            "secret": "...",                  # optional HMAC-SHA256 secret
            "allowed_ips": ["203.0.113.7"]    # optional caller allow-list
        }
    """

    trigger_type = TriggerType.WEBHOOK

    def __init__(self, store: WorkflowStore):
        self.store = store

    async def load_workflow(self, workflow_id: str) -> WorkflowDefinition:
        """Look up a webhook workflow by id (checks 1 and 2)."""
        canonical_id = normalize_uuid(workflow_id)
        if canonical_id is None:
            raise BadRequestError("Invalid workflow ID format")
        workflow = await self.store.get_workflow(canonical_id)
        if workflow is None or workflow.trigger_type != TriggerType.WEBHOOK.value:
            raise NotFoundError("Webhook workflow not found")
        return workflow

    async def resolve(
        self,
        workflow_id: str,
        body: bytes,
        headers: Mapping[str, str],
        received_at: Optional[datetime] = None,
    ) -> tuple[WorkflowDefinition, TriggerEvent]:
        """Authenticate a webhook call and build its TriggerEvent.

        Args:
            workflow_id: Path parameter of the webhook URL
            body: Raw request body, exactly as received
            headers: Request headers with lower-cased names

        Raises:
            BadRequestError: Malformed id or inactive workflow
            NotFoundError: Unknown or non-webhook workflow
            UnauthorizedError: Signature or IP check failed
        """
        workflow = await self.load_workflow(workflow_id)
        if not workflow.is_active:
            raise BadRequestError("Workflow is not active")

        config = workflow.trigger_config or {}
        secret = config.get("secret")
        if secret:
            signature = get_signature_header(headers)
            if not signature:
                logger.warning("Webhook signature missing", workflow_id=workflow.id)
                raise UnauthorizedError("Missing webhook signature")
            if not verify_signature(body, signature, secret):
                logger.warning("Webhook signature invalid", workflow_id=workflow.id)
                raise UnauthorizedError("Invalid webhook signature")

        allowed_ips = config.get("allowed_ips") or []
        if allowed_ips:
            client_ip = get_client_ip(headers)
            if client_ip not in allowed_ips:
                logger.warning(
                    "Webhook caller not allow-listed",
                    workflow_id=workflow.id,
                    client_ip=client_ip,
                )
                raise UnauthorizedError("IP address not allowed")

        received_at = received_at or utc_now()
        event = TriggerEvent(
            trigger_type=TriggerType.WEBHOOK.value,
            workflow_id=workflow.id,
            organization_id=workflow.organization_id,
            data={
                "is_webhook": True,
                "payload": parse_body(body),
                "headers": sanitize_headers(headers),
                "received_at": received_at.isoformat(),
            },
            timestamp=received_at,
        )
        return workflow, event

    def validate_config(self, config: dict) -> tuple[bool, Optional[str]]:
        """Validate webhook config."""
        is_valid, error = super().validate_config(config)
        if not is_valid:
            return is_valid, error
        secret = config.get("secret")
        if secret is not None and not isinstance(secret, str):
            return False, "secret must be a string"
        allowed_ips = config.get("allowed_ips")
        if allowed_ips is not None and (
            not isinstance(allowed_ips, list)
            or not all(isinstance(ip, str) for ip in allowed_ips)
        ):
            return False, "allowed_ips must be a list of strings"
        return True, None
