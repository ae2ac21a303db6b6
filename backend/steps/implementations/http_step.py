"""Outbound webhook step (webhook_call).

Calls a third-party HTTP endpoint with a bounded timeout. Responses
outside 2xx fail the step.
"""

import ipaddress
import json
from typing import Any, Dict, Literal, Optional
from urllib.parse import urlparse

import httpx
import structlog
from pydantic import BaseModel, Field

from core.exceptions import StepConfigurationError
from steps.base_step import BaseStepExecutor, StepOutcome
from workflow.context import RunContext

logger = structlog.get_logger(__name__)

FORBIDDEN_PORTS = (5432, 6379)  # postgres, redis


def _is_private_ip(ip_str: str) -> bool:
    """Check if an IP address is private, loopback, link-local or reserved."""
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return ip.is_private or ip.is_loopback or ip.is_reserved or ip.is_link_local


def validate_url_safety(url: str) -> None:
    """Reject URLs that would reach internal infrastructure.

    Raises:
        StepConfigurationError: If the URL is unsafe
    """
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https"):
        raise StepConfigurationError(
            f"Unsupported scheme: {parsed.scheme or '(none)'}. Only HTTP and HTTPS allowed."
        )

    hostname = parsed.hostname
    if not hostname:
        raise StepConfigurationError("URL must have a valid hostname")
    if hostname.lower() in ("localhost", "localhost.localdomain"):
        raise StepConfigurationError("Connections to localhost are not allowed")
    if _is_private_ip(hostname):
        raise StepConfigurationError(f"Connections to private IP {hostname} are not allowed")
    if parsed.port in FORBIDDEN_PORTS:
        raise StepConfigurationError(f"Connections to internal port {parsed.port} are not allowed")


class WebhookCallConfig(BaseModel):
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    body_template: Optional[Any] = None
    output_field: Optional[str] = None
    timeout_ms: int = Field(10000, ge=1000, le=30000)


class WebhookCallStep(BaseStepExecutor):
    """Call an external HTTP endpoint.

    Config:
        url: Target URL (http/https, public hosts only)
        method: GET, POST, PUT, PATCH or DELETE (default POST)
        headers: Extra request headers
        body_template: Request body; dicts/lists and JSON strings go out as JSON
        output_field: Key under which the response body is exposed (default 'response')
        timeout_ms: 1000-30000 (default 10000)
    """

    action_type = "webhook_call"
    display_name = "Call Webhook"
    description = "Send an HTTP request to an external service"
    is_external = True
    config_model = WebhookCallConfig

    async def execute(self, config: WebhookCallConfig, context: RunContext) -> StepOutcome:
        validate_url_safety(config.url)

        request_kwargs: Dict[str, Any] = {"headers": dict(config.headers)}
        body = config.body_template
        if config.method != "GET" and body not in (None, ""):
            if isinstance(body, str):
                try:
                    request_kwargs["json"] = json.loads(body)
                except json.JSONDecodeError:
                    request_kwargs["content"] = body.encode()
            else:
                request_kwargs["json"] = body

        timeout = config.timeout_ms / 1000
        factory = context.resources.http_client_factory
        client = factory(timeout) if factory else httpx.AsyncClient(timeout=timeout)

        try:
            async with client:
                response = await client.request(config.method, config.url, **request_kwargs)
        except httpx.TimeoutException:
            return StepOutcome.fail(f"Webhook call timed out after {config.timeout_ms}ms")
        except httpx.HTTPError as e:
            return StepOutcome.fail(f"Webhook call failed: {e}")

        try:
            data: Any = response.json()
        except ValueError:
            data = response.text

        output = {
            "status_code": response.status_code,
            config.output_field or "response": data,
        }
        if not response.is_success:
            logger.warning(
                "Webhook call returned error status",
                url=config.url,
                status_code=response.status_code,
            )
            return StepOutcome.fail(f"Webhook returned HTTP {response.status_code}", output=output)
        return StepOutcome.ok(output)


HTTP_STEP_TYPES = {
    "webhook_call": WebhookCallStep,
}
