"""Flowline Workflow Engine - FastAPI Application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import health, webhooks
from api.v1.router import api_v1_router
from app.config import get_settings
from core.logging_config import setup_logging
from core.middleware import (
    RequestTrackingMiddleware,
    SecurityHeadersMiddleware,
    setup_exception_handlers,
)
from core.rate_limit import Limit, RateLimitMiddleware
from db import database
from integrations.claude_client import ClaudeClient
from notifications.channels import EmailChannel, SlackChannel
from services.audit_service import AuditService
from services.workflow_store import SqlWorkflowStore
from steps.registry import StepExecutorRegistry
from triggers.manager import TriggerManager
from workflow.context import StepResources
from workflow.dispatch import RunDispatcher
from workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 30


def rate_limits(settings) -> dict[str, Limit]:
    """Per-group limits from settings; a group set to 0 is not limited."""
    per_minute = {
        "webhook": settings.RATE_LIMIT_WEBHOOK_PER_MINUTE,
        "write": settings.RATE_LIMIT_WRITE_PER_MINUTE,
        "read": settings.RATE_LIMIT_READ_PER_MINUTE,
    }
    return {group: Limit(n, 60) for group, n in per_minute.items() if n > 0}


def build_step_resources(settings, session_factory) -> StepResources:
    """Collaborators for step executors, built from settings."""
    return StepResources(
        session_factory=session_factory,
        settings=settings,
        ai=ClaudeClient(settings),
        mailer=EmailChannel(settings),
        slack=SlackChannel(settings),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    setup_logging()

    # Refuse to start in production with default secrets
    settings.validate_secrets()

    await init_database()

    resources: StepResources = app.state.workflow_engine.resources
    if resources.ai is not None and resources.ai.is_configured:
        logger.info("Claude AI configured (model: %s)", settings.CLAUDE_MODEL)
    else:
        logger.info("Claude AI not configured (set ANTHROPIC_API_KEY to enable ai_* steps)")

    logger.info(
        "%s v%s started (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT
    )
    yield

    await app.state.dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    if resources.ai is not None:
        await resources.ai.close()
    await database.close_db()
    logger.info("Application shut down")


async def init_database() -> None:
    await database.init_db()


def create_app(resources: Optional[StepResources] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        resources: Step collaborators; built from settings when omitted
    """
    settings = get_settings()
    session_factory = database.AsyncSessionLocal

    registry = StepExecutorRegistry()
    # Every action type must have an executor before we accept traffic
    registry.validate()

    store = SqlWorkflowStore(session_factory)
    engine = WorkflowEngine(
        store,
        registry,
        resources or build_step_resources(settings, session_factory),
        settings,
    )
    dispatcher = RunDispatcher()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Multi-tenant workflow automation: triggers, ordered action steps, run history.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.workflow_store = store
    app.state.workflow_engine = engine
    app.state.dispatcher = dispatcher
    app.state.trigger_manager = TriggerManager(engine, dispatcher)
    app.state.audit_service = AuditService(session_factory)

    app.add_middleware(RateLimitMiddleware, limits=rate_limits(settings))
    app.add_middleware(RequestTrackingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-Request-ID",
            "X-Webhook-Signature",
            "X-Signature",
        ],
    )

    setup_exception_handlers(app)

    # Unversioned: load balancer health checks and third-party webhook URLs
    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])

    # Versioned API: all authenticated endpoints under /api/v1
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()
