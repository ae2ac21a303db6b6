"""Celery task that fires schedule-triggered workflows.

Celery Beat calls ``poll_schedules`` every SCHEDULE_POLL_SECONDS. Each tick
loads the active schedule workflows, starts the ones whose window contains
the current time and waits up to SCHEDULE_DRAIN_SECONDS for those runs.
Runs still going after that are cancelled, which records them as failed,
so no run is left ``running`` when the task's event loop closes.

A failed tick is not retried: the next beat tick re-evaluates every
schedule, and a workflow that already ran inside the current window is not
started again (``last_run_at`` is stamped when a run is created).
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from core.logging_config import bind_request_context
from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="workflows.poll_schedules", bind=True, queue="triggers")
def poll_schedules(self):
    """Check for due schedules and run their workflows."""
    bind_request_context(self.request.id or "beat", task=self.name)
    logger.info("[schedule-poller] Polling schedule workflows...")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        result = loop.run_until_complete(run_schedule_tick())
        logger.info("[schedule-poller] Done: %s", result)
        return result
    except Exception as exc:
        logger.error("[schedule-poller] Polling failed: %s", exc, exc_info=True)
        raise
    finally:
        close_loop(loop)


def close_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel whatever is still scheduled on ``loop``, let it unwind, then close."""
    leftovers = asyncio.all_tasks(loop)
    for task in leftovers:
        task.cancel()
    if leftovers:
        loop.run_until_complete(asyncio.gather(*leftovers, return_exceptions=True))
    loop.close()


async def run_schedule_tick(now: Optional[datetime] = None, session_factory=None) -> dict:
    """Run one schedule tick against a task-local database engine.

    Args:
        now: Tick time (defaults to the current UTC time)
        session_factory: Use this instead of a task-local engine
    """
    if session_factory is not None:
        return await _tick(session_factory, now)

    from db.worker_session import worker_session_factory

    async with worker_session_factory() as factory:
        return await _tick(factory, now)


async def _tick(session_factory, now: Optional[datetime]) -> dict:
    from app.config import get_settings
    from app.main import build_step_resources
    from services.workflow_store import SqlWorkflowStore
    from steps.registry import StepExecutorRegistry
    from triggers.manager import TriggerManager
    from workflow.dispatch import RunDispatcher
    from workflow.engine import WorkflowEngine

    settings = get_settings()
    resources = build_step_resources(settings, session_factory)
    engine = WorkflowEngine(
        SqlWorkflowStore(session_factory),
        StepExecutorRegistry(),
        resources,
        settings,
    )
    dispatcher = RunDispatcher()
    manager = TriggerManager(engine, dispatcher)

    try:
        fired = await manager.process_schedule_tick(now)
        await dispatcher.drain(timeout=settings.SCHEDULE_DRAIN_SECONDS)
        interrupted = await dispatcher.cancel_pending()
        if interrupted:
            logger.warning("[schedule-poller] Cancelled %d run(s) still going after %ss",
                           interrupted, settings.SCHEDULE_DRAIN_SECONDS)
    finally:
        await resources.ai.close()

    return {"fired": len(fired), "workflow_ids": fired, "interrupted": interrupted}
