"""Workflow endpoints: CRUD, activation, test runs and run history."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import MessageResponse
from api.schemas.run import RunListResponse, RunResponse
from api.schemas.workflow import (
    TestRunRequest,
    WorkflowCreate,
    WorkflowListResponse,
    WorkflowResponse,
    WorkflowUpdate,
)
from app.dependencies import get_db, get_trigger_manager, get_workflow_store
from core.constants import AuditAction, RunStatus
from core.exceptions import BadRequestError, NotFoundError
from core.rbac import require_admin, require_workflow_feature, require_workflow_manager
from core.security import TokenPayload
from services.workflow_service import WorkflowService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workflows"])

MAX_PAGE_SIZE = 100


def get_workflow_service(
    db: AsyncSession = Depends(get_db),
    trigger_manager=Depends(get_trigger_manager),
) -> WorkflowService:
    return WorkflowService(db, trigger_manager.engine.registry, trigger_manager.validate_config)


async def _audit(request: Request, user: TokenPayload, workflow_id: str, action: AuditAction, values=None):
    await request.app.state.audit_service.record(
        organization_id=user.org_id,
        user_id=user.sub,
        resource_type="workflow",
        resource_id=workflow_id,
        action=action,
        new_values=values,
    )


@router.get("/catalog")
async def get_catalog(
    current_user: TokenPayload = Depends(require_workflow_feature),
    trigger_manager=Depends(get_trigger_manager),
) -> dict:
    """
    Action types (with config schemas) and trigger types for the builder.
    """
    return {
        "action_types": trigger_manager.engine.registry.list_all(),
        "trigger_types": trigger_manager.get_supported_types(),
    }


@router.get("", response_model=WorkflowListResponse)
async def list_workflows(
    trigger_type: Optional[str] = Query(default=None),
    is_active: Optional[bool] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    current_user: TokenPayload = Depends(require_workflow_feature),
    svc: WorkflowService = Depends(get_workflow_service),
) -> WorkflowListResponse:
    """
    List workflows in the current organization (paginated).
    """
    workflows, total = await svc.list_workflows(
        current_user.org_id,
        trigger_type=trigger_type,
        is_active=is_active,
        offset=offset,
        limit=limit,
    )
    return WorkflowListResponse(
        data=[WorkflowResponse.model_validate(wf) for wf in workflows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    body: WorkflowCreate,
    request: Request,
    current_user: TokenPayload = Depends(require_workflow_manager()),
    _feature: TokenPayload = Depends(require_workflow_feature),
    db: AsyncSession = Depends(get_db),
    svc: WorkflowService = Depends(get_workflow_service),
) -> WorkflowResponse:
    """
    Create a workflow. New workflows start inactive.
    """
    wf = await svc.create_workflow(
        organization_id=current_user.org_id,
        created_by_id=current_user.sub,
        name=body.name,
        description=body.description,
        trigger_type=body.trigger_type,
        trigger_config=body.trigger_config,
        steps=[s.model_dump() for s in body.steps],
    )
    response = WorkflowResponse.model_validate(wf)
    await db.commit()
    await _audit(request, current_user, wf.id, AuditAction.CREATE, {"name": wf.name})
    return response


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(
    workflow_id: str,
    current_user: TokenPayload = Depends(require_workflow_feature),
    svc: WorkflowService = Depends(get_workflow_service),
) -> WorkflowResponse:
    """
    Get a workflow with its steps.
    """
    wf = await svc.get_workflow(workflow_id, current_user.org_id)
    return WorkflowResponse.model_validate(wf)


@router.put("/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow(
    workflow_id: str,
    body: WorkflowUpdate,
    request: Request,
    current_user: TokenPayload = Depends(require_workflow_manager()),
    _feature: TokenPayload = Depends(require_workflow_feature),
    db: AsyncSession = Depends(get_db),
    svc: WorkflowService = Depends(get_workflow_service),
) -> WorkflowResponse:
    """
    Update a workflow. When ``steps`` is given it replaces every step.
    """
    updates = body.model_dump(exclude_unset=True)
    if "steps" in updates and body.steps is not None:
        updates["steps"] = [s.model_dump() for s in body.steps]
    wf = await svc.update_workflow(workflow_id, current_user.org_id, updates)
    response = WorkflowResponse.model_validate(wf)
    await db.commit()
    await _audit(request, current_user, workflow_id, AuditAction.UPDATE, {"fields": sorted(updates)})
    return response


@router.delete("/{workflow_id}", response_model=MessageResponse)
async def delete_workflow(
    workflow_id: str,
    request: Request,
    current_user: TokenPayload = Depends(require_admin()),
    _feature: TokenPayload = Depends(require_workflow_feature),
    db: AsyncSession = Depends(get_db),
    svc: WorkflowService = Depends(get_workflow_service),
) -> MessageResponse:
    """
    Delete a workflow that has never run (admin only).
    """
    await svc.delete_workflow(workflow_id, current_user.org_id)
    await db.commit()
    await _audit(request, current_user, workflow_id, AuditAction.DELETE)
    return MessageResponse(message="Workflow deleted")


@router.post("/{workflow_id}/activate", response_model=WorkflowResponse)
async def activate_workflow(
    workflow_id: str,
    request: Request,
    current_user: TokenPayload = Depends(require_workflow_manager()),
    _feature: TokenPayload = Depends(require_workflow_feature),
    db: AsyncSession = Depends(get_db),
    svc: WorkflowService = Depends(get_workflow_service),
) -> WorkflowResponse:
    """
    Allow triggers to start runs of this workflow.
    """
    wf = await svc.set_active(workflow_id, current_user.org_id, True)
    response = WorkflowResponse.model_validate(wf)
    await db.commit()
    await _audit(request, current_user, workflow_id, AuditAction.ACTIVATE)
    return response


@router.post("/{workflow_id}/deactivate", response_model=WorkflowResponse)
async def deactivate_workflow(
    workflow_id: str,
    request: Request,
    current_user: TokenPayload = Depends(require_workflow_manager()),
    _feature: TokenPayload = Depends(require_workflow_feature),
    db: AsyncSession = Depends(get_db),
    svc: WorkflowService = Depends(get_workflow_service),
) -> WorkflowResponse:
    """
    Stop triggers from starting new runs. Runs in flight finish normally.
    """
    wf = await svc.set_active(workflow_id, current_user.org_id, False)
    response = WorkflowResponse.model_validate(wf)
    await db.commit()
    await _audit(request, current_user, workflow_id, AuditAction.DEACTIVATE)
    return response


@router.post("/{workflow_id}/test", response_model=RunResponse, status_code=status.HTTP_201_CREATED)
async def test_workflow(
    workflow_id: str,
    request: Request,
    body: Optional[TestRunRequest] = None,
    current_user: TokenPayload = Depends(require_workflow_feature),
    trigger_manager=Depends(get_trigger_manager),
) -> RunResponse:
    """
    Run a workflow now with sample trigger data and return the finished run.

    Allowed for inactive workflows.
    """
    run = await trigger_manager.run_manual(
        workflow_id,
        current_user.org_id,
        user_id=current_user.sub,
        data=body.trigger_data if body else None,
    )
    await _audit(request, current_user, workflow_id, AuditAction.EXECUTE, {"run_id": run.id})
    return RunResponse.from_record(run)


@router.get("/{workflow_id}/runs", response_model=RunListResponse)
async def list_runs(
    workflow_id: str,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1),
    offset: int = Query(default=0, ge=0),
    current_user: TokenPayload = Depends(require_workflow_feature),
    store=Depends(get_workflow_store),
) -> RunListResponse:
    """
    Run history of a workflow, newest first.

    ``limit`` is capped at 100.
    """
    if status_filter and status_filter not in {s.value for s in RunStatus}:
        raise BadRequestError(f"Unknown run status: {status_filter}")
    if await store.get_workflow(workflow_id, current_user.org_id) is None:
        raise NotFoundError(f"Workflow {workflow_id} not found")

    limit = min(limit, MAX_PAGE_SIZE)
    runs, total = await store.list_runs(
        workflow_id,
        current_user.org_id,
        status=status_filter,
        limit=limit,
        offset=offset,
    )
    return RunListResponse(
        data=[RunResponse.from_record(r) for r in runs],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{workflow_id}/runs/{run_id}", response_model=RunResponse)
async def get_run(
    workflow_id: str,
    run_id: str,
    current_user: TokenPayload = Depends(require_workflow_feature),
    store=Depends(get_workflow_store),
) -> RunResponse:
    """
    One run with its step results.
    """
    run = await store.get_run(run_id, current_user.org_id)
    if run is None or run.workflow_id != workflow_id:
        raise NotFoundError(f"Run {run_id} not found")
    return RunResponse.from_record(run)
