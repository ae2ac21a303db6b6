"""Internal event emission.

Other services of the platform report domain events here (task created,
opportunity stage changed, ...); matching event workflows start in the
background.
"""

from fastapi import APIRouter, Depends, status

from api.schemas.run import EventEmitRequest, EventEmitResponse
from app.dependencies import get_trigger_manager
from core.rbac import require_workflow_feature
from core.security import TokenPayload
from triggers.handlers.event_bus import WorkflowEvent

router = APIRouter(tags=["events"])


@router.post("", response_model=EventEmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def emit_event(
    body: EventEmitRequest,
    current_user: TokenPayload = Depends(require_workflow_feature),
    trigger_manager=Depends(get_trigger_manager),
) -> EventEmitResponse:
    """
    Emit an event for the caller's organization.
    """
    matched = await trigger_manager.emit_event(
        WorkflowEvent(
            organization_id=current_user.org_id,
            event_type=body.event_type,
            entity_type=body.entity_type,
            entity_id=body.entity_id,
            data=body.data,
            user_id=current_user.sub,
        )
    )
    return EventEmitResponse(matched=len(matched), workflow_ids=matched)
