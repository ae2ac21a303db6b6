"""Event trigger resolver.

Services emit internal events (task created, contact updated, ...);
every active event workflow of the organization whose trigger_config
matches the event starts a run.

Filter syntax (keys are dot paths into the entity data):
    {"status": "done"}                   case-insensitive equality
    {"value": {"$gte": 1000}}            $gt, $gte, $lt, $lte (numeric)
    {"stage": {"$in": ["won", "lost"]}}  membership
    {"stage": {"$ne": "lost"}}           inequality
    {"title": {"$contains": "urgent"}}   substring of a string value
    {"assignee_id": {"$exists": true}}   presence (not None)
Unknown operators never match.
"""

import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog

from core.constants import TriggerType
from triggers.base import BaseTriggerResolver, TriggerEvent
from workflow.store import WorkflowDefinition
from workflow.templating import get_path

logger = structlog.get_logger(__name__)

_MISSING = object()


@dataclass
class WorkflowEvent:
    """An internal domain event that may trigger workflows."""

    organization_id: str
    event_type: str
    entity_type: str
    entity_id: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _numeric(op: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def _check(actual: Any, expected: Any) -> bool:
        left, right = _to_number(actual), _to_number(expected)
        return left is not None and right is not None and op(left, right)
    return _check


def _in(actual: Any, expected: Any) -> bool:
    return isinstance(expected, (list, tuple)) and actual in expected


def _ne(actual: Any, expected: Any) -> bool:
    return actual != expected


def _contains(actual: Any, expected: Any) -> bool:
    return isinstance(actual, str) and str(expected) in actual


def _exists(actual: Any, expected: Any) -> bool:
    return (actual is not None) == bool(expected)


FILTER_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$in": _in,
    "$ne": _ne,
    "$gt": _numeric(operator.gt),
    "$gte": _numeric(operator.ge),
    "$lt": _numeric(operator.lt),
    "$lte": _numeric(operator.le),
    "$contains": _contains,
    "$exists": _exists,
}


def _plain_equals(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    return (
        isinstance(actual, str)
        and isinstance(expected, str)
        and actual.lower() == expected.lower()
    )


def matches_filters(filters: dict, data: dict) -> bool:
    """Check if entity data matches every filter entry."""
    for key, expected in (filters or {}).items():
        actual = get_path(data, key)
        if isinstance(expected, dict):
            for op_name, operand in expected.items():
                check = FILTER_OPERATORS.get(op_name)
                if check is None:
                    logger.warning("Unknown event filter operator", operator=op_name, field=key)
                    return False
                if not check(actual, operand):
                    return False
        elif not _plain_equals(actual, expected):
            return False
    return True


class EventTriggerResolver(BaseTriggerResolver):
    """Resolver for event-triggered workflows.

    Config schema:
        {
            "event_types": ["task.created"],   # at least one
            "entity_type": "task",             # optional
            "filters": {"priority": "high"}    # optional, see module docs
        }
    """

    trigger_type = TriggerType.EVENT

    def matches(self, config: dict, event: WorkflowEvent) -> bool:
        """Whether a workflow with ``config`` should run for ``event``."""
        is_valid, error = self.validate_config(config)
        if not is_valid:
            logger.warning("Invalid event trigger config", error=error)
            return False
        if event.event_type not in config["event_types"]:
            return False
        entity_type = config.get("entity_type")
        if entity_type and entity_type != event.entity_type:
            return False
        filters = config.get("filters")
        if filters and not matches_filters(filters, event.data or {}):
            return False
        return True

    def build_event(self, workflow: WorkflowDefinition, event: WorkflowEvent) -> TriggerEvent:
        return TriggerEvent(
            trigger_type=TriggerType.EVENT.value,
            workflow_id=workflow.id,
            organization_id=workflow.organization_id,
            data={
                "event_type": event.event_type,
                "entity_type": event.entity_type,
                "entity_id": event.entity_id,
                "user_id": event.user_id,
                event.entity_type: event.data,
            },
            event_type=event.event_type,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            user_id=event.user_id,
        )

    def validate_config(self, config: dict) -> tuple[bool, Optional[str]]:
        """Validate event trigger config."""
        is_valid, error = super().validate_config(config)
        if not is_valid:
            return is_valid, error
        event_types = config.get("event_types")
        if not isinstance(event_types, list) or not event_types:
            return False, "event_types must list at least one event type"
        filters = config.get("filters")
        if filters is not None:
            if not isinstance(filters, dict):
                return False, "filters must be an object"
            for key, value in filters.items():
                if isinstance(value, dict):
                    unknown = [op for op in value if op not in FILTER_OPERATORS]
                    if unknown:
                        return False, f"Unknown filter operator for {key}: {', '.join(unknown)}"
        return True, None
