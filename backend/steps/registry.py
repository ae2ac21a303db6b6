"""
Step Executor Registry: maps every action type to its executor class.

The mapping is checked against ActionType at startup so a workflow can
never reference an action type the engine cannot run.
"""

from typing import Dict, Mapping, Optional, Type

from core.constants import ActionType
from steps.base_step import BaseStepExecutor
from steps.implementations.ai_step import AI_STEP_TYPES
from steps.implementations.crm_step import CRM_STEP_TYPES
from steps.implementations.http_step import HTTP_STEP_TYPES
from steps.implementations.messaging_step import MESSAGING_STEP_TYPES
from steps.implementations.project_step import PROJECT_STEP_TYPES
from steps.implementations.task_step import TASK_STEP_TYPES

BUILTIN_STEP_TYPES: Dict[str, Type[BaseStepExecutor]] = {
    **MESSAGING_STEP_TYPES,
    **TASK_STEP_TYPES,
    **CRM_STEP_TYPES,
    **PROJECT_STEP_TYPES,
    **AI_STEP_TYPES,
    **HTTP_STEP_TYPES,
}


class StepExecutorRegistry:
    """Registry of step executor classes keyed by action type."""

    def __init__(self, executors: Optional[Mapping[str, Type[BaseStepExecutor]]] = None):
        self._executors: Dict[str, Type[BaseStepExecutor]] = {}
        for action_type, executor_class in (executors if executors is not None else BUILTIN_STEP_TYPES).items():
            self.register(action_type, executor_class)

    def register(self, action_type: str, executor_class: Type[BaseStepExecutor]) -> None:
        """Register (or replace) the executor for an action type."""
        self._executors[ActionType(action_type).value] = executor_class

    def validate(self) -> None:
        """Ensure every ActionType has an executor.

        Raises:
            RuntimeError: Listing the action types without an executor
        """
        missing = sorted(a.value for a in ActionType if a.value not in self._executors)
        if missing:
            raise RuntimeError(f"No step executor registered for: {', '.join(missing)}")

    def get(self, action_type: Optional[str]) -> Optional[Type[BaseStepExecutor]]:
        """Get an executor class by action type string."""
        if action_type is None:
            return None
        return self._executors.get(action_type)

    def create_instance(self, action_type: Optional[str]) -> Optional[BaseStepExecutor]:
        """Create a new executor instance, or None for unknown action types."""
        executor_class = self.get(action_type)
        return executor_class() if executor_class else None

    def list_all(self) -> list:
        """List all registered action types with metadata."""
        return [
            {
                "action_type": action_type,
                "display_name": cls.display_name,
                "description": cls.description,
                "is_external": cls.is_external,
                "config_schema": cls.get_config_schema(),
            }
            for action_type, cls in sorted(self._executors.items())
        ]

    @property
    def available_types(self) -> list:
        return list(self._executors.keys())
