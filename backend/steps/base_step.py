"""
Base step executor interface.

Every action type (send email, create task, call webhook, ...) is handled
by a subclass of BaseStepExecutor that implements execute().
"""

import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Type

import structlog
from pydantic import BaseModel as ConfigModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InternalError, NotFoundError, StepConfigurationError
from workflow.context import RunContext

logger = structlog.get_logger(__name__)


class StepOutcome:
    """Standardized result from a step executor."""

    def __init__(
        self,
        success: bool,
        output: Any = None,
        error: Optional[str] = None,
        duration_ms: float = 0,
    ):
        self.success = success
        self.output = output
        self.error = error
        self.duration_ms = duration_ms

    @classmethod
    def ok(cls, output: Any = None) -> "StepOutcome":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str, output: Any = None) -> "StepOutcome":
        return cls(success=False, error=error, output=output)


class BaseStepExecutor(ABC):
    """
    Abstract base class for all step executors.

    Subclasses set:
    - action_type / display_name
    - config_model: pydantic model the resolved config is validated against
    - is_external: True when the step calls a third-party service
    and implement execute(config, context) -> StepOutcome.
    """

    action_type: str = "base"
    display_name: str = "Base Step"
    description: str = ""
    is_external: bool = False
    config_model: Optional[Type[ConfigModel]] = None

    @abstractmethod
    async def execute(self, config: Any, context: RunContext) -> StepOutcome:
        """
        Perform the action.

        Args:
            config: Resolved step config (an instance of config_model when set)
            context: Run context with trigger data, prior outputs and resources

        Returns:
            StepOutcome with output or error
        """

    def parse_config(self, config: Dict[str, Any]) -> Any:
        """Validate a resolved config dict against config_model."""
        if self.config_model is None:
            return config
        try:
            return self.config_model.model_validate(config)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in e.errors()
            )
            raise StepConfigurationError(f"Invalid {self.action_type} config: {problems}")

    async def run(self, config: Dict[str, Any], context: RunContext) -> StepOutcome:
        """
        Run the step with config validation, timing and error capture.

        This is the entry point called by the workflow engine. Exceptions
        never escape; they become failed outcomes.
        """
        start = time.monotonic()
        log = logger.bind(
            action_type=self.action_type,
            run_id=context.run_id,
            workflow_id=context.workflow_id,
        )
        try:
            parsed = self.parse_config(config)
            log.info("Step starting", external=self.is_external)
            outcome = await self.execute(parsed, context)
            outcome.duration_ms = (time.monotonic() - start) * 1000
            log.info(
                "Step completed",
                success=outcome.success,
                duration_ms=round(outcome.duration_ms, 2),
            )
            return outcome

        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            log.error(
                "Step failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration_ms, 2),
            )
            return StepOutcome(
                success=False,
                error=str(e) or type(e).__name__,
                duration_ms=duration_ms,
            )

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        """Return the JSON schema of the step config (for the builder UI)."""
        if cls.config_model is None:
            return {"type": "object", "properties": {}}
        return cls.config_model.model_json_schema()


def resolve_reference(
    context: RunContext,
    direct: Optional[str],
    field: Optional[str],
    label: str,
    required: bool = True,
) -> Optional[str]:
    """Pick a record id from an explicit value or a context path.

    ``direct`` wins; otherwise ``field`` is resolved against the run context.
    """
    if direct:
        return str(direct)
    if field:
        value = context.resolve(field)
        if value in (None, ""):
            raise NotFoundError(f"No {label} found at '{field}'")
        if isinstance(value, dict) and value.get("id"):
            value = value["id"]
        return str(value)
    if required:
        raise StepConfigurationError(f"Either {label}_id or {label}_field must be provided")
    return None


@asynccontextmanager
async def tenant_session(context: RunContext) -> AsyncIterator[AsyncSession]:
    """Open a session and transaction for one logical write.

    Commits when the block exits cleanly, rolls back otherwise.
    """
    factory = context.resources.session_factory
    if factory is None:
        raise InternalError("No database session factory configured for step execution")
    async with factory() as session:
        async with session.begin():
            yield session
