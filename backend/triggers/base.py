"""Base trigger classes and the canonical trigger payload."""

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from core.constants import TriggerType


@dataclass
class TriggerEvent:
    """Represents a single trigger firing.

    This is the payload that gets passed from a trigger resolver
    to the workflow engine; ``data`` becomes the run's trigger data.
    """

    trigger_type: str
    workflow_id: str
    organization_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    user_id: Optional[str] = None

    @classmethod
    def manual(
        cls,
        workflow_id: str,
        organization_id: str,
        user_id: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> "TriggerEvent":
        """A test run started from the builder."""
        return cls(
            trigger_type=TriggerType.MANUAL.value,
            workflow_id=workflow_id,
            organization_id=organization_id,
            data={"is_test": True, **(data or {})},
            user_id=user_id,
        )


class BaseTriggerResolver(ABC):
    """Abstract base class for trigger resolvers.

    Each trigger type (webhook, schedule, event) turns its raw input
    into TriggerEvents and validates the ``trigger_config`` it reads.
    """

    trigger_type: TriggerType

    def validate_config(self, config: dict) -> tuple[bool, Optional[str]]:
        """Validate trigger configuration.

        Args:
            config: Configuration dict to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not isinstance(config, dict):
            return False, "Config must be a dict"
        return True, None
