"""Loop steps.

A loop step reads a list from the run context and records one entry per
item, up to ``max_iterations``. Later steps reach the entries through the
step's output, e.g. ``{{ steps.step_2.results }}``.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from workflow.templating import get_path

DEFAULT_MAX_ITERATIONS = 100
MAX_ITERATIONS_CAP = 1000


class LoopConfig(BaseModel):
    """``action_config`` of a loop step."""

    collection_field: str = Field(min_length=1)
    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1, le=MAX_ITERATIONS_CAP)
    item_variable: str = Field(default="item", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")


def parse_loop_config(config: Any, path: str = "action_config") -> tuple[Optional[LoopConfig], list[str]]:
    """Validate a loop config; returns the parsed config or the problems found."""
    try:
        return LoopConfig.model_validate(config or {}), []
    except ValidationError as e:
        errors = []
        for err in e.errors():
            where = ".".join(str(part) for part in err["loc"])
            errors.append(f"{path}.{where}: {err['msg']}" if where else f"{path}: {err['msg']}")
        return None, errors


def expand_loop(config: LoopConfig, namespace: dict) -> dict[str, Any]:
    collection = get_path(namespace, config.collection_field)
    if not isinstance(collection, list):
        return {"iterations": 0, "skipped": True, "reason": "Collection not found or not a list"}

    items = collection[: config.max_iterations]
    return {
        "iterations": len(items),
        "max_iterations": config.max_iterations,
        "collection_length": len(collection),
        "results": [{"index": i, config.item_variable: item} for i, item in enumerate(items)],
    }
