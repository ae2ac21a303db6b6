"""Template resolution for step configs.

Step configs may reference the run context with ``{{ path }}`` markers:

    {"to": "{{ trigger.data.contact.email }}",
     "subject": "Task {{ steps.create_task_step.task_id }} created"}

Paths are dot separated and accept ``[n]`` list indexes
(``steps.fetch.items[0].name``). A config value that is exactly one
expression keeps the referenced value's type; an expression embedded in
other text is rendered as a string (missing values render as ``""``,
dicts and lists as JSON).
"""

import json
import re
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

TEMPLATE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_FULL_MATCH = re.compile(r"^\s*\{\{\s*([^{}]+?)\s*\}\}\s*$")
_INDEX_PATTERN = re.compile(r"^([^\[\]]*)((?:\[\d+\])+)$")

MAX_DEPTH = 10

# Top-level names a run context exposes to templates
CONTEXT_NAMESPACES = frozenset({
    "trigger",
    "steps",
    "workflow",
    "organization_id",
    "triggered_by",
    "triggered_at",
    "contact",
    "company",
    "task",
    "project",
    "opportunity",
})

_MISSING = object()


def _split_path(path: str) -> list:
    """Split 'a.b[0].c' into ['a', 'b', 0, 'c']."""
    segments: list = []
    for part in path.strip().split("."):
        if not part:
            continue
        match = _INDEX_PATTERN.match(part)
        if match:
            if match.group(1):
                segments.append(match.group(1))
            segments.extend(int(i) for i in re.findall(r"\[(\d+)\]", match.group(2)))
        else:
            segments.append(part)
    return segments


def get_path(data: Any, path: str, default: Any = None) -> Any:
    """Resolve a dot/bracket path against nested dicts and lists.

    Returns ``default`` when any segment is missing.
    """
    current = data
    for segment in _split_path(path):
        if isinstance(segment, int):
            if isinstance(current, (list, tuple)) and -len(current) <= segment < len(current):
                current = current[segment]
                continue
            return default
        if isinstance(current, dict):
            if segment in current:
                current = current[segment]
                continue
            return default
        return default
    return current


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def render(template: Any, context: dict) -> Any:
    """Resolve the ``{{ }}`` expressions of a single value."""
    if not isinstance(template, str) or "{{" not in template:
        return template

    full = _FULL_MATCH.match(template)
    if full:
        value = get_path(context, full.group(1), _MISSING)
        return "" if value is _MISSING else value

    return TEMPLATE_PATTERN.sub(
        lambda m: _to_text(get_path(context, m.group(1))), template
    )


def interpolate_object(value: Any, context: dict, _depth: int = 0) -> Any:
    """Recursively resolve every template in a dict/list structure.

    Structures nested deeper than MAX_DEPTH are returned unresolved.
    """
    if _depth > MAX_DEPTH:
        logger.warning("template_depth_exceeded", max_depth=MAX_DEPTH)
        return value
    if isinstance(value, str):
        return render(value, context)
    if isinstance(value, dict):
        return {k: interpolate_object(v, context, _depth + 1) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate_object(v, context, _depth + 1) for v in value]
    return value


def extract_template_variables(value: Any) -> list[str]:
    """List the distinct paths referenced anywhere in ``value``, in order of appearance."""
    found: list[str] = []

    def _walk(node: Any, depth: int) -> None:
        if depth > MAX_DEPTH:
            return
        if isinstance(node, str):
            for match in TEMPLATE_PATTERN.finditer(node):
                path = match.group(1).strip()
                if path not in found:
                    found.append(path)
        elif isinstance(node, dict):
            for v in node.values():
                _walk(v, depth + 1)
        elif isinstance(node, list):
            for v in node:
                _walk(v, depth + 1)

    _walk(value, 0)
    return found


def validate_template_variables(value: Any) -> list[str]:
    """Return referenced paths whose root is not a known context namespace."""
    invalid = []
    for path in extract_template_variables(value):
        segments = _split_path(path)
        if not segments or segments[0] not in CONTEXT_NAMESPACES:
            invalid.append(path)
    return invalid
