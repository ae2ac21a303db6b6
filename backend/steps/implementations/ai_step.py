"""
AI step implementations backed by Claude.

- ai_generate: render a prompt and store the answer (text or parsed JSON)
- ai_categorize: pick one of a fixed set of categories for a context value
- ai_summarize: summarize a context value
"""

import json
from typing import Any, List

from pydantic import BaseModel, Field

from core.exceptions import InternalError, NotFoundError
from steps.base_step import BaseStepExecutor, StepOutcome
from workflow.context import RunContext


def _require_ai(context: RunContext):
    client = context.resources.ai
    if client is None or not getattr(client, "is_configured", False):
        raise InternalError("AI provider not configured (set ANTHROPIC_API_KEY)")
    return client


def _context_text(context: RunContext, path: str) -> str:
    value = context.resolve(path)
    if value in (None, ""):
        raise NotFoundError(f"No value found at '{path}'")
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


class AIGenerateConfig(BaseModel):
    prompt_template: str = Field(min_length=1)
    output_field: str = Field(min_length=1)
    structured: bool = False


class AIGenerateStep(BaseStepExecutor):
    """Generate text (or JSON when ``structured``) from a templated prompt."""

    action_type = "ai_generate"
    display_name = "AI Generate"
    description = "Generate content with Claude from a prompt template"
    is_external = True
    config_model = AIGenerateConfig

    async def execute(self, config: AIGenerateConfig, context: RunContext) -> StepOutcome:
        client = _require_ai(context)
        if config.structured:
            result: Any = await client.ask_json(config.prompt_template)
        else:
            result = await client.ask(config.prompt_template)
        return StepOutcome.ok({config.output_field: result})


class AICategorizeConfig(BaseModel):
    field_to_analyze: str = Field(min_length=1)
    categories: List[str] = Field(min_length=2)
    output_field: str = Field(min_length=1)


class AICategorizeStep(BaseStepExecutor):
    """Classify a context value into one of the configured categories.

    The model's answer is matched case-insensitively; an answer outside the
    list fails the step.
    """

    action_type = "ai_categorize"
    display_name = "AI Categorize"
    description = "Classify a value into one of a fixed set of categories"
    is_external = True
    config_model = AICategorizeConfig

    async def execute(self, config: AICategorizeConfig, context: RunContext) -> StepOutcome:
        client = _require_ai(context)
        text = _context_text(context, config.field_to_analyze)
        answer = await client.classify(text, config.categories)

        lowered = answer.strip().lower()
        for category in config.categories:
            if category.lower() == lowered:
                return StepOutcome.ok({config.output_field: category})
        return StepOutcome.fail(
            f"AI answer {answer!r} is not one of {config.categories}",
            output={"raw_answer": answer},
        )


class AISummarizeConfig(BaseModel):
    field_to_summarize: str = Field(min_length=1)
    max_length: int = Field(500, ge=50, le=5000)
    output_field: str = Field(min_length=1)


class AISummarizeStep(BaseStepExecutor):
    """Summarize a context value, truncated to ``max_length`` characters."""

    action_type = "ai_summarize"
    display_name = "AI Summarize"
    description = "Summarize a value from the run context"
    is_external = True
    config_model = AISummarizeConfig

    async def execute(self, config: AISummarizeConfig, context: RunContext) -> StepOutcome:
        client = _require_ai(context)
        text = _context_text(context, config.field_to_summarize)
        summary = await client.summarize(text, max_length=config.max_length)
        return StepOutcome.ok({config.output_field: summary[: config.max_length]})


AI_STEP_TYPES = {
    "ai_generate": AIGenerateStep,
    "ai_categorize": AICategorizeStep,
    "ai_summarize": AISummarizeStep,
}
