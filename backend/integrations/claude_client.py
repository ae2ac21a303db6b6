"""
Anthropic Messages API client used by the ai_* steps.

One pooled ``httpx.AsyncClient`` per process, opened on first use and closed
from the app lifespan. Busy answers (429, 529) and transport failures are
retried a few times; anything else fails the calling step immediately.
"""

import asyncio
import json
import re
import time
from typing import Any, Dict, List, Optional

import httpx
import structlog

from app.config import get_settings
from core.exceptions import ExternalServiceError

logger = structlog.get_logger(__name__)

API_URL = "https://api.anthropic.com/v1/"
API_VERSION = "2023-06-01"
ATTEMPTS = 3
BUSY_STATUSES = frozenset({429, 529})
MAX_BACKOFF = 30.0

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_decoder = json.JSONDecoder()


def extract_json(text: str) -> Any:
    """Parse the first JSON value found in a model answer.

    Answers are often wrapped in a markdown fence or preceded by a sentence,
    so after a plain parse fails the fenced body is tried, then every
    ``{`` / ``[`` position in order.

    Raises:
        ValueError: If the answer holds no parseable JSON value.
    """
    stripped = (text or "").strip()
    if not stripped:
        raise ValueError("Empty response")

    candidates = [stripped]
    fenced = _FENCE.search(stripped)
    if fenced:
        candidates.append(fenced.group(1).strip())

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    for index, char in enumerate(stripped):
        if char not in "{[":
            continue
        try:
            value, _ = _decoder.raw_decode(stripped, index)
        except json.JSONDecodeError:
            continue
        return value

    raise ValueError(f"Could not extract JSON from response: {stripped[:200]}")


def _answer_text(body: Dict[str, Any]) -> str:
    return "".join(
        part.get("text", "") for part in body.get("content") or [] if part.get("type") == "text"
    )


def _retry_delay(response: httpx.Response, attempt: int) -> float:
    try:
        delay = float(response.headers["retry-after"])
    except (KeyError, ValueError):
        delay = 2.0 ** (attempt + 1)
    return min(delay, MAX_BACKOFF)


class ClaudeClient:
    """Async Claude client; ``transport`` is injectable for tests."""

    def __init__(self, settings=None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.ANTHROPIC_API_KEY)

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=API_URL,
                headers={
                    "x-api-key": self.settings.ANTHROPIC_API_KEY,
                    "anthropic-version": API_VERSION,
                },
                timeout=httpx.Timeout(float(self.settings.CLAUDE_TIMEOUT), connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_configured:
            raise ExternalServiceError("Claude API key not configured (set ANTHROPIC_API_KEY)", "claude")

        problem = "no attempt made"
        for attempt in range(ATTEMPTS):
            started = time.monotonic()
            try:
                response = await self.http.post("messages", json=payload)
            except httpx.TimeoutException:
                problem = "Request timed out"
                logger.warning("Claude request timed out", attempt=attempt + 1)
                continue
            except httpx.TransportError as e:
                problem = str(e) or type(e).__name__
                logger.warning("Claude transport error", attempt=attempt + 1, error=problem)
                continue

            if response.status_code in BUSY_STATUSES:
                problem = f"API busy ({response.status_code})"
                delay = _retry_delay(response, attempt)
                logger.warning("Claude busy, backing off", status=response.status_code, delay=delay)
                if attempt + 1 < ATTEMPTS:
                    await asyncio.sleep(delay)
                continue

            if response.is_error:
                logger.error("Claude request rejected", status=response.status_code)
                raise ExternalServiceError(
                    f"Claude API error {response.status_code}: {response.text[:200]}", "claude"
                )

            body = response.json()
            usage = body.get("usage") or {}
            logger.debug(
                "Claude answered",
                model=payload["model"],
                duration_ms=round((time.monotonic() - started) * 1000, 2),
                input_tokens=usage.get("input_tokens", 0),
                output_tokens=usage.get("output_tokens", 0),
            )
            return body

        raise ExternalServiceError(f"Claude API failed after {ATTEMPTS} attempts: {problem}", "claude")

    async def ask(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Single-turn question; returns the concatenated text blocks."""
        settings = self.settings
        payload = {
            "model": settings.CLAUDE_MODEL,
            "max_tokens": max_tokens or settings.CLAUDE_MAX_TOKENS,
            "temperature": settings.CLAUDE_TEMPERATURE if temperature is None else temperature,
            "system": system or settings.CLAUDE_SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
        }
        return _answer_text(await self._send(payload))

    async def ask_json(self, prompt: str, system: Optional[str] = None) -> Any:
        answer = await self.ask(f"{prompt}\n\nRespond with JSON only.", system=system, temperature=0.1)
        return extract_json(answer)

    async def summarize(self, text: str, max_length: Optional[int] = None) -> str:
        instructions = ["Summarize the text below concisely."]
        if max_length:
            instructions.append(f"Stay under {max_length} characters.")
        prompt = " ".join(instructions) + f"\n\n{text}"
        summary = await self.ask(
            prompt,
            system="You distill business records into short, factual summaries.",
            temperature=0.2,
        )
        return summary.strip()

    async def classify(self, text: str, categories: List[str]) -> str:
        """Ask for exactly one label; the caller checks it against ``categories``."""
        labels = ", ".join(json.dumps(c) for c in categories)
        prompt = (
            f"Pick the single best category for the text below from: {labels}.\n"
            f"Answer with the category name only.\n\n{text}"
        )
        answer = await self.ask(prompt, temperature=0.0, max_tokens=50)
        return answer.strip().strip("\"'").strip()
