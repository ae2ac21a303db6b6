"""Tests for the Claude client against a mocked Messages API."""

import json

import httpx
import pytest

from app.config import get_settings
from core.exceptions import ExternalServiceError
from integrations.claude_client import ClaudeClient, extract_json


def configured(**overrides):
    values = {"ANTHROPIC_API_KEY": "test-key", **overrides}
    return get_settings().model_copy(update=values)


def reply(text: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "content": [{"type": "text", "text": text}],
            "usage": {"input_tokens": 12, "output_tokens": 3},
        },
    )


@pytest.mark.unit
class TestExtractJson:
    def test_plain(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced(self):
        assert extract_json('Here you go:\n```json\n[1, 2]\n```') == [1, 2]

    def test_embedded_in_prose(self):
        text = 'The result is {"label": "hot", "note": "a } inside"} as requested.'
        assert extract_json(text) == {"label": "hot", "note": "a } inside"}

    def test_skips_broken_brace(self):
        assert extract_json('{oops} then {"ok": true}') == {"ok": True}

    @pytest.mark.parametrize("text", ["", "   ", "no json here"])
    def test_nothing_to_parse(self, text):
        with pytest.raises(ValueError):
            extract_json(text)


@pytest.mark.asyncio
class TestClaudeClient:
    async def test_ask_sends_model_and_prompt(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers["x-api-key"]
            seen["body"] = json.loads(request.content)
            return reply("Hello there")

        client = ClaudeClient(configured(), transport=httpx.MockTransport(handler))
        try:
            answer = await client.ask("Say hi", max_tokens=20)
        finally:
            await client.close()

        assert answer == "Hello there"
        assert seen["url"] == "https://api.anthropic.com/v1/messages"
        assert seen["key"] == "test-key"
        assert seen["body"]["max_tokens"] == 20
        assert seen["body"]["messages"] == [{"role": "user", "content": "Say hi"}]
        assert seen["body"]["model"] == get_settings().CLAUDE_MODEL

    async def test_ask_json_parses_answer(self):
        client = ClaudeClient(
            configured(), transport=httpx.MockTransport(lambda r: reply('```json\n{"x": 2}\n```'))
        )
        assert await client.ask_json("numbers") == {"x": 2}
        await client.close()

    async def test_classify_strips_quotes(self):
        client = ClaudeClient(configured(), transport=httpx.MockTransport(lambda r: reply(' "Sales"\n')))
        assert await client.classify("buy now", ["Sales", "Support"]) == "Sales"
        await client.close()

    async def test_busy_then_success(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, headers={"retry-after": "0"})
            return reply("done")

        client = ClaudeClient(configured(), transport=httpx.MockTransport(handler))
        assert await client.ask("x") == "done"
        assert len(calls) == 2
        await client.close()

    async def test_gives_up_after_repeated_overload(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(529, headers={"retry-after": "0"})

        client = ClaudeClient(configured(), transport=httpx.MockTransport(handler))
        with pytest.raises(ExternalServiceError, match="after 3 attempts"):
            await client.ask("x")
        assert len(calls) == 3
        await client.close()

    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, text="bad prompt")

        client = ClaudeClient(configured(), transport=httpx.MockTransport(handler))
        with pytest.raises(ExternalServiceError, match="Claude API error 400"):
            await client.ask("x")
        assert len(calls) == 1
        await client.close()

    async def test_unconfigured(self):
        client = ClaudeClient(configured(ANTHROPIC_API_KEY=""))
        assert not client.is_configured
        with pytest.raises(ExternalServiceError, match="not configured"):
            await client.ask("x")
