"""Tests for the streaming completion client."""

import asyncio
import json

import httpx
import pytest

from ideaverse.core.exceptions import (
    ConfigurationError,
    LLMRateLimitError,
    LLMTimeoutError,
    StreamAbortedError,
    TransportError,
)
from ideaverse.llm.client import (
    DEFAULT_MAX_TOKENS,
    OPERATION_DEFAULTS,
    CompletionStreamClient,
    get_completion_client,
)


def sse_body(*deltas, finish_reason="stop") -> bytes:
    """Build an SSE body the way OpenAI-compatible servers stream it."""
    lines = []
    for delta in deltas:
        event = {"choices": [{"delta": {"content": delta}, "finish_reason": None}]}
        lines.append(f"data: {json.dumps(event)}")
        lines.append("")
    final = {"choices": [{"delta": {}, "finish_reason": finish_reason}]}
    lines.append(f"data: {json.dumps(final)}")
    lines.append("")
    lines.append("data: [DONE]")
    lines.append("")
    return "\n".join(lines).encode()


def make_client(handler, **kwargs) -> CompletionStreamClient:
    return CompletionStreamClient(
        api_key=kwargs.pop("api_key", "test-key"),
        base_url="https://llm.test/v1",
        model="test-model",
        temperature=0.7,
        timeout=5.0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


MESSAGES = [
    {"role": "system", "content": "You are helpful."},
    {"role": "user", "content": "Hello"},
]


class TestCompletionStreamClient:
    """Tests for CompletionStreamClient."""

    async def test_stream_accumulates_content(self):
        """Deltas are concatenated into the full text."""
        client = make_client(lambda request: httpx.Response(200, content=sse_body("Hel", "lo", "!")))

        result = await client.stream(MESSAGES)

        assert result.content == "Hello!"
        assert result.model == "test-model"
        assert result.chunks == 3
        assert result.finish_reason == "stop"
        assert result.latency_ms >= 0

    async def test_progress_is_cumulative_and_monotonic(self):
        client = make_client(
            lambda request: httpx.Response(200, content=sse_body("ab", "cde", "", "f"))
        )
        counts = []

        await client.stream(MESSAGES, on_progress=counts.append)

        assert counts == [2, 5, 6]

    async def test_request_payload(self):
        """POSTs a streaming chat-completions request with auth header."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, content=sse_body("ok"))

        client = make_client(handler)
        await client.stream(MESSAGES, max_tokens=3000, temperature=0.2)

        assert captured["url"] == "https://llm.test/v1/chat/completions"
        assert captured["auth"] == "Bearer test-key"
        assert captured["body"]["stream"] is True
        assert captured["body"]["model"] == "test-model"
        assert captured["body"]["max_tokens"] == 3000
        assert captured["body"]["temperature"] == 0.2
        assert captured["body"]["messages"] == MESSAGES

    async def test_default_budget(self):
        captured = {}

        def handler(request):
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, content=sse_body("ok"))

        await make_client(handler).stream(MESSAGES)

        assert captured["body"]["max_tokens"] == DEFAULT_MAX_TOKENS
        assert captured["body"]["temperature"] == 0.7

    async def test_malformed_and_comment_lines_ignored(self):
        body = (
            b": keep-alive\n\n"
            b"data: {not json}\n\n"
            b'data: {"choices": []}\n\n'
            + sse_body("fine")
        )
        client = make_client(lambda request: httpx.Response(200, content=body))

        result = await client.stream(MESSAGES)

        assert result.content == "fine"

    async def test_length_finish_reason_recorded(self):
        client = make_client(
            lambda request: httpx.Response(
                200, content=sse_body('{"a": "cut', finish_reason="length")
            )
        )

        result = await client.stream(MESSAGES)

        assert result.finish_reason == "length"
        assert result.content == '{"a": "cut'

    async def test_missing_api_key_raises(self):
        client = make_client(lambda request: httpx.Response(200), api_key="")

        with pytest.raises(ConfigurationError, match="LLM_API_KEY"):
            await client.stream(MESSAGES)

    async def test_rate_limit(self):
        client = make_client(lambda request: httpx.Response(429, json={"error": {}}))

        with pytest.raises(LLMRateLimitError):
            await client.stream(MESSAGES)

    async def test_provider_error_message_surfaced(self):
        client = make_client(
            lambda request: httpx.Response(
                401, json={"error": {"message": "Authentication Fails"}}
            )
        )

        with pytest.raises(TransportError, match="Authentication Fails"):
            await client.stream(MESSAGES)

    async def test_error_without_body_uses_status(self):
        client = make_client(lambda request: httpx.Response(503, content=b"oops"))

        with pytest.raises(TransportError, match="API request failed: 503"):
            await client.stream(MESSAGES)

    async def test_timeout_mapped(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(LLMTimeoutError):
            await make_client(handler).stream(MESSAGES)

    async def test_network_error_mapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError, match="Network error"):
            await make_client(handler).stream(MESSAGES)

    async def test_abort_before_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, content=sse_body("x"))

        event = asyncio.Event()
        event.set()

        with pytest.raises(StreamAbortedError):
            await make_client(handler).stream(MESSAGES, abort_event=event)
        assert calls == []

    async def test_abort_while_streaming(self):
        event = asyncio.Event()
        client = make_client(
            lambda request: httpx.Response(200, content=sse_body("a", "b", "c"))
        )

        def on_progress(count):
            event.set()

        with pytest.raises(StreamAbortedError):
            await client.stream(MESSAGES, on_progress=on_progress, abort_event=event)


class TestSseParsing:
    def test_done_and_blank(self):
        assert CompletionStreamClient._parse_sse_line("") == ("", None)
        assert CompletionStreamClient._parse_sse_line("data: [DONE]") == ("", None)

    def test_content_delta(self):
        line = 'data: {"choices": [{"delta": {"content": "hi"}, "finish_reason": null}]}'
        assert CompletionStreamClient._parse_sse_line(line) == ("hi", None)

    def test_null_content(self):
        line = 'data: {"choices": [{"delta": {"content": null}, "finish_reason": "stop"}]}'
        assert CompletionStreamClient._parse_sse_line(line) == ("", "stop")


def test_operation_defaults_cover_every_operation():
    assert OPERATION_DEFAULTS["solutions"]["max_tokens"] == 8000
    assert OPERATION_DEFAULTS["mind_map"]["max_tokens"] == 8000
    assert OPERATION_DEFAULTS["recommend_models"]["max_tokens"] == 3000
    assert OPERATION_DEFAULTS["dimensions"]["max_tokens"] == 2000
    assert len(OPERATION_DEFAULTS) == 10


def test_get_completion_client_uses_settings():
    from ideaverse.core.config import settings

    client = get_completion_client()

    assert client.model == settings.llm_model
    assert client.base_url == settings.llm_base_url.rstrip("/")
