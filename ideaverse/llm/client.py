"""
Streaming chat-completion client.

Talks to any OpenAI-compatible `/chat/completions` endpoint (DeepSeek by
default) with `stream: true` and turns the server-sent events into one
complete text, reporting the cumulative character count after every content
delta.

Provides:
- Structured logging of requests and stream completion
- Error mapping to the application exception hierarchy
- Cooperative abort via an asyncio.Event checked between stream lines
- Per-operation token budgets (OPERATION_DEFAULTS)

No retries are attempted; failures surface to the caller.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx
import structlog

from ideaverse.core.config import settings
from ideaverse.core.exceptions import (
    ConfigurationError,
    LLMRateLimitError,
    LLMTimeoutError,
    StreamAbortedError,
    TransportError,
)

log = structlog.get_logger(__name__)

ProgressCallback = Callable[[int], None]
Message = Dict[str, str]


# =============================================================================
# Per-operation budgets
# =============================================================================

DEFAULT_MAX_TOKENS = 2000

OPERATION_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "questions": dict(max_tokens=4000),
    "understanding": dict(max_tokens=4000),
    "recommend_models": dict(max_tokens=3000),
    "dimensions": dict(max_tokens=2000),
    "analyze_dimension": dict(max_tokens=3000),
    "reanalyze_card": dict(max_tokens=4000),
    "analysis_report": dict(max_tokens=4000),
    "solutions": dict(max_tokens=8000),
    "regenerate_solution": dict(max_tokens=4000),
    "mind_map": dict(max_tokens=8000),
}


@dataclass
class CompletionResult:
    """Full text of one streamed completion plus call metadata."""

    content: str
    model: str
    latency_ms: float = 0.0
    chunks: int = 0
    finish_reason: Optional[str] = None


class CompletionStreamClient:
    """
    Async streaming client for OpenAI-compatible chat-completions APIs.

    Uses httpx streaming so long generations never hit a read timeout on the
    whole body and progress can be reported while text arrives.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: API key (defaults to settings.llm_api_key)
            base_url: API base URL (defaults to settings.llm_base_url)
            model: Model id (defaults to settings.llm_model)
            temperature: Default sampling temperature
            timeout: Transport timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key if api_key is not None else settings.llm_api_key
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.model = model or settings.llm_model
        self.temperature = (
            temperature if temperature is not None else settings.llm_temperature
        )
        self.timeout = timeout or settings.llm_timeout
        self._transport = transport

    async def stream(
        self,
        messages: List[Message],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
    ) -> CompletionResult:
        """
        Stream one completion and return the accumulated text.

        Args:
            messages: Chat messages ({"role", "content"})
            max_tokens: Token budget (defaults to DEFAULT_MAX_TOKENS)
            temperature: Sampling temperature (defaults to instance value)
            on_progress: Called with the cumulative character count after
                every non-empty content delta
            abort_event: When set, the stream stops at the next line

        Returns:
            CompletionResult with the full text

        Raises:
            ConfigurationError: No API key configured
            LLMTimeoutError: Transport timed out
            LLMRateLimitError: HTTP 429
            StreamAbortedError: abort_event was set
            TransportError: Any other HTTP or network failure
        """
        if not self.api_key:
            raise ConfigurationError(
                "LLM_API_KEY not configured. Set it in .env or the environment."
            )
        if abort_event is not None and abort_event.is_set():
            raise StreamAbortedError("Completion aborted before the request was sent")

        if max_tokens is None:
            max_tokens = DEFAULT_MAX_TOKENS
        if temperature is None:
            temperature = self.temperature

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": True,
        }

        start = time.perf_counter()
        log.debug(
            "llm_stream_start",
            model=self.model,
            message_count=len(messages),
            prompt_length=sum(len(m.get("content", "")) for m in messages),
            temperature=temperature,
            max_tokens=max_tokens,
        )

        parts: List[str] = []
        length = 0
        chunks = 0
        finish_reason: Optional[str] = None

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    headers=headers,
                    json=payload,
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        self._raise_for_status(response)

                    async for line in response.aiter_lines():
                        if abort_event is not None and abort_event.is_set():
                            raise StreamAbortedError(
                                "Completion aborted while streaming"
                            )

                        delta, reason = self._parse_sse_line(line)
                        if reason:
                            finish_reason = reason
                        if not delta:
                            continue

                        parts.append(delta)
                        length += len(delta)
                        chunks += 1
                        if on_progress is not None:
                            on_progress(length)

        except httpx.TimeoutException as e:
            log.warning("llm_timeout", model=self.model, timeout_seconds=self.timeout)
            raise LLMTimeoutError(
                f"LLM call timed out (timeout={self.timeout}s)"
            ) from e
        except httpx.HTTPError as e:
            log.error("llm_network_error", model=self.model, error=str(e))
            raise TransportError(f"Network error: {e}") from e

        latency_ms = (time.perf_counter() - start) * 1000
        content = "".join(parts)

        if finish_reason == "length":
            log.warning(
                "llm_stream_truncated", model=self.model, max_tokens=max_tokens
            )

        log.info(
            "llm_stream_complete",
            model=self.model,
            latency_ms=round(latency_ms, 2),
            content_length=len(content),
            chunks=chunks,
            finish_reason=finish_reason,
        )

        return CompletionResult(
            content=content,
            model=self.model,
            latency_ms=latency_ms,
            chunks=chunks,
            finish_reason=finish_reason,
        )

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map an error response to the exception hierarchy."""
        status_code = response.status_code
        if status_code == 429:
            log.warning("llm_rate_limit", model=self.model)
            raise LLMRateLimitError("Rate limit exceeded")

        message = f"API request failed: {status_code}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                message = str(error["message"])

        log.error("llm_http_error", model=self.model, status_code=status_code)
        raise TransportError(message)

    @staticmethod
    def _parse_sse_line(line: str) -> tuple:
        """Return (content_delta, finish_reason) for one SSE line.

        Blank lines, comments, `[DONE]` and malformed payloads yield ("", None).
        """
        line = line.strip()
        if not line or not line.startswith("data:"):
            return "", None

        data = line[len("data:") :].strip()
        if data == "[DONE]":
            return "", None

        try:
            event = json.loads(data)
            choice = event["choices"][0]
        except (ValueError, KeyError, IndexError, TypeError):
            log.warning("sse_data_malformed", line_preview=line[:200])
            return "", None

        if not isinstance(choice, dict):
            return "", None
        delta = choice.get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        return content or "", choice.get("finish_reason")


def get_completion_client() -> CompletionStreamClient:
    """Factory for the completion client configured from settings."""
    return CompletionStreamClient()
