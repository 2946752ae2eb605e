"""
Shared test fixtures.

Provides a temporary SQLite database, the shipped thinking-model and prompt
catalogs, and a scripted completion stream that replays canned model output
while emitting progress like the real streaming client.
"""

import asyncio
import inspect
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from ideaverse.core.exceptions import StreamAbortedError
from ideaverse.core.thinking_model_loader import load_thinking_models
from ideaverse.llm.client import CompletionResult
from ideaverse.llm.prompts.catalog import PromptCatalog
from ideaverse.persistence.database import init_database
from ideaverse.persistence.repositories.session_repo import SessionRepository
from ideaverse.services.reasoning_service import ReasoningService
from ideaverse.services.workflow_engine import WorkflowEngine

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

Scripted = Union[str, Exception]


class FakeCompletionStream:
    """
    Scripted stand-in for CompletionStreamClient.

    Replies come either from a list (consumed in call order) or from a
    responder callable that inspects the messages, which keeps concurrent
    calls deterministic. A reply that is an Exception is raised instead.
    """

    def __init__(
        self,
        responses: Optional[List[Scripted]] = None,
        responder: Optional[Callable[[List[Dict[str, str]]], Any]] = None,
        chunk_size: int = 16,
    ):
        self.responses = list(responses or [])
        self.responder = responder
        self.chunk_size = chunk_size
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *responses: Scripted) -> None:
        self.responses.extend(responses)

    async def stream(
        self,
        messages,
        max_tokens=None,
        temperature=None,
        on_progress=None,
        abort_event: Optional[asyncio.Event] = None,
    ) -> CompletionResult:
        self.calls.append({"messages": messages, "max_tokens": max_tokens})
        if abort_event is not None and abort_event.is_set():
            raise StreamAbortedError("aborted")

        if self.responder is not None:
            reply = self.responder(messages)
            if inspect.isawaitable(reply):
                reply = await reply
        else:
            assert self.responses, "FakeCompletionStream ran out of scripted replies"
            reply = self.responses.pop(0)

        if isinstance(reply, Exception):
            raise reply

        chunks = 0
        for end in range(self.chunk_size, len(reply) + self.chunk_size, self.chunk_size):
            if abort_event is not None and abort_event.is_set():
                raise StreamAbortedError("aborted")
            chunks += 1
            if on_progress is not None:
                on_progress(min(end, len(reply)))
            await asyncio.sleep(0)

        return CompletionResult(content=reply, model="fake-model", chunks=chunks)


@pytest.fixture
async def test_db():
    """Create and initialize a temporary database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)
        yield db_path


@pytest.fixture
def session_repo(test_db):
    """Session repository bound to the temporary database."""
    return SessionRepository(test_db)


@pytest.fixture
def thinking_models():
    return load_thinking_models(CONFIG_DIR / "thinking_models.yaml")


@pytest.fixture
def prompt_catalog(tmp_path):
    """Shipped prompts; overrides persist to a throwaway file."""
    return PromptCatalog(
        prompts_dir=CONFIG_DIR / "prompts",
        default_locale="en-US",
        overrides_path=tmp_path / "overrides.yaml",
    )


@pytest.fixture
def fake_stream():
    return FakeCompletionStream()


@pytest.fixture
def reasoning_service(fake_stream, prompt_catalog, thinking_models):
    return ReasoningService(
        stream_client=fake_stream,
        prompt_catalog=prompt_catalog,
        thinking_models=thinking_models,
    )


@pytest.fixture
def engine(session_repo, reasoning_service, thinking_models):
    """Workflow engine wired to the fake stream and temporary database."""
    return WorkflowEngine(
        session_repo, reasoning_service, thinking_models=thinking_models
    )
