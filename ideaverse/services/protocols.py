"""
Service protocol definitions (interfaces).

Defines the contracts the workflow depends on using typing.Protocol, so
the concrete httpx client, YAML prompt catalog and SQLite store can be
swapped for fakes in tests.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from ideaverse.domain.models.session import WorkflowSession
from ideaverse.llm.client import CompletionResult


class ICompletionStream(Protocol):
    """
    Protocol for streaming text producers.

    Streams a chat completion, reporting the cumulative character count, and
    returns the full text when the stream ends.
    """

    async def stream(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        on_progress: Optional[Callable[[int], None]] = None,
        abort_event: Optional[asyncio.Event] = None,
    ) -> CompletionResult:
        """
        Stream one completion.

        Args:
            messages: Chat messages ({"role", "content"})
            max_tokens: Token budget for this call
            temperature: Sampling temperature
            on_progress: Called with the cumulative character count, non-decreasing
            abort_event: Stops the stream when set

        Returns:
            CompletionResult whose content is the complete text
        """
        ...


class IPromptCatalog(Protocol):
    """Protocol for named prompt template lookup."""

    def resolve_template(
        self,
        name: str,
        variables: Optional[Dict[str, Any]] = None,
        locale: Optional[str] = None,
    ) -> str:
        """
        Render a template with literal placeholder substitution.

        Raises:
            PromptTemplateNotFoundError: If `name` does not exist
        """
        ...


class IStructuredParser(Protocol):
    """Protocol for structured-response extraction."""

    def parse(self, raw_text: str) -> Union[dict, list]:
        """
        Extract a JSON object or array from model output.

        Raises:
            ResponseFormatError: If no strategy succeeds
        """
        ...


class ISessionStore(Protocol):
    """
    Protocol for keyed session persistence.

    Every call persists atomically; update_session refreshes updatedAt.
    """

    async def create_session(self, problem: str) -> WorkflowSession:
        ...

    async def get_session(self, session_id: str) -> Optional[WorkflowSession]:
        ...

    async def update_session(
        self, session_id: str, fields: Dict[str, Any]
    ) -> Optional[WorkflowSession]:
        """Shallow merge; None if the session does not exist."""
        ...

    async def delete_session(self, session_id: str) -> bool:
        ...

    async def get_current_session_id(self) -> Optional[str]:
        ...

    async def set_current_session_id(self, session_id: Optional[str]) -> None:
        ...

    async def get_current_session(self) -> Optional[WorkflowSession]:
        ...

    async def list_sessions(self) -> List[WorkflowSession]:
        """All sessions, newest first."""
        ...
