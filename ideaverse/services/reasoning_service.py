"""AI operations of the three-stage reasoning workflow.

One method per operation. Each builds its messages from the prompt catalog,
streams a completion with the operation's token budget and, except for the
two markdown documents (deep analysis report and mind map), extracts the
structured result with the response parser.

The service is stateless with respect to sessions: it receives the data it
needs and returns what the model produced. Merging results into a session is
the workflow engine's job.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import structlog

from ideaverse.core.exceptions import UnknownThinkingModelError
from ideaverse.core.thinking_model_loader import format_model_list, load_thinking_models
from ideaverse.domain.models.session import (
    AnalysisCard,
    InterviewAnswer,
    Solution,
)
from ideaverse.domain.models.thinking_model import ThinkingModel
from ideaverse.llm.client import OPERATION_DEFAULTS
from ideaverse.llm.prompts import workflow as prompts
from ideaverse.llm.response_parser import StructuredResponseParser
from ideaverse.services.protocols import (
    ICompletionStream,
    IPromptCatalog,
    IStructuredParser,
)

log = structlog.get_logger(__name__)

ProgressCallback = Callable[[int], None]
StructuredResult = Union[dict, list]


class ReasoningService:
    """Service issuing the workflow's AI calls.

    Every public method accepts the same keyword-only call options:
    on_progress (cumulative character count), abort_event and locale.
    """

    def __init__(
        self,
        stream_client: ICompletionStream,
        prompt_catalog: IPromptCatalog,
        parser: Optional[IStructuredParser] = None,
        thinking_models: Optional[Dict[str, ThinkingModel]] = None,
    ):
        """
        Initialize the reasoning service.

        Args:
            stream_client: Streaming completion producer
            prompt_catalog: Template source for every message
            parser: Structured-response extractor (default cascade parser)
            thinking_models: Framework catalog (defaults to the YAML catalog)
        """
        self.stream_client = stream_client
        self.prompt_catalog = prompt_catalog
        self.parser = parser or StructuredResponseParser()
        self.thinking_models = (
            thinking_models if thinking_models is not None else load_thinking_models()
        )

    def get_thinking_model(self, model_id: str) -> ThinkingModel:
        """
        Look up a framework by id.

        Raises:
            UnknownThinkingModelError: If the id is not in the catalog
        """
        model = self.thinking_models.get(model_id)
        if model is None:
            raise UnknownThinkingModelError(f"Unknown thinking model: {model_id}")
        return model

    async def _complete(
        self,
        operation: str,
        messages: List[Dict[str, str]],
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        parse: bool = True,
    ) -> Any:
        """Stream one operation and optionally parse its output."""
        budget = OPERATION_DEFAULTS.get(operation, {})
        log.info("reasoning_call_start", operation=operation, **budget)

        result = await self.stream_client.stream(
            messages,
            max_tokens=budget.get("max_tokens"),
            on_progress=on_progress,
            abort_event=abort_event,
        )

        log.info(
            "reasoning_call_complete",
            operation=operation,
            content_length=len(result.content),
        )

        if not parse:
            return result.content
        return self.parser.parse(result.content)

    # =========================================================================
    # Stage 1: Interview
    # =========================================================================

    async def generate_questions(
        self,
        problem: str,
        *,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        locale: Optional[str] = None,
    ) -> StructuredResult:
        """Clarifying questions, as a list or as {"questions": [...]}."""
        messages = prompts.build_questions_messages(self.prompt_catalog, problem, locale)
        return await self._complete("questions", messages, on_progress, abort_event)

    async def generate_understanding_report(
        self,
        problem: str,
        answers: Sequence[InterviewAnswer],
        *,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        locale: Optional[str] = None,
    ) -> StructuredResult:
        messages = prompts.build_understanding_messages(
            self.prompt_catalog, problem, answers, locale
        )
        return await self._complete("understanding", messages, on_progress, abort_event)

    # =========================================================================
    # Stage 2: Analysis
    # =========================================================================

    async def recommend_models(
        self,
        problem: str,
        understanding_report: Any,
        *,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        locale: Optional[str] = None,
    ) -> StructuredResult:
        """{"recommendedModels": [...], "reasons": {...}} chosen from the catalog."""
        messages = prompts.build_recommend_messages(
            self.prompt_catalog,
            problem,
            understanding_report,
            format_model_list(self.thinking_models),
            locale,
        )
        return await self._complete(
            "recommend_models", messages, on_progress, abort_event
        )

    async def generate_analysis_dimensions(
        self,
        problem: str,
        understanding_report: Any,
        model_id: str,
        *,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        locale: Optional[str] = None,
    ) -> StructuredResult:
        """
        Break the problem into dimensions using one framework.

        Raises:
            UnknownThinkingModelError: If model_id is not in the catalog
        """
        model = self.get_thinking_model(model_id)
        messages = prompts.build_dimensions_messages(
            self.prompt_catalog, problem, understanding_report, model, locale
        )
        return await self._complete("dimensions", messages, on_progress, abort_event)

    async def analyze_dimension(
        self,
        problem: str,
        understanding_report: Any,
        model_name: str,
        card: AnalysisCard,
        *,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        locale: Optional[str] = None,
    ) -> StructuredResult:
        messages = prompts.build_dimension_analysis_messages(
            self.prompt_catalog, problem, understanding_report, model_name, card, locale
        )
        return await self._complete(
            "analyze_dimension", messages, on_progress, abort_event
        )

    async def reanalyze_card(
        self,
        problem: str,
        card: AnalysisCard,
        feedback: Optional[str] = None,
        *,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        locale: Optional[str] = None,
    ) -> StructuredResult:
        messages = prompts.build_reanalyze_messages(
            self.prompt_catalog, problem, card, feedback, locale
        )
        return await self._complete("reanalyze_card", messages, on_progress, abort_event)

    async def generate_deep_analysis_report(
        self,
        problem: str,
        model_name: str,
        cards: Sequence[AnalysisCard],
        *,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        locale: Optional[str] = None,
    ) -> str:
        """Markdown report over the compressed cards (raw text, not parsed)."""
        messages = prompts.build_report_messages(
            self.prompt_catalog, problem, model_name, cards, locale
        )
        return await self._complete(
            "analysis_report", messages, on_progress, abort_event, parse=False
        )

    # =========================================================================
    # Stage 3: Solutions
    # =========================================================================

    async def generate_solutions(
        self,
        problem: str,
        analysis_report: Optional[str],
        *,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        locale: Optional[str] = None,
    ) -> StructuredResult:
        messages = prompts.build_solutions_messages(
            self.prompt_catalog, problem, analysis_report, locale
        )
        return await self._complete("solutions", messages, on_progress, abort_event)

    async def regenerate_solution(
        self,
        problem: str,
        solution: Solution,
        feedback: Optional[str] = None,
        *,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        locale: Optional[str] = None,
    ) -> StructuredResult:
        messages = prompts.build_regenerate_messages(
            self.prompt_catalog, problem, solution, feedback, locale
        )
        return await self._complete(
            "regenerate_solution", messages, on_progress, abort_event
        )

    async def generate_mind_map(
        self,
        problem: str,
        understanding_report: Any,
        cards: Sequence[AnalysisCard],
        analysis_report: Optional[str],
        solutions: Sequence[Solution],
        *,
        on_progress: Optional[ProgressCallback] = None,
        abort_event: Optional[asyncio.Event] = None,
        locale: Optional[str] = None,
    ) -> str:
        """Markdown mind map rooted at the problem (raw text, not parsed)."""
        messages = prompts.build_mind_map_messages(
            self.prompt_catalog,
            problem,
            understanding_report,
            cards,
            analysis_report,
            solutions,
            locale,
        )
        return await self._complete(
            "mind_map", messages, on_progress, abort_event, parse=False
        )
