"""
Workflow engine for the three-stage reasoning session.

Drives one WorkflowSession at a time through interview, analysis and
solution generation. Owns all transient state that a front end renders
(global AI status, streamed character count, status message, error, per-card
progress) and mediates every call to the reasoning service and the store.

Write-through:
    Every mutation goes to the store first; `current_session` is then
    replaced by the record the store returned, so the two never diverge.

Concurrency:
    Dimension analyses may run concurrently (analyze_all_dimensions). Their
    network calls interleave freely, but every read-merge-persist step runs
    under one asyncio.Lock and re-reads the latest record, merging by card id.
    A late completion therefore never overwrites a sibling's result.

Failure handling:
    AI-issuing methods catch at their own boundary, record one error message,
    reset transient status, roll back per-item status and return None.
    recommend_models() re-raises after the same bookkeeping because its caller
    chains on the result. Nothing is retried automatically.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import structlog

from ideaverse.core.exceptions import (
    IdeaverseError,
    ResponseFormatError,
    ValidationError,
)
from ideaverse.core.logging import bind_context, clear_context
from ideaverse.core.thinking_model_loader import load_thinking_models
from ideaverse.domain.models.session import (
    ANALYSIS_FIELDS,
    AiStatus,
    AnalysisCard,
    CardStatus,
    InterviewAnswer,
    InterviewQuestion,
    SessionStatus,
    Solution,
    WorkflowSession,
    assign_unique_ids,
    merge_model,
)
from ideaverse.domain.models.thinking_model import ThinkingModel
from ideaverse.llm.response_parser import (
    normalize_item_list,
    normalize_question_list,
)
from ideaverse.services.protocols import ISessionStore
from ideaverse.services.reasoning_service import ReasoningService

log = structlog.get_logger(__name__)

STATUS_MESSAGES = {
    "questions": "Generating interview questions...",
    "understanding": "Generating understanding report...",
    "recommend_models": "Recommending thinking models...",
    "dimensions": "Deconstructing analysis dimensions...",
    "analyze_dimension": "Analyzing dimension: {dimension}...",
    "reanalyze_card": "Re-analyzing dimension: {dimension}...",
    "analysis_report": "Generating deep analysis report...",
    "solutions": "Generating innovative solutions...",
    "regenerate_solution": "Regenerating solution...",
    "mind_map": "Generating mind map...",
}

# Keys of an AI card result that never override engine-owned card state
_CARD_OWNED_KEYS = ("id", "status", "content")


def content_hash(text: str) -> int:
    """DJB2 (xor variant) over the text, as an unsigned 32-bit integer."""
    h = 5381
    for ch in text:
        h = ((h * 33) ^ ord(ch)) & 0xFFFFFFFF
    return h


def compute_mind_map_hash(session: WorkflowSession) -> int:
    """Hash of the canonical serialisation of (problem, cards, solutions)."""
    payload = {
        "problem": session.problem,
        "cards": [c.model_dump(mode="json", by_alias=True) for c in session.analysis_cards],
        "solutions": [s.model_dump(mode="json", by_alias=True) for s in session.solutions],
    }
    text = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return content_hash(text)


class WorkflowEngine:
    """State machine and orchestrator for one active reasoning session.

    Attributes:
        current_session: The active session, equal to its persisted record
        ai_status: Global status of the latest AI call
        response_count: Cumulative characters received by the latest stream
        status_message: Human-readable description of the running operation
        error: Message of the latest failure, cleared when a new operation starts
        card_progress: Characters received per card while it is being analyzed
        abort_event: Set to stop every in-flight stream
    """

    def __init__(
        self,
        session_repo: ISessionStore,
        reasoning_service: ReasoningService,
        thinking_models: Optional[Dict[str, ThinkingModel]] = None,
        locale: Optional[str] = None,
    ):
        """
        Initialize the engine.

        Args:
            session_repo: Session persistence
            reasoning_service: AI operations
            thinking_models: Framework catalog for display names
                (defaults to the YAML catalog)
            locale: Prompt locale (defaults to the catalog default)
        """
        self.session_repo = session_repo
        self.reasoning = reasoning_service
        self.thinking_models = (
            thinking_models if thinking_models is not None else load_thinking_models()
        )
        self.locale = locale

        self.current_session: Optional[WorkflowSession] = None
        self.ai_status = AiStatus.IDLE
        self.response_count = 0
        self.status_message = ""
        self.error: Optional[str] = None
        self.card_progress: Dict[int, int] = {}
        self.abort_event = asyncio.Event()

        self._lock = asyncio.Lock()
        self._in_flight = 0

    @property
    def loading(self) -> bool:
        """True while at least one AI call is in flight."""
        return self._in_flight > 0

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    async def create_session(self, problem: str) -> WorkflowSession:
        """Create a session for `problem` and make it current."""
        problem = problem.strip()
        if not problem:
            raise ValidationError("Problem text must not be empty")

        session = await self.session_repo.create_session(problem)
        self._reset_transient_state()
        self.current_session = session
        bind_context(session_id=session.id)
        log.info("workflow_session_started", problem_length=len(problem))
        return session

    async def load_session(self, session_id: str) -> Optional[WorkflowSession]:
        """Load a stored session and make it current; None if missing."""
        session = await self.session_repo.get_session(session_id)
        if session is None:
            log.warning("session_not_found", session_id=session_id)
            return None

        await self.session_repo.set_current_session_id(session_id)
        self.current_session = session
        bind_context(session_id=session.id)
        session = await self._reset_stale_cards(session)
        log.info("workflow_session_loaded", current_step=session.current_step)
        return session

    async def load_current_session(self) -> Optional[WorkflowSession]:
        """Resume whatever session the store's current pointer references."""
        session = await self.session_repo.get_current_session()
        if session is not None:
            self.current_session = session
            bind_context(session_id=session.id)
            session = await self._reset_stale_cards(session)
        return session

    async def _reset_stale_cards(self, session: WorkflowSession) -> WorkflowSession:
        """Settle cards left `analyzing` by a run that never finished.

        No analysis is in flight for a freshly loaded session, so such a card
        goes back to completed when it has content and to pending otherwise.
        """
        if not any(c.status == CardStatus.ANALYZING for c in session.analysis_cards):
            return session

        cards = []
        for card in session.analysis_cards:
            if card.status == CardStatus.ANALYZING:
                status = CardStatus.COMPLETED if card.content else CardStatus.PENDING
                log.info("stale_card_reset", card_id=card.id, status=status.value)
                card = card.model_copy(update={"status": status})
            cards.append(card)

        async with self._lock:
            updated = await self._write(session.id, {"analysisCards": cards})
        return updated or session

    async def update_current_session(self, **fields: Any) -> Optional[WorkflowSession]:
        """Shallow-merge fields into the current session (write-through)."""
        if self.current_session is None:
            return None
        async with self._lock:
            return await self._write(self.current_session.id, fields)

    def reset_session(self) -> None:
        """Forget the current session and all transient state."""
        self.current_session = None
        self._reset_transient_state()
        clear_context()

    async def delete_session(self, session_id: str) -> bool:
        """Delete a stored session; resets the engine if it was current."""
        deleted = await self.session_repo.delete_session(session_id)
        if self.current_session is not None and self.current_session.id == session_id:
            self.reset_session()
        return deleted

    async def set_step(self, step: int) -> Optional[WorkflowSession]:
        """Explicit user navigation between stages."""
        if step not in (1, 2, 3):
            raise ValidationError(f"Invalid workflow step: {step}")
        return await self.update_current_session(current_step=step)

    async def complete_session(self) -> Optional[WorkflowSession]:
        return await self.update_current_session(status=SessionStatus.COMPLETED)

    def abort(self) -> None:
        """Stop every in-flight stream; each raises StreamAbortedError."""
        if self.loading:
            log.info("workflow_abort_requested", in_flight=self._in_flight)
            self.abort_event.set()

    # =========================================================================
    # Stage 1: Interview
    # =========================================================================

    async def generate_questions(self) -> Optional[List[InterviewQuestion]]:
        """Generate clarifying questions for the current problem."""
        session = self.current_session
        if session is None:
            return None

        self._begin("questions")
        try:
            result = await self.reasoning.generate_questions(
                session.problem, **self._call_options()
            )
            raw = [q for q in normalize_question_list(result) if isinstance(q, dict)]
            questions = [InterviewQuestion.model_validate(q) for q in assign_unique_ids(raw)]
            async with self._lock:
                await self._write(session.id, {"interviewQuestions": questions})
            self._succeed("questions", count=len(questions))
            return questions
        except Exception as e:
            self._fail("questions", e)
            return None
        finally:
            self._end()

    async def save_answer(
        self, question_id: Any, question: str, answer: str
    ) -> Optional[List[InterviewAnswer]]:
        """Upsert the answer for `question_id` (no AI call)."""
        if self.current_session is None:
            return None
        session_id = self.current_session.id

        async with self._lock:
            latest = await self.session_repo.get_session(session_id)
            if latest is None:
                return None
            entry = InterviewAnswer(question_id=question_id, question=question, answer=answer)
            answers = [a for a in latest.interview_answers]
            for i, existing in enumerate(answers):
                if existing.question_id == question_id:
                    answers[i] = entry
                    break
            else:
                answers.append(entry)
            await self._write(session_id, {"interviewAnswers": answers})

        return answers

    async def generate_understanding_report(self) -> Optional[Any]:
        """Summarise problem and answers; advances the session to step 2."""
        session = self.current_session
        if session is None:
            return None

        self._begin("understanding")
        try:
            report = await self.reasoning.generate_understanding_report(
                session.problem, session.interview_answers, **self._call_options()
            )
            async with self._lock:
                latest = await self.session_repo.get_session(session.id)
                step = max(latest.current_step if latest else 1, 2)
                await self._write(
                    session.id, {"understandingReport": report, "currentStep": step}
                )
            self._succeed("understanding")
            return report
        except Exception as e:
            self._fail("understanding", e)
            return None
        finally:
            self._end()

    # =========================================================================
    # Stage 2: Analysis
    # =========================================================================

    async def recommend_models(self) -> Optional[Dict[str, Any]]:
        """
        Ask which frameworks suit the problem.

        Returns:
            The raw recommendation dict ({recommendedModels, reasons})

        Raises:
            Exception: Any failure, re-raised after bookkeeping
        """
        session = self.current_session
        if session is None:
            return None

        self._begin("recommend_models")
        try:
            result = await self.reasoning.recommend_models(
                session.problem, session.understanding_report, **self._call_options()
            )
            if not isinstance(result, dict):
                result = {}
            recommended = result.get("recommendedModels")
            reasons = result.get("reasons")
            async with self._lock:
                await self._write(
                    session.id,
                    {
                        "recommendedModels": [str(m) for m in recommended]
                        if isinstance(recommended, list)
                        else [],
                        "modelReasons": {str(k): str(v) for k, v in reasons.items()}
                        if isinstance(reasons, dict)
                        else {},
                    },
                )
            self._succeed("recommend_models")
            return result
        except Exception as e:
            self._fail("recommend_models", e)
            raise
        finally:
            self._end()

    async def generate_analysis_dimensions(
        self, model_id: str
    ) -> Optional[List[AnalysisCard]]:
        """Materialise the dimensions of `model_id` as pending cards."""
        session = self.current_session
        if session is None:
            return None

        self._begin("dimensions")
        try:
            result = await self.reasoning.generate_analysis_dimensions(
                session.problem,
                session.understanding_report,
                model_id,
                **self._call_options(),
            )
            dimensions = normalize_item_list(result, "dimensions", "dimension")

            raw = [
                {**dim, "status": CardStatus.PENDING.value, "content": None}
                for dim in dimensions
                if isinstance(dim, dict)
            ]
            cards = [AnalysisCard.model_validate(d) for d in assign_unique_ids(raw)]

            catalog_entry = self.thinking_models.get(model_id)
            if catalog_entry is not None:
                model_name = catalog_entry.name
            elif isinstance(result, dict):
                model_name = result.get("thinkingModel")
            else:
                model_name = None

            async with self._lock:
                await self._write(
                    session.id,
                    {
                        "thinkingModel": model_name,
                        "thinkingModelId": model_id,
                        "analysisCards": cards,
                    },
                )
            self._succeed("dimensions", count=len(cards), model_id=model_id)
            return cards
        except Exception as e:
            self._fail("dimensions", e, model_id=model_id)
            return None
        finally:
            self._end()

    async def analyze_dimension(self, card_id: int) -> Optional[AnalysisCard]:
        """
        Analyze one pending card.

        pending -> analyzing -> completed on success; back to pending (content
        untouched) on failure. Cards that are not pending are left alone.
        """
        return await self._run_card_analysis(
            card_id,
            operation="analyze_dimension",
            expected=CardStatus.PENDING,
            rollback=CardStatus.PENDING,
        )

    async def analyze_all_dimensions(self) -> List[Optional[AnalysisCard]]:
        """Analyze every pending card concurrently.

        Each card succeeds or fails on its own; results are returned in card
        order (None for failures).
        """
        if self.current_session is None:
            return []
        pending = [
            c.id
            for c in self.current_session.analysis_cards
            if c.status == CardStatus.PENDING
        ]
        log.info("batch_analysis_started", cards=pending)
        results = await asyncio.gather(*(self.analyze_dimension(cid) for cid in pending))
        log.info(
            "batch_analysis_finished",
            completed=sum(1 for r in results if r is not None),
            failed=sum(1 for r in results if r is None),
        )
        return list(results)

    async def reanalyze_card(
        self, card_id: int, feedback: Optional[str] = None
    ) -> Optional[AnalysisCard]:
        """
        Refine a completed card using the user's feedback.

        completed -> analyzing -> completed; on failure the card returns to
        completed with its previous content.
        """
        return await self._run_card_analysis(
            card_id,
            operation="reanalyze_card",
            expected=CardStatus.COMPLETED,
            rollback=CardStatus.COMPLETED,
            feedback=feedback,
        )

    async def update_analysis_card(
        self, card_id: int, content: Dict[str, Any]
    ) -> Optional[AnalysisCard]:
        """Merge user edits into a card by id (no AI call)."""
        if self.current_session is None:
            return None
        session_id = self.current_session.id

        async with self._lock:
            latest = await self.session_repo.get_session(session_id)
            if latest is None or latest.get_card(card_id) is None:
                return None
            changes = {k: v for k, v in content.items() if k != "id"}
            cards = []
            updated = None
            for card in latest.analysis_cards:
                if card.id == card_id:
                    card = merge_model(card, changes)
                    if card.content is not None:
                        card = card.model_copy(update={"content": _analysis_content(card)})
                    updated = card
                cards.append(card)
            await self._write(session_id, {"analysisCards": cards})
        return updated

    async def delete_analysis_card(self, card_id: int) -> bool:
        """Remove a card by id. False if there is nothing to delete."""
        if self.current_session is None:
            return False
        session_id = self.current_session.id

        async with self._lock:
            latest = await self.session_repo.get_session(session_id)
            if latest is None or latest.get_card(card_id) is None:
                return False
            cards = [c for c in latest.analysis_cards if c.id != card_id]
            await self._write(session_id, {"analysisCards": cards})
        self.card_progress.pop(card_id, None)
        return True

    async def generate_deep_analysis_report(self) -> Optional[str]:
        """Markdown report over all cards (sent in compressed form)."""
        session = self.current_session
        if session is None or not session.analysis_cards:
            return None

        self._begin("analysis_report")
        try:
            report = await self.reasoning.generate_deep_analysis_report(
                session.problem,
                self._model_name(session),
                session.analysis_cards,
                **self._call_options(),
            )
            async with self._lock:
                await self._write(session.id, {"deepAnalysisReport": report})
            self._succeed("analysis_report", length=len(report))
            return report
        except Exception as e:
            self._fail("analysis_report", e)
            return None
        finally:
            self._end()

    # =========================================================================
    # Stage 3: Solutions
    # =========================================================================

    async def generate_solutions(self) -> Optional[Dict[str, Any]]:
        """Generate scored solutions and the recommended pick.

        Returns:
            {"solutions": [...], "recommendation": {...} | None}
        """
        session = self.current_session
        if session is None:
            return None

        self._begin("solutions")
        try:
            result = await self.reasoning.generate_solutions(
                session.problem, session.deep_analysis_report, **self._call_options()
            )
            raw = normalize_item_list(result, "solutions", "name")
            recommendation = (
                result.get("recommendation") if isinstance(result, dict) else None
            )
            if not isinstance(recommendation, dict):
                recommendation = None

            solutions = [
                Solution.model_validate(s)
                for s in assign_unique_ids(s for s in raw if isinstance(s, dict))
            ]
            async with self._lock:
                await self._write(
                    session.id,
                    {"solutions": solutions, "recommendation": recommendation},
                )
            self._succeed("solutions", count=len(solutions))
            return {"solutions": solutions, "recommendation": recommendation}
        except Exception as e:
            self._fail("solutions", e)
            return None
        finally:
            self._end()

    async def update_solution(
        self, solution_id: int, content: Dict[str, Any]
    ) -> Optional[Solution]:
        """Merge user edits into a solution by id (no AI call)."""
        if self.current_session is None:
            return None
        session_id = self.current_session.id

        async with self._lock:
            latest = await self.session_repo.get_session(session_id)
            if latest is None or latest.get_solution(solution_id) is None:
                return None
            changes = {k: v for k, v in content.items() if k != "id"}
            solutions = []
            updated = None
            for solution in latest.solutions:
                if solution.id == solution_id:
                    solution = merge_model(solution, changes)
                    updated = solution
                solutions.append(solution)
            await self._write(session_id, {"solutions": solutions})
        return updated

    async def regenerate_solution(
        self, solution_id: int, feedback: Optional[str] = None
    ) -> Optional[Solution]:
        """Replace one solution with a regenerated one, keeping its id."""
        session = self.current_session
        if session is None:
            return None
        solution = session.get_solution(solution_id)
        if solution is None:
            return None

        self._begin("regenerate_solution")
        try:
            result = await self.reasoning.regenerate_solution(
                session.problem, solution, feedback, **self._call_options()
            )
            if not isinstance(result, dict):
                raise ResponseFormatError(raw_text=json.dumps(result, ensure_ascii=False))
            replacement = Solution.model_validate({**result, "id": solution_id})

            async with self._lock:
                latest = await self.session_repo.get_session(session.id)
                if latest is None or latest.get_solution(solution_id) is None:
                    log.warning("regenerated_solution_dropped", solution_id=solution_id)
                    replacement = None
                else:
                    solutions = [
                        replacement if s.id == solution_id else s for s in latest.solutions
                    ]
                    await self._write(session.id, {"solutions": solutions})
            self._succeed("regenerate_solution", solution_id=solution_id)
            return replacement
        except Exception as e:
            self._fail("regenerate_solution", e, solution_id=solution_id)
            return None
        finally:
            self._end()

    async def generate_mind_map(self) -> Optional[str]:
        """
        Produce the mind-map markdown, reusing the cached one when the
        problem, cards and solutions are unchanged.
        """
        session = self.current_session
        if session is None:
            return None

        digest = compute_mind_map_hash(session)
        if session.mind_map and session.mind_map_hash == digest:
            log.info("mind_map_cache_hit", hash=digest)
            return session.mind_map

        self._begin("mind_map")
        try:
            mind_map = await self.reasoning.generate_mind_map(
                session.problem,
                session.understanding_report,
                session.analysis_cards,
                session.deep_analysis_report,
                session.solutions,
                **self._call_options(),
            )

            async with self._lock:
                # Re-validate against the latest record before writing
                latest = await self.session_repo.get_session(session.id)
                if latest is None:
                    return None
                latest_digest = compute_mind_map_hash(latest)
                if latest.mind_map and latest.mind_map_hash == latest_digest:
                    log.info("mind_map_already_current", hash=latest_digest)
                    mind_map = latest.mind_map
                else:
                    if latest_digest != digest:
                        log.warning(
                            "mind_map_inputs_changed",
                            generated_from=digest,
                            current=latest_digest,
                        )
                    await self._write(
                        session.id, {"mindMap": mind_map, "mindMapHash": digest}
                    )
            self._succeed("mind_map", hash=digest)
            return mind_map
        except Exception as e:
            self._fail("mind_map", e)
            return None
        finally:
            self._end()

    # =========================================================================
    # Card analysis
    # =========================================================================

    async def _run_card_analysis(
        self,
        card_id: int,
        operation: str,
        expected: CardStatus,
        rollback: CardStatus,
        feedback: Optional[str] = None,
    ) -> Optional[AnalysisCard]:
        if self.current_session is None:
            return None
        session_id = self.current_session.id

        async with self._lock:
            latest = await self.session_repo.get_session(session_id)
            card = latest.get_card(card_id) if latest else None
            if card is None:
                return None
            if card.status != expected:
                log.info(
                    "card_analysis_skipped",
                    operation=operation,
                    card_id=card_id,
                    status=card.status.value,
                )
                return None
            await self._write_card_status(latest, card_id, CardStatus.ANALYZING)

        self._begin(operation, dimension=card.dimension)
        self.card_progress[card_id] = 0
        try:
            options = self._call_options(on_progress=self._card_progress_callback(card_id))
            if operation == "reanalyze_card":
                result = await self.reasoning.reanalyze_card(
                    latest.problem, card, feedback, **options
                )
            else:
                result = await self.reasoning.analyze_dimension(
                    latest.problem,
                    latest.understanding_report,
                    self._model_name(latest),
                    card,
                    **options,
                )
            if not isinstance(result, dict):
                raise ResponseFormatError(raw_text=json.dumps(result, ensure_ascii=False))

            async with self._lock:
                updated = await self._merge_card_result(session_id, card_id, result)
            self._succeed(operation, card_id=card_id)
            return updated
        except asyncio.CancelledError:
            log.warning("card_analysis_cancelled", operation=operation, card_id=card_id)
            self.ai_status = AiStatus.IDLE
            await self._rollback_card_status(session_id, card_id, rollback)
            raise
        except Exception as e:
            self._fail(operation, e, card_id=card_id)
            await self._rollback_card_status(session_id, card_id, rollback)
            return None
        finally:
            self.card_progress.pop(card_id, None)
            self._end()

    async def _rollback_card_status(
        self, session_id: str, card_id: int, status: CardStatus
    ) -> None:
        async with self._lock:
            current = await self.session_repo.get_session(session_id)
            if current is not None and current.get_card(card_id) is not None:
                await self._write_card_status(current, card_id, status)

    async def _merge_card_result(
        self, session_id: str, card_id: int, result: Dict[str, Any]
    ) -> Optional[AnalysisCard]:
        """Merge an AI card result into the latest list at `card_id` (lock held)."""
        latest = await self.session_repo.get_session(session_id)
        if latest is None or latest.get_card(card_id) is None:
            log.warning("card_result_dropped", card_id=card_id)
            return None

        changes = {k: v for k, v in result.items() if k not in _CARD_OWNED_KEYS}
        cards = []
        updated = None
        for card in latest.analysis_cards:
            if card.id == card_id:
                card = merge_model(card, {**changes, "status": CardStatus.COMPLETED})
                card = card.model_copy(update={"content": _analysis_content(card)})
                updated = card
            cards.append(card)

        await self._write(session_id, {"analysisCards": cards})
        return updated

    async def _write_card_status(
        self, latest: WorkflowSession, card_id: int, status: CardStatus
    ) -> None:
        cards = [
            c.model_copy(update={"status": status}) if c.id == card_id else c
            for c in latest.analysis_cards
        ]
        await self._write(latest.id, {"analysisCards": cards})

    def _card_progress_callback(self, card_id: int) -> Callable[[int], None]:
        def on_progress(count: int) -> None:
            self.card_progress[card_id] = count
            self._on_progress(count)

        return on_progress

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _write(
        self, session_id: str, fields: Dict[str, Any]
    ) -> Optional[WorkflowSession]:
        """Persist fields and refresh current_session (caller holds the lock)."""
        updated = await self.session_repo.update_session(session_id, fields)
        if (
            updated is not None
            and self.current_session is not None
            and self.current_session.id == session_id
        ):
            self.current_session = updated
        return updated

    def _model_name(self, session: WorkflowSession) -> str:
        if session.thinking_model_id and session.thinking_model_id in self.thinking_models:
            return self.thinking_models[session.thinking_model_id].name
        return session.thinking_model or session.thinking_model_id or ""

    def _call_options(
        self, on_progress: Optional[Callable[[int], None]] = None
    ) -> Dict[str, Any]:
        return {
            "on_progress": on_progress or self._on_progress,
            "abort_event": self.abort_event,
            "locale": self.locale,
        }

    def _on_progress(self, count: int) -> None:
        self.ai_status = AiStatus.RECEIVING
        self.response_count = count

    def _begin(self, operation: str, **fmt: Any) -> None:
        # A new operation (not a sibling of a running batch) clears the last
        # error and any abort request left over from the previous one
        if self._in_flight == 0:
            self.error = None
            self.abort_event.clear()
        self._in_flight += 1
        self.ai_status = AiStatus.REQUESTING
        self.response_count = 0
        self.status_message = STATUS_MESSAGES[operation].format(**fmt)
        log.info("workflow_operation_started", operation=operation, **fmt)

    def _succeed(self, operation: str, **fields: Any) -> None:
        self.ai_status = AiStatus.COMPLETED
        log.info("workflow_operation_completed", operation=operation, **fields)

    def _fail(self, operation: str, exc: Exception, **fields: Any) -> None:
        self.error = self._error_message(exc)
        self.ai_status = AiStatus.IDLE
        log.error(
            f"{operation}_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            **fields,
        )

    def _end(self) -> None:
        self._in_flight = max(0, self._in_flight - 1)
        if self._in_flight == 0:
            self.status_message = ""

    def _reset_transient_state(self) -> None:
        self.ai_status = AiStatus.IDLE
        self.response_count = 0
        self.status_message = ""
        self.error = None
        self.card_progress.clear()
        self.abort_event.clear()

    @staticmethod
    def _error_message(exc: Exception) -> str:
        if isinstance(exc, ResponseFormatError):
            return ResponseFormatError.USER_MESSAGE
        if isinstance(exc, IdeaverseError):
            return exc.message
        return str(exc) or type(exc).__name__


def _analysis_content(card: AnalysisCard) -> Dict[str, Any]:
    """The card's analysis fields as the camelCase content dict."""
    data = card.model_dump(by_alias=True)
    return {name: data.get(name) for name in ANALYSIS_FIELDS}
