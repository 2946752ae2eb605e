"""Workflow session domain models.

This module defines the persisted state of one reasoning session and the
per-item records it carries through the three workflow stages.

Core Models:
    - WorkflowSession: Top-level persisted record (one per user problem)
    - AnalysisCard: One analytical dimension with its async lifecycle status
    - Solution: One candidate solution with multi-criteria scores

Session Lifecycle:
    1. Created with the problem text (currentStep=1, status=in_progress)
    2. Stage 1 (interview) fills questions, answers and the understanding report,
       then advances to currentStep=2
    3. Stage 2 (analysis) fills recommended models, cards and the deep report
    4. Stage 3 (solutions) fills solutions, recommendation and the mind map

Card Status Transitions:
    - pending -> analyzing -> completed (success)
    - analyzing -> pending (first analysis failed)
    - completed -> analyzing -> completed (re-analysis, success or failure)

Serialization:
    Models dump with camelCase aliases (problem, currentStep, analysisCards,
    hiddenFactors, ...) which is also the shape the language model is asked to
    produce. Snake_case field names are accepted on input.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


ANALYSIS_FIELDS = ("phenomenon", "cause", "impact", "hiddenFactors")
SCORE_WEIGHTS = {"effectiveness": 0.5, "feasibility": 0.3, "sustainability": 0.2}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def coerce_text(v: Any) -> Optional[str]:
    """Render model-supplied values as text (lists become bullet lines)."""
    if v is None or isinstance(v, str):
        return v
    if isinstance(v, list):
        return "\n".join(f"- {item}" for item in v)
    if isinstance(v, dict):
        return json.dumps(v, ensure_ascii=False)
    return str(v)


class SessionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class CardStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"


class AiStatus(str, Enum):
    """Global status of the AI call currently driven by the engine."""

    IDLE = "idle"
    REQUESTING = "requesting"
    RECEIVING = "receiving"
    COMPLETED = "completed"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InterviewQuestion(_CamelModel):
    """Clarifying question produced in stage 1."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: Union[int, str]
    question: str = ""
    options: List[str] = Field(default_factory=list)

    @field_validator("options", mode="before")
    @classmethod
    def stringify_options(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            return []
        return [str(option) for option in v if option is not None]


class InterviewAnswer(_CamelModel):
    """User answer, unique per question_id."""

    question_id: Union[int, str]
    question: str = ""
    answer: str = ""


class AnalysisCard(_CamelModel):
    """Persisted, stateful representation of one dimension's analysis.

    Extra keys returned by the model (e.g. correlation notes) are retained.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: int
    dimension: str = ""
    icon: str = ""
    description: Optional[str] = None
    status: CardStatus = CardStatus.PENDING
    content: Optional[Dict[str, Any]] = None
    phenomenon: Optional[str] = None
    cause: Optional[str] = None
    impact: Optional[str] = None
    hidden_factors: Optional[str] = None

    @field_validator(
        "description", "phenomenon", "cause", "impact", "hidden_factors", mode="before"
    )
    @classmethod
    def text_fields(cls, v: Any) -> Optional[str]:
        return coerce_text(v)

    @field_validator("dimension", "icon", mode="before")
    @classmethod
    def label_fields(cls, v: Any) -> str:
        return coerce_text(v) or ""


class Solution(_CamelModel):
    """One generated candidate course of action."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: int
    name: str = ""
    description: Optional[str] = None
    implementation: Optional[str] = None
    effectiveness: Optional[float] = None
    feasibility: Optional[float] = None
    sustainability: Optional[float] = None
    weighted_score: Optional[float] = None
    cost_benefit: Optional[str] = None
    worst_case: Optional[str] = None
    countermeasure: Optional[str] = None
    timeframe: Optional[str] = None
    resources: Optional[str] = None

    @field_validator(
        "description",
        "implementation",
        "cost_benefit",
        "worst_case",
        "countermeasure",
        "timeframe",
        "resources",
        mode="before",
    )
    @classmethod
    def text_fields(cls, v: Any) -> Optional[str]:
        return coerce_text(v)

    @field_validator("name", mode="before")
    @classmethod
    def name_field(cls, v: Any) -> str:
        return coerce_text(v) or ""

    @field_validator("effectiveness", "feasibility", "sustainability", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> Optional[float]:
        """Coerce scores to floats in [0, 10]; unreadable scores become None."""
        if v is None or isinstance(v, bool):
            return None
        try:
            score = float(v)
        except (TypeError, ValueError):
            return None
        return min(max(score, 0.0), 10.0)

    @field_validator("weighted_score", mode="before")
    @classmethod
    def coerce_weighted(cls, v: Any) -> Optional[float]:
        if v is None or isinstance(v, bool):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    def expected_weighted_score(self) -> Optional[float]:
        """Score under the declared 50/30/20 policy, or None if a score is missing.

        Diagnostic only: producer-supplied weighted_score is stored as-is.
        """
        scores = [self.effectiveness, self.feasibility, self.sustainability]
        if any(s is None for s in scores):
            return None
        return round(
            SCORE_WEIGHTS["effectiveness"] * self.effectiveness
            + SCORE_WEIGHTS["feasibility"] * self.feasibility
            + SCORE_WEIGHTS["sustainability"] * self.sustainability,
            2,
        )


class WorkflowSession(_CamelModel):
    """Top-level persisted record of one reasoning session.

    Attributes:
        - id: Opaque identifier, immutable
        - problem: User's question, immutable
        - current_step: 1 (interview), 2 (analysis), 3 (solutions)
        - status: in_progress / completed
        - mind_map_hash: Content hash of (problem, cards, solutions) that
          produced mind_map; a mismatch forces regeneration
    """

    id: str
    problem: str
    current_step: int = Field(default=1, ge=1, le=3)
    status: SessionStatus = SessionStatus.IN_PROGRESS
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    # Stage 1
    interview_questions: Optional[List[InterviewQuestion]] = None
    interview_answers: List[InterviewAnswer] = Field(default_factory=list)
    understanding_report: Optional[Any] = None

    # Stage 2
    recommended_models: List[str] = Field(default_factory=list)
    model_reasons: Dict[str, str] = Field(default_factory=dict)
    thinking_model: Optional[str] = None
    thinking_model_id: Optional[str] = None
    analysis_cards: List[AnalysisCard] = Field(default_factory=list)
    deep_analysis_report: Optional[str] = None

    # Stage 3
    solutions: List[Solution] = Field(default_factory=list)
    recommendation: Optional[Dict[str, Any]] = None
    mind_map: Optional[str] = None
    mind_map_hash: Optional[int] = None

    def get_card(self, card_id: int) -> Optional[AnalysisCard]:
        return next((c for c in self.analysis_cards if c.id == card_id), None)

    def get_solution(self, solution_id: int) -> Optional[Solution]:
        return next((s for s in self.solutions if s.id == solution_id), None)

    def to_record(self) -> Dict[str, Any]:
        """JSON-compatible dict with camelCase keys (persisted/exported form)."""
        return self.model_dump(mode="json", by_alias=True)


def merge_model(model: BaseModel, changes: Dict[str, Any]) -> BaseModel:
    """Shallow-merge `changes` into a model and revalidate.

    Snake_case keys are folded onto their camelCase aliases, so a change
    always replaces the field instead of landing beside it as an extra.
    """
    data = model.model_dump(by_alias=True)
    data.update({to_camel(k) if "_" in k else k: v for k, v in changes.items()})
    return type(model).model_validate(data)


def assign_unique_ids(items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Coerce item ids to ints, renumbering missing or duplicate ids.

    Ids already valid and unique are kept; the rest receive max(id)+1 in order.
    """
    result: List[Dict[str, Any]] = []
    seen: set = set()
    pending: List[Dict[str, Any]] = []

    for item in items:
        entry = dict(item)
        try:
            item_id = int(entry.get("id"))
        except (TypeError, ValueError):
            item_id = None
        if item_id is None or item_id in seen:
            entry["id"] = None
            pending.append(entry)
        else:
            entry["id"] = item_id
            seen.add(item_id)
        result.append(entry)

    next_id = max(seen, default=0) + 1
    for entry in pending:
        entry["id"] = next_id
        seen.add(next_id)
        next_id += 1

    return result
