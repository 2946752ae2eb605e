"""
Message builders for the reasoning workflow.

Each builder returns the [system, user] message pair for one AI operation.
Template text comes from the PromptCatalog; this module only decides which
templates are used and how session data is serialised into them.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from ideaverse.domain.models.session import (
    ANALYSIS_FIELDS,
    AnalysisCard,
    InterviewAnswer,
    Solution,
)
from ideaverse.domain.models.thinking_model import ThinkingModel
from ideaverse.llm.prompts.catalog import PromptCatalog

# Per-field character cap when cards are summarised for the report
CARD_FIELD_LIMIT = 200
ELLIPSIS = "..."

Messages = List[Dict[str, str]]


def to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2)


def _pair(system: str, user: str) -> Messages:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


def truncate_text(value: Optional[str], limit: int = CARD_FIELD_LIMIT) -> str:
    """Cap text at `limit` characters, marking the cut with an ellipsis."""
    if not value:
        return ""
    return value[:limit] + ELLIPSIS if len(value) > limit else value


def compress_analysis_cards(cards: Sequence[AnalysisCard]) -> List[Dict[str, str]]:
    """Summarise cards for the report prompt.

    Only `dimension` and the four analysis fields are kept, each analysis
    field capped independently. Stored cards are not modified.
    """
    compressed = []
    for card in cards:
        data = card.model_dump(by_alias=True)
        entry = {"dimension": card.dimension}
        for field_name in ANALYSIS_FIELDS:
            entry[field_name] = truncate_text(data.get(field_name))
        compressed.append(entry)
    return compressed


def _card_payload(card: AnalysisCard) -> Dict[str, Any]:
    return card.model_dump(mode="json", by_alias=True, exclude_none=True)


def _solution_payload(solution: Solution) -> Dict[str, Any]:
    return solution.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Stage 1
# =============================================================================


def build_questions_messages(
    catalog: PromptCatalog, problem: str, locale: Optional[str] = None
) -> Messages:
    return _pair(
        catalog.resolve_template("interview_system", locale=locale),
        catalog.resolve_template("interview_user", {"problem": problem}, locale),
    )


def build_understanding_messages(
    catalog: PromptCatalog,
    problem: str,
    answers: Sequence[InterviewAnswer],
    locale: Optional[str] = None,
) -> Messages:
    """Answers are numbered in the order they were saved."""
    answer_lines = "\n\n".join(
        catalog.resolve_template(
            "answer_item",
            {"index": i, "question": a.question, "answer": a.answer},
            locale,
        )
        for i, a in enumerate(answers, start=1)
    )
    return _pair(
        catalog.resolve_template("understanding_system", locale=locale),
        catalog.resolve_template(
            "understanding_user", {"problem": problem, "answers": answer_lines}, locale
        ),
    )


# =============================================================================
# Stage 2
# =============================================================================


def _context_user(
    catalog: PromptCatalog, problem: str, report: Any, locale: Optional[str]
) -> str:
    return catalog.resolve_template(
        "context_user",
        {"problem": problem, "understandingReport": to_json(report)},
        locale,
    )


def build_recommend_messages(
    catalog: PromptCatalog,
    problem: str,
    understanding_report: Any,
    model_list: str,
    locale: Optional[str] = None,
) -> Messages:
    return _pair(
        catalog.resolve_template(
            "recommend_models_system", {"modelList": model_list}, locale
        ),
        _context_user(catalog, problem, understanding_report, locale),
    )


def build_dimensions_messages(
    catalog: PromptCatalog,
    problem: str,
    understanding_report: Any,
    model: ThinkingModel,
    locale: Optional[str] = None,
) -> Messages:
    return _pair(
        catalog.resolve_template(
            "analysis_dimensions_system",
            {
                "modelName": model.name,
                "modelDesc": model.description,
                "modelId": model.id,
            },
            locale,
        ),
        _context_user(catalog, problem, understanding_report, locale),
    )


def build_dimension_analysis_messages(
    catalog: PromptCatalog,
    problem: str,
    understanding_report: Any,
    model_name: str,
    card: AnalysisCard,
    locale: Optional[str] = None,
) -> Messages:
    """Only the dimension's identity is sent, never earlier analysis text."""
    dimension = {
        "id": card.id,
        "dimension": card.dimension,
        "icon": card.icon,
        "description": card.description or "",
    }
    system = catalog.resolve_template(
        "analysis_card_system",
        {
            "modelName": model_name,
            "dimensionName": card.dimension,
            "dimensionId": card.id,
            "dimensionIcon": card.icon,
        },
        locale,
    )
    user = catalog.resolve_template(
        "analysis_card_user",
        {
            "problem": problem,
            "understandingReport": to_json(understanding_report),
            "dimension": json.dumps(dimension, ensure_ascii=False),
        },
        locale,
    )
    return _pair(system, user)


def build_reanalyze_messages(
    catalog: PromptCatalog,
    problem: str,
    card: AnalysisCard,
    feedback: Optional[str] = None,
    locale: Optional[str] = None,
) -> Messages:
    if not feedback:
        feedback = catalog.resolve_template("reanalyze_default_feedback", locale=locale)
    return _pair(
        catalog.resolve_template("reanalyze_card_system", {"cardId": card.id}, locale),
        catalog.resolve_template(
            "reanalyze_card_user",
            {"problem": problem, "card": to_json(_card_payload(card)), "feedback": feedback},
            locale,
        ),
    )


def build_report_messages(
    catalog: PromptCatalog,
    problem: str,
    model_name: str,
    cards: Sequence[AnalysisCard],
    locale: Optional[str] = None,
) -> Messages:
    return _pair(
        catalog.resolve_template(
            "analysis_report_system", {"modelName": model_name}, locale
        ),
        catalog.resolve_template(
            "analysis_report_user",
            {"problem": problem, "cards": to_json(compress_analysis_cards(cards))},
            locale,
        ),
    )


# =============================================================================
# Stage 3
# =============================================================================


def build_solutions_messages(
    catalog: PromptCatalog,
    problem: str,
    analysis_report: Optional[str],
    locale: Optional[str] = None,
) -> Messages:
    return _pair(
        catalog.resolve_template("solutions_system", locale=locale),
        catalog.resolve_template(
            "solutions_user", {"problem": problem, "report": analysis_report or ""}, locale
        ),
    )


def build_regenerate_messages(
    catalog: PromptCatalog,
    problem: str,
    solution: Solution,
    feedback: Optional[str] = None,
    locale: Optional[str] = None,
) -> Messages:
    if not feedback:
        feedback = catalog.resolve_template("regenerate_default_feedback", locale=locale)
    return _pair(
        catalog.resolve_template(
            "regenerate_solution_system", {"solutionId": solution.id}, locale
        ),
        catalog.resolve_template(
            "regenerate_solution_user",
            {
                "problem": problem,
                "solution": to_json(_solution_payload(solution)),
                "feedback": feedback,
            },
            locale,
        ),
    )


def build_mind_map_messages(
    catalog: PromptCatalog,
    problem: str,
    understanding_report: Any,
    cards: Sequence[AnalysisCard],
    analysis_report: Optional[str],
    solutions: Sequence[Solution],
    locale: Optional[str] = None,
) -> Messages:
    return _pair(
        catalog.resolve_template("mindmap_system", locale=locale),
        catalog.resolve_template(
            "mindmap_user",
            {
                "problem": problem,
                "understandingReport": to_json(understanding_report),
                "cards": to_json(compress_analysis_cards(cards)),
                "report": analysis_report or "",
                "solutions": to_json([_solution_payload(s) for s in solutions]),
            },
            locale,
        ),
    )
