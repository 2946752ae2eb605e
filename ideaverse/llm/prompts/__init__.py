# noqa
from ideaverse.llm.prompts.catalog import PromptCatalog, PromptTemplate
from ideaverse.llm.prompts.workflow import (
    build_dimension_analysis_messages,
    build_dimensions_messages,
    build_mind_map_messages,
    build_questions_messages,
    build_reanalyze_messages,
    build_recommend_messages,
    build_regenerate_messages,
    build_report_messages,
    build_solutions_messages,
    build_understanding_messages,
    compress_analysis_cards,
)

__all__ = [
    "PromptCatalog",
    "PromptTemplate",
    "build_dimension_analysis_messages",
    "build_dimensions_messages",
    "build_mind_map_messages",
    "build_questions_messages",
    "build_reanalyze_messages",
    "build_recommend_messages",
    "build_regenerate_messages",
    "build_report_messages",
    "build_solutions_messages",
    "build_understanding_messages",
    "compress_analysis_cards",
]
