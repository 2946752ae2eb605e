"""Thinking model (reasoning framework) catalog entries."""

from typing import List

from pydantic import BaseModel, Field


class ThinkingModel(BaseModel):
    """A named analytical framework used to structure stage-2 analysis.

    Loaded from config/thinking_models.yaml; the engine only relies on id and
    name, the rest feeds prompts and presentation.
    """

    id: str
    name: str
    icon: str = ""
    category: str = ""
    description: str = ""
    advantage: str = ""
    best_for: List[str] = Field(default_factory=list)
