"""Domain models package."""

from .session import (
    AiStatus,
    AnalysisCard,
    CardStatus,
    InterviewAnswer,
    InterviewQuestion,
    SessionStatus,
    Solution,
    WorkflowSession,
)
from .thinking_model import ThinkingModel

__all__ = [
    "AiStatus",
    "AnalysisCard",
    "CardStatus",
    "InterviewAnswer",
    "InterviewQuestion",
    "SessionStatus",
    "Solution",
    "WorkflowSession",
    "ThinkingModel",
]
