"""Tests for workflow session domain models."""

import pytest
from pydantic import ValidationError

from ideaverse.domain.models.session import (
    AnalysisCard,
    CardStatus,
    InterviewQuestion,
    Solution,
    WorkflowSession,
    assign_unique_ids,
    coerce_text,
    merge_model,
)


class TestWorkflowSession:
    def test_defaults(self):
        session = WorkflowSession(id="abc", problem="Why?")

        assert session.current_step == 1
        assert session.status.value == "in_progress"
        assert session.interview_questions is None
        assert session.interview_answers == []
        assert session.analysis_cards == []
        assert session.mind_map_hash is None
        assert session.created_at.tzinfo is not None

    def test_record_uses_camel_case(self):
        record = WorkflowSession(id="abc", problem="Why?").to_record()

        assert "currentStep" in record
        assert "analysisCards" in record
        assert "mindMapHash" in record
        assert "current_step" not in record

    def test_accepts_camel_and_snake_input(self):
        a = WorkflowSession.model_validate({"id": "1", "problem": "P", "currentStep": 2})
        b = WorkflowSession.model_validate({"id": "1", "problem": "P", "current_step": 2})
        assert a.current_step == b.current_step == 2

    def test_step_bounds(self):
        with pytest.raises(ValidationError):
            WorkflowSession(id="1", problem="P", current_step=4)

    def test_record_round_trip(self):
        session = WorkflowSession(
            id="1",
            problem="P",
            analysis_cards=[AnalysisCard(id=1, dimension="D", hidden_factors="h")],
            solutions=[Solution(id=1, name="S", effectiveness=8)],
        )
        restored = WorkflowSession.model_validate(session.to_record())
        assert restored.to_record() == session.to_record()

    def test_lookup_by_id(self):
        session = WorkflowSession(
            id="1",
            problem="P",
            analysis_cards=[AnalysisCard(id=3, dimension="C"), AnalysisCard(id=7, dimension="D")],
        )
        assert session.get_card(7).dimension == "D"
        assert session.get_card(1) is None
        assert session.get_solution(1) is None


class TestAnalysisCard:
    def test_extra_keys_retained(self):
        card = AnalysisCard.model_validate({"id": 1, "dimension": "D", "correlation": "x"})
        assert card.model_dump(by_alias=True)["correlation"] == "x"

    def test_list_values_coerced_to_text(self):
        card = AnalysisCard.model_validate(
            {"id": 1, "dimension": "D", "cause": ["first", "second"]}
        )
        assert card.cause == "- first\n- second"

    def test_missing_label_becomes_empty(self):
        card = AnalysisCard.model_validate({"id": 1, "dimension": None, "icon": None})
        assert card.dimension == ""
        assert card.icon == ""

    def test_status_defaults_to_pending(self):
        assert AnalysisCard(id=1).status == CardStatus.PENDING


class TestSolution:
    def test_scores_clamped(self):
        solution = Solution.model_validate(
            {"id": 1, "effectiveness": 12, "feasibility": -3, "sustainability": "7.5"}
        )
        assert solution.effectiveness == 10.0
        assert solution.feasibility == 0.0
        assert solution.sustainability == 7.5

    def test_unreadable_scores_become_none(self):
        solution = Solution.model_validate(
            {"id": 1, "effectiveness": "high", "weightedScore": True}
        )
        assert solution.effectiveness is None
        assert solution.weighted_score is None

    def test_producer_weighted_score_kept(self):
        solution = Solution.model_validate(
            {
                "id": 1,
                "effectiveness": 8,
                "feasibility": 6,
                "sustainability": 5,
                "weightedScore": 9.9,
            }
        )
        assert solution.weighted_score == 9.9
        assert solution.expected_weighted_score() == 6.8

    def test_expected_score_needs_all_scores(self):
        assert Solution(id=1, effectiveness=8).expected_weighted_score() is None


class TestInterviewQuestion:
    def test_options_stringified(self):
        question = InterviewQuestion.model_validate(
            {"id": 1, "question": "Q", "options": [1, None, "two"]}
        )
        assert question.options == ["1", "two"]

    def test_non_list_options_dropped(self):
        question = InterviewQuestion.model_validate({"id": 1, "options": "A or B"})
        assert question.options == []


class TestHelpers:
    def test_coerce_text(self):
        assert coerce_text(None) is None
        assert coerce_text("x") == "x"
        assert coerce_text(3) == "3"
        assert coerce_text({"a": "深"}) == '{"a": "深"}'

    def test_merge_model_is_shallow_and_revalidates(self):
        card = AnalysisCard(id=1, dimension="D", status=CardStatus.ANALYZING)
        merged = merge_model(card, {"status": "completed", "hiddenFactors": "h"})

        assert merged.status == CardStatus.COMPLETED
        assert merged.hidden_factors == "h"
        assert merged.dimension == "D"
        assert card.status == CardStatus.ANALYZING

    def test_merge_model_folds_snake_case_keys(self):
        solution = Solution(id=1, name="A", weighted_score=5.0, cost_benefit="old")
        merged = merge_model(solution, {"weighted_score": 9.5, "cost_benefit": "new"})

        assert merged.weighted_score == 9.5
        assert merged.cost_benefit == "new"
        assert merged.model_extra == {}
        assert "weighted_score" not in merged.model_dump(by_alias=True)

    def test_unique_ids_kept(self):
        items = assign_unique_ids([{"id": 2}, {"id": "5"}])
        assert [i["id"] for i in items] == [2, 5]

    def test_duplicates_and_missing_renumbered(self):
        items = assign_unique_ids([{"id": 1}, {"id": 1}, {}, {"id": "x"}, {"id": 4}])
        assert [i["id"] for i in items] == [1, 5, 6, 7, 4]

    def test_input_not_mutated(self):
        original = [{"id": 1}, {"id": 1}]
        assign_unique_ids(original)
        assert original == [{"id": 1}, {"id": 1}]
