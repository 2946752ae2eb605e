"""Tests for ExportService."""

import csv
import json
from io import StringIO

import pytest

from ideaverse.core.exceptions import SessionNotFoundError, ValidationError
from ideaverse.services.export_service import ExportService


@pytest.fixture
def export_service(session_repo):
    return ExportService(session_repo)


@pytest.fixture
async def full_session(session_repo):
    """A session carrying data for all three stages."""
    session = await session_repo.create_session("How do we reduce churn?")
    return await session_repo.update_session(
        session.id,
        {
            "interviewAnswers": [
                {"questionId": 1, "question": "Which segment?", "answer": "SMB"}
            ],
            "understandingReport": {
                "coreProblem": "Churn among small customers",
                "constraints": ["budget", "headcount"],
            },
            "thinkingModel": "SWOT Analysis",
            "thinkingModelId": "SWOT",
            "analysisCards": [
                {
                    "id": 1,
                    "dimension": "Strengths",
                    "icon": "S",
                    "status": "completed",
                    "phenomenon": "Strong onboarding",
                    "hiddenFactors": "Champion turnover",
                },
                {"id": 2, "dimension": "Threats", "status": "pending"},
            ],
            "deepAnalysisReport": "# Report\n\nChurn is driven by onboarding gaps.\n",
            "solutions": [
                {
                    "id": 1,
                    "name": "Success program",
                    "description": "Dedicated success managers",
                    "effectiveness": 8,
                    "feasibility": 6,
                    "sustainability": 7,
                    "weightedScore": 7.2,
                    "timeframe": "3 months",
                    "worstCase": "Costs rise",
                },
                {"id": 2, "name": "Discounts", "effectiveness": 5},
            ],
            "recommendation": {"bestSolution": 1, "reason": "Highest weighted score"},
            "mindMap": "# Churn\n## Causes",
        },
    )


class TestExportFormats:
    async def test_json_is_full_record(self, export_service, full_session):
        output = await export_service.export_session(full_session.id, "json")

        data = json.loads(output)
        assert data == full_session.to_record()
        assert data["analysisCards"][0]["hiddenFactors"] == "Champion turnover"

    async def test_markdown_sections(self, export_service, full_session):
        output = await export_service.export_session(full_session.id, "markdown")

        assert output.startswith("# IdeaVerse Session Report")
        assert "## Problem\n\nHow do we reduce churn?" in output
        assert "**A:** SMB" in output
        assert "- **coreProblem:** Churn among small customers" in output
        assert "  - budget" in output
        assert "## Analysis: SWOT Analysis" in output
        assert "### S Strengths" in output
        assert "- **Hidden factors:** Champion turnover" in output
        assert "*pending*" in output
        assert "## Deep Analysis Report" in output
        assert "### 1. Success program (recommended)" in output
        assert "### 2. Discounts\n" in output
        assert (
            "- **Scores:** effectiveness 8, feasibility 6, sustainability 7, weighted 7.2"
            in output
        )
        assert "feasibility n/a" in output
        assert "- **Worst case:** Costs rise" in output
        assert "**Recommendation:** Highest weighted score" in output
        assert "*Exported on " in output

    async def test_md_alias(self, export_service, full_session):
        output = await export_service.export_session(full_session.id, "MD")
        assert output.startswith("# IdeaVerse Session Report")

    async def test_markdown_skips_empty_stages(self, export_service, session_repo):
        session = await session_repo.create_session("Bare problem")

        output = await export_service.export_session(session.id, "markdown")

        assert "## Problem" in output
        assert "## Interview" not in output
        assert "## Solutions" not in output

    async def test_mindmap(self, export_service, full_session):
        output = await export_service.export_session(full_session.id, "mindmap")
        assert output == "# Churn\n## Causes"

    async def test_mindmap_missing(self, export_service, session_repo):
        session = await session_repo.create_session("No map yet")

        with pytest.raises(ValidationError):
            await export_service.export_session(session.id, "mindmap")

    async def test_csv_rows(self, export_service, full_session):
        output = await export_service.export_session(full_session.id, "csv")

        rows = list(csv.DictReader(StringIO(output)))
        assert [r["name"] for r in rows] == ["Success program", "Discounts"]
        assert rows[0]["weightedScore"] == "7.2"
        assert rows[0]["timeframe"] == "3 months"
        assert rows[1]["feasibility"] == ""


class TestExportErrors:
    async def test_unsupported_format(self, export_service, full_session):
        with pytest.raises(ValidationError):
            await export_service.export_session(full_session.id, "pdf")

    async def test_missing_session(self, export_service):
        with pytest.raises(SessionNotFoundError):
            await export_service.export_session("does-not-exist", "json")


async def test_filename(session_repo):
    session = await session_repo.create_session("Name me")
    stamp = session.created_at.strftime("%Y%m%d")
    prefix = f"ideaverse-{session.id[:8]}-{stamp}"

    assert ExportService.filename(session, "json") == f"{prefix}.json"
    assert ExportService.filename(session, "markdown") == f"{prefix}.md"
    assert ExportService.filename(session, "csv") == f"{prefix}.csv"
    assert ExportService.filename(session, "mindmap") == f"{prefix}-mindmap.md"
