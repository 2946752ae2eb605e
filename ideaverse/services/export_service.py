"""
Export service for converting session data to various formats.

Supports export to:
- JSON: Full session record (camelCase keys, as persisted)
- Markdown: Human-readable report of all three stages
- Mind map: The generated mind-map markdown
- CSV: Solution scores for spreadsheet comparison
"""

import csv
import json
from datetime import datetime, timezone
from io import StringIO
from typing import Any, List

import structlog

from ideaverse.core.exceptions import SessionNotFoundError, ValidationError
from ideaverse.domain.models.session import ANALYSIS_FIELDS, CardStatus, WorkflowSession
from ideaverse.services.protocols import ISessionStore

log = structlog.get_logger(__name__)

EXPORT_FORMATS = ("json", "markdown", "md", "mindmap", "csv")

_FIELD_TITLES = {
    "phenomenon": "Phenomenon",
    "cause": "Cause",
    "impact": "Impact",
    "hiddenFactors": "Hidden factors",
}

_SOLUTION_SECTIONS = (
    ("implementation", "Implementation"),
    ("costBenefit", "Cost / benefit"),
    ("worstCase", "Worst case"),
    ("countermeasure", "Countermeasure"),
    ("timeframe", "Timeframe"),
    ("resources", "Resources"),
)


class ExportService:
    """
    Service for exporting workflow sessions.

    Usage:
        service = ExportService(session_repo)
        json_str = await service.export_session(session_id, "json")
        md_str = await service.export_session(session_id, "markdown")
    """

    def __init__(self, session_repo: ISessionStore):
        self.session_repo = session_repo

    async def export_session(self, session_id: str, format: str = "json") -> str:
        """
        Export a session in the requested format.

        Args:
            session_id: Session to export
            format: One of "json", "markdown" ("md"), "mindmap", "csv"

        Returns:
            Exported data as string

        Raises:
            ValidationError: If the format is unsupported or the session has no
                mind map yet (mindmap format)
            SessionNotFoundError: If the session does not exist
        """
        fmt = format.lower()
        bound_log = log.bind(session_id=session_id, format=fmt)
        bound_log.info("export_session_started")

        if fmt not in EXPORT_FORMATS:
            raise ValidationError(f"Unsupported export format: {format}")

        session = await self.session_repo.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")

        if fmt == "json":
            result = self.to_json(session)
        elif fmt in ("markdown", "md"):
            result = self.to_markdown(session)
        elif fmt == "mindmap":
            if not session.mind_map:
                raise ValidationError("Mind map has not been generated for this session")
            result = session.mind_map
        else:
            result = self.to_csv(session)

        bound_log.info("export_session_complete", output_length=len(result))
        return result

    @staticmethod
    def filename(session: WorkflowSession, format: str) -> str:
        """Suggested download name, e.g. ideaverse-<id8>-20260101.md"""
        extension = {"json": "json", "csv": "csv"}.get(format.lower(), "md")
        stamp = session.created_at.strftime("%Y%m%d")
        suffix = "-mindmap" if format.lower() == "mindmap" else ""
        return f"ideaverse-{session.id[:8]}-{stamp}{suffix}.{extension}"

    # =========================================================================
    # Formats
    # =========================================================================

    def to_json(self, session: WorkflowSession) -> str:
        """Export to JSON format."""
        return json.dumps(session.to_record(), ensure_ascii=False, indent=2)

    def to_markdown(self, session: WorkflowSession) -> str:
        """Export to human-readable Markdown format."""
        lines: List[str] = []

        lines.append("# IdeaVerse Session Report")
        lines.append("")
        lines.append(f"**Session ID:** `{session.id}`")
        lines.append(f"**Status:** {session.status.value}")
        lines.append(f"**Created:** {session.created_at.isoformat()}")
        lines.append("")
        lines.append("## Problem")
        lines.append("")
        lines.append(session.problem)
        lines.append("")

        # Stage 1
        if session.interview_answers:
            lines.append("## Interview")
            lines.append("")
            for answer in session.interview_answers:
                lines.append(f"**Q:** {answer.question}")
                lines.append("")
                lines.append(f"**A:** {answer.answer}")
                lines.append("")

        if session.understanding_report:
            lines.append("## Understanding")
            lines.append("")
            lines.extend(_render_value(session.understanding_report))
            lines.append("")

        # Stage 2
        if session.analysis_cards:
            title = session.thinking_model or session.thinking_model_id or "Analysis"
            lines.append(f"## Analysis: {title}")
            lines.append("")
            for card in session.analysis_cards:
                lines.append(f"### {card.icon} {card.dimension}".replace("  ", " "))
                lines.append("")
                if card.status != CardStatus.COMPLETED:
                    lines.append(f"*{card.status.value}*")
                    lines.append("")
                    continue
                data = card.model_dump(by_alias=True)
                for field in ANALYSIS_FIELDS:
                    if data.get(field):
                        lines.append(f"- **{_FIELD_TITLES[field]}:** {data[field]}")
                lines.append("")

        if session.deep_analysis_report:
            lines.append("## Deep Analysis Report")
            lines.append("")
            lines.append(session.deep_analysis_report.strip())
            lines.append("")

        # Stage 3
        if session.solutions:
            lines.append("## Solutions")
            lines.append("")
            best = (session.recommendation or {}).get("bestSolution")
            for solution in session.solutions:
                marker = " (recommended)" if best is not None and str(best) in (
                    str(solution.id),
                    solution.name,
                ) else ""
                lines.append(f"### {solution.id}. {solution.name}{marker}")
                lines.append("")
                if solution.description:
                    lines.append(solution.description)
                    lines.append("")
                lines.append(
                    f"- **Scores:** effectiveness {_score(solution.effectiveness)}, "
                    f"feasibility {_score(solution.feasibility)}, "
                    f"sustainability {_score(solution.sustainability)}, "
                    f"weighted {_score(solution.weighted_score)}"
                )
                data = solution.model_dump(by_alias=True)
                for key, title in _SOLUTION_SECTIONS:
                    if data.get(key):
                        lines.append(f"- **{title}:** {data[key]}")
                lines.append("")

            if session.recommendation and session.recommendation.get("reason"):
                lines.append(f"**Recommendation:** {session.recommendation['reason']}")
                lines.append("")

        # Footer
        lines.append("---")
        lines.append(f"*Exported on {datetime.now(timezone.utc).isoformat()}*")
        lines.append("")

        return "\n".join(lines)

    def to_csv(self, session: WorkflowSession) -> str:
        """Export solution scores to CSV."""
        output = StringIO()
        writer = csv.DictWriter(
            output,
            fieldnames=[
                "id",
                "name",
                "effectiveness",
                "feasibility",
                "sustainability",
                "weightedScore",
                "timeframe",
            ],
        )
        writer.writeheader()
        for solution in session.solutions:
            writer.writerow(
                {
                    "id": solution.id,
                    "name": solution.name,
                    "effectiveness": solution.effectiveness,
                    "feasibility": solution.feasibility,
                    "sustainability": solution.sustainability,
                    "weightedScore": solution.weighted_score,
                    "timeframe": solution.timeframe,
                }
            )
        return output.getvalue()


def _score(value: Any) -> str:
    return "n/a" if value is None else f"{value:g}"


def _render_value(value: Any, depth: int = 0) -> List[str]:
    """Render a report dict/list as nested markdown bullets."""
    indent = "  " * depth
    if isinstance(value, dict):
        lines = []
        for key, item in value.items():
            if isinstance(item, (dict, list)):
                lines.append(f"{indent}- **{key}:**")
                lines.extend(_render_value(item, depth + 1))
            else:
                lines.append(f"{indent}- **{key}:** {item}")
        return lines
    if isinstance(value, list):
        lines = []
        for item in value:
            if isinstance(item, (dict, list)):
                lines.extend(_render_value(item, depth))
            else:
                lines.append(f"{indent}- {item}")
        return lines
    return [f"{indent}{value}"]
