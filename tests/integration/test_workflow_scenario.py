"""
End-to-end workflow scenario.

Drives one session through all three stages against the scripted completion
stream and a real SQLite store, then resumes and exports it.
"""

import json

from ideaverse.domain.models.session import CardStatus, SessionStatus
from ideaverse.services.export_service import ExportService
from ideaverse.services.workflow_engine import WorkflowEngine


def fenced(value) -> str:
    return "```json\n" + json.dumps(value, ensure_ascii=False) + "\n```"


QUESTIONS = [
    {"id": 1, "question": "Who are your current customers?", "options": ["SMB", "Enterprise"]},
    {"id": 2, "question": "What budget is available?"},
]

UNDERSTANDING = {
    "coreProblem": "Revenue growth has stalled in the home market",
    "keyFactors": ["saturation", "pricing pressure"],
}

CARD_RESULT = {
    "phenomenon": "Growth below 2% for three quarters",
    "cause": "Market saturation",
    "impact": "Margins shrink",
    "hiddenFactors": ["competitor bundling"],
}

SOLUTIONS = {
    "solutions": [
        {
            "id": 1,
            "name": "Pilot in Germany",
            "effectiveness": 8,
            "feasibility": 6,
            "sustainability": 7,
            "weightedScore": 7.2,
        },
        {
            "id": 2,
            "name": "Premium tier",
            "effectiveness": 6,
            "feasibility": 9,
            "sustainability": 6,
            "weightedScore": 6.9,
        },
    ],
    "recommendation": {"bestSolution": 1, "reason": "Largest upside"},
}


async def test_full_workflow(engine, fake_stream, session_repo, reasoning_service, thinking_models):
    # Stage 1: interview
    session = await engine.create_session("Should we expand to Europe?")
    fake_stream.queue(fenced({"questions": QUESTIONS}))
    questions = await engine.generate_questions()
    for q in questions:
        await engine.save_answer(q.id, q.question, f"Answer {q.id}")

    fake_stream.queue(fenced(UNDERSTANDING))
    await engine.generate_understanding_report()
    assert engine.current_session.current_step == 2

    # Stage 2: analysis
    fake_stream.queue(
        "Here you go:\n"
        + fenced({"recommendedModels": ["SWOT", "FiveForces"], "reasons": {"SWOT": "Fit"}})
    )
    recommendation = await engine.recommend_models()
    model_id = recommendation["recommendedModels"][0]

    fake_stream.queue(
        fenced(
            {
                "dimensions": [
                    {"id": 1, "dimension": "Strengths", "icon": "S"},
                    {"id": 2, "dimension": "Weaknesses", "icon": "W"},
                    {"id": 3, "dimension": "Opportunities", "icon": "O"},
                    {"id": 4, "dimension": "Threats", "icon": "T"},
                ]
            }
        )
    )
    cards = await engine.generate_analysis_dimensions(model_id)
    assert len(cards) == 4

    # Second reply is truncated mid-array and must still be repaired
    truncated = json.dumps(CARD_RESULT)[:-10]
    fake_stream.queue(
        fenced(CARD_RESULT), truncated, fenced(CARD_RESULT), fenced(CARD_RESULT)
    )
    results = await engine.analyze_all_dimensions()
    assert all(r is not None for r in results)
    assert all(
        c.status == CardStatus.COMPLETED for c in engine.current_session.analysis_cards
    )

    fake_stream.queue("# Deep analysis\n\nExpansion is viable.")
    await engine.generate_deep_analysis_report()

    # Stage 3: solutions
    await engine.set_step(3)
    fake_stream.queue(fenced(SOLUTIONS))
    generated = await engine.generate_solutions()
    assert [s.id for s in generated["solutions"]] == [1, 2]

    fake_stream.queue("# Should we expand to Europe?\n## Analysis\n## Solutions")
    mind_map = await engine.generate_mind_map()
    await engine.complete_session()

    assert engine.error is None
    assert len(fake_stream.calls) == 11

    # Resume in a fresh engine
    resumed_engine = WorkflowEngine(
        session_repo, reasoning_service, thinking_models=thinking_models
    )
    resumed = await resumed_engine.load_current_session()
    assert resumed.id == session.id
    assert resumed.status == SessionStatus.COMPLETED
    assert resumed.current_step == 3
    assert resumed.thinking_model == "SWOT Analysis"
    assert [a.answer for a in resumed.interview_answers] == ["Answer 1", "Answer 2"]
    assert resumed.mind_map == mind_map

    # Unchanged inputs: the stored mind map is reused
    assert await resumed_engine.generate_mind_map() == mind_map
    assert len(fake_stream.calls) == 11

    exported = await ExportService(session_repo).export_session(session.id, "markdown")
    assert "## Analysis: SWOT Analysis" in exported
    assert "### 1. Pilot in Germany (recommended)" in exported
    assert "Expansion is viable." in exported
