#!/usr/bin/env python3
"""
Drive a complete reasoning session from the terminal.

Runs the three stages against the configured language model:
1. Interview: generate questions, collect answers, build the understanding report
2. Analysis: recommend a thinking model, deconstruct dimensions, analyze every
   card concurrently, write the deep analysis report
3. Solutions: generate scored solutions and the mind map

Usage:
    python scripts/run_workflow.py "How do I grow a newsletter to 10k readers?"
    python scripts/run_workflow.py "..." --model MECE --auto-answer
    python scripts/run_workflow.py --resume --export report.md
    python scripts/run_workflow.py --list
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Configure logging first (before importing other modules)
from ideaverse.core.logging import configure_logging

configure_logging()

from ideaverse.core.config import settings
from ideaverse.core.thinking_model_loader import load_thinking_models
from ideaverse.llm.client import get_completion_client
from ideaverse.llm.prompts import PromptCatalog
from ideaverse.persistence.database import init_database
from ideaverse.persistence.repositories import SessionRepository
from ideaverse.services import ExportService, ReasoningService, WorkflowEngine


def print_progress(engine: WorkflowEngine) -> None:
    if engine.error:
        print(f"  ✗ {engine.error}")
    elif engine.response_count:
        print(f"  ✓ received {engine.response_count} characters")


def ask(prompt: str, auto: bool, default: str) -> str:
    if auto:
        print(f"{prompt} {default}")
        return default
    answer = input(f"{prompt} ").strip()
    return answer or default


async def run_interview(engine: WorkflowEngine, auto: bool) -> bool:
    print("\n=== Stage 1: Interview ===")
    questions = await engine.generate_questions()
    print_progress(engine)
    if not questions:
        return False

    for q in questions:
        print(f"\n[{q.id}] {q.question}")
        for i, option in enumerate(q.options, 1):
            print(f"    {i}. {option}")
        default = q.options[0] if q.options else "No preference"
        reply = ask("  Your answer:", auto, default)
        if reply.isdigit() and 1 <= int(reply) <= len(q.options):
            reply = q.options[int(reply) - 1]
        await engine.save_answer(q.id, q.question, reply)

    await engine.generate_understanding_report()
    print_progress(engine)
    return engine.current_session.understanding_report is not None


async def run_analysis(
    engine: WorkflowEngine, model_id: Optional[str], auto: bool
) -> bool:
    print("\n=== Stage 2: Analysis ===")
    if model_id is None:
        try:
            await engine.recommend_models()
        except Exception:
            print_progress(engine)
            return False
        print_progress(engine)
        recommended = engine.current_session.recommended_models
        reasons = engine.current_session.model_reasons
        for rid in recommended:
            model = engine.thinking_models.get(rid)
            label = model.name if model else rid
            print(f"  - {rid}: {label} ({reasons.get(rid, '')})")
        if not recommended:
            print("  No recommendation received; pass --model explicitly.")
            return False
        model_id = ask("  Thinking model id:", auto, recommended[0])

    cards = await engine.generate_analysis_dimensions(model_id)
    print_progress(engine)
    if not cards:
        return False
    print(f"  {len(cards)} dimensions: " + ", ".join(c.dimension for c in cards))

    results = await engine.analyze_all_dimensions()
    failed = sum(1 for r in results if r is None)
    print(f"  analyzed {len(results) - failed}/{len(results)} cards")

    report = await engine.generate_deep_analysis_report()
    print_progress(engine)
    return report is not None


async def run_solutions(engine: WorkflowEngine) -> bool:
    print("\n=== Stage 3: Solutions ===")
    await engine.set_step(3)
    if engine.current_session.solutions:
        # Resumed after the solutions were stored; only the mind map is missing
        print(f"  keeping {len(engine.current_session.solutions)} stored solutions")
    else:
        result = await engine.generate_solutions()
        print_progress(engine)
        if not result:
            return False
        for solution in result["solutions"]:
            print(f"  [{solution.id}] {solution.name} (score {solution.weighted_score})")
        if result["recommendation"]:
            print(f"  Recommended: {result['recommendation'].get('bestSolution')}")

    mind_map = await engine.generate_mind_map()
    print_progress(engine)
    if mind_map is None:
        return False
    await engine.complete_session()
    return True


async def main() -> int:
    parser = argparse.ArgumentParser(description="Run an IdeaVerse reasoning session")
    parser.add_argument("problem", nargs="?", help="Problem to reason about")
    parser.add_argument("--model", help="Thinking model id (skip recommendation)")
    parser.add_argument("--locale", default=None, help="Prompt locale (en-US, zh-CN)")
    parser.add_argument(
        "--auto-answer",
        action="store_true",
        help="Answer every question with its first option",
    )
    parser.add_argument(
        "--resume", action="store_true", help="Continue the current session"
    )
    parser.add_argument("--list", action="store_true", help="List stored sessions")
    parser.add_argument(
        "--export",
        type=Path,
        help="Write the finished session to a file (.json, .md or .csv)",
    )
    args = parser.parse_args()

    await init_database()
    session_repo = SessionRepository(settings.database_path)

    if args.list:
        for session in await session_repo.list_sessions():
            print(
                f"{session.id}  step {session.current_step}  "
                f"{session.status.value:<11}  {session.problem[:60]}"
            )
        return 0

    if not settings.has_api_key():
        print("LLM_API_KEY is not set (see .env)")
        return 1

    thinking_models = load_thinking_models()
    reasoning = ReasoningService(
        stream_client=get_completion_client(),
        prompt_catalog=PromptCatalog(),
        thinking_models=thinking_models,
    )
    engine = WorkflowEngine(
        session_repo, reasoning, thinking_models=thinking_models, locale=args.locale
    )

    if args.resume:
        session = await engine.load_current_session()
        if session is None:
            print("No current session to resume.")
            return 1
        print(f"Resuming session {session.id} at step {session.current_step}")
    elif args.problem:
        session = await engine.create_session(args.problem)
        print(f"Created session {session.id}")
    else:
        parser.error("a problem is required unless --resume or --list is given")

    session = engine.current_session
    if session.understanding_report is None:
        if not await run_interview(engine, args.auto_answer):
            return 1
    if engine.current_session.deep_analysis_report is None:
        if not await run_analysis(engine, args.model, args.auto_answer):
            return 1
    if not engine.current_session.solutions or not engine.current_session.mind_map:
        if not await run_solutions(engine):
            return 1

    if args.export:
        fmt = {".json": "json", ".csv": "csv"}.get(args.export.suffix.lower(), "markdown")
        content = await ExportService(session_repo).export_session(
            engine.current_session.id, fmt
        )
        args.export.write_text(content, encoding="utf-8")
        print(f"\nExported to {args.export}")

    print("\nDone.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
