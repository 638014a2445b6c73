#!/usr/bin/env python3
"""
Colloquy Demo -- researcher personas deliberate over a few open questions.

Run:
    python examples/demo.py --question 1

Needs GEMINI_API_KEY (or COLLOQUY_PROVIDER=ollama with a local model).
"""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Ensure colloquy is importable when running from the repo root.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from colloquy.config import get_config
from colloquy.events import CompleteEvent, PhaseCompleteEvent, ResultEvent, SynthesisEvent
from colloquy.models.gateway import build_gateway
from colloquy.orchestrator import CycleOrchestrator, DeliberationSession
from colloquy.personas import PersonaCatalog
from colloquy.results import Fulfilled


DEMO_QUESTIONS = [
    {
        "conversation": "Should a mid-sized city replace its diesel bus fleet with electric buses by 2030?",
        "description": "Policy question with cost, equity and engineering angles.",
    },
    {
        "conversation": (
            "A hospital wants to triage emergency patients with a machine-learning model. "
            "What should it check before deploying it?"
        ),
        "description": "High-stakes deployment where the three personas should disagree.",
    },
    {
        "conversation": "Is a four-day work week good for software teams? Give concrete trade-offs.",
        "description": "Open-ended workplace question with thin evidence.",
    },
]


def _render(event) -> None:
    if isinstance(event, ResultEvent):
        result = event.result
        if isinstance(result, Fulfilled):
            print(f"  [{event.phase.value} #{event.phase_position}] {result.persona_id} "
                  f"(confidence {result.confidence_score:g})")
        else:
            print(f"  [{event.phase.value} #{event.phase_position}] {result.persona_id} failed: {result.error_message}")
    elif isinstance(event, PhaseCompleteEvent):
        print(f"  -- {event.phase.value} phase of cycle {event.cycle} settled")
    elif isinstance(event, SynthesisEvent):
        label = "Clarifier" if event.cycle == 0 else f"Synthesis (cycle {event.cycle})"
        if event.result is None:
            print(f"\n  {label} failed: {event.error}\n")
            return
        print(f"\n  {label}: {event.result.summary}")
        for item in event.result.highlights:
            print(f"    * {item.title}: {item.detail}")
        if event.result.follow_up_question:
            print(f"  Follow-up: {event.result.follow_up_question}")
        print()
    elif isinstance(event, CompleteEvent):
        print(f"  == cycle {event.cycle} complete")


async def run_demo(index: int, max_cycles: int) -> None:
    """Run one demo question through a full session."""
    config = get_config()
    orchestrator = CycleOrchestrator(
        PersonaCatalog.from_config(config.personas),
        build_gateway(config),
        invocation_timeout=config.invocation_timeout_seconds,
    )
    session = DeliberationSession(orchestrator, max_cycles=max_cycles, clarify=config.clarify)
    question = DEMO_QUESTIONS[index]
    print(f"\n{'=' * 72}")
    print(f"  Demo {index + 1}: {question['description']}")
    print(f"{'=' * 72}")
    print(f"\n  Q: {question['conversation']}\n")
    async for event in session.stream(question["conversation"]):
        _render(event)


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Run Colloquy demo questions through a deliberation session.")
    parser.add_argument(
        "--question",
        "-q",
        type=int,
        choices=range(1, len(DEMO_QUESTIONS) + 1),
        default=1,
        help="Demo question to run (1-%d)" % len(DEMO_QUESTIONS),
    )
    parser.add_argument("--max-cycles", type=int, default=2)
    parser.add_argument("--list", action="store_true", help="List available demo questions and exit.")
    args = parser.parse_args()

    if args.list:
        print("\nAvailable demo questions:\n")
        for i, q in enumerate(DEMO_QUESTIONS, 1):
            print(f"  {i}. {q['conversation']}")
            print(f"     {q['description']}\n")
        return

    asyncio.run(run_demo(args.question - 1, args.max_cycles))


if __name__ == "__main__":
    main()
