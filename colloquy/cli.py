"""Command line interface for Colloquy."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from colloquy.config import Config, get_config
from colloquy.events import emit_lines
from colloquy.models.gateway import build_gateway
from colloquy.orchestrator import CycleOrchestrator, DeliberationSession
from colloquy.personas import PersonaCatalog, UnknownPersonaError
from colloquy.validation import RequestValidationError, validate_conversation, validate_cycle


def _print(obj: Any) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _setup_logging(config: Config) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _conversation(args: argparse.Namespace) -> str:
    if getattr(args, "conversation_file", None):
        text = Path(args.conversation_file).read_text()
    else:
        text = args.conversation or ""
    return validate_conversation(text)


def _orchestrator(config: Config) -> CycleOrchestrator:
    catalog = PersonaCatalog.from_config(config.personas)
    return CycleOrchestrator(
        catalog,
        build_gateway(config),
        invocation_timeout=config.invocation_timeout_seconds,
    )


def _persona_ids(args: argparse.Namespace) -> Optional[List[str]]:
    return list(args.persona) if getattr(args, "persona", None) else None


async def _stream_to_stdout(lines) -> None:
    async for line in lines:
        sys.stdout.write(line)
        sys.stdout.flush()


def cmd_personas(args: argparse.Namespace, config: Config) -> None:
    catalog = PersonaCatalog.from_config(config.personas)
    _print({"personas": [persona.to_dict() for persona in catalog.list()]})


def cmd_run(args: argparse.Namespace, config: Config) -> None:
    conversation = _conversation(args)
    cycle = validate_cycle(args.cycle)
    orchestrator = _orchestrator(config)
    persona_ids = orchestrator.catalog.resolve(_persona_ids(args))
    state = orchestrator.begin_cycle(conversation, cycle)
    events = orchestrator.stream_cycle(state, persona_ids, synthesize=not args.no_synthesis)
    asyncio.run(_stream_to_stdout(emit_lines(events, cycle=cycle)))


def cmd_deliberate(args: argparse.Namespace, config: Config) -> None:
    conversation = _conversation(args)
    orchestrator = _orchestrator(config)
    state = asyncio.run(
        orchestrator.run_cycle(
            conversation,
            _persona_ids(args),
            cycle=validate_cycle(args.cycle),
            synthesize=not args.no_synthesis,
        )
    )
    _print(state.to_dict())


def cmd_synthesize(args: argparse.Namespace, config: Config) -> None:
    conversation = _conversation(args)
    synthesizer = _orchestrator(config).synthesizer
    if args.mode == "clarify":
        result = asyncio.run(synthesizer.clarify(conversation))
        cycle = 0
    else:
        responses = json.loads(Path(args.responses).read_text()) if args.responses else []
        if isinstance(responses, dict):
            responses = responses.get("researcherResponses", [])
        cycle = validate_cycle(args.cycle)
        result = asyncio.run(synthesizer.synthesize(conversation, responses, cycle))
    _print({"status": "fulfilled", "result": result.to_dict(), "cycle": cycle, "mode": args.mode})


def cmd_session(args: argparse.Namespace, config: Config) -> None:
    conversation = _conversation(args)
    session = DeliberationSession(
        _orchestrator(config),
        max_cycles=args.max_cycles or config.max_cycles,
        clarify=config.clarify and not args.no_clarify,
    )
    events = session.stream(conversation, _persona_ids(args))
    asyncio.run(_stream_to_stdout(emit_lines(events)))


def cmd_serve(args: argparse.Namespace, config: Config) -> None:
    import uvicorn

    from colloquy.server import create_app

    uvicorn.run(
        create_app(config),
        host=args.host or config.host,
        port=args.port or config.port,
        log_level=config.log_level.lower(),
    )


def _add_conversation_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--conversation")
    parser.add_argument("--conversation-file")
    parser.add_argument("--persona", action="append", help="Persona id; repeat for several")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="colloquy")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("personas")

    run = sub.add_parser("run", help="Stream one cycle as JSON lines")
    _add_conversation_args(run)
    run.add_argument("--cycle", type=int, default=1)
    run.add_argument("--no-synthesis", action="store_true")

    deliberate = sub.add_parser("deliberate", help="Run one cycle and print the full result")
    _add_conversation_args(deliberate)
    deliberate.add_argument("--cycle", type=int, default=1)
    deliberate.add_argument("--no-synthesis", action="store_true")

    synthesize = sub.add_parser("synthesize")
    synthesize.add_argument("--conversation")
    synthesize.add_argument("--conversation-file")
    synthesize.add_argument("--responses", help="JSON file with researcher responses")
    synthesize.add_argument("--mode", choices=["synthesis", "clarify"], default="synthesis")
    synthesize.add_argument("--cycle", type=int, default=1)

    session = sub.add_parser("session", help="Clarify, then run cycles until no follow-up remains")
    _add_conversation_args(session)
    session.add_argument("--max-cycles", type=int)
    session.add_argument("--no-clarify", action="store_true")

    serve = sub.add_parser("serve")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = get_config()
    _setup_logging(config)
    try:
        if args.command == "personas":
            cmd_personas(args, config)
        elif args.command == "run":
            cmd_run(args, config)
        elif args.command == "deliberate":
            cmd_deliberate(args, config)
        elif args.command == "synthesize":
            cmd_synthesize(args, config)
        elif args.command == "session":
            cmd_session(args, config)
        elif args.command == "serve":
            cmd_serve(args, config)
        else:
            parser.print_help()
    except (RequestValidationError, UnknownPersonaError) as exc:
        _print({"error": str(exc)})
        sys.exit(2)


if __name__ == "__main__":
    main()
