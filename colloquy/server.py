"""FastAPI server for Colloquy."""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
import logging

from colloquy.config import Config, get_config
from colloquy.events import emit_lines
from colloquy.models.gateway import ModelGateway, build_gateway
from colloquy.orchestrator import CycleOrchestrator
from colloquy.personas import PersonaCatalog
from colloquy.validation import (
    RequestValidationError,
    parse_deliberation_request,
    parse_synthesis_request,
)

logger = logging.getLogger(__name__)

STREAM_HEADERS = {"Cache-Control": "no-store"}


def create_app(config: Config | None = None, gateway: ModelGateway | None = None) -> FastAPI:
    config = config or get_config()
    app = FastAPI(title="Colloquy")
    catalog = PersonaCatalog.from_config(config.personas)
    gateway = gateway or build_gateway(config)
    app.state.config = config
    app.state.catalog = catalog
    app.state.gateway = gateway
    app.state.orchestrator = CycleOrchestrator(
        catalog,
        gateway,
        invocation_timeout=config.invocation_timeout_seconds,
    )

    @app.get("/health")
    async def health():
        """Health check endpoint for monitoring."""
        return {"status": "healthy", "service": "colloquy"}

    @app.get("/api/personas")
    async def personas_api(request: Request):
        catalog = request.app.state.catalog
        return {"personas": [persona.to_dict() for persona in catalog.list()]}

    @app.post("/api/deliberate")
    async def deliberate_api(payload: dict, request: Request):
        try:
            parsed = parse_deliberation_request(payload, request.app.state.catalog)
        except RequestValidationError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        orchestrator = request.app.state.orchestrator
        state = await orchestrator.run_cycle(
            parsed.conversation,
            parsed.persona_ids,
            cycle=parsed.cycle,
        )
        return state.to_dict()

    @app.post("/api/researchers")
    async def researchers_api(payload: dict, request: Request):
        try:
            parsed = parse_deliberation_request(payload, request.app.state.catalog)
        except RequestValidationError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        orchestrator = request.app.state.orchestrator
        state = orchestrator.begin_cycle(parsed.conversation, parsed.cycle)
        events = orchestrator.stream_cycle(
            state,
            parsed.persona_ids,
            synthesize=request.app.state.config.stream_synthesis,
        )
        return StreamingResponse(
            emit_lines(events, cycle=parsed.cycle),
            media_type="application/jsonl",
            headers=STREAM_HEADERS,
        )

    @app.post("/api/synthesizer")
    async def synthesizer_api(payload: dict, request: Request):
        mode = payload.get("mode") or "synthesis"
        cycle = payload.get("cycle")
        try:
            parsed = parse_synthesis_request(payload)
            mode, cycle = parsed.mode, parsed.cycle
            synthesizer = request.app.state.orchestrator.synthesizer
            if parsed.mode == "clarify":
                result = await synthesizer.clarify(parsed.conversation)
            else:
                result = await synthesizer.synthesize(parsed.conversation, parsed.researcher_responses, parsed.cycle)
        except RequestValidationError as exc:
            return JSONResponse(
                {"status": "rejected", "error": str(exc), "cycle": cycle, "mode": mode},
                status_code=400,
            )
        except Exception as exc:
            logger.warning("synthesizer request failed: %s", exc)
            return JSONResponse(
                {"status": "rejected", "error": str(exc) or exc.__class__.__name__, "cycle": cycle, "mode": mode},
                status_code=500,
            )
        return {"status": "fulfilled", "result": result.to_dict(), "cycle": cycle, "mode": mode}

    return app
