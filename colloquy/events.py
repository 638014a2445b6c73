"""Stream events and the JSON-lines emitter."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, Optional, Union
import json
import logging

from colloquy.results import AgentResult, BatchEntry, Phase, PhaseBatch, SynthesisResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultEvent:
    cycle: int
    phase: Phase
    phase_position: int
    result: AgentResult

    def to_dict(self) -> Dict[str, Any]:
        entry = BatchEntry(result=self.result, phase_position=self.phase_position)
        return {"type": "result", "payload": entry.to_dict(self.cycle, self.phase)}


@dataclass(frozen=True)
class PhaseCompleteEvent:
    cycle: int
    phase: Phase
    # Settled batch for in-process consumers; never serialized.
    batch: Optional[PhaseBatch] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "phaseComplete", "cycle": self.cycle, "phase": self.phase.value}


@dataclass(frozen=True)
class SynthesisEvent:
    cycle: int
    result: Optional[SynthesisResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.result is not None:
            return {
                "type": "synthesis",
                "cycle": self.cycle,
                "status": "fulfilled",
                "result": self.result.to_dict(),
            }
        return {
            "type": "synthesis",
            "cycle": self.cycle,
            "status": "rejected",
            "error": self.error or "Unknown synthesizer error",
        }


@dataclass(frozen=True)
class CompleteEvent:
    cycle: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "complete", "cycle": self.cycle}


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    cycle: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "error", "message": self.message, "cycle": self.cycle}


StreamEvent = Union[ResultEvent, PhaseCompleteEvent, SynthesisEvent, CompleteEvent, ErrorEvent]


def encode_event(event: StreamEvent) -> str:
    return json.dumps(event.to_dict(), ensure_ascii=False, separators=(",", ":")) + "\n"


async def emit_lines(events: AsyncGenerator[StreamEvent, None], cycle: Optional[int] = None) -> AsyncGenerator[str, None]:
    """Serialize events one per line; a failure becomes a final error line."""
    try:
        async for event in events:
            yield encode_event(event)
    except Exception as exc:
        logger.exception("Stream failed during cycle %s", cycle)
        yield encode_event(ErrorEvent(message=str(exc) or exc.__class__.__name__, cycle=cycle))
    finally:
        await events.aclose()
