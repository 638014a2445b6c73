"""Result types produced by a deliberation cycle."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class Phase(str, Enum):
    INITIAL = "initial"
    FEEDBACK = "feedback"
    FINAL = "final"

    @property
    def order(self) -> int:
        return _PHASE_ORDER[self]


_PHASE_ORDER = {Phase.INITIAL: 0, Phase.FEEDBACK: 1, Phase.FINAL: 2}


class CycleStatus(str, Enum):
    INITIAL = "initial"
    FEEDBACK = "feedback"
    FINAL = "final"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Fulfilled:
    persona_id: str
    answer: str
    confidence_score: float
    raw_text: str = field(default="", compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "researcherId": self.persona_id,
            "answer": self.answer,
            "confidenceScore": self.confidence_score,
            "rawText": self.raw_text,
        }


@dataclass(frozen=True)
class Rejected:
    persona_id: str
    error_message: str


AgentResult = Union[Fulfilled, Rejected]


@dataclass(frozen=True)
class BatchEntry:
    result: AgentResult
    phase_position: int

    def to_dict(self, cycle: int, phase: Phase) -> Dict[str, Any]:
        """Wire shape shared by stream events and synchronous responses."""
        if isinstance(self.result, Fulfilled):
            return {
                "status": "fulfilled",
                "cycle": cycle,
                "phase": phase.value,
                "phasePosition": self.phase_position,
                "result": self.result.to_dict(),
            }
        return {
            "status": "rejected",
            "cycle": cycle,
            "phase": phase.value,
            "phasePosition": self.phase_position,
            "researcherId": self.result.persona_id,
            "error": self.result.error_message,
        }


@dataclass
class PhaseBatch:
    cycle: int
    phase: Phase
    entries: List[BatchEntry] = field(default_factory=list)

    def fulfilled(self) -> List[Fulfilled]:
        return [entry.result for entry in self.entries if isinstance(entry.result, Fulfilled)]

    def rejected(self) -> List[Rejected]:
        return [entry.result for entry in self.entries if isinstance(entry.result, Rejected)]

    def position_of(self, persona_id: str) -> Optional[int]:
        for entry in self.entries:
            if entry.result.persona_id == persona_id:
                return entry.phase_position
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "phase": self.phase.value,
            "entries": [entry.to_dict(self.cycle, self.phase) for entry in self.entries],
        }


@dataclass(frozen=True)
class Highlight:
    title: str
    detail: str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "detail": self.detail}


@dataclass
class SynthesisResult:
    summary: str
    highlights: List[Highlight] = field(default_factory=list)
    follow_up_question: str = ""
    raw_text: str = field(default="", compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "highlights": [item.to_dict() for item in self.highlights],
            "followUpQuestion": self.follow_up_question,
            "rawText": self.raw_text,
        }


@dataclass
class CycleState:
    cycle_number: int
    conversation_snapshot: str
    batches: Dict[Phase, PhaseBatch] = field(default_factory=dict)
    synthesis: Optional[SynthesisResult] = None
    synthesis_error: Optional[str] = None
    status: CycleStatus = CycleStatus.INITIAL

    def ordered_batches(self) -> List[PhaseBatch]:
        return [self.batches[phase] for phase in sorted(self.batches, key=lambda item: item.order)]

    def fulfilled_answers(self) -> List[Fulfilled]:
        """One fulfilled answer per persona; a later phase replaces an earlier one."""
        latest: Dict[str, Fulfilled] = {}
        for batch in self.ordered_batches():
            for result in batch.fulfilled():
                latest.pop(result.persona_id, None)
                latest[result.persona_id] = result
        return list(latest.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle_number,
            "status": self.status.value,
            "batches": [batch.to_dict() for batch in self.ordered_batches()],
            "synthesis": self.synthesis.to_dict() if self.synthesis else None,
            "synthesisError": self.synthesis_error,
        }
