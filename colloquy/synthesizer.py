"""Synthesizer step and the cycle-0 clarifier."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import logging

from colloquy.models.gateway import ModelGateway
from colloquy.parser import parse_synthesis_response
from colloquy.prompts import clarifier_prompt, synthesizer_prompt
from colloquy.results import Fulfilled, SynthesisResult
from colloquy.validation import RequestValidationError

logger = logging.getLogger(__name__)


class SynthesisInputError(RequestValidationError):
    """Raised for unusable synthesizer input, before the gateway is called."""


@dataclass(frozen=True)
class ResearcherResponse:
    researcher_id: str
    answer: str
    confidence_score: Optional[float] = None

    @classmethod
    def from_result(cls, result: Fulfilled) -> "ResearcherResponse":
        return cls(result.persona_id, result.answer, result.confidence_score)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"researcherId": self.researcher_id, "answer": self.answer}
        if self.confidence_score is not None:
            data["confidenceScore"] = self.confidence_score
        return data


def validate_researcher_responses(responses: Any) -> List[ResearcherResponse]:
    """Accept ``ResearcherResponse`` objects or ``{researcherId, answer, confidenceScore?}`` dicts."""
    if not isinstance(responses, (list, tuple)) or not responses:
        raise SynthesisInputError("researcherResponses must be a non-empty array.")
    validated: List[ResearcherResponse] = []
    for index, item in enumerate(responses):
        if isinstance(item, ResearcherResponse):
            validated.append(item)
            continue
        if not isinstance(item, dict):
            raise SynthesisInputError(f"researcherResponses[{index}] must be an object.")
        researcher_id = item.get("researcherId")
        answer = item.get("answer")
        if not isinstance(researcher_id, str) or not researcher_id.strip():
            raise SynthesisInputError(f"researcherResponses[{index}].researcherId must be a non-empty string.")
        if not isinstance(answer, str) or not answer.strip():
            raise SynthesisInputError(f"researcherResponses[{index}].answer must be a non-empty string.")
        confidence = item.get("confidenceScore")
        if confidence is not None and (isinstance(confidence, bool) or not isinstance(confidence, (int, float))):
            raise SynthesisInputError(f"researcherResponses[{index}].confidenceScore must be a number.")
        validated.append(ResearcherResponse(researcher_id, answer, confidence))
    return validated


class Synthesizer:
    def __init__(self, gateway: ModelGateway) -> None:
        self.gateway = gateway

    async def synthesize(
        self,
        conversation: str,
        responses: Sequence[Any],
        cycle: Optional[int] = None,
    ) -> SynthesisResult:
        validated = validate_researcher_responses(list(responses))
        if not conversation or not conversation.strip():
            raise SynthesisInputError("conversation must be a non-empty string.")
        prompt = synthesizer_prompt(conversation, [item.to_dict() for item in validated], cycle)
        raw_text = await self.gateway.generate(prompt)
        return parse_synthesis_response(raw_text)

    async def clarify(self, conversation: str) -> SynthesisResult:
        if not conversation or not conversation.strip():
            raise SynthesisInputError("conversation must be a non-empty string.")
        raw_text = await self.gateway.generate(clarifier_prompt(conversation))
        result = parse_synthesis_response(raw_text)
        if result.highlights:
            logger.debug("Clarifier returned %d highlights; dropping them", len(result.highlights))
            result.highlights = []
        return result
