"""Request validation at the HTTP and CLI boundary."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from colloquy.personas import PersonaCatalog

SYNTHESIS_MODES = ("synthesis", "clarify")


class RequestValidationError(ValueError):
    """Bad request shape; nothing has been invoked yet."""


@dataclass
class DeliberationRequest:
    conversation: str
    persona_ids: List[str]
    cycle: int = 1


@dataclass
class SynthesisRequest:
    conversation: str
    mode: str = "synthesis"
    cycle: int = 1
    researcher_responses: List[Any] = field(default_factory=list)


def _require_object(body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise RequestValidationError("Request body must be a JSON object.")
    return body


def validate_conversation(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise RequestValidationError("conversation must be a non-empty string.")
    return value


def validate_cycle(value: Any, default: int = 1, allow_zero: bool = False) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise RequestValidationError("cycle must be a positive integer.")
    if value < 0 or (value == 0 and not allow_zero):
        raise RequestValidationError("cycle must be a positive integer.")
    return value


def parse_deliberation_request(body: Any, catalog: PersonaCatalog) -> DeliberationRequest:
    data = _require_object(body)
    conversation = validate_conversation(data.get("conversation"))
    requested = data.get("personaIds", data.get("researcherIds"))
    if requested is None:
        persona_ids = catalog.ids()
    else:
        if not isinstance(requested, list):
            raise RequestValidationError("personaIds must be an array of strings.")
        persona_ids = catalog.known(item for item in requested if isinstance(item, str))
        if not persona_ids:
            raise RequestValidationError("personaIds did not contain any known persona.")
    return DeliberationRequest(
        conversation=conversation,
        persona_ids=persona_ids,
        cycle=validate_cycle(data.get("cycle")),
    )


def parse_synthesis_request(body: Any) -> SynthesisRequest:
    data = _require_object(body)
    mode = data.get("mode") or "synthesis"
    if mode not in SYNTHESIS_MODES:
        raise RequestValidationError("mode must be 'synthesis' or 'clarify'.")
    conversation = validate_conversation(data.get("conversation"))
    if mode == "clarify":
        cycle = validate_cycle(data.get("cycle"), default=0, allow_zero=True)
        return SynthesisRequest(conversation=conversation, mode=mode, cycle=cycle)
    responses = data.get("researcherResponses")
    return SynthesisRequest(
        conversation=conversation,
        mode=mode,
        cycle=validate_cycle(data.get("cycle")),
        researcher_responses=responses if isinstance(responses, list) else [],
    )
