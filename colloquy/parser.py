"""Turn raw model text into validated agent and synthesizer payloads.

Models are asked for bare JSON but routinely wrap it in a markdown fence or
leave a quote unescaped inside a long string value. Parsing is strict first;
when that fails a single repair pass specific to the expected shape is tried,
then the strict parse runs once more. Repair is a compatibility shim for a
non-deterministic text generator and is not a general JSON fixer.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List
import json
import logging
import math
import re

from colloquy.results import Highlight, SynthesisResult

logger = logging.getLogger(__name__)

SYNTHESIZER_ID = "synthesizer"
MAX_HIGHLIGHTS = 3

_OPENING_FENCE = re.compile(r"^```[a-zA-Z]*\s*")
_CLOSING_FENCE = re.compile(r"\s*```$")
_DETAIL_BOUNDARY = re.compile(r'("detail"\s*:\s*"[^"]*")\s*,\s*\{')
_VALUE_END = re.compile(r'"(?=\s*(?:\}|,\s*"[^"\\]*"\s*:))')
_STRUCTURAL = {",", "}", "]", ":", "\n", "\r"}


class ResponseParseError(ValueError):
    """Raised when model output cannot be turned into the expected payload."""

    def __init__(self, agent_id: str, raw_text: str, reason: str) -> None:
        label = "synthesizer" if agent_id == SYNTHESIZER_ID else f"researcher ({agent_id})"
        super().__init__(f"Failed to parse {label} response: {reason}\nRaw text: {raw_text}")
        self.agent_id = agent_id
        self.raw_text = raw_text
        self.reason = reason


class ResponseValidationError(ResponseParseError):
    """Raised when the JSON parses but its fields are unusable."""


@dataclass(frozen=True)
class AgentPayload:
    answer: str
    confidence_score: float


def strip_code_fence(text: str) -> str:
    trimmed = text.strip()
    if len(trimmed) >= 6 and trimmed.startswith("```") and trimmed.endswith("```"):
        without_opening = _OPENING_FENCE.sub("", trimmed, count=1)
        return _CLOSING_FENCE.sub("", without_opening, count=1).strip()
    return trimmed


def repair_answer_value(text: str) -> str:
    """Re-escape the ``answer`` value between its opening quote and its closing quote.

    The closing quote is the first one followed by ``}`` or by another
    ``, "key":`` pair, so ``answer`` may sit before other fields. Without such a
    quote the last quote in the text closes the value.
    """
    key_index = text.find('"answer"')
    if key_index == -1:
        return text
    colon_index = text.find(":", key_index)
    if colon_index == -1:
        return text
    value_start = text.find('"', colon_index)
    closing = _VALUE_END.search(text, value_start + 1) if value_start != -1 else None
    value_end = closing.start() if closing else text.rfind('"')
    if value_start == -1 or value_end <= value_start:
        return text
    value = text[value_start + 1:value_end]
    return text[:value_start] + json.dumps(value, ensure_ascii=False) + text[value_end + 1:]


def escape_inner_quotes(text: str) -> str:
    """Escape quotes inside strings that are not followed by a structural delimiter."""
    out: List[str] = []
    inside = False
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if inside and char == "\\" and index + 1 < length:
            out.append(text[index:index + 2])
            index += 2
            continue
        if char == '"':
            if not inside:
                inside = True
                out.append(char)
            else:
                following = _next_non_space(text, index + 1)
                if following is not None and following not in _STRUCTURAL:
                    out.append('\\"')
                else:
                    inside = False
                    out.append(char)
            index += 1
            continue
        out.append(char)
        index += 1
    return "".join(out)


def insert_detail_boundaries(text: str) -> str:
    return _DETAIL_BOUNDARY.sub(r"\1 }, {", text)


def _next_non_space(text: str, start: int) -> str | None:
    for char in text[start:]:
        if char in ("\n", "\r"):
            return char
        if not char.isspace():
            return char
    return None


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise ValueError("`confidence_score` must be a finite number.")
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValueError("`confidence_score` must be a finite number.") from None
    if not math.isfinite(number):
        raise ValueError("`confidence_score` must be a finite number.")
    return number


def _coerce_agent(raw: Any) -> AgentPayload:
    if not isinstance(raw, dict) or "answer" not in raw or "confidence_score" not in raw:
        raise ValueError("Response must contain `answer` and `confidence_score`.")
    answer = raw["answer"]
    if not isinstance(answer, str) or not answer.strip():
        raise ValueError("`answer` must be a non-empty string.")
    return AgentPayload(answer=answer, confidence_score=_coerce_confidence(raw["confidence_score"]))


def _coerce_highlights(raw: Any) -> List[Highlight]:
    if not isinstance(raw, list):
        return []
    highlights: List[Highlight] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            logger.debug("Dropping highlight %d: not an object", index)
            continue
        title = entry.get("title")
        detail = entry.get("detail")
        if not isinstance(title, str) or not isinstance(detail, str):
            logger.debug("Dropping highlight %d: title/detail must be strings", index)
            continue
        highlights.append(Highlight(title=title, detail=detail))
    return highlights[:MAX_HIGHLIGHTS]


def _coerce_synthesis(raw: Any, raw_text: str) -> SynthesisResult:
    if not isinstance(raw, dict):
        raise ValueError("Response must be a JSON object.")
    summary = raw.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ValueError("`summary` must be a non-empty string.")
    follow_up = raw.get("followUpQuestion")
    if follow_up is None:
        follow_up = ""
    if not isinstance(follow_up, str):
        raise ValueError("`followUpQuestion` must be a string or null.")
    return SynthesisResult(
        summary=summary,
        highlights=_coerce_highlights(raw.get("highlights")),
        follow_up_question=follow_up.strip(),
        raw_text=raw_text,
    )


def parse_agent_response(raw_text: str, agent_id: str) -> AgentPayload:
    normalized = strip_code_fence(raw_text)
    try:
        data = json.loads(normalized)
    except ValueError as initial:
        repaired = repair_answer_value(normalized)
        logger.debug("Repairing answer value for %s", agent_id)
        try:
            data = json.loads(repaired)
        except ValueError:
            logger.info("Repair failed for %s", agent_id)
            raise ResponseParseError(agent_id, raw_text, str(initial)) from initial
    try:
        return _coerce_agent(data)
    except ValueError as exc:
        raise ResponseValidationError(agent_id, raw_text, str(exc)) from exc


def parse_synthesis_response(raw_text: str) -> SynthesisResult:
    normalized = strip_code_fence(raw_text)
    try:
        data = json.loads(normalized)
    except ValueError as initial:
        data = _parse_repaired_synthesis(normalized, raw_text, initial)
    try:
        return _coerce_synthesis(data, raw_text)
    except ValueError as exc:
        raise ResponseValidationError(SYNTHESIZER_ID, raw_text, str(exc)) from exc


def _parse_repaired_synthesis(normalized: str, raw_text: str, initial: ValueError) -> Dict[str, Any]:
    attempted = set()
    for repair in (escape_inner_quotes, insert_detail_boundaries):
        candidate = repair(normalized)
        if candidate == normalized or candidate in attempted:
            continue
        attempted.add(candidate)
        logger.debug("Trying synthesizer repair: %s", repair.__name__)
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    logger.info("Synthesizer repair failed")
    raise ResponseParseError(SYNTHESIZER_ID, raw_text, str(initial)) from initial
