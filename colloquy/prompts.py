"""Prompt templates for researchers, the synthesizer and the clarifier."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence
import json

from colloquy.personas import Persona
from colloquy.results import Fulfilled, Phase

CONFIDENCE_GUIDELINES = (
    "Confidence Score Guidelines:\n"
    "  - 5 : Very High Confidence\n"
    "  - 4 : High Confidence\n"
    "  - 3 : Moderate Confidence\n"
    "  - 2 : Low Confidence\n"
    "  - 1 : Very Low Confidence\n"
)

AGENT_JSON_CONTRACT = (
    "Respond output ONLY with the following JSON object:\n"
    "{\n"
    '  "confidence_score" : NUMBER,\n'
    '  "answer" : STRING\n'
    "}\n"
)


def _persona_brief(persona: Persona) -> str:
    return (
        f"You are acting as {persona.title}.\n"
        f"Persona brief: {persona.description}\n"
        f"Focus your analysis on: {persona.focus_guidance}\n"
    )


def researcher_prompt(conversation: str, persona: Persona) -> str:
    return (
        f"Here's the history of conversations: {conversation}\n"
        f"{_persona_brief(persona)}\n"
        f"{CONFIDENCE_GUIDELINES}\n"
        f"{AGENT_JSON_CONTRACT}"
    )


def critique_prompt(
    conversation: str,
    persona: Persona,
    peers: Sequence[Fulfilled],
    phase: Phase,
) -> str:
    """Prompt for the feedback and final rounds; ``peers`` never includes ``persona``."""
    peer_blob = "\n".join(
        f"- {peer.persona_id} (confidence {peer.confidence_score:g}): {peer.answer}"
        for peer in peers
        if peer.persona_id != persona.id
    ) or "- (no peer responses available)"
    if phase == Phase.FINAL:
        task = (
            "This is the final round. The strongest feedback answer is included above. "
            "Challenge it where it is weak, keep what holds up, and give your best final answer.\n"
        )
    else:
        task = (
            "Critique the peer responses: point out errors, gaps and unsupported claims, "
            "reconcile disagreements, then revise your own answer.\n"
        )
    return (
        f"Here's the history of conversations: {conversation}\n"
        f"{_persona_brief(persona)}\n"
        f"Deliberation round: {phase.value}\n"
        f"Peer responses:\n{peer_blob}\n\n"
        f"{task}"
        "Lower your confidence if the peers raise issues you cannot resolve.\n\n"
        f"{CONFIDENCE_GUIDELINES}\n"
        f"{AGENT_JSON_CONTRACT}"
    )


def synthesizer_prompt(conversation: str, responses: List[Dict[str, Any]], cycle: Optional[int] = None) -> str:
    responses_blob = json.dumps(responses, indent=2, ensure_ascii=False)
    cycle_line = f"Deliberation cycle: {cycle}\n" if cycle is not None else ""
    return (
        "You are the Synthesizer. Merge the researcher responses into one coherent view of the conversation.\n\n"
        f"{cycle_line}"
        f"Conversation:\n{conversation}\n\n"
        f"Researcher responses:\n{responses_blob}\n\n"
        "Responsibilities:\n"
        "1. Summarize where the researchers agree and where they differ.\n"
        "2. Pick at most 3 highlights, each with a short title and a one or two sentence detail.\n"
        "3. Ask exactly ONE follow-up question that would most improve the next round of research.\n\n"
        "Respond strictly as valid, minified JSON. No markdown fences or extra commentary.\n"
        "Follow this schema:\n"
        '{"summary": string, "highlights": [{"title": string, "detail": string}], "followUpQuestion": string}\n'
    )


def clarifier_prompt(conversation: str) -> str:
    return (
        "You are the Synthesizer Clarifier. Understand the user's opening question and respond with a "
        "concise follow-up question that will help guide the researcher agents.\n\n"
        f"Conversation history or question:\n{conversation}\n\n"
        "Responsibilities:\n"
        "1. Provide a one-sentence summary that captures the intent of the conversation.\n"
        "2. Do not create highlights. Return an empty array for highlights.\n"
        "3. Produce exactly ONE short, specific follow-up question.\n\n"
        "Respond strictly as valid, minified JSON. No markdown fences or extra commentary.\n"
        "Follow this schema:\n"
        '{"summary": string, "highlights": [], "followUpQuestion": string}\n'
    )
