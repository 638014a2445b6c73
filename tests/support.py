"""Shared fakes for the test suite."""
import asyncio
import json

from colloquy.models.gateway import GatewayError
from colloquy.personas import DEFAULT_PERSONAS


def agent_json(confidence, answer):
    return json.dumps({"confidence_score": confidence, "answer": answer})


def synthesis_json(summary, follow_up="", highlights=()):
    return json.dumps({
        "summary": summary,
        "highlights": [{"title": title, "detail": detail} for title, detail in highlights],
        "followUpQuestion": follow_up,
    })


def prompt_kind(prompt):
    if prompt.startswith("You are the Synthesizer Clarifier"):
        return "clarify"
    if prompt.startswith("You are the Synthesizer"):
        return "synthesis"
    if "Deliberation round: final" in prompt:
        return "final"
    if "Deliberation round: feedback" in prompt:
        return "feedback"
    return "initial"


def persona_of(prompt):
    for persona in DEFAULT_PERSONAS:
        if f"You are acting as {persona.title}." in prompt:
            return persona.id
    return None


class ScriptedGateway:
    """Replies keyed by (kind, persona_id), falling back to kind alone.

    A reply may be a string, an exception instance to raise, or a callable
    taking the prompt.
    """

    def __init__(self, script=None, delays=None):
        self.script = dict(script or {})
        self.delays = dict(delays or {})
        self.calls = []

    async def generate(self, prompt):
        kind = prompt_kind(prompt)
        persona_id = persona_of(prompt)
        self.calls.append((kind, persona_id, prompt))
        delay = self.delays.get((kind, persona_id), self.delays.get(persona_id, 0))
        if delay:
            await asyncio.sleep(delay)
        reply = self.script.get((kind, persona_id), self.script.get(kind))
        if reply is None:
            raise GatewayError(f"no scripted reply for {kind}/{persona_id}")
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply

    def calls_for(self, kind):
        return [call for call in self.calls if call[0] == kind]

    def prompt_for(self, kind, persona_id):
        for call_kind, call_persona, prompt in self.calls:
            if call_kind == kind and call_persona == persona_id:
                return prompt
        return None
