"""Persona catalog for the researcher agents."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
import logging

logger = logging.getLogger(__name__)


class UnknownPersonaError(LookupError):
    """Raised when a persona id is not in the catalog."""

    def __init__(self, persona_id: str) -> None:
        super().__init__(f"Unknown persona id: {persona_id}")
        self.persona_id = persona_id


@dataclass(frozen=True)
class Persona:
    id: str
    title: str
    description: str
    focus_guidance: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Persona":
        persona_id = str(data.get("id") or "").strip()
        if not persona_id:
            raise ValueError("persona entry requires an id")
        return cls(
            id=persona_id,
            title=str(data.get("title") or persona_id),
            description=str(data.get("description") or ""),
            focus_guidance=str(data.get("focusGuidance") or data.get("focus") or data.get("focus_guidance") or ""),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "focusGuidance": self.focus_guidance,
        }


DEFAULT_PERSONAS = (
    Persona(
        id="researcherA",
        title="Quantitative Methodologist",
        description=(
            "You prioritize rigorous statistical reasoning, data validation, "
            "and methodological transparency."
        ),
        focus_guidance=(
            "Highlight dataset quality, statistical significance, and potential "
            "biases in the conversation."
        ),
    ),
    Persona(
        id="researcherB",
        title="Human-Centered Ethicist",
        description=(
            "You emphasize ethical implications, societal impact, and stakeholder "
            "perspectives."
        ),
        focus_guidance=(
            "Surface risks, equity concerns, and long-term effects on people or "
            "communities."
        ),
    ),
    Persona(
        id="researcherC",
        title="Systems Architect",
        description=(
            "You examine technical feasibility, scalability, and systems "
            "integration challenges."
        ),
        focus_guidance=(
            "Assess architecture trade-offs, implementation hurdles, and "
            "performance considerations."
        ),
    ),
)


class PersonaCatalog:
    """Read-only registry of personas, built once at startup."""

    def __init__(self, personas: Iterable[Persona]) -> None:
        ordered: Dict[str, Persona] = {}
        for persona in personas:
            if persona.id in ordered:
                raise ValueError(f"Duplicate persona id: {persona.id}")
            ordered[persona.id] = persona
        self._personas = tuple(ordered.values())
        self._by_id = ordered

    @classmethod
    def default(cls) -> "PersonaCatalog":
        return cls(DEFAULT_PERSONAS)

    @classmethod
    def from_config(cls, entries: Optional[List[Dict[str, Any]]]) -> "PersonaCatalog":
        if not entries:
            return cls.default()
        personas = [Persona.from_dict(entry) for entry in entries if isinstance(entry, dict)]
        if not personas:
            logger.warning("No usable personas in config; falling back to built-in table")
            return cls.default()
        return cls(personas)

    def list(self) -> List[Persona]:
        return [persona for persona in self._personas]

    def ids(self) -> List[str]:
        return [persona.id for persona in self._personas]

    def get(self, persona_id: str) -> Persona:
        persona = self._by_id.get(persona_id)
        if persona is None:
            raise UnknownPersonaError(persona_id)
        return persona

    def __contains__(self, persona_id: object) -> bool:
        return persona_id in self._by_id

    def __len__(self) -> int:
        return len(self._personas)

    def known(self, persona_ids: Iterable[str]) -> List[str]:
        """Keep only catalog ids, first occurrence wins."""
        seen = []
        for persona_id in persona_ids:
            if persona_id in self._by_id and persona_id not in seen:
                seen.append(persona_id)
        return seen

    def resolve(self, persona_ids: Optional[Iterable[str]] = None) -> List[str]:
        """Validate a target set; ``None`` means every persona."""
        if persona_ids is None:
            return self.ids()
        resolved: List[str] = []
        for persona_id in persona_ids:
            if persona_id not in self._by_id:
                raise UnknownPersonaError(persona_id)
            if persona_id not in resolved:
                resolved.append(persona_id)
        return resolved
