"""Cycle orchestration: initial, feedback and final phases, then synthesis.

A cycle is driven by ``CycleOrchestrator.stream_cycle`` which yields stream
events as phases settle and mutates the ``CycleState`` it was handed. The
orchestrator keeps nothing between calls. Continuing into another cycle is the
caller's decision (``next_cycle``), guarded by a caller-owned ``CycleLedger``.
"""
from __future__ import annotations

from typing import AsyncGenerator, Iterable, List, Optional, Sequence, Set, Tuple
import hashlib
import logging

from colloquy.events import (
    CompleteEvent,
    PhaseCompleteEvent,
    StreamEvent,
    SynthesisEvent,
)
from colloquy.executor import CollectionMode, EmptyTargetSetError, PhaseExecutor, PromptBuilder
from colloquy.models.gateway import ModelGateway
from colloquy.personas import PersonaCatalog
from colloquy.prompts import critique_prompt, researcher_prompt
from colloquy.results import CycleState, CycleStatus, Fulfilled, Phase
from colloquy.selection import select_best
from colloquy.synthesizer import ResearcherResponse, Synthesizer

logger = logging.getLogger(__name__)

DEFAULT_MAX_CYCLES = 3


def build_conversation_with_history(base: str, responses: Sequence[Fulfilled]) -> str:
    if not responses:
        return base
    entries = "\n\n".join(f'"{item.persona_id}": "{item.answer}"' for item in responses)
    return f"{base}\n\n=== Previous Responses ===\n{entries}"


def extend_conversation(base: str, cycle: int, follow_up: str) -> str:
    """Append a labelled follow-up block for the next cycle."""
    question = " ".join(follow_up.split())
    if not question:
        return base.strip()
    return f"{base.strip()}\n\nSynthesizer Cycle {cycle} Follow-up Question:\n1. {question}".strip()


def idempotency_key(cycle: int, conversation: str) -> str:
    digest = hashlib.sha256(conversation.strip().encode("utf-8")).hexdigest()
    return f"{cycle}:{digest}"


class CycleLedger:
    """Remembers which (cycle, conversation) pairs were already started."""

    def __init__(self) -> None:
        self._claimed: Set[str] = set()

    def claim(self, cycle: int, conversation: str) -> bool:
        key = idempotency_key(cycle, conversation)
        if key in self._claimed:
            return False
        self._claimed.add(key)
        return True

    def __contains__(self, key: object) -> bool:
        return key in self._claimed

    def __len__(self) -> int:
        return len(self._claimed)


def next_cycle(state: CycleState, max_cycles: int = DEFAULT_MAX_CYCLES) -> Optional[Tuple[int, str]]:
    if state.status != CycleStatus.DONE or state.synthesis is None:
        return None
    follow_up = state.synthesis.follow_up_question.strip()
    if not follow_up or state.cycle_number >= max_cycles:
        return None
    return (
        state.cycle_number + 1,
        extend_conversation(state.conversation_snapshot, state.cycle_number, follow_up),
    )


class CycleOrchestrator:
    def __init__(
        self,
        catalog: PersonaCatalog,
        gateway: ModelGateway,
        executor: Optional[PhaseExecutor] = None,
        synthesizer: Optional[Synthesizer] = None,
        invocation_timeout: Optional[float] = None,
    ) -> None:
        self.catalog = catalog
        self.gateway = gateway
        self.executor = executor or PhaseExecutor(gateway, invocation_timeout=invocation_timeout)
        self.synthesizer = synthesizer or Synthesizer(gateway)

    def begin_cycle(self, conversation: str, cycle: int = 1) -> CycleState:
        return CycleState(cycle_number=cycle, conversation_snapshot=conversation)

    def _researcher_prompts(self, conversation: str) -> PromptBuilder:
        def prompt_for(persona_id: str) -> str:
            return researcher_prompt(conversation, self.catalog.get(persona_id))

        return prompt_for

    def _critique_prompts(self, conversation: str, context: List[Fulfilled], phase: Phase) -> PromptBuilder:
        def prompt_for(persona_id: str) -> str:
            peers = [item for item in context if item.persona_id != persona_id]
            return critique_prompt(
                build_conversation_with_history(conversation, peers),
                self.catalog.get(persona_id),
                peers,
                phase,
            )

        return prompt_for

    async def _phase(
        self,
        state: CycleState,
        phase: Phase,
        persona_ids: List[str],
        prompt_for: PromptBuilder,
        mode: CollectionMode,
    ) -> AsyncGenerator[StreamEvent, None]:
        state.status = CycleStatus(phase.value)
        events = self.executor.stream_phase(state.cycle_number, phase, persona_ids, prompt_for, mode)
        try:
            async for event in events:
                if isinstance(event, PhaseCompleteEvent) and event.batch is not None:
                    state.batches[phase] = event.batch
                yield event
        finally:
            await events.aclose()

    async def stream_cycle(
        self,
        state: CycleState,
        persona_ids: Optional[Iterable[str]] = None,
        synthesize: bool = True,
    ) -> AsyncGenerator[StreamEvent, None]:
        targets = self.catalog.resolve(persona_ids)
        if not targets:
            raise EmptyTargetSetError("No target personas for cycle")
        cycle = state.cycle_number
        conversation = state.conversation_snapshot
        phase_events: Optional[AsyncGenerator[StreamEvent, None]] = None
        try:
            phase_events = self._phase(
                state, Phase.INITIAL, targets, self._researcher_prompts(conversation), CollectionMode.COMPLETION
            )
            async for event in phase_events:
                yield event
            initial_peers = state.batches[Phase.INITIAL].fulfilled()
            if not initial_peers:
                logger.info("cycle %s: no fulfilled initial answers, stopping", cycle)
                state.status = CycleStatus.DONE
                yield CompleteEvent(cycle=cycle)
                return

            phase_events = self._phase(
                state,
                Phase.FEEDBACK,
                targets,
                self._critique_prompts(conversation, initial_peers, Phase.FEEDBACK),
                CollectionMode.CONFIDENCE,
            )
            async for event in phase_events:
                yield event
            feedback_winner = select_best(state.batches[Phase.FEEDBACK])
            if feedback_winner is None:
                logger.info("cycle %s: no fulfilled feedback answers, stopping", cycle)
                state.status = CycleStatus.DONE
                yield CompleteEvent(cycle=cycle)
                return

            final_targets = [persona_id for persona_id in targets if persona_id != feedback_winner.persona_id]
            if final_targets:
                phase_events = self._phase(
                    state,
                    Phase.FINAL,
                    final_targets,
                    self._critique_prompts(conversation, [*initial_peers, feedback_winner], Phase.FINAL),
                    CollectionMode.CONFIDENCE,
                )
                async for event in phase_events:
                    yield event
            else:
                logger.info("cycle %s: feedback winner %s was the only persona, skipping final", cycle, feedback_winner.persona_id)

            if synthesize:
                yield await self._synthesize(state)
            state.status = CycleStatus.DONE
            yield CompleteEvent(cycle=cycle)
        except Exception:
            state.status = CycleStatus.FAILED
            raise
        finally:
            if phase_events is not None:
                await phase_events.aclose()

    async def _synthesize(self, state: CycleState) -> SynthesisEvent:
        state.status = CycleStatus.SYNTHESIZING
        responses = [ResearcherResponse.from_result(item) for item in state.fulfilled_answers()]
        try:
            result = await self.synthesizer.synthesize(state.conversation_snapshot, responses, state.cycle_number)
        except Exception as exc:
            state.synthesis_error = str(exc) or exc.__class__.__name__
            logger.warning("cycle %s synthesis failed: %s", state.cycle_number, state.synthesis_error)
            return SynthesisEvent(cycle=state.cycle_number, error=state.synthesis_error)
        state.synthesis = result
        return SynthesisEvent(cycle=state.cycle_number, result=result)

    async def run_cycle(
        self,
        conversation: str,
        persona_ids: Optional[Iterable[str]] = None,
        cycle: int = 1,
        synthesize: bool = True,
    ) -> CycleState:
        state = self.begin_cycle(conversation, cycle)
        async for _ in self.stream_cycle(state, persona_ids, synthesize=synthesize):
            pass
        return state


class DeliberationSession:
    """Runs an optional clarifier, then cycles until there is no follow-up or the cap is hit."""

    def __init__(
        self,
        orchestrator: CycleOrchestrator,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        clarify: bool = True,
        ledger: Optional[CycleLedger] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.max_cycles = max_cycles
        self.clarify = clarify
        self.ledger = ledger or CycleLedger()
        self.states: List[CycleState] = []

    async def _clarifier_event(self, conversation: str) -> SynthesisEvent:
        try:
            result = await self.orchestrator.synthesizer.clarify(conversation)
        except Exception as exc:
            logger.warning("clarifier failed: %s", exc)
            return SynthesisEvent(cycle=0, error=str(exc) or exc.__class__.__name__)
        return SynthesisEvent(cycle=0, result=result)

    async def stream(
        self,
        conversation: str,
        persona_ids: Optional[Iterable[str]] = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        targets = self.orchestrator.catalog.resolve(persona_ids)
        if self.clarify:
            yield await self._clarifier_event(conversation)

        cycle, current = 1, conversation
        while cycle <= self.max_cycles:
            if not self.ledger.claim(cycle, current):
                logger.info("cycle %s already started for this conversation, not repeating it", cycle)
                break
            state = self.orchestrator.begin_cycle(current, cycle)
            self.states.append(state)
            cycle_events = self.orchestrator.stream_cycle(state, targets)
            try:
                async for event in cycle_events:
                    yield event
            finally:
                await cycle_events.aclose()
            following = next_cycle(state, self.max_cycles)
            if following is None:
                break
            cycle, current = following

    async def run(self, conversation: str, persona_ids: Optional[Iterable[str]] = None) -> List[CycleState]:
        async for _ in self.stream(conversation, persona_ids):
            pass
        return self.states
