"""Concurrent execution of one deliberation phase."""
from __future__ import annotations

from enum import Enum
from typing import AsyncGenerator, Callable, Iterable, List, Optional
import asyncio
import logging

from colloquy.events import PhaseCompleteEvent, ResultEvent, StreamEvent
from colloquy.models.gateway import ModelGateway
from colloquy.parser import parse_agent_response
from colloquy.results import AgentResult, BatchEntry, Fulfilled, Phase, PhaseBatch, Rejected
from colloquy.selection import WinnerTracker, rank_key

logger = logging.getLogger(__name__)

PromptBuilder = Callable[[str], str]


class EmptyTargetSetError(ValueError):
    """Raised when a phase is asked to run with no personas."""


class CollectionMode(str, Enum):
    COMPLETION = "completion"
    CONFIDENCE = "confidence"


def assemble_batch(
    cycle: int,
    phase: Phase,
    persona_ids: List[str],
    settled: List[AgentResult],
    mode: CollectionMode,
) -> PhaseBatch:
    """Number settled results 1..N, fulfilled entries first.

    ``settled`` is in arrival order. Completion mode keeps arrival order for
    both groups; confidence mode ranks fulfilled entries with ``rank_key`` and
    lists rejected ones in persona order.
    """
    fulfilled = [result for result in settled if isinstance(result, Fulfilled)]
    rejected = [result for result in settled if isinstance(result, Rejected)]
    if mode == CollectionMode.CONFIDENCE:
        fulfilled.sort(key=rank_key)
        order = {persona_id: index for index, persona_id in enumerate(persona_ids)}
        rejected.sort(key=lambda result: order.get(result.persona_id, len(order)))
    ordered: List[AgentResult] = [*fulfilled, *rejected]
    entries = [BatchEntry(result=result, phase_position=index) for index, result in enumerate(ordered, start=1)]
    return PhaseBatch(cycle=cycle, phase=phase, entries=entries)


class PhaseExecutor:
    """Fans a phase out to every persona and collects each outcome.

    One invocation failing (gateway error, unparseable output, timeout) turns
    into a ``Rejected`` entry and never disturbs the other invocations.
    """

    def __init__(self, gateway: ModelGateway, invocation_timeout: Optional[float] = None) -> None:
        self.gateway = gateway
        self.invocation_timeout = invocation_timeout

    async def invoke(self, persona_id: str, prompt_for: PromptBuilder) -> AgentResult:
        try:
            prompt = prompt_for(persona_id)
            if self.invocation_timeout:
                raw_text = await asyncio.wait_for(self.gateway.generate(prompt), timeout=self.invocation_timeout)
            else:
                raw_text = await self.gateway.generate(prompt)
            payload = parse_agent_response(raw_text, persona_id)
        except asyncio.TimeoutError as exc:
            if not self.invocation_timeout:
                return Rejected(persona_id=persona_id, error_message=str(exc) or "timeout")
            return Rejected(persona_id=persona_id, error_message=f"timeout after {self.invocation_timeout:g}s")
        except Exception as exc:
            return Rejected(persona_id=persona_id, error_message=str(exc) or exc.__class__.__name__)
        return Fulfilled(
            persona_id=persona_id,
            answer=payload.answer,
            confidence_score=payload.confidence_score,
            raw_text=raw_text,
        )

    async def settle(self, persona_ids: Iterable[str], prompt_for: PromptBuilder) -> AsyncGenerator[AgentResult, None]:
        """Yield each persona's result as soon as it settles."""
        tasks = [asyncio.ensure_future(self.invoke(persona_id, prompt_for)) for persona_id in persona_ids]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def stream_phase(
        self,
        cycle: int,
        phase: Phase,
        persona_ids: Iterable[str],
        prompt_for: PromptBuilder,
        mode: CollectionMode,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Run a phase, yielding result events and a closing ``PhaseCompleteEvent``.

        Completion mode streams each fulfilled result on arrival and the
        rejected ones once everything has settled. Confidence mode streams a
        result only when it becomes the new best, then the rejected entries
        with their final positions; the complete batch rides on the closing
        event either way.
        """
        targets = _unique(persona_ids)
        if not targets:
            raise EmptyTargetSetError(f"No target personas for {phase.value} phase of cycle {cycle}")

        settled: List[AgentResult] = []
        tracker = WinnerTracker()
        next_position = 1
        results = self.settle(targets, prompt_for)
        try:
            async for result in results:
                settled.append(result)
                if isinstance(result, Rejected):
                    logger.warning("cycle %s %s: %s rejected: %s", cycle, phase.value, result.persona_id, result.error_message)
                    continue
                if mode == CollectionMode.COMPLETION:
                    yield ResultEvent(cycle=cycle, phase=phase, phase_position=next_position, result=result)
                    next_position += 1
                elif tracker.offer(result):
                    yield ResultEvent(cycle=cycle, phase=phase, phase_position=1, result=result)
        finally:
            await results.aclose()

        batch = assemble_batch(cycle, phase, targets, settled, mode)
        for entry in batch.entries:
            if isinstance(entry.result, Rejected):
                yield ResultEvent(cycle=cycle, phase=phase, phase_position=entry.phase_position, result=entry.result)
        logger.info(
            "cycle %s %s phase settled: %d fulfilled, %d rejected",
            cycle,
            phase.value,
            len(batch.fulfilled()),
            len(batch.rejected()),
        )
        yield PhaseCompleteEvent(cycle=cycle, phase=phase, batch=batch)

    async def run_phase(
        self,
        cycle: int,
        phase: Phase,
        persona_ids: Iterable[str],
        prompt_for: PromptBuilder,
        mode: CollectionMode = CollectionMode.CONFIDENCE,
    ) -> PhaseBatch:
        batch: Optional[PhaseBatch] = None
        async for event in self.stream_phase(cycle, phase, persona_ids, prompt_for, mode):
            if isinstance(event, PhaseCompleteEvent):
                batch = event.batch
        assert batch is not None
        return batch


def _unique(persona_ids: Iterable[str]) -> List[str]:
    targets: List[str] = []
    for persona_id in persona_ids:
        if persona_id not in targets:
            targets.append(persona_id)
    return targets
