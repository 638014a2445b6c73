"""Tests for colloquy.executor."""
import asyncio
import unittest

from colloquy.events import PhaseCompleteEvent, ResultEvent
from colloquy.executor import CollectionMode, EmptyTargetSetError, PhaseExecutor, assemble_batch
from colloquy.models.gateway import GatewayError
from colloquy.personas import PersonaCatalog
from colloquy.prompts import researcher_prompt
from colloquy.results import Fulfilled, Phase, Rejected

from support import ScriptedGateway, agent_json

IDS = ["researcherA", "researcherB", "researcherC"]
CATALOG = PersonaCatalog.default()


def _prompts(persona_id):
    return researcher_prompt("Is remote work productive?", CATALOG.get(persona_id))


def _positions(batch):
    return sorted(entry.phase_position for entry in batch.entries)


class AssembleBatchTests(unittest.TestCase):
    def test_completion_mode_keeps_arrival_order(self):
        settled = [
            Rejected("researcherB", "boom"),
            Fulfilled("researcherC", "c", 1.0),
            Fulfilled("researcherA", "a", 5.0),
        ]
        batch = assemble_batch(1, Phase.INITIAL, IDS, settled, CollectionMode.COMPLETION)
        self.assertEqual([entry.result.persona_id for entry in batch.entries], ["researcherC", "researcherA", "researcherB"])
        self.assertEqual([entry.phase_position for entry in batch.entries], [1, 2, 3])

    def test_confidence_mode_orders_by_score_then_id(self):
        settled = [
            Rejected("researcherC", "late"),
            Fulfilled("researcherB", "b", 3.0),
            Fulfilled("researcherD", "d", 4.0),
            Rejected("researcherA", "early"),
            Fulfilled("researcherE", "e", 3.0),
        ]
        ids = ["researcherA", "researcherB", "researcherC", "researcherD", "researcherE"]
        batch = assemble_batch(2, Phase.FEEDBACK, ids, settled, CollectionMode.CONFIDENCE)
        self.assertEqual(
            [entry.result.persona_id for entry in batch.entries],
            ["researcherD", "researcherB", "researcherE", "researcherA", "researcherC"],
        )
        fulfilled = [entry for entry in batch.entries if isinstance(entry.result, Fulfilled)]
        for first, second in zip(fulfilled, fulfilled[1:]):
            self.assertGreaterEqual(first.result.confidence_score, second.result.confidence_score)


class PhaseExecutorTests(unittest.IsolatedAsyncioTestCase):
    async def test_all_fulfilled(self):
        gateway = ScriptedGateway({
            ("initial", "researcherA"): agent_json(5, "A"),
            ("initial", "researcherB"): agent_json(3, "B"),
            ("initial", "researcherC"): agent_json(4, "C"),
        })
        batch = await PhaseExecutor(gateway).run_phase(1, Phase.INITIAL, IDS, _prompts, CollectionMode.CONFIDENCE)
        self.assertEqual(len(batch.entries), 3)
        self.assertEqual(_positions(batch), [1, 2, 3])
        self.assertEqual([entry.result.persona_id for entry in batch.entries], ["researcherA", "researcherC", "researcherB"])

    async def test_failures_are_isolated(self):
        gateway = ScriptedGateway({
            ("initial", "researcherA"): agent_json(5, "A"),
            ("initial", "researcherB"): GatewayError("HTTP 500: upstream"),
            ("initial", "researcherC"): "not json",
        })
        batch = await PhaseExecutor(gateway).run_phase(1, Phase.INITIAL, IDS, _prompts, CollectionMode.CONFIDENCE)
        self.assertEqual(len(batch.entries), 3)
        self.assertEqual(_positions(batch), [1, 2, 3])
        self.assertEqual([item.persona_id for item in batch.fulfilled()], ["researcherA"])
        errors = {item.persona_id: item.error_message for item in batch.rejected()}
        self.assertEqual(errors["researcherB"], "HTTP 500: upstream")
        self.assertIn("Failed to parse researcher (researcherC) response", errors["researcherC"])

    async def test_prompt_builder_failure_becomes_rejection(self):
        gateway = ScriptedGateway({"initial": agent_json(4, "ok")})

        def prompt_for(persona_id):
            if persona_id == "researcherB":
                raise KeyError("template missing")
            return _prompts(persona_id)

        batch = await PhaseExecutor(gateway).run_phase(1, Phase.INITIAL, IDS, prompt_for)
        self.assertEqual([item.persona_id for item in batch.rejected()], ["researcherB"])
        self.assertEqual(len(gateway.calls), 2)

    async def test_timeout_becomes_rejection(self):
        gateway = ScriptedGateway(
            {"initial": agent_json(4, "ok")},
            delays={("initial", "researcherC"): 5},
        )
        executor = PhaseExecutor(gateway, invocation_timeout=0.05)
        batch = await asyncio.wait_for(
            executor.run_phase(1, Phase.INITIAL, IDS, _prompts, CollectionMode.COMPLETION),
            timeout=2,
        )
        rejected = batch.rejected()
        self.assertEqual(len(rejected), 1)
        self.assertEqual(rejected[0].persona_id, "researcherC")
        self.assertEqual(rejected[0].error_message, "timeout after 0.05s")
        self.assertEqual(batch.position_of("researcherC"), 3)

    async def test_empty_target_set(self):
        executor = PhaseExecutor(ScriptedGateway())
        with self.assertRaises(EmptyTargetSetError):
            await executor.run_phase(1, Phase.INITIAL, [], _prompts)

    async def test_duplicate_ids_run_once(self):
        gateway = ScriptedGateway({"initial": agent_json(2, "x")})
        batch = await PhaseExecutor(gateway).run_phase(1, Phase.INITIAL, ["researcherA", "researcherA"], _prompts)
        self.assertEqual(len(batch.entries), 1)
        self.assertEqual(len(gateway.calls), 1)

    async def test_completion_stream_emits_in_arrival_order(self):
        gateway = ScriptedGateway(
            {
                ("initial", "researcherA"): agent_json(5, "A"),
                ("initial", "researcherB"): GatewayError("down"),
                ("initial", "researcherC"): agent_json(1, "C"),
            },
            delays={"researcherA": 0.06, "researcherB": 0.0, "researcherC": 0.02},
        )
        events = [
            event
            async for event in PhaseExecutor(gateway).stream_phase(
                1, Phase.INITIAL, IDS, _prompts, CollectionMode.COMPLETION
            )
        ]
        results = [event for event in events if isinstance(event, ResultEvent)]
        self.assertEqual(
            [(event.result.persona_id, event.phase_position) for event in results],
            [("researcherC", 1), ("researcherA", 2), ("researcherB", 3)],
        )
        self.assertIsInstance(events[-1], PhaseCompleteEvent)
        self.assertEqual(len(events[-1].batch.entries), 3)

    async def test_confidence_stream_emits_only_improvements(self):
        gateway = ScriptedGateway(
            {
                ("initial", "researcherA"): agent_json(2, "A"),
                ("initial", "researcherB"): agent_json(5, "B"),
                ("initial", "researcherC"): agent_json(4, "C"),
            },
            delays={"researcherA": 0.0, "researcherB": 0.03, "researcherC": 0.06},
        )
        events = [
            event
            async for event in PhaseExecutor(gateway).stream_phase(
                1, Phase.FEEDBACK, IDS, _prompts, CollectionMode.CONFIDENCE
            )
        ]
        results = [event for event in events if isinstance(event, ResultEvent)]
        self.assertEqual([event.result.persona_id for event in results], ["researcherA", "researcherB"])
        self.assertTrue(all(event.phase_position == 1 for event in results))
        batch = events[-1].batch
        self.assertEqual(batch.entries[0].result, results[-1].result)


if __name__ == "__main__":
    unittest.main()
