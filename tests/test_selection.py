import unittest

from colloquy.results import BatchEntry, Fulfilled, Phase, PhaseBatch, Rejected
from colloquy.selection import WinnerTracker, select_best


def _batch(*results):
    return PhaseBatch(
        cycle=1,
        phase=Phase.FEEDBACK,
        entries=[BatchEntry(result=result, phase_position=index) for index, result in enumerate(results, start=1)],
    )


class SelectBestTests(unittest.TestCase):
    def test_highest_confidence_wins(self):
        batch = _batch(
            Fulfilled("researcherA", "a", 2.0),
            Fulfilled("researcherB", "b", 4.0),
            Fulfilled("researcherC", "c", 3.0),
        )
        self.assertEqual(select_best(batch).persona_id, "researcherB")

    def test_tie_goes_to_earliest_position(self):
        batch = PhaseBatch(
            cycle=1,
            phase=Phase.INITIAL,
            entries=[
                BatchEntry(Fulfilled("researcherC", "c", 4.0), 2),
                BatchEntry(Fulfilled("researcherA", "a", 4.0), 3),
                BatchEntry(Fulfilled("researcherB", "b", 4.0), 1),
            ],
        )
        self.assertEqual(select_best(batch).persona_id, "researcherB")

    def test_rejected_entries_are_ignored(self):
        batch = _batch(Fulfilled("researcherA", "a", 1.0), Rejected("researcherB", "boom"))
        self.assertEqual(select_best(batch).persona_id, "researcherA")

    def test_no_fulfilled_returns_none(self):
        self.assertIsNone(select_best(_batch(Rejected("researcherA", "boom"))))
        self.assertIsNone(select_best(_batch()))


class WinnerTrackerTests(unittest.TestCase):
    def test_only_improvements_are_reported(self):
        tracker = WinnerTracker()
        self.assertTrue(tracker.offer(Fulfilled("researcherB", "b", 3.0)))
        self.assertFalse(tracker.offer(Fulfilled("researcherC", "c", 2.0)))
        self.assertTrue(tracker.offer(Fulfilled("researcherC", "c", 5.0)))
        self.assertFalse(tracker.offer(Fulfilled("researcherD", "d", 5.0)))
        self.assertEqual(tracker.best.persona_id, "researcherC")

    def test_equal_confidence_prefers_lower_persona_id(self):
        tracker = WinnerTracker()
        tracker.offer(Fulfilled("researcherC", "c", 4.0))
        self.assertTrue(tracker.offer(Fulfilled("researcherA", "a", 4.0)))
        self.assertEqual(tracker.best.persona_id, "researcherA")


if __name__ == "__main__":
    unittest.main()
