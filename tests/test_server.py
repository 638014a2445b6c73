"""HTTP surface tests using FastAPI's TestClient."""
import json
import unittest

from fastapi.testclient import TestClient

from colloquy.config import Config
from colloquy.models.gateway import GatewayError
from colloquy.server import create_app

from support import ScriptedGateway, agent_json, synthesis_json


def _script():
    return {
        "initial": agent_json(3, "initial answer"),
        "feedback": agent_json(4, "feedback answer"),
        "final": agent_json(5, "final answer"),
        "synthesis": synthesis_json("Summary.", "Follow up?"),
        "clarify": synthesis_json("Intent.", "Which one?"),
    }


class ServerTests(unittest.TestCase):
    def setUp(self):
        self.gateway = ScriptedGateway(_script())
        self.client = TestClient(create_app(Config({}), gateway=self.gateway))

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "healthy", "service": "colloquy"})

    def test_personas(self):
        data = self.client.get("/api/personas").json()
        self.assertEqual([item["id"] for item in data["personas"]], ["researcherA", "researcherB", "researcherC"])

    def test_deliberate(self):
        resp = self.client.post("/api/deliberate", json={"conversation": "Q?", "personaIds": ["researcherA", "researcherB"]})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["cycle"], 1)
        self.assertEqual([batch["phase"] for batch in body["batches"]], ["initial", "feedback", "final"])
        self.assertEqual(len(body["batches"][0]["entries"]), 2)
        self.assertEqual(body["synthesis"]["followUpQuestion"], "Follow up?")
        self.assertIsNone(body["synthesisError"])

    def test_validation_error_is_400_before_any_call(self):
        resp = self.client.post("/api/deliberate", json={"conversation": "  "})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("conversation", resp.json()["error"])
        resp = self.client.post("/api/researchers", json={"conversation": "Q", "personaIds": ["ghost"]})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.gateway.calls, [])

    def test_researchers_stream(self):
        resp = self.client.post("/api/researchers", json={"conversation": "Q?", "cycle": 2})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["cache-control"], "no-store")
        self.assertTrue(resp.headers["content-type"].startswith("application/jsonl"))
        events = [json.loads(line) for line in resp.text.splitlines() if line.strip()]
        types = [event["type"] for event in events]
        self.assertEqual(types[-2:], ["synthesis", "complete"])
        self.assertEqual(events[-1], {"type": "complete", "cycle": 2})
        phases = [event["phase"] for event in events if event["type"] == "phaseComplete"]
        self.assertEqual(phases, ["initial", "feedback", "final"])
        initial = [event["payload"] for event in events if event["type"] == "result" and event["payload"]["phase"] == "initial"]
        self.assertEqual(sorted(item["phasePosition"] for item in initial), [1, 2, 3])

    def test_synthesizer_endpoint(self):
        resp = self.client.post("/api/synthesizer", json={
            "conversation": "Q?",
            "researcherResponses": [{"researcherId": "researcherA", "answer": "A", "confidenceScore": 4}],
            "cycle": 2,
        })
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["status"], "fulfilled")
        self.assertEqual(body["cycle"], 2)
        self.assertEqual(body["result"]["summary"], "Summary.")

    def test_synthesizer_clarify(self):
        body = self.client.post("/api/synthesizer", json={"conversation": "Q?", "mode": "clarify"}).json()
        self.assertEqual(body["cycle"], 0)
        self.assertEqual(body["mode"], "clarify")
        self.assertEqual(body["result"]["followUpQuestion"], "Which one?")

    def test_synthesizer_rejects_empty_responses(self):
        resp = self.client.post("/api/synthesizer", json={"conversation": "Q?", "researcherResponses": []})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["status"], "rejected")
        self.assertEqual(resp.json()["error"], "researcherResponses must be a non-empty array.")
        self.assertEqual(self.gateway.calls, [])

    def test_synthesizer_gateway_failure_is_500(self):
        self.gateway.script["synthesis"] = GatewayError("HTTP 429: slow down")
        resp = self.client.post("/api/synthesizer", json={
            "conversation": "Q?",
            "researcherResponses": [{"researcherId": "researcherA", "answer": "A"}],
        })
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["error"], "HTTP 429: slow down")


if __name__ == "__main__":
    unittest.main()
