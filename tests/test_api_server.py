"""
Tests for the HTTP surface of the replay server.

The module-level engine is swapped for one backed by the fake surface.
"""

import json
import unittest

from fastapi.testclient import TestClient

import api_server
from fake_surface import FakeDriver, SleepRecorder
from workflow_engine import ReplayEngine, TeardownScheduler

STEPS = [
    {"type": "click", "selector": "#a", "delay": 100},
    {"type": "type", "selector": "#b", "value": "hi", "delay": 50},
]


class ApiTestCase(unittest.TestCase):

    def use_driver(self, driver, **engine_options):
        self.driver = driver
        api_server.engine = ReplayEngine(
            driver,
            teardown=TeardownScheduler(0),
            sleep=SleepRecorder(),
            **engine_options,
        )

    def setUp(self):
        self.original_engine = api_server.engine
        self.use_driver(FakeDriver())
        self.client = TestClient(api_server.app)

    def tearDown(self):
        api_server.engine = self.original_engine


class TestRunEndpoint(ApiTestCase):
    """Test POST /api/run."""

    def test_successful_run(self):
        response = self.client.post("/api/run", json={"url": "https://example.com", "speed": 1, "steps": STEPS})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertIs(body["ok"], True)
        self.assertEqual([s["status"] for s in body["steps"]], ["executed", "executed"])
        self.assertEqual(self.driver.sessions[0].calls[0], ("navigate", "https://example.com"))

    def test_partial_failure_still_ok(self):
        self.use_driver(FakeDriver(missing={"#a"}))

        response = self.client.post("/api/run", json={"steps": STEPS})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertIs(body["ok"], True)
        self.assertEqual(body["steps"][0]["status"], "failed")
        self.assertIn("#a", body["steps"][0]["reason"])

    def test_missing_steps(self):
        for payload in ({}, {"steps": "nope"}, {"steps": []}):
            response = self.client.post("/api/run", json=payload)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json(), {"error": "steps array is required"})

        self.assertEqual(self.driver.sessions, [])

    def test_malformed_body(self):
        response = self.client.post(
            "/api/run",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "steps array is required")

    def test_invalid_speed(self):
        response = self.client.post("/api/run", json={"speed": 0, "steps": STEPS})

        self.assertEqual(response.status_code, 400)
        self.assertIn("speed", response.json()["error"])

    def test_navigation_failure(self):
        self.use_driver(FakeDriver(fail_navigation=True))

        response = self.client.post("/api/run", json={"steps": STEPS})

        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertEqual(body["error"], "Automation run failed")
        self.assertEqual(body["kind"], "NavigationError")
        self.assertIn("ERR_NAME_NOT_RESOLVED", body["details"])
        self.assertEqual(body["steps"], [])

    def test_failed_ratio_threshold(self):
        self.use_driver(FakeDriver(missing={"#a", "#b"}), max_failed_ratio=0.5)

        response = self.client.post("/api/run", json={"steps": STEPS})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["kind"], "StepError")

    def test_oversized_body(self):
        padding = "x" * (api_server.replay_config.MAX_BODY_BYTES + 1)

        response = self.client.post("/api/run", json={"steps": STEPS, "padding": padding})

        self.assertEqual(response.status_code, 413)
        self.assertEqual(response.json(), {"error": "Request body too large"})
        self.assertEqual(self.driver.sessions, [])

    def test_oversized_chunked_body(self):
        """Bodies without a Content-Length header are measured as they arrive."""
        padding = "x" * (api_server.replay_config.MAX_BODY_BYTES + 1)
        body = json.dumps({"steps": STEPS, "padding": padding}).encode()

        def chunks():
            for start in range(0, len(body), 64 * 1024):
                yield body[start:start + 64 * 1024]

        response = self.client.post(
            "/api/run",
            content=chunks(),
            headers={"content-type": "application/json"},
        )

        self.assertEqual(response.status_code, 413)
        self.assertEqual(response.json(), {"error": "Request body too large"})
        self.assertEqual(self.driver.sessions, [])

    def test_small_chunked_body_runs(self):
        body = json.dumps({"steps": STEPS}).encode()

        response = self.client.post(
            "/api/run",
            content=iter([body[:10], body[10:]]),
            headers={"content-type": "application/json"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertIs(response.json()["ok"], True)


class TestHealth(ApiTestCase):

    def test_health(self):
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")


if __name__ == '__main__':
    unittest.main()
