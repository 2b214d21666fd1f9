# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Tests for the Flask API.
"""

import unittest
from unittest.mock import patch

from ..api import app as api_module

HISTORY = [0.10, -0.05, 0.08, 0.12, -0.02]


def _payload(**config):
    base = {"iterations": 1000, "time_horizon": 10, "seed": 42}
    base.update(config)
    return {
        "config": base,
        "portfolio": {
            "assets": [
                {"asset_id": "equity", "weight": 0.6, "historical_returns": HISTORY},
                {"asset_id": "bonds", "weight": 0.4, "historical_returns": HISTORY},
            ],
        },
    }


class _ImmediateThread:
    """Stands in for threading.Thread and runs the target on start()."""

    def __init__(self, target, args=()):
        self._target = target
        self._args = args
        self.daemon = False

    def start(self):
        self._target(*self._args)


class TestApi(unittest.TestCase):

    def setUp(self):
        self.client = api_module.app.test_client()

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["engine"], "ready")

    def test_simulate(self):
        response = self.client.post("/sbloc/api/v1/simulate", json=_payload())
        self.assertEqual(response.status_code, 200)
        result = response.get_json()["result"]
        self.assertEqual(result["status"], "complete")
        self.assertEqual(result["iterations_completed"], 1000)
        self.assertEqual(len(result["yearly_percentiles"]), 11)
        self.assertNotIn("terminal_values", result)

    def test_simulate_with_loan_and_terminal_values(self):
        payload = _payload(sbloc={"annual_withdrawal": 50_000})
        payload["include_terminal_values"] = True
        response = self.client.post("/sbloc/api/v1/simulate", json=payload)
        self.assertEqual(response.status_code, 200)
        result = response.get_json()["result"]
        self.assertEqual(len(result["terminal_values"]), 1000)
        self.assertEqual(len(result["margin_call_stats"]), 10)

    def test_invalid_config_is_422(self):
        response = self.client.post("/sbloc/api/v1/simulate", json=_payload(iterations=10))
        self.assertEqual(response.status_code, 422)
        self.assertIn("iterations", response.get_json()["error"])

    def test_invalid_portfolio_is_422(self):
        payload = _payload()
        payload["portfolio"]["assets"][0]["weight"] = 0.9
        response = self.client.post("/sbloc/api/v1/simulate", json=payload)
        self.assertEqual(response.status_code, 422)

    def test_wrong_value_type_is_422(self):
        response = self.client.post("/sbloc/api/v1/simulate",
                                    json=_payload(initial_value="a lot"))
        self.assertEqual(response.status_code, 422)

    def test_missing_body_is_400(self):
        response = self.client.post("/sbloc/api/v1/simulate", data="not json",
                                    content_type="text/plain")
        self.assertEqual(response.status_code, 400)

    def test_non_object_body_is_400(self):
        response = self.client.post("/sbloc/api/v1/simulate", json=[1, 2, 3])
        self.assertEqual(response.status_code, 400)

    def test_unknown_job_is_404(self):
        self.assertEqual(self.client.get("/sbloc/api/v1/simulations/nope").status_code, 404)
        self.assertEqual(
            self.client.post("/sbloc/api/v1/simulations/nope/cancel").status_code, 404
        )

    def test_background_job_lifecycle(self):
        with patch.object(api_module.threading, "Thread", _ImmediateThread):
            response = self.client.post("/sbloc/api/v1/simulations", json=_payload())
        self.assertEqual(response.status_code, 202)
        job_id = response.get_json()["job_id"]

        status = self.client.get(f"/sbloc/api/v1/simulations/{job_id}").get_json()
        self.assertEqual(status["status"], "complete")
        self.assertEqual(status["progress"], 100.0)
        self.assertEqual(status["result"]["iterations_completed"], 1000)

        cancel = self.client.post(f"/sbloc/api/v1/simulations/{job_id}/cancel")
        self.assertEqual(cancel.status_code, 200)
        self.assertTrue(cancel.get_json()["cancel_requested"])

    def test_oldest_finished_jobs_are_evicted(self):
        job_ids = []
        with patch.dict(api_module._jobs, clear=True), \
                patch.object(api_module, "MAX_FINISHED_JOBS", 2), \
                patch.object(api_module.threading, "Thread", _ImmediateThread):
            for _ in range(4):
                response = self.client.post("/sbloc/api/v1/simulations", json=_payload())
                job_ids.append(response.get_json()["job_id"])

            self.assertEqual(len(api_module._jobs), 3)
            self.assertEqual(
                self.client.get(f"/sbloc/api/v1/simulations/{job_ids[0]}").status_code, 404
            )
            for job_id in job_ids[1:]:
                self.assertEqual(
                    self.client.get(f"/sbloc/api/v1/simulations/{job_id}").status_code, 200
                )

    def test_running_jobs_are_never_evicted(self):
        running = api_module.SimulationJob(job_id="running")
        with patch.dict(api_module._jobs, {"running": running}, clear=True), \
                patch.object(api_module, "MAX_FINISHED_JOBS", 0), \
                patch.object(api_module.threading, "Thread", _ImmediateThread):
            self.client.post("/sbloc/api/v1/simulations", json=_payload())
            self.client.post("/sbloc/api/v1/simulations", json=_payload())
            self.assertIn("running", api_module._jobs)
            self.assertEqual(len(api_module._jobs), 2)

    def test_unknown_loan_setting_is_422(self):
        response = self.client.post("/sbloc/api/v1/simulate",
                                    json=_payload(sbloc={"anual_withdrawal": 50_000}))
        self.assertEqual(response.status_code, 422)
        self.assertIn("anual_withdrawal", response.get_json()["error"])

    def test_background_job_invalid_config_is_422(self):
        response = self.client.post("/sbloc/api/v1/simulations", json=_payload(time_horizon=5))
        self.assertEqual(response.status_code, 422)


if __name__ == '__main__':
    unittest.main()
