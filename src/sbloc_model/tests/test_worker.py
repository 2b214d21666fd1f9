# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Tests for the SimulationWorker execution boundary.
"""

import threading
import unittest

from ..errors import ConfigurationError
from ..montecarlo.config import AssetConfig, PortfolioConfig, SimulationConfig
from ..montecarlo.worker import SimulationWorker

HISTORY = (0.10, -0.05, 0.08, 0.12, -0.02)


def _portfolio():
    return PortfolioConfig((AssetConfig("a", 0.6, HISTORY), AssetConfig("b", 0.4, HISTORY)))


class TestSimulationWorker(unittest.TestCase):

    def setUp(self):
        self.worker = SimulationWorker()

    def tearDown(self):
        self.worker.shutdown()

    def test_health_check(self):
        self.assertEqual(self.worker.health_check(), "ready")

    def test_cancel_without_active_run_is_noop(self):
        self.worker.cancel()
        self.worker.cancel()
        self.assertFalse(self.worker.is_running)

    def test_run_completes(self):
        progress = []
        output = self.worker.run(
            SimulationConfig(iterations=2_000, time_horizon=10, seed=1), _portfolio(),
            on_progress=progress.append,
        )
        self.assertFalse(output.cancelled)
        self.assertEqual(output.iterations_completed, 2_000)
        self.assertEqual(progress, [50.0, 100.0])
        self.assertFalse(self.worker.is_running)

    def test_cancel_from_progress_callback(self):
        output = self.worker.run(
            SimulationConfig(iterations=100_000, time_horizon=30, seed=1), _portfolio(),
            on_progress=lambda percent: self.worker.cancel(),
        )
        self.assertTrue(output.cancelled)
        self.assertEqual(output.iterations_completed, 1_000)

    def test_external_cancellation_token(self):
        token = threading.Event()
        token.set()
        output = self.worker.run(
            SimulationConfig(iterations=1_000, time_horizon=10, seed=1), _portfolio(),
            cancellation_token=token,
        )
        self.assertTrue(output.cancelled)
        self.assertEqual(output.iterations_completed, 0)

    def test_submit_returns_future(self):
        future = self.worker.submit(
            SimulationConfig(iterations=1_000, time_horizon=10, seed=3), _portfolio()
        )
        output = future.result(timeout=60)
        self.assertEqual(output.iterations_completed, 1_000)
        same = self.worker.run(SimulationConfig(iterations=1_000, time_horizon=10, seed=3),
                               _portfolio())
        self.assertEqual(output.terminal_values.tobytes(), same.terminal_values.tobytes())

    def test_submit_cancelled_in_background(self):
        future = self.worker.submit(
            SimulationConfig(iterations=100_000, time_horizon=30, seed=3), _portfolio(),
            on_progress=lambda percent: self.worker.cancel(),
        )
        output = future.result(timeout=60)
        self.assertTrue(output.cancelled)
        self.assertEqual(output.iterations_completed, 1_000)

    def test_cancel_reaches_queued_submissions(self):
        release = threading.Event()
        first = self.worker.submit(
            SimulationConfig(iterations=100_000, time_horizon=30, seed=5), _portfolio(),
            on_progress=lambda percent: release.wait(timeout=60),
        )
        queued = self.worker.submit(
            SimulationConfig(iterations=20_000, time_horizon=30, seed=6), _portfolio()
        )
        self.assertTrue(self.worker.is_running)
        self.worker.cancel()
        release.set()

        first_output = first.result(timeout=60)
        queued_output = queued.result(timeout=60)
        self.assertTrue(first_output.cancelled)
        self.assertLess(first_output.iterations_completed, 100_000)
        self.assertTrue(queued_output.cancelled)
        self.assertEqual(queued_output.iterations_completed, 0)
        self.assertFalse(self.worker.is_running)

    def test_submit_invalid_config_raises_immediately(self):
        with self.assertRaises(ConfigurationError):
            self.worker.submit("not a config", _portfolio())
        self.assertFalse(self.worker.is_running)

    def test_invalid_config_raises(self):
        with self.assertRaises(ConfigurationError):
            self.worker.run("not a config", _portfolio())


if __name__ == '__main__':
    unittest.main()
