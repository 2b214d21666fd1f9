# Copyright 2025 Spencer Williams
#
# Use of this source code is governed by an MIT license:
# https://github.com/sw23/life-model/blob/main/LICENSE

"""
Execution boundary for Monte Carlo runs.

SimulationWorker is what a host talks to: it runs the simulator, forwards
progress, and lets the host cancel the active run. ``submit`` places the run
on a background thread and returns a Future, so the caller's thread is never
blocked by a long simulation.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Set

from .config import PortfolioConfig, SimulationConfig
from .results import SimulationOutput
from .simulator import CancellationToken, MonteCarloSimulator, ProgressCallback

logger = logging.getLogger(__name__)

READY = "ready"


class _EitherToken:
    """Cancellation token that is set when either of two tokens is set."""

    def __init__(self, own: threading.Event, external: Optional[CancellationToken]):
        self._own = own
        self._external = external

    def is_set(self) -> bool:
        if self._own.is_set():
            return True
        return self._external is not None and self._external.is_set()


class SimulationWorker:
    """Runs simulations and exposes run / cancel / health_check to a host.

    Example:
        >>> worker = SimulationWorker()
        >>> future = worker.submit(config, portfolio, on_progress=print)
        >>> worker.cancel()
        >>> output = future.result()
        >>> output.cancelled
        True
    """

    def __init__(self, max_workers: int = 1):
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._active: Set[threading.Event] = set()

    def run(self,
            config: SimulationConfig,
            portfolio: PortfolioConfig,
            on_progress: Optional[ProgressCallback] = None,
            cancellation_token: Optional[CancellationToken] = None) -> SimulationOutput:
        """Run a simulation on the calling thread.

        Args:
            config: Simulation configuration
            portfolio: Portfolio to simulate
            on_progress: Called with percent complete once per batch
            cancellation_token: Optional external token polled alongside
                :meth:`cancel`

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        simulator = MonteCarloSimulator(config, portfolio)
        return self._run(simulator, on_progress, cancellation_token, self._register())

    def submit(self,
               config: SimulationConfig,
               portfolio: PortfolioConfig,
               on_progress: Optional[ProgressCallback] = None,
               cancellation_token: Optional[CancellationToken] = None
               ) -> 'Future[SimulationOutput]':
        """Run a simulation on a background thread.

        The run counts as active from the moment it is queued, so
        :meth:`cancel` also stops runs that have not started yet.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        simulator = MonteCarloSimulator(config, portfolio)
        cancel_event = self._register()
        try:
            with self._lock:
                if self._executor is None:
                    self._executor = ThreadPoolExecutor(
                        max_workers=self._max_workers, thread_name_prefix="sbloc-sim"
                    )
                executor = self._executor
            return executor.submit(self._run, simulator, on_progress, cancellation_token,
                                   cancel_event)
        except RuntimeError:
            self._release(cancel_event)
            raise

    def _register(self) -> threading.Event:
        cancel_event = threading.Event()
        with self._lock:
            self._active.add(cancel_event)
        return cancel_event

    def _release(self, cancel_event: threading.Event) -> None:
        with self._lock:
            self._active.discard(cancel_event)

    def _run(self,
             simulator: MonteCarloSimulator,
             on_progress: Optional[ProgressCallback],
             cancellation_token: Optional[CancellationToken],
             cancel_event: threading.Event) -> SimulationOutput:
        try:
            return simulator.run(on_progress, _EitherToken(cancel_event, cancellation_token))
        finally:
            self._release(cancel_event)

    def cancel(self) -> None:
        """Request cancellation of every active run.

        Idempotent; does nothing when no run is active.
        """
        with self._lock:
            active = list(self._active)
        if active:
            logger.info("Cancelling %d active simulation(s)", len(active))
        for event in active:
            event.set()

    @property
    def is_running(self) -> bool:
        with self._lock:
            return bool(self._active)

    def health_check(self) -> str:
        return READY

    def shutdown(self, wait: bool = True) -> None:
        """Cancel active runs and stop the background executor."""
        self.cancel()
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
