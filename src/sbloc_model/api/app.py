"""
Flask web server for the SBLOC Monte Carlo API.

Request bodies carry a ``config`` object (simulation settings, optionally
with a nested ``sbloc`` object) and a ``portfolio`` object with its assets.
Runs are either synchronous (``/simulate``) or queued as background jobs
(``/simulations``) that report progress and can be cancelled.
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request

from ..errors import ConfigurationError
from ..montecarlo import PortfolioConfig, SimulationConfig, SimulationOutput, SimulationWorker

logger = logging.getLogger(__name__)

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))
# Finished jobs kept for polling; older ones are evicted as new jobs start
MAX_FINISHED_JOBS = int(os.getenv("MAX_FINISHED_JOBS", "100"))

app = Flask(__name__)
worker = SimulationWorker()


@dataclass
class SimulationJob:
    """State of a background simulation, updated from the worker thread."""
    job_id: str
    status: str = "processing"
    progress: float = 0.0
    include_terminal_values: bool = False
    output: Optional[SimulationOutput] = None
    error: Optional[str] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status,
            "progress": self.progress,
        }
        if self.output is not None:
            data["result"] = self.output.to_dict(self.include_terminal_values)
        if self.error is not None:
            data["error"] = self.error
        return data


_jobs: Dict[str, SimulationJob] = {}
_jobs_lock = threading.Lock()


def _parse_request(payload: Any) -> Tuple[SimulationConfig, PortfolioConfig]:
    """Build validated configs from a request body.

    Raises:
        ConfigurationError: If either section is missing or invalid
    """
    config = payload.get("config", {})
    portfolio = payload.get("portfolio")
    if not isinstance(config, dict):
        raise ConfigurationError("config must be an object")
    if not isinstance(portfolio, dict):
        raise ConfigurationError("portfolio is required and must be an object")
    try:
        return SimulationConfig.from_dict(config), PortfolioConfig.from_dict(portfolio)
    except TypeError as e:
        raise ConfigurationError(str(e)) from e


def _get_payload() -> Tuple[Optional[Dict[str, Any]], Optional[Tuple[Any, int]]]:
    payload = request.get_json(silent=True)
    if payload is None:
        return None, (jsonify({"success": False, "error": "Request JSON body is required"}), 400)
    if not isinstance(payload, dict):
        return None, (jsonify({"success": False, "error": "Request JSON body must be an object"}), 400)
    return payload, None


def _run_job(job: SimulationJob, config: SimulationConfig, portfolio: PortfolioConfig) -> None:
    def on_progress(percent: float) -> None:
        job.progress = percent

    try:
        output = worker.run(config, portfolio, on_progress, job.cancel_event)
    except Exception as e:
        logger.exception("Simulation job %s failed", job.job_id)
        job.error = str(e)
        job.status = "error"
        return
    job.output = output
    job.status = output.status.value


@app.get("/health")
def health() -> Tuple[Any, int]:
    return jsonify({"ok": True, "service": "sbloc-model-api", "engine": worker.health_check()}), 200


@app.post("/sbloc/api/v1/simulate")
def simulate() -> Tuple[Any, int]:
    payload, error = _get_payload()
    if error is not None:
        return error
    try:
        config, portfolio = _parse_request(payload)
    except ConfigurationError as e:
        return jsonify({"success": False, "error": str(e)}), 422

    output = worker.run(config, portfolio)
    return jsonify({
        "success": True,
        "result": output.to_dict(bool(payload.get("include_terminal_values", False))),
    }), 200


@app.post("/sbloc/api/v1/simulations")
def start_simulation() -> Tuple[Any, int]:
    payload, error = _get_payload()
    if error is not None:
        return error
    try:
        config, portfolio = _parse_request(payload)
    except ConfigurationError as e:
        return jsonify({"success": False, "error": str(e)}), 422

    job = SimulationJob(
        job_id=uuid.uuid4().hex,
        include_terminal_values=bool(payload.get("include_terminal_values", False)),
    )
    with _jobs_lock:
        _evict_finished_jobs()
        _jobs[job.job_id] = job

    thread = threading.Thread(target=_run_job, args=(job, config, portfolio))
    thread.daemon = True
    thread.start()
    logger.info("Started simulation job %s", job.job_id)

    return jsonify({
        "job_id": job.job_id,
        "status": "processing",
        "message": "Request accepted and processing started",
    }), 202


def _evict_finished_jobs() -> None:
    """Drop the oldest finished jobs beyond MAX_FINISHED_JOBS. Caller holds _jobs_lock."""
    finished = [job_id for job_id, job in _jobs.items() if job.status != "processing"]
    for job_id in finished[:max(0, len(finished) - MAX_FINISHED_JOBS)]:
        del _jobs[job_id]


def _find_job(job_id: str) -> Optional[SimulationJob]:
    with _jobs_lock:
        return _jobs.get(job_id)


@app.get("/sbloc/api/v1/simulations/<job_id>")
def get_simulation(job_id: str) -> Tuple[Any, int]:
    job = _find_job(job_id)
    if job is None:
        return jsonify({"success": False, "error": f"Unknown job id: {job_id}"}), 404
    return jsonify(job.to_dict()), 200


@app.post("/sbloc/api/v1/simulations/<job_id>/cancel")
def cancel_simulation(job_id: str) -> Tuple[Any, int]:
    job = _find_job(job_id)
    if job is None:
        return jsonify({"success": False, "error": f"Unknown job id: {job_id}"}), 404
    job.cancel_event.set()
    return jsonify({"job_id": job_id, "status": job.status, "cancel_requested": True}), 200
