from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..core.config import settings
from ..models import now_local_naive

logger = logging.getLogger(__name__)


@dataclass
class JobExecution:
    id: str
    job_name: str
    started_at: datetime
    status: str = "running"  # running / completed / failed
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    result: Any = None
    error: Optional[str] = None

    def finish(self, status: str) -> None:
        self.completed_at = now_local_naive()
        self.status = status
        self.duration_ms = (self.completed_at - self.started_at).total_seconds() * 1000


@dataclass
class JobStats:
    total_executions: int
    successful_executions: int
    failed_executions: int
    average_duration_ms: float
    last_execution: Optional[JobExecution] = None


class JobTracker:
    """In-memory record of scheduled job runs, newest first."""

    def __init__(self, max_history: int | None = None) -> None:
        self._running: dict[str, JobExecution] = {}
        self._history: deque[JobExecution] = deque(maxlen=max_history or settings.JOB_HISTORY_SIZE)
        self._lock = threading.Lock()

    def start_job(self, job_name: str) -> str:
        job_id = f"{job_name}_{uuid.uuid4().hex[:12]}"
        with self._lock:
            self._running[job_id] = JobExecution(id=job_id, job_name=job_name, started_at=now_local_naive())
        logger.info("Job started: %s (%s)", job_name, job_id)
        return job_id

    def complete_job(self, job_id: str, result: Any = None) -> None:
        execution = self._pop(job_id)
        if execution is None:
            logger.warning("Attempted to complete unknown job: %s", job_id)
            return
        execution.result = result
        execution.finish("completed")
        self._remember(execution)
        logger.info("Job completed: %s (%s) in %.0fms", execution.job_name, job_id, execution.duration_ms)

    def fail_job(self, job_id: str, error: str | BaseException) -> None:
        execution = self._pop(job_id)
        if execution is None:
            logger.warning("Attempted to fail unknown job: %s", job_id)
            return
        execution.error = str(error)
        execution.finish("failed")
        self._remember(execution)
        logger.error("Job failed: %s (%s): %s", execution.job_name, job_id, execution.error)

    def get_running_jobs(self) -> list[JobExecution]:
        with self._lock:
            return list(self._running.values())

    def get_job_history(self, job_name: str | None = None, limit: int = 10) -> list[JobExecution]:
        with self._lock:
            history = list(self._history)
        if job_name:
            history = [e for e in history if e.job_name == job_name]
        return history[:limit]

    def get_job_stats(self, job_name: str | None = None) -> JobStats:
        history = self.get_job_history(job_name, limit=len(self._history))
        durations = [e.duration_ms for e in history if e.duration_ms is not None]
        return JobStats(
            total_executions=len(history),
            successful_executions=sum(1 for e in history if e.status == "completed"),
            failed_executions=sum(1 for e in history if e.status == "failed"),
            average_duration_ms=(sum(durations) / len(durations)) if durations else 0.0,
            last_execution=history[0] if history else None,
        )

    def get_status(self) -> dict[str, Any]:
        return {
            "running_jobs": self.get_running_jobs(),
            "recent_executions": self.get_job_history(limit=5),
            "stats": self.get_job_stats(),
        }

    def _pop(self, job_id: str) -> JobExecution | None:
        with self._lock:
            return self._running.pop(job_id, None)

    def _remember(self, execution: JobExecution) -> None:
        with self._lock:
            self._history.appendleft(execution)
