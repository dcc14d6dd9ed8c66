"""Step timing for build, test and publish runs."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

import structlog

log = structlog.get_logger("monoinject.progress")


@dataclass
class StepProgress:
    step: str
    status: str = "pending"  # "pending" | "running" | "completed" | "failed" | "skipped"
    start_time: float | None = None
    end_time: float | None = None
    detail: str = ""
    error: str | None = None

    @property
    def duration(self) -> float | None:
        if self.start_time is not None and self.end_time is not None:
            return round(self.end_time - self.start_time, 3)
        return None


class ProgressTracker:
    """Record start/end of named steps for the end-of-run summary."""

    def __init__(self) -> None:
        self.steps: list[StepProgress] = []
        self._by_name: dict[str, StepProgress] = {}

    def start(self, step: str) -> None:
        p = StepProgress(step=step, status="running", start_time=time.monotonic())
        self.steps.append(p)
        self._by_name[step] = p
        log.debug("step.start", step=step)

    def complete(self, step: str, detail: str = "") -> None:
        p = self._by_name.get(step)
        if p:
            p.status = "completed"
            p.end_time = time.monotonic()
            p.detail = detail
            log.info("step.done", step=step, duration=p.duration)

    def fail(self, step: str, error: str) -> None:
        p = self._by_name.get(step)
        if p:
            p.status = "failed"
            p.end_time = time.monotonic()
            p.error = error
            log.error("step.failed", step=step, error=error)

    def skip(self, step: str, reason: str) -> None:
        p = StepProgress(step=step, status="skipped", detail=reason)
        self.steps.append(p)
        self._by_name[step] = p
        log.info("step.skipped", step=step, reason=reason)

    @contextmanager
    def track(self, step: str) -> Iterator[StepProgress]:
        """Run a block as *step*; an exception marks it failed and propagates."""
        self.start(step)
        p = self._by_name[step]
        try:
            yield p
        except BaseException as e:
            self.fail(step, str(e) or type(e).__name__)
            raise
        self.complete(step, p.detail)

    def summary(self) -> dict[str, Any]:
        total = sum(p.duration or 0 for p in self.steps)
        return {
            "steps": [
                {
                    "step": p.step,
                    "status": p.status,
                    "duration": p.duration,
                    "detail": p.detail,
                    "error": p.error,
                }
                for p in self.steps
            ],
            "total_duration": round(total, 3),
        }
