"""
Dependency-ordered job runner for background maintenance.

Steps are plain callables taking a shared context dict and returning a
dict of results that is merged into the context for downstream steps.
A failure marks every transitive dependent as skipped; independent
branches keep running.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

StepFn = Callable[[dict[str, Any]], "dict[str, Any] | None"]


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class Step:
    name: str
    fn: StepFn
    depends_on: list[str] = field(default_factory=list)
    status: StepStatus = StepStatus.PENDING
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    duration_ms: float = 0.0


class JobGraph:
    """
    Usage:
        graph = JobGraph("nightly_maintenance")
        graph.add_step("expire_events", expire_events)
        graph.add_step("mark_missed_adherence", mark_missed, depends_on=["expire_events"])
        summary = graph.run({"db": session})
    """

    def __init__(self, name: str):
        self.name = name
        self.steps: dict[str, Step] = {}

    def add_step(self, name: str, fn: StepFn, depends_on: list[str] | None = None) -> JobGraph:
        if name in self.steps:
            raise ValueError(f"Duplicate step name: {name}")
        self.steps[name] = Step(name=name, fn=fn, depends_on=list(depends_on or []))
        return self

    def execution_order(self) -> list[str]:
        """Kahn ordering; insertion order breaks ties."""
        remaining = {name: len(step.depends_on) for name, step in self.steps.items()}
        dependents: dict[str, list[str]] = {name: [] for name in self.steps}
        for step in self.steps.values():
            for dep in step.depends_on:
                if dep not in self.steps:
                    raise ValueError(f"Step '{step.name}' depends on unknown step '{dep}'")
                dependents[dep].append(step.name)

        ready = deque(name for name, count in remaining.items() if count == 0)
        order: list[str] = []
        while ready:
            current = ready.popleft()
            order.append(current)
            for name in dependents[current]:
                remaining[name] -= 1
                if remaining[name] == 0:
                    ready.append(name)

        if len(order) != len(self.steps):
            raise ValueError("Cycle detected in job graph")
        return order

    def run(self, context: dict[str, Any] | None = None) -> dict[str, Any]:
        order = self.execution_order()
        context = dict(context or {})
        summary: dict[str, Any] = {"pipeline": self.name, "tasks": {}}
        logger.info("Starting '%s' with %d steps", self.name, len(self.steps))

        for name in order:
            step = self.steps[name]
            blocked = [
                dep for dep in step.depends_on
                if self.steps[dep].status in (StepStatus.FAILED, StepStatus.SKIPPED)
            ]
            if blocked:
                step.status = StepStatus.SKIPPED
                logger.warning("Skipping '%s'; upstream %s did not succeed", name, ", ".join(blocked))
                summary["tasks"][name] = {"status": step.status.value, "duration_ms": None, "error": None}
                continue

            step.status = StepStatus.RUNNING
            started = time.perf_counter()
            try:
                step.result = step.fn(context) or {}
                step.status = StepStatus.SUCCESS
                context.update(step.result)
            except Exception as exc:
                step.status = StepStatus.FAILED
                step.error = str(exc)
                logger.exception("Step '%s' failed", name)
            finally:
                step.duration_ms = (time.perf_counter() - started) * 1000

            summary["tasks"][name] = {
                "status": step.status.value,
                "duration_ms": round(step.duration_ms, 2),
                "error": step.error,
            }

        ok = all(s.status == StepStatus.SUCCESS for s in self.steps.values())
        summary["status"] = "completed" if ok else "failed"
        logger.info("'%s' finished: %s", self.name, summary["status"])
        return summary

    def counts(self) -> dict[str, int]:
        """Integer results reported by successful steps."""
        totals: dict[str, int] = {}
        for step in self.steps.values():
            for key, value in step.result.items():
                if isinstance(value, int) and not isinstance(value, bool):
                    totals[key] = value
        return totals

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "steps": {name: {"depends_on": step.depends_on} for name, step in self.steps.items()},
        }
