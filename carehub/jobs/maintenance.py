"""
Nightly maintenance pipeline.

    expire_events -> mark_missed_adherence
    complete_treatment_plans
    flag_care_plan_reviews
    enforce_retention

Each step commits its own work, so a failing step only rolls back itself
and its dependents are skipped.
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from carehub.jobs.dag import JobGraph, StepFn
from carehub.models.audit import MaintenanceRun
from carehub.models.database import utcnow
from carehub.services import care_plans, hipaa, scheduling

logger = logging.getLogger(__name__)

PIPELINE_NAME = "nightly_maintenance"
REPORT_ONLY_COUNTS = ("care_plans_due_for_review",)


def _committed(fn: StepFn) -> StepFn:
    @functools.wraps(fn)
    def wrapper(context: dict[str, Any]) -> dict[str, Any] | None:
        db: Session = context["db"]
        try:
            result = fn(context)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return result

    return wrapper


@_committed
def expire_events(context: dict[str, Any]) -> dict[str, Any]:
    return {"expired_events": scheduling.expire_stale_events(context["db"], context["now"])}


@_committed
def mark_missed_adherence(context: dict[str, Any]) -> dict[str, Any]:
    return {"missed_adherence_records": scheduling.mark_missed_adherence(context["db"])}


@_committed
def complete_treatment_plans(context: dict[str, Any]) -> dict[str, Any]:
    completed = care_plans.complete_overdue_treatment_plans(context["db"], context["now"])
    return {"completed_treatment_plans": completed}


@_committed
def flag_care_plan_reviews(context: dict[str, Any]) -> dict[str, Any]:
    due = care_plans.care_plans_due_for_review(context["db"], context["now"].date())
    if due:
        logger.info("%d care plans are due for review", len(due))
    return {"care_plans_due_for_review": len(due)}


@_committed
def enforce_retention(context: dict[str, Any]) -> dict[str, Any]:
    return hipaa.enforce_retention(context["db"], context["now"])


def build_maintenance_pipeline() -> JobGraph:
    graph = JobGraph(PIPELINE_NAME)
    graph.add_step("expire_events", expire_events)
    graph.add_step("mark_missed_adherence", mark_missed_adherence, depends_on=["expire_events"])
    graph.add_step("complete_treatment_plans", complete_treatment_plans)
    graph.add_step("flag_care_plan_reviews", flag_care_plan_reviews)
    graph.add_step("enforce_retention", enforce_retention)
    return graph


def run_maintenance(db: Session, now: datetime | None = None) -> MaintenanceRun:
    """Run the pipeline and persist a MaintenanceRun describing it."""
    now = now or utcnow()
    graph = build_maintenance_pipeline()
    started = utcnow()
    summary = graph.run({"db": db, "now": now})
    counts = graph.counts()

    run = MaintenanceRun(
        pipeline_name=graph.name,
        status=summary["status"],
        started_at=started,
        completed_at=utcnow(),
        affected_rows=sum(v for k, v in counts.items() if k not in REPORT_ONLY_COUNTS),
        tasks=summary["tasks"],
        record_counts=counts,
        dag_definition=graph.to_dict(),
    )
    db.add(run)
    db.commit()
    return run
